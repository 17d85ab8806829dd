"""Images that are loaded lazily and shared through a per-painter cache."""

from __future__ import annotations

from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from enum import IntFlag
from pathlib import Path
from typing import Protocol


class ImageFlag(IntFlag):
    """Properties of a loaded image."""

    GENERATE_MIPMAPS = 1 << 0
    REPEATX = 1 << 1
    REPEATY = 1 << 2
    FLIPY = 1 << 3
    PREMULTIPLIED = 1 << 4
    NEAREST = 1 << 5


@dataclass
class ImageData:
    """Backend image id and pixel size shared between images with the same key."""

    width: int = 0
    height: int = 0
    id: int = 0


class _FrameBuffer(Protocol):
    width: int
    height: int
    texture: int


HandleFactory = Callable[[int, int, int, ImageFlag], int]
MemoryFactory = Callable[[bytes, ImageFlag], "tuple[int, int, int]"]


class NanoImage:
    """An image read from a file or taken from a framebuffer texture.

    The image is not loaded until :meth:`load_id` is first called.
    """

    def __init__(self, filename: str | None = None, flags: ImageFlag = ImageFlag(0)) -> None:
        self._data: ImageData | None = None
        self._filename = filename or ""
        self._texture_id = 0
        self._flags = ImageFlag(flags)
        self._key = ""
        if filename is not None:
            self._update_key()

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def flags(self) -> ImageFlag:
        return self._flags

    @property
    def texture_id(self) -> int:
        return self._texture_id

    @property
    def data(self) -> ImageData | None:
        return self._data

    def set_filename(self, filename: str) -> None:
        """Load the image from ``filename``, dropping any framebuffer texture."""
        if self._filename == filename:
            return
        self._filename = filename
        self._texture_id = 0
        self._update_key()

    def set_frame_buffer(self, fbo: _FrameBuffer) -> None:
        """Take the image from a framebuffer; FLIPY is added to the flags."""
        if fbo is None:
            raise ValueError("a framebuffer is required")
        self._data = ImageData(width=fbo.width, height=fbo.height)
        self._texture_id = fbo.texture
        self._flags |= ImageFlag.FLIPY
        self._filename = ""
        self._update_key()

    def set_flags(self, flags: ImageFlag) -> None:
        flags = ImageFlag(flags)
        if self._flags == flags:
            return
        self._flags = flags
        self._update_key()

    def width(self) -> int:
        """Width in pixels, 0 until the image is known."""
        return self._data.width if self._data else 0

    def height(self) -> int:
        """Height in pixels, 0 until the image is known."""
        return self._data.height if self._data else 0

    def unique_key(self) -> str:
        """Key under which the image is kept in a cache."""
        return self._key

    @staticmethod
    def from_frame_buffer(fbo: _FrameBuffer, flags: ImageFlag = ImageFlag.FLIPY) -> NanoImage:
        """Return an image of the framebuffer's size backed by its texture."""
        if fbo is None:
            raise ValueError("a framebuffer is required")
        image = NanoImage()
        image._data = ImageData(width=fbo.width, height=fbo.height)
        image._texture_id = fbo.texture
        image._flags = ImageFlag(flags)
        image._update_key()
        return image

    def load_id(
        self,
        cache: MutableMapping[str, ImageData],
        create_from_handle: HandleFactory,
        create_from_memory: MemoryFactory,
    ) -> int:
        """Return the backend id of the image, loading and caching it if needed.

        ``create_from_handle(texture, width, height, flags)`` wraps an existing
        texture and returns its id. ``create_from_memory(data, flags)`` decodes
        file contents and returns ``(id, width, height)``. Raises OSError when
        the image file cannot be read.
        """
        cached = cache.get(self._key)
        if cached is not None:
            self._data = cached
        elif self._data is not None and self._texture_id > 0:
            self._data.id = create_from_handle(
                self._texture_id, self._data.width, self._data.height, self._flags
            )
            cache[self._key] = self._data
        else:
            contents = Path(self._filename).read_bytes()
            image_id, width, height = create_from_memory(contents, self._flags)
            self._data = ImageData(width=width, height=height, id=image_id)
            cache[self._key] = self._data
        return self._data.id

    def _update_key(self) -> None:
        prefix = f"{self._texture_id}_" if self._texture_id > 0 else self._filename
        self._key = prefix + str(int(self._flags))