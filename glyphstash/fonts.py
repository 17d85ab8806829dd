"""Font, glyph and drawing-state types shared by the font stash."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

MAX_FALLBACKS = 20
NAME_LIMIT = 63


class Align(IntFlag):
    """Text alignment; one horizontal and one vertical flag may be combined."""

    LEFT = 1 << 0
    CENTER = 1 << 1
    RIGHT = 1 << 2
    TOP = 1 << 3
    MIDDLE = 1 << 4
    BOTTOM = 1 << 5
    BASELINE = 1 << 6


class StashFlags(IntFlag):
    """Where the coordinate origin of the stash lies."""

    ZERO_TOPLEFT = 1
    ZERO_BOTTOMLEFT = 2


class GlyphBitmap(IntEnum):
    """Whether a glyph lookup must rasterize its bitmap into the atlas."""

    OPTIONAL = 1
    REQUIRED = 2


class ErrorCode(IntEnum):
    """Conditions reported to the stash's error callback."""

    ATLAS_FULL = 1
    SCRATCH_FULL = 2
    STATES_OVERFLOW = 3
    STATES_UNDERFLOW = 4


@dataclass(frozen=True)
class GlyphMetrics:
    """Unscaled advance and side bearing plus the pixel box of a glyph bitmap."""

    advance: int
    lsb: int
    x0: int
    y0: int
    x1: int
    y1: int


class FontBackend(ABC):
    """A loaded font face able to measure and rasterize glyphs."""

    @abstractmethod
    def vertical_metrics(self) -> tuple[int, int, int]:
        """Return (ascent, descent, line_gap) in font units."""

    @abstractmethod
    def pixel_height_scale(self, size: float) -> float:
        """Return the factor that maps font units to pixels at ``size``."""

    @abstractmethod
    def glyph_index(self, codepoint: int) -> int:
        """Return the glyph index for a codepoint, 0 when the font lacks it."""

    @abstractmethod
    def build_glyph_bitmap(self, glyph: int, size: float, scale: float) -> GlyphMetrics | None:
        """Return the metrics of a glyph, or None when it cannot be built."""

    @abstractmethod
    def render_glyph_bitmap(
        self,
        output: bytearray,
        offset: int,
        out_width: int,
        out_height: int,
        out_stride: int,
        scale_x: float,
        scale_y: float,
        glyph: int,
    ) -> None:
        """Rasterize a glyph into ``output`` starting at ``offset``."""

    @abstractmethod
    def kern_advance(self, glyph1: int, glyph2: int) -> int:
        """Return the kerning between two glyphs in font units."""


@dataclass
class Glyph:
    """A cached glyph and its place in the atlas.

    Negative atlas coordinates mean no bitmap has been rasterized yet.
    Sizes and advances are stored in tenths of a pixel.
    """

    codepoint: int
    size: int
    blur: int
    index: int = 0
    x0: int = 0
    y0: int = 0
    x1: int = 0
    y1: int = 0
    xadv: int = 0
    xoff: int = 0
    yoff: int = 0

    @property
    def has_bitmap(self) -> bool:
        return self.x0 >= 0 and self.y0 >= 0


@dataclass
class Quad:
    """Screen rectangle and texture coordinates of one glyph."""

    x0: float = 0.0
    y0: float = 0.0
    s0: float = 0.0
    t0: float = 0.0
    x1: float = 0.0
    y1: float = 0.0
    s1: float = 0.0
    t1: float = 0.0


@dataclass
class State:
    """Text drawing settings; the defaults are those of a cleared state."""

    font: int = 0
    align: Align = Align.LEFT | Align.BASELINE
    pixel_align_text: bool = True
    size: float = 12.0
    color: int = 0xFFFFFFFF
    blur: float = 0.0
    spacing: float = 0.0


@dataclass(eq=False)
class Font:
    """A named font with its glyph cache and fallback list.

    Vertical metrics are normalised so that the line height is one unit;
    multiply by the font size to get pixels.
    """

    name: str
    backend: FontBackend
    data: bytes
    ascender: float = field(init=False)
    descender: float = field(init=False)
    lineh: float = field(init=False)
    fallbacks: list[int] = field(init=False, default_factory=list)
    glyphs: dict[tuple[int, int, int], Glyph] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self.name = self.name[:NAME_LIMIT]
        ascent, descent, line_gap = self.backend.vertical_metrics()
        ascent += line_gap
        height = ascent - descent
        if height == 0:
            raise ValueError(f"font {self.name!r} has zero height")
        self.ascender = ascent / height
        self.descender = descent / height
        self.lineh = self.ascender - self.descender

    def add_fallback(self, index: int) -> None:
        """Append a fallback font index; raise OverflowError when the list is full."""
        if len(self.fallbacks) >= MAX_FALLBACKS:
            raise OverflowError(f"font {self.name!r} already has {MAX_FALLBACKS} fallbacks")
        self.fallbacks.append(index)

    def reset_fallbacks(self) -> None:
        """Drop all fallbacks and the glyphs that may have come from them."""
        self.fallbacks.clear()
        self.clear_glyphs()

    def find_glyph(self, codepoint: int, size: int, blur: int) -> Glyph | None:
        return self.glyphs.get((codepoint, size, blur))

    def add_glyph(self, codepoint: int, size: int, blur: int) -> Glyph:
        """Create a cache entry for a glyph and return it."""
        glyph = Glyph(codepoint=codepoint, size=size, blur=blur)
        self.glyphs[(codepoint, size, blur)] = glyph
        return glyph

    def clear_glyphs(self) -> None:
        self.glyphs.clear()