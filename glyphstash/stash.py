"""Font stash: glyph caching in a texture atlas, text layout and vertex batching."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from .atlas import Atlas
from .blur import blur
from .fonts import (
    Align,
    ErrorCode,
    Font,
    FontBackend,
    Glyph,
    GlyphBitmap,
    Quad,
    StashFlags,
    State,
)
from .utf8 import Utf8Decoder, decode_codepoints

VERTEX_COUNT = 1024
MAX_STATES = 20
MAX_BLUR = 20

ErrorCallback = Callable[[ErrorCode, int], None]
FontLoader = Callable[[bytes, int], "FontBackend | None"]


class Renderer:
    """Receives texture updates and vertex batches.

    The default keeps its own copy of the texture, updated from the dirty
    regions it is sent, and counts the batches and vertices it is asked to draw.
    """

    def __init__(self) -> None:
        self.width = 0
        self.height = 0
        self.texture = bytearray()
        self.batches = 0
        self.vertices = 0

    def create(self, width: int, height: int) -> bool:
        """Create the texture; return False on failure."""
        if width <= 0 or height <= 0:
            return False
        self.width = width
        self.height = height
        self.texture = bytearray(width * height)
        return True

    def resize(self, width: int, height: int) -> bool:
        """Resize the texture; return False on failure."""
        return self.create(width, height)

    def update(self, rect: tuple[int, int, int, int], data: bytearray) -> None:
        """Upload the dirty region ``rect`` (x0, y0, x1, y1) of the texture."""
        x0, y0, x1, y1 = rect
        w = self.width
        for row in range(max(y0, 0), min(y1, self.height)):
            start = row * w
            self.texture[start + x0:start + x1] = data[start + x0:start + x1]

    def draw(
        self,
        verts: list[tuple[float, float]],
        tcoords: list[tuple[float, float]],
        colors: list[int],
    ) -> None:
        """Draw a batch of triangles."""
        self.batches += 1
        self.vertices += len(colors)

    def delete(self) -> None:
        """Release the texture."""
        self.texture = bytearray()
        self.width = 0
        self.height = 0


def _to_bytes(text: str | bytes | bytearray) -> bytes:
    if isinstance(text, str):
        return text.encode("utf-8")
    return bytes(text)


class TextIterator:
    """Walks a text glyph by glyph, yielding a Quad per codepoint.

    None is yielded for a codepoint whose glyph could not be built. With
    ``GlyphBitmap.OPTIONAL`` the texture coordinates of the quads are not valid.
    The attributes ``x``, ``y``, ``codepoint``, ``start`` and ``next`` describe
    the glyph last produced.
    """

    def __init__(
        self,
        stash: FontStash,
        font: Font,
        data: bytes,
        x: float,
        y: float,
        isize: int,
        iblur: int,
        scale: float,
        spacing: float,
        bitmap_option: GlyphBitmap,
    ) -> None:
        self._stash = stash
        self._font = font
        self._data = data
        self._decoder = Utf8Decoder()
        self.x = self.nextx = x
        self.y = self.nexty = y
        self.isize = isize
        self.iblur = iblur
        self.scale = scale
        self.spacing = spacing
        self.bitmap_option = bitmap_option
        self.codepoint = 0
        self.prev_glyph_index = -1
        self.start = 0
        self.next = 0

    def __iter__(self) -> TextIterator:
        return self

    def __next__(self) -> Quad | None:
        data = self._data
        pos = self.next
        self.start = pos
        while pos < len(data):
            codepoint = self._decoder.decode(data[pos])
            pos += 1
            if codepoint is None:
                continue
            self.codepoint = codepoint
            self.x, self.y = self.nextx, self.nexty
            stash = self._stash
            glyph = stash._get_glyph(self._font, codepoint, self.isize, self.iblur, self.bitmap_option)
            quad = None
            if glyph is not None:
                quad, self.nextx = stash._get_quad(
                    self._font, self.prev_glyph_index, glyph, self.scale, self.spacing, self.nextx, self.nexty
                )
            self.prev_glyph_index = glyph.index if glyph is not None else -1
            self.next = pos
            return quad
        self.next = pos
        raise StopIteration


class FontStash:
    """Caches rasterized glyphs in a single-channel atlas and lays out text."""

    def __init__(
        self,
        width: int,
        height: int,
        flags: StashFlags = StashFlags.ZERO_TOPLEFT,
        loader: FontLoader | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("atlas size must be positive")
        self._width = width
        self._height = height
        self._flags = StashFlags(flags)
        self._loader = loader
        self._renderer = renderer if renderer is not None else Renderer()
        self._error_callback: ErrorCallback | None = None
        self._closed = False
        if not self._renderer.create(width, height):
            raise RuntimeError("renderer could not create the texture")
        self._atlas = Atlas(width, height)
        self._fonts: list[Font] = []
        self._texture = bytearray(width * height)
        self._dirty = [width, height, 0, 0]
        self._verts: list[tuple[float, float]] = []
        self._tcoords: list[tuple[float, float]] = []
        self._colors: list[int] = []
        self._states: list[State] = []
        # White rectangle at the origin, used by debug drawing.
        self._add_white_rect(2, 2)
        self.push_state()
        self.clear_state()

    # ----- lifetime -----

    def __enter__(self) -> FontStash:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the renderer and drop all fonts."""
        if self._closed:
            return
        self._closed = True
        self._renderer.delete()
        self._fonts.clear()

    def set_error_callback(self, callback: ErrorCallback | None) -> None:
        """Set ``callback(error, value)``, called when the atlas fills or states misbalance."""
        self._error_callback = callback

    # ----- atlas -----

    @property
    def fonts(self) -> Sequence[Font]:
        return tuple(self._fonts)

    def atlas_size(self) -> tuple[int, int]:
        return self._width, self._height

    def expand_atlas(self, width: int, height: int) -> None:
        """Grow the atlas, keeping what is already in it. It never shrinks."""
        width = max(width, self._width)
        height = max(height, self._height)
        if width == self._width and height == self._height:
            return
        self._flush()
        if not self._renderer.resize(width, height):
            raise RuntimeError("renderer could not resize the texture")
        old_w = self._width
        data = bytearray(width * height)
        for row in range(self._height):
            data[row * width: row * width + old_w] = self._texture[row * old_w: (row + 1) * old_w]
        self._texture = data
        self._atlas.expand(width, height)
        maxy = max((node.y for node in self._atlas.nodes), default=0)
        maxy = max(maxy, 0)
        self._dirty = [0, 0, old_w, maxy]
        self._width = width
        self._height = height

    def reset_atlas(self, width: int, height: int) -> None:
        """Clear the atlas and every cached glyph, and resize it."""
        if width <= 0 or height <= 0:
            raise ValueError("atlas size must be positive")
        self._flush()
        if not self._renderer.resize(width, height):
            raise RuntimeError("renderer could not resize the texture")
        self._atlas.reset(width, height)
        self._texture = bytearray(width * height)
        self._dirty = [width, height, 0, 0]
        for font in self._fonts:
            font.clear_glyphs()
        self._width = width
        self._height = height
        self._add_white_rect(2, 2)

    def _add_white_rect(self, w: int, h: int) -> None:
        spot = self._atlas.add_rect(w, h)
        if spot is None:
            return
        gx, gy = spot
        for row in range(h):
            start = gx + (gy + row) * self._width
            self._texture[start:start + w] = b"\xff" * w
        self._mark_dirty(gx, gy, gx + w, gy + h)

    def _mark_dirty(self, x0: int, y0: int, x1: int, y1: int) -> None:
        d = self._dirty
        d[0] = min(d[0], x0)
        d[1] = min(d[1], y0)
        d[2] = max(d[2], x1)
        d[3] = max(d[3], y1)

    def _report(self, error: ErrorCode, value: int) -> bool:
        if self._error_callback is None:
            return False
        self._error_callback(error, value)
        return True

    # ----- fonts -----

    def add_font(self, name: str, path: str | Path, font_index: int = 0) -> int:
        """Load a font file and return its index. Raises OSError when unreadable."""
        return self.add_font_mem(name, Path(path).read_bytes(), font_index)

    def add_font_mem(self, name: str, data: bytes, font_index: int = 0) -> int:
        """Add a font from its file contents and return its index."""
        if self._loader is None:
            raise ValueError("no font loader configured")
        backend = self._loader(bytes(data), font_index)
        if backend is None:
            raise ValueError(f"could not load font {name!r}")
        self._fonts.append(Font(name, backend, bytes(data)))
        return len(self._fonts) - 1

    def font_by_name(self, name: str) -> int | None:
        """Return the index of the font called ``name``, or None."""
        for index, font in enumerate(self._fonts):
            if font.name == name:
                return index
        return None

    def add_fallback_font(self, base: int, fallback: int) -> None:
        self._fonts[base].add_fallback(fallback)

    def reset_fallback_font(self, base: int) -> None:
        self._fonts[base].reset_fallbacks()

    # ----- state -----

    @property
    def _state(self) -> State:
        return self._states[-1]

    def push_state(self) -> None:
        """Save a copy of the current state."""
        if len(self._states) >= MAX_STATES:
            if not self._report(ErrorCode.STATES_OVERFLOW, 0):
                raise IndexError("state stack overflow")
            return
        if self._states:
            top = self._states[-1]
            self._states.append(State(**vars(top)))
        else:
            self._states.append(State())

    def pop_state(self) -> None:
        """Restore the previously saved state."""
        if len(self._states) <= 1:
            if not self._report(ErrorCode.STATES_UNDERFLOW, 0):
                raise IndexError("state stack underflow")
            return
        self._states.pop()

    def clear_state(self) -> None:
        self._states[-1] = State()

    def set_size(self, size: float) -> None:
        self._state.size = size

    def set_color(self, color: int) -> None:
        self._state.color = color

    def set_spacing(self, spacing: float) -> None:
        self._state.spacing = spacing

    def set_blur(self, blur: float) -> None:
        self._state.blur = blur

    def set_align(self, align: Align) -> None:
        self._state.align = Align(align)

    def set_pixel_align_text(self, enabled: bool) -> None:
        self._state.pixel_align_text = bool(enabled)

    def set_font(self, font: int) -> None:
        self._state.font = font

    def _current_font(self) -> Font | None:
        index = self._state.font
        if not 0 <= index < len(self._fonts):
            return None
        return self._fonts[index]

    # ----- glyphs -----

    def _get_glyph(
        self, font: Font, codepoint: int, isize: int, iblur: int, bitmap_option: GlyphBitmap
    ) -> Glyph | None:
        if isize < 2:
            return None
        iblur = min(iblur, MAX_BLUR)
        pad = iblur + 2
        size = isize / 10.0

        glyph = font.find_glyph(codepoint, isize, iblur)
        if glyph is not None and (bitmap_option == GlyphBitmap.OPTIONAL or glyph.has_bitmap):
            return glyph

        render_font = font
        g = font.backend.glyph_index(codepoint)
        if g == 0:
            for index in font.fallbacks:
                fallback = self._fonts[index]
                found = fallback.backend.glyph_index(codepoint)
                if found != 0:
                    g = found
                    render_font = fallback
                    break
        scale = render_font.backend.pixel_height_scale(size)
        metrics = render_font.backend.build_glyph_bitmap(g, size, scale)
        if metrics is None:
            return None
        gw = metrics.x1 - metrics.x0 + pad * 2
        gh = metrics.y1 - metrics.y0 + pad * 2

        if bitmap_option == GlyphBitmap.REQUIRED:
            spot = self._atlas.add_rect(gw, gh)
            if spot is None and self._report(ErrorCode.ATLAS_FULL, 0):
                spot = self._atlas.add_rect(gw, gh)
            if spot is None:
                return None
            gx, gy = spot
        else:
            gx = gy = -1

        if glyph is None:
            glyph = font.add_glyph(codepoint, isize, iblur)
        glyph.index = g
        glyph.x0 = gx
        glyph.y0 = gy
        glyph.x1 = gx + gw
        glyph.y1 = gy + gh
        glyph.xadv = int(scale * metrics.advance * 10.0)
        glyph.xoff = metrics.x0 - pad
        glyph.yoff = metrics.y0 - pad

        if bitmap_option == GlyphBitmap.OPTIONAL:
            return glyph

        width = self._width
        tex = self._texture
        render_font.backend.render_glyph_bitmap(
            tex, (gx + pad) + (gy + pad) * width, gw - pad * 2, gh - pad * 2, width, scale, scale, g
        )

        # Keep a one pixel empty border around the glyph.
        base = gx + gy * width
        for row in range(gh):
            tex[base + row * width] = 0
            tex[base + gw - 1 + row * width] = 0
        tex[base:base + gw] = bytes(gw)
        last = base + (gh - 1) * width
        tex[last:last + gw] = bytes(gw)

        if iblur > 0:
            blur(tex, base, gw, gh, width, iblur)

        self._mark_dirty(glyph.x0, glyph.y0, glyph.x1, glyph.y1)
        return glyph

    def _get_quad(
        self,
        font: Font,
        prev_glyph_index: int,
        glyph: Glyph,
        scale: float,
        spacing: float,
        x: float,
        y: float,
    ) -> tuple[Quad, float]:
        pixel_align = self._state.pixel_align_text
        if prev_glyph_index != -1:
            adv = font.backend.kern_advance(prev_glyph_index, glyph.index) * scale
            x += adv + spacing

        # Inset the texture region by one pixel for correct interpolation.
        xoff = glyph.xoff + 1
        yoff = glyph.yoff + 1
        x0 = float(glyph.x0 + 1)
        y0 = float(glyph.y0 + 1)
        x1 = float(glyph.x1 - 1)
        y1 = float(glyph.y1 - 1)
        itw = 1.0 / self._width
        ith = 1.0 / self._height

        if self._flags & StashFlags.ZERO_TOPLEFT:
            if pixel_align:
                rx = float(int(x + 0.5 + xoff))
                ry = float(int(y + 0.5 + yoff))
            else:
                rx = x + xoff
                ry = y + yoff
            quad = Quad(rx, ry, x0 * itw, y0 * ith, rx + x1 - x0, ry + y1 - y0, x1 * itw, y1 * ith)
        else:
            if pixel_align:
                rx = float(int(x + 0.5 + xoff))
                ry = float(int(y + 0.5 - yoff))
            else:
                rx = x + xoff
                ry = y - yoff
            quad = Quad(rx, ry, x0 * itw, y0 * ith, rx + x1 - x0, ry - y1 + y0, x1 * itw, y1 * ith)

        if pixel_align:
            x += int(glyph.xadv / 10.0 + 0.5)
        else:
            x += glyph.xadv / 10.0
        return quad, x

    def _vert_align(self, font: Font, align: Align, isize: int) -> float:
        px = isize / 10.0
        sign = 1.0 if self._flags & StashFlags.ZERO_TOPLEFT else -1.0
        if align & Align.TOP:
            return sign * font.ascender * px
        if align & Align.MIDDLE:
            return sign * (font.ascender + font.descender) / 2.0 * px
        if align & Align.BASELINE:
            return 0.0
        if align & Align.BOTTOM:
            return sign * font.descender * px
        return 0.0

    # ----- output -----

    def _flush(self) -> None:
        d = self._dirty
        if d[0] < d[2] and d[1] < d[3]:
            self._renderer.update((d[0], d[1], d[2], d[3]), self._texture)
            self._dirty = [self._width, self._height, 0, 0]
        if self._colors:
            self._renderer.draw(self._verts, self._tcoords, self._colors)
            self._verts = []
            self._tcoords = []
            self._colors = []

    def _vertex(self, x: float, y: float, s: float, t: float, color: int) -> None:
        self._verts.append((x, y))
        self._tcoords.append((s, t))
        self._colors.append(color)

    def _quad_vertices(self, q: Quad, color: int) -> None:
        self._vertex(q.x0, q.y0, q.s0, q.t0, color)
        self._vertex(q.x1, q.y1, q.s1, q.t1, color)
        self._vertex(q.x1, q.y0, q.s1, q.t0, color)
        self._vertex(q.x0, q.y0, q.s0, q.t0, color)
        self._vertex(q.x0, q.y1, q.s0, q.t1, color)
        self._vertex(q.x1, q.y1, q.s1, q.t1, color)

    def _align_x(self, x: float, y: float, data: bytes) -> float:
        align = self._state.align
        if align & Align.LEFT:
            return x
        if align & Align.RIGHT:
            return x - self.text_bounds(x, y, data)[0]
        if align & Align.CENTER:
            return x - self.text_bounds(x, y, data)[0] * 0.5
        return x

    def draw_text(self, x: float, y: float, text: str | bytes) -> float:
        """Draw text with the current state and return the pen position after it."""
        state = self._state
        font = self._current_font()
        if font is None:
            return x
        data = _to_bytes(text)
        isize = int(state.size * 10.0)
        iblur = int(state.blur)
        scale = font.backend.pixel_height_scale(isize / 10.0)

        x = self._align_x(x, y, data)
        y += self._vert_align(font, state.align, isize)

        prev = -1
        for codepoint in decode_codepoints(data):
            glyph = self._get_glyph(font, codepoint, isize, iblur, GlyphBitmap.REQUIRED)
            if glyph is not None:
                quad, x = self._get_quad(font, prev, glyph, scale, state.spacing, x, y)
                if len(self._colors) + 6 > VERTEX_COUNT:
                    self._flush()
                self._quad_vertices(quad, state.color)
            prev = glyph.index if glyph is not None else -1
        self._flush()
        return x

    def text_bounds(
        self, x: float, y: float, text: str | bytes
    ) -> tuple[float, tuple[float, float, float, float] | None]:
        """Return (advance, (minx, miny, maxx, maxy)); bounds are None without a font."""
        state = self._state
        font = self._current_font()
        if font is None:
            return 0.0, None
        data = _to_bytes(text)
        isize = int(state.size * 10.0)
        iblur = int(state.blur)
        scale = font.backend.pixel_height_scale(isize / 10.0)

        y += self._vert_align(font, state.align, isize)
        minx = maxx = startx = x
        miny = maxy = y
        top_left = bool(self._flags & StashFlags.ZERO_TOPLEFT)

        prev = -1
        for codepoint in decode_codepoints(data):
            glyph = self._get_glyph(font, codepoint, isize, iblur, GlyphBitmap.OPTIONAL)
            if glyph is not None:
                q, x = self._get_quad(font, prev, glyph, scale, state.spacing, x, y)
                minx = min(minx, q.x0)
                maxx = max(maxx, q.x1)
                if top_left:
                    miny = min(miny, q.y0)
                    maxy = max(maxy, q.y1)
                else:
                    miny = min(miny, q.y1)
                    maxy = max(maxy, q.y0)
            prev = glyph.index if glyph is not None else -1

        advance = x - startx
        align = state.align
        if align & Align.LEFT:
            pass
        elif align & Align.RIGHT:
            minx -= advance
            maxx -= advance
        elif align & Align.CENTER:
            minx -= advance * 0.5
            maxx -= advance * 0.5
        return advance, (minx, miny, maxx, maxy)

    def vert_metrics(self) -> tuple[float, float, float] | None:
        """Return (ascender, descender, line height) in pixels, or None without a font."""
        font = self._current_font()
        if font is None:
            return None
        isize = int(self._state.size * 10.0)
        return (
            font.ascender * isize / 10.0,
            font.descender * isize / 10.0,
            font.lineh * isize / 10.0,
        )

    def line_bounds(self, y: float) -> tuple[float, float] | None:
        """Return (miny, maxy) of a line drawn at ``y``, or None without a font."""
        font = self._current_font()
        if font is None:
            return None
        isize = int(self._state.size * 10.0)
        y += self._vert_align(font, self._state.align, isize)
        if self._flags & StashFlags.ZERO_TOPLEFT:
            miny = y - font.ascender * isize / 10.0
            maxy = miny + font.lineh * isize / 10.0
        else:
            maxy = y + font.descender * isize / 10.0
            miny = maxy - font.lineh * isize / 10.0
        return miny, maxy

    def text_iter(
        self, x: float, y: float, text: str | bytes, bitmap_option: GlyphBitmap = GlyphBitmap.OPTIONAL
    ) -> TextIterator:
        """Return an iterator over the glyph quads of ``text``."""
        state = self._state
        font = self._current_font()
        if font is None:
            raise ValueError("no valid font selected")
        data = _to_bytes(text)
        isize = int(state.size * 10.0)
        iblur = int(state.blur)
        scale = font.backend.pixel_height_scale(isize / 10.0)
        x = self._align_x(x, y, data)
        y += self._vert_align(font, state.align, isize)
        return TextIterator(
            self, font, data, x, y, isize, iblur, scale, state.spacing, GlyphBitmap(bitmap_option)
        )

    def texture_data(self) -> tuple[bytes, int, int]:
        """Return a copy of the atlas texture with its width and height."""
        return bytes(self._texture), self._width, self._height

    def validate_texture(self) -> tuple[int, int, int, int] | None:
        """Return and clear the dirty rectangle (x0, y0, x1, y1), or None if clean."""
        d = self._dirty
        if d[0] < d[2] and d[1] < d[3]:
            rect = (d[0], d[1], d[2], d[3])
            self._dirty = [self._width, self._height, 0, 0]
            return rect
        return None

    def draw_debug(self, x: float, y: float) -> None:
        """Draw the atlas texture and its skyline for inspection."""
        w, h = self._width, self._height
        u = 1.0 / w
        v = 1.0 / h
        if len(self._colors) + 12 > VERTEX_COUNT:
            self._flush()

        bg = 0x0FFFFFFF
        self._vertex(x, y, u, v, bg)
        self._vertex(x + w, y + h, u, v, bg)
        self._vertex(x + w, y, u, v, bg)
        self._vertex(x, y, u, v, bg)
        self._vertex(x, y + h, u, v, bg)
        self._vertex(x + w, y + h, u, v, bg)

        fg = 0xFFFFFFFF
        self._vertex(x, y, 0, 0, fg)
        self._vertex(x + w, y + h, 1, 1, fg)
        self._vertex(x + w, y, 1, 0, fg)
        self._vertex(x, y, 0, 0, fg)
        self._vertex(x, y + h, 0, 1, fg)
        self._vertex(x + w, y + h, 1, 1, fg)

        line = 0xC00000FF
        for n in self._atlas.nodes:
            if len(self._colors) + 6 > VERTEX_COUNT:
                self._flush()
            self._vertex(x + n.x, y + n.y, u, v, line)
            self._vertex(x + n.x + n.width, y + n.y + 1, u, v, line)
            self._vertex(x + n.x + n.width, y + n.y, u, v, line)
            self._vertex(x + n.x, y + n.y, u, v, line)
            self._vertex(x + n.x, y + n.y + 1, u, v, line)
            self._vertex(x + n.x + n.width, y + n.y + 1, u, v, line)
        self._flush()