# glyphstash

glyphstash keeps rasterised glyphs in a single-channel texture atlas. It lays text out as
textured quads and caches images by a key built from their source and flags. It has no
runtime dependencies.

## Installing

```
pip install glyphstash
```

To run the tests:

```
pip install "glyphstash[test]"
pytest
```

## What it contains

- `glyphstash.utf8`: `Utf8Decoder` is a UTF-8 state machine that takes one byte at a time.
  `decode(byte)` returns the code point when a character is complete and `None` otherwise.
  After an invalid sequence the decoder stays rejected (`rejected` is true) until you call
  `reset()`. `decode_codepoints(data)` yields the complete code points in a byte sequence.
- `glyphstash.atlas`: `Atlas(width, height)` is a skyline rectangle packer that places
  rectangles bottom-left first. `add_rect(w, h)` returns the `(x, y)` where the rectangle
  was placed, or `None` if there is no room. `expand` grows the atlas and `reset` clears it.
  The skyline is kept in `nodes` as a list of `AtlasNode`.
- `glyphstash.blur`: `blur(data, offset, width, height, stride, radius)` applies an
  exponential blur in place to a region of a `bytearray`. A radius below 1 changes nothing.
  The outermost pixels of the region are always cleared. `blur_alpha(radius)` returns the
  fixed-point filter weight for a radius.
- `glyphstash.fonts`:
  - the enums `Align`, `StashFlags`, `GlyphBitmap` and `ErrorCode`;
  - the abstract `FontBackend` interface and the `GlyphMetrics` record;
  - the records `Glyph`, `Quad` and `State`;
  - `Font`, which holds a backend, its normalised vertical metrics, a glyph cache and at
    most 20 fallback fonts. Font names are cut to 63 characters.
- `glyphstash.stash`: `FontStash` holds the atlas texture, the loaded fonts and a stack of
  drawing states. It draws text, measures it and iterates over glyph quads. `Renderer` is the
  default receiver of texture updates and vertex batches.
- `glyphstash.image`: `ImageFlag`, `ImageData` and `NanoImage`, which describe images that
  are loaded on first use and then shared through a cache.

## Font backends

The package does not read font files and does not rasterise glyphs itself. You supply a
loader, which is a callable `loader(data: bytes, font_index: int)`. It returns a
`FontBackend`, or `None` if the data cannot be loaded. The backend must implement:

- `vertical_metrics()`
- `pixel_height_scale(size)`
- `glyph_index(codepoint)`
- `build_glyph_bitmap(glyph, size, scale)`
- `render_glyph_bitmap(...)`
- `kern_advance(glyph1, glyph2)`

## Using a font stash

```python
from glyphstash.fonts import Align, GlyphBitmap, StashFlags
from glyphstash.stash import FontStash

with FontStash(512, 512, StashFlags.ZERO_TOPLEFT, loader=my_loader) as stash:
    sans = stash.add_font("sans", "fonts/sans.ttf", 0)
    stash.set_font(sans)
    stash.set_size(18.0)
    stash.set_align(Align.LEFT | Align.TOP)
    advance, bounds = stash.text_bounds(10, 10, "Hello")
    end_x = stash.draw_text(10, 10, "Hello")
    for quad in stash.text_iter(10, 40, "World", GlyphBitmap.REQUIRED):
        ...
```

Fonts are loaded as follows:

- `add_font` reads a file and raises `OSError` if the file cannot be read.
- `add_font_mem` takes bytes. It raises `ValueError` if no loader is configured or the loader
  returns `None`.
- `font_by_name` returns a font's index, or `None` if there is no font with that name.
- `add_fallback_font` and `reset_fallback_font` manage the fallback fonts. A glyph that a
  font lacks is then taken from the first fallback that has it.

Text can be given as `str` or as UTF-8 bytes:

- `draw_text` returns the pen position after the text.
- `text_bounds` returns `(advance, (minx, miny, maxx, maxy))`.
- `vert_metrics` returns `(ascender, descender, line_height)`.
- `line_bounds(y)` returns `(miny, maxy)`.

If no valid font is selected, `draw_text` returns `x` unchanged, `text_bounds` returns
`(0.0, None)`, `vert_metrics` and `line_bounds` return `None`, and `text_iter` raises
`ValueError`. `text_iter` yields a `Quad` for each code point, or `None` for a code point
whose glyph could not be built. With `GlyphBitmap.OPTIONAL`, which is the default, the
quads' texture coordinates are not valid.

Drawing state is kept on a stack of at most 20 entries:

- `push_state` copies the current state.
- `pop_state` returns to the state below it.
- `clear_state` restores the defaults: size 12, white, left and baseline alignment, and
  text aligned to whole pixels.

When a callback is set with `set_error_callback`, it is called as `callback(error, value)`
when the stack overflows or underflows, and when the atlas is full. For a full atlas the
stash tries the placement once more after the callback. Without a callback, stack misuse
raises `IndexError`, and a glyph that does not fit in the atlas is skipped.

Managing the atlas:

- `expand_atlas(width, height)` grows the atlas and keeps its contents. It never shrinks it.
- `reset_atlas(width, height)` clears the atlas and every cached glyph.
- `texture_data()` returns a copy of the texture together with its size.
- `validate_texture()` returns the dirty rectangle and clears it, or returns `None` if
  nothing has changed.
- `draw_debug(x, y)` emits vertices that show the texture and its skyline.

A custom `Renderer` subclass can be passed as `renderer=`. It receives:

- `create` and `resize`, which return `False` on failure;
- `update(rect, data)`;
- `draw(verts, tcoords, colors)`;
- `delete`, which is called by `close()` or on leaving the `with` block.

The default `Renderer` keeps its own copy of the texture and counts the batches and vertices
it is sent.

## Images

```python
from glyphstash.image import ImageFlag, NanoImage

image = NanoImage("icons/app.png", ImageFlag.GENERATE_MIPMAPS)
image_id = image.load_id(cache, create_from_handle, create_from_memory)
```

`load_id` takes a mutable mapping used as the cache and two factories:

- `create_from_handle(texture, width, height, flags)` returns an id.
- `create_from_memory(data, flags)` returns `(id, width, height)`.

The first call reads the file, or wraps the framebuffer texture, and stores the result under
`unique_key()`. After that, any image with the same key reuses the cached entry. If the
file cannot be read, `OSError` is raised. `NanoImage.from_frame_buffer(fbo)` and
`set_frame_buffer(fbo)` take any object with `width`, `height` and `texture` attributes.
`set_frame_buffer` also sets `ImageFlag.FLIPY`, and `from_frame_buffer` uses `FLIPY` by
default. `width()` and `height()` return 0 until the size is known.