import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from glyphstash.fonts import Align, ErrorCode, FontBackend, GlyphBitmap, GlyphMetrics, StashFlags
from glyphstash.stash import FontStash, Renderer


class _BoxBackend(FontBackend):
    def __init__(self, supported):
        self.supported = {ord(c) for c in supported}
        self.rendered = []

    def vertical_metrics(self):
        return (800, -200, 0)

    def pixel_height_scale(self, size):
        return size / 1000

    def glyph_index(self, codepoint):
        return codepoint if codepoint in self.supported else 0

    def build_glyph_bitmap(self, glyph, size, scale):
        return GlyphMetrics(500, 0, 0, -8, 6, 2)

    def render_glyph_bitmap(self, output, offset, out_width, out_height, out_stride, scale_x, scale_y, glyph):
        self.rendered.append(glyph)
        for row in range(out_height):
            start = offset + row * out_stride
            output[start:start + out_width] = b"\xc8" * out_width

    def kern_advance(self, glyph1, glyph2):
        return 0


def _loader(data, index):
    if data.startswith(b"FONT"):
        return _BoxBackend(data[4:].decode("utf-8"))
    return None


class _Recorder(Renderer):
    def __init__(self):
        self.updates = []
        self.draws = []
        self.resizes = []
        self.deleted = False

    def update(self, rect, data):
        self.updates.append(rect)

    def draw(self, verts, tcoords, colors):
        self.draws.append((list(verts), list(tcoords), list(colors)))

    def resize(self, width, height):
        self.resizes.append((width, height))
        return True

    def delete(self):
        self.deleted = True


def _vertex_count(recorder):
    return sum(len(colors) for _, _, colors in recorder.draws)


def _stash(width=256, height=256, letters="abcdefghij", renderer=None):
    stash = FontStash(width, height, StashFlags.ZERO_TOPLEFT, _loader, renderer)
    stash.add_font_mem("sans", ("FONT" + letters).encode("utf-8"))
    return stash


def test_white_rect_at_origin_and_dirty():
    stash = FontStash(64, 64, StashFlags.ZERO_TOPLEFT, _loader)
    data, w, h = stash.texture_data()
    assert (w, h) == (64, 64)
    assert data[0] == 255 and data[1] == 255 and data[64] == 255 and data[65] == 255
    assert data[2] == 0
    assert stash.validate_texture() == (0, 0, 2, 2)
    assert stash.validate_texture() is None


def test_pop_underflow_reports_or_raises():
    stash = FontStash(64, 64)
    with pytest.raises(IndexError):
        stash.pop_state()
    errors = []
    stash.set_error_callback(lambda code, val: errors.append(code))
    stash.pop_state()
    assert errors == [ErrorCode.STATES_UNDERFLOW]


def test_push_overflow():
    stash = FontStash(64, 64)
    for _ in range(19):
        stash.push_state()
    with pytest.raises(IndexError):
        stash.push_state()
    errors = []
    stash.set_error_callback(lambda code, val: errors.append(code))
    stash.push_state()
    assert errors == [ErrorCode.STATES_OVERFLOW]


def test_push_pop_restores_state():
    stash = _stash()
    stash.set_size(20)
    before = stash.vert_metrics()
    stash.push_state()
    stash.set_size(40)
    assert stash.vert_metrics() != before
    stash.pop_state()
    assert stash.vert_metrics() == before


def test_vert_metrics_relation():
    stash = _stash()
    asc, desc, lineh = stash.vert_metrics()
    assert lineh == pytest.approx(asc - desc)
    assert asc > 0 > desc


def test_add_font_errors_and_lookup(tmp_path):
    stash = _stash()
    with pytest.raises(ValueError):
        stash.add_font_mem("bad", b"nope")
    path = tmp_path / "serif.ttf"
    path.write_bytes(b"FONTxyz")
    assert stash.add_font("serif", path) == 1
    assert stash.font_by_name("serif") == 1
    assert stash.font_by_name("sans") == 0
    assert stash.font_by_name("missing") is None
    with pytest.raises(OSError):
        stash.add_font("gone", tmp_path / "missing.ttf")


def test_no_loader_raises():
    stash = FontStash(32, 32)
    with pytest.raises(ValueError):
        stash.add_font_mem("x", b"FONTa")


def test_draw_text_vertices_and_advance():
    recorder = _Recorder()
    stash = _stash(renderer=recorder)
    stash.set_color(0x11223344)
    end = stash.draw_text(10, 20, "ab")
    assert _vertex_count(recorder) == 12
    assert all(c == 0x11223344 for _, _, colors in recorder.draws for c in colors)
    advance, _ = stash.text_bounds(10, 20, "ab")
    assert end == pytest.approx(10 + advance)
    assert recorder.updates


def test_no_font_selected():
    stash = _stash()
    stash.set_font(5)
    assert stash.draw_text(3.0, 4.0, "ab") == 3.0
    assert stash.vert_metrics() is None
    assert stash.line_bounds(0) is None
    assert stash.text_bounds(0, 0, "a") == (0.0, None)
    with pytest.raises(ValueError):
        stash.text_iter(0, 0, "a")


def test_fallback_font_renders_missing_glyph():
    stash = _stash(letters="a")
    second = stash.add_font_mem("extra", b"FONTb")
    stash.add_fallback_font(0, second)
    stash.draw_text(0, 0, "b")
    assert stash.fonts[second].backend.rendered == [ord("b")]
    assert stash.fonts[0].backend.rendered == []


def test_fallback_overflow():
    stash = _stash()
    other = stash.add_font_mem("extra", b"FONTb")
    for _ in range(20):
        stash.add_fallback_font(0, other)
    with pytest.raises(OverflowError):
        stash.add_fallback_font(0, other)
    stash.reset_fallback_font(0)
    stash.add_fallback_font(0, other)
    assert stash.fonts[0].fallbacks == [other]


def test_right_align_shifts_bounds_by_advance():
    stash = _stash()
    advance, left = stash.text_bounds(50, 50, "abc")
    stash.set_align(Align.RIGHT | Align.BASELINE)
    advance_r, right = stash.text_bounds(50, 50, "abc")
    assert advance_r == advance
    assert right[0] == pytest.approx(left[0] - advance)
    assert right[2] == pytest.approx(left[2] - advance)


def test_line_bounds_matches_metrics():
    stash = _stash()
    asc, _, lineh = stash.vert_metrics()
    miny, maxy = stash.line_bounds(100.0)
    assert miny == pytest.approx(100.0 - asc)
    assert maxy - miny == pytest.approx(lineh)


def test_text_iter_counts_codepoints():
    stash = _stash(letters="a\u00e9")
    it = stash.text_iter(0, 0, "a\u00e9a")
    quads = list(it)
    assert len(quads) == 3
    assert all(q is not None for q in quads)
    assert it.next == len("a\u00e9a".encode("utf-8"))
    assert it.codepoint == ord("a")


def test_text_iter_required_marks_texture_dirty():
    stash = _stash()
    stash.validate_texture()
    quads = list(stash.text_iter(0, 0, "a", GlyphBitmap.REQUIRED))
    assert len(quads) == 1
    assert stash.validate_texture() is not None


def test_atlas_full_callback_expands():
    recorder = _Recorder()
    stash = _stash(width=16, height=16, renderer=recorder)
    errors = []

    def on_error(code, val):
        errors.append(code)
        stash.expand_atlas(64, 64)

    stash.set_error_callback(on_error)
    stash.draw_text(0, 20, "ab")
    assert errors == [ErrorCode.ATLAS_FULL]
    assert stash.atlas_size() == (64, 64)
    assert recorder.resizes == [(64, 64)]
    assert _vertex_count(recorder) == 12


def test_atlas_full_without_callback_skips_glyph():
    recorder = _Recorder()
    stash = _stash(width=16, height=16, renderer=recorder)
    stash.draw_text(0, 20, "ab")
    assert _vertex_count(recorder) == 6


def test_expand_keeps_texture_and_never_shrinks():
    stash = _stash(width=32, height=32)
    stash.expand_atlas(16, 16)
    assert stash.atlas_size() == (32, 32)
    stash.expand_atlas(64, 48)
    data, w, h = stash.texture_data()
    assert (w, h) == (64, 48)
    assert len(data) == 64 * 48
    assert data[0] == 255 and data[64 + 1] == 255
    assert data[32] == 0


def test_reset_atlas_clears_glyphs():
    stash = _stash()
    stash.draw_text(0, 20, "a")
    assert stash.fonts[0].glyphs
    stash.reset_atlas(32, 32)
    data, w, h = stash.texture_data()
    assert (w, h) == (32, 32)
    assert len(data) == 32 * 32
    assert data[0] == 255
    assert stash.fonts[0].glyphs == {}
    assert stash.validate_texture() == (0, 0, 2, 2)


def test_draw_debug_vertex_count():
    recorder = _Recorder()
    stash = FontStash(64, 64, renderer=recorder)
    stash.draw_debug(0, 0)
    # background, texture and the two skyline spans left by the white rect
    assert _vertex_count(recorder) == 24


def test_long_text_is_batched():
    recorder = _Recorder()
    stash = _stash(renderer=recorder)
    stash.draw_text(0, 20, "a" * 200)
    assert _vertex_count(recorder) == 1200
    assert len(recorder.draws) > 1
    assert max(len(colors) for _, _, colors in recorder.draws) <= 1024


def test_close_and_context_manager():
    recorder = _Recorder()
    with _stash(renderer=recorder) as stash:
        assert stash.font_by_name("sans") == 0
    assert recorder.deleted
    assert stash.fonts == ()


def test_renderer_create_failure():
    class _Broken(Renderer):
        def create(self, width, height):
            return False

    with pytest.raises(RuntimeError):
        FontStash(32, 32, renderer=_Broken())


def test_blurred_glyph_is_cached_separately():
    stash = _stash()
    stash.draw_text(0, 20, "a")
    stash.set_blur(3)
    stash.draw_text(0, 20, "a")
    blurs = sorted(key[2] for key in stash.fonts[0].glyphs)
    assert blurs == [0, 3]


@settings(max_examples=30, deadline=None)
@given(st.text(alphabet="abcxyz", max_size=12))
def test_draw_advance_matches_bounds(text):
    stash = _stash(letters="abc")
    advance, _ = stash.text_bounds(5.0, 30.0, text)
    end = stash.draw_text(5.0, 30.0, text)
    assert end == pytest.approx(5.0 + advance)
    assert advance >= 0