import pytest
from hypothesis import given, strategies as st

from glyphstash.utf8 import UTF8_ACCEPT, UTF8_REJECT, Utf8Decoder, decode_codepoints


def test_ascii_passes_through():
    assert list(decode_codepoints(b"Hello")) == [ord(c) for c in "Hello"]


@pytest.mark.parametrize("text", ["é", "€", "\U0001F600", "aé€\U0001F600z"])
def test_multibyte_characters(text):
    assert list(decode_codepoints(text.encode("utf-8"))) == [ord(c) for c in text]


@given(st.text())
def test_round_trip_with_encoder(text):
    assert list(decode_codepoints(text.encode("utf-8"))) == [ord(c) for c in text]


def test_decoder_reports_only_complete_characters():
    decoder = Utf8Decoder()
    results = [decoder.decode(b) for b in "€".encode("utf-8")]
    assert results[:2] == [None, None]
    assert results[2] == ord("€")
    assert decoder.state == UTF8_ACCEPT


def test_incomplete_sequence_yields_nothing():
    assert list(decode_codepoints("€".encode("utf-8")[:2])) == []


def test_invalid_byte_rejects_and_stays_rejected():
    decoder = Utf8Decoder()
    assert decoder.decode(0xFF) is None
    assert decoder.state == UTF8_REJECT
    assert decoder.rejected
    assert decoder.decode(ord("A")) is None
    assert decoder.rejected


def test_stream_after_invalid_byte_is_dropped():
    assert list(decode_codepoints(b"a\xffbc")) == [ord("a")]


def test_overlong_encoding_rejected():
    assert list(decode_codepoints(b"\xc0\xaf")) == []


def test_reset_recovers_from_reject():
    decoder = Utf8Decoder()
    decoder.decode(0xFF)
    decoder.reset()
    assert decoder.state == UTF8_ACCEPT
    assert decoder.codepoint == 0
    assert decoder.decode(ord("x")) == ord("x")


def test_byte_out_of_range_raises():
    with pytest.raises(ValueError):
        Utf8Decoder().decode(256)