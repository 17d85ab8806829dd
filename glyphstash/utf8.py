"""Incremental UTF-8 decoding driven by a table-based state machine."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

UTF8_ACCEPT = 0
UTF8_REJECT = 12


def _build_classes() -> bytes:
    spans = (
        (0x00, 0x7F, 0),
        (0x80, 0x8F, 1),
        (0x90, 0x9F, 9),
        (0xA0, 0xBF, 7),
        (0xC0, 0xC1, 8),
        (0xC2, 0xDF, 2),
        (0xE0, 0xE0, 10),
        (0xE1, 0xEC, 3),
        (0xED, 0xED, 4),
        (0xEE, 0xEF, 3),
        (0xF0, 0xF0, 11),
        (0xF1, 0xF3, 6),
        (0xF4, 0xF4, 5),
        (0xF5, 0xFF, 8),
    )
    table = bytearray(256)
    for first, last, cls in spans:
        table[first:last + 1] = bytes([cls]) * (last - first + 1)
    return bytes(table)


# Maps each byte value to a character class.
_CLASSES = _build_classes()

# Maps (state + character class) to the next state.
_TRANSITIONS = bytes((
    0, 12, 24, 36, 60, 96, 84, 12, 12, 12, 48, 72, 12, 12, 12, 12, 12, 12, 12, 12, 12, 12, 12, 12,
    12, 0, 12, 12, 12, 12, 12, 0, 12, 0, 12, 12, 12, 24, 12, 12, 12, 12, 12, 24, 12, 24, 12, 12,
    12, 12, 12, 12, 12, 12, 12, 24, 12, 12, 12, 12, 12, 24, 12, 12, 12, 12, 12, 12, 12, 24, 12, 12,
    12, 12, 12, 12, 12, 12, 12, 36, 12, 36, 12, 12, 12, 36, 12, 12, 12, 12, 12, 36, 12, 36, 12, 12,
    12, 36, 12, 12, 12, 12, 12, 12, 12, 12, 12, 12,
))


class Utf8Decoder:
    """Decodes UTF-8 one byte at a time.

    Once an invalid sequence is seen the decoder stays in the reject
    state until :meth:`reset` is called.
    """

    def __init__(self) -> None:
        self.state = UTF8_ACCEPT
        self.codepoint = 0

    @property
    def rejected(self) -> bool:
        return self.state == UTF8_REJECT

    def decode(self, byte: int) -> int | None:
        """Feed one byte; return the codepoint when a character completes."""
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"byte out of range: {byte}")
        cls = _CLASSES[byte]
        if self.state != UTF8_ACCEPT:
            self.codepoint = ((byte & 0x3F) | (self.codepoint << 6)) & 0xFFFFFFFF
        else:
            self.codepoint = (0xFF >> cls) & byte
        self.state = _TRANSITIONS[self.state + cls]
        return self.codepoint if self.state == UTF8_ACCEPT else None

    def reset(self) -> None:
        self.state = UTF8_ACCEPT
        self.codepoint = 0


def decode_codepoints(data: Iterable[int]) -> Iterator[int]:
    """Yield every complete codepoint found in a sequence of bytes."""
    decoder = Utf8Decoder()
    for byte in data:
        codepoint = decoder.decode(byte)
        if codepoint is not None:
            yield codepoint