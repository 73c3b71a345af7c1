"""Bencode decoding, encoding and display formatting.

Decoded values map onto Python types: byte strings become ``bytes``,
integers ``int``, lists ``list`` and dictionaries ``dict`` with ``str``
keys.  Keys are decoded as UTF-8 with ``surrogateescape`` so that any byte
sequence survives a decode/encode round trip unchanged.
"""

from __future__ import annotations

from typing import Any, Union

BencodeValue = Union[bytes, int, list, dict]

_DIGITS = frozenset(b"0123456789")


class BencodeError(ValueError):
    """Raised when data is not valid bencode."""


def _key_to_bytes(key: str | bytes) -> bytes:
    if isinstance(key, bytes):
        return key
    if isinstance(key, str):
        return key.encode("utf-8", "surrogateescape")
    raise TypeError(f"dictionary keys must be str or bytes, not {type(key).__name__}")


def _describe(byte: int | None) -> str:
    return "end of data" if byte is None else repr(chr(byte))


class _Decoder:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def peek(self) -> int | None:
        if self.pos >= len(self.data):
            return None
        return self.data[self.pos]

    def expect(self, expected: bytes) -> None:
        got = self.peek()
        if got != expected[0]:
            raise BencodeError(
                f"expected character at index {self.pos} to be "
                f"{expected.decode()!r}: got {_describe(got)}"
            )
        self.pos += 1

    def read_number(self) -> int:
        first = self.peek()
        if first is None:
            raise BencodeError("not enough bytes")
        if first not in _DIGITS:
            raise BencodeError(f"expected a digit, received {_describe(first)}")
        start = self.pos
        while self.pos < len(self.data) and self.data[self.pos] in _DIGITS:
            self.pos += 1
        return int(self.data[start:self.pos])

    def parse(self) -> BencodeValue:
        ch = self.peek()
        if ch is None:
            raise BencodeError("unexpected end of data")
        if ch in _DIGITS:
            return self._wrap("string", self.parse_string)
        if ch == ord("i"):
            return self._wrap("integer", self.parse_integer)
        if ch == ord("l"):
            return self._wrap("list", self.parse_list)
        if ch == ord("d"):
            return self._wrap("dictionary", self.parse_dictionary)
        raise BencodeError(f"unrecognized character to start parsing: {_describe(ch)}")

    @staticmethod
    def _wrap(kind: str, parser):
        try:
            return parser()
        except BencodeError as exc:
            raise BencodeError(f"error parsing {kind}: {exc}") from exc

    def parse_string(self) -> bytes:
        try:
            length = self.read_number()
        except BencodeError as exc:
            raise BencodeError(f"length of string: {exc}") from exc
        self.expect(b":")
        end = self.pos + length
        if end > len(self.data):
            raise BencodeError(f"not enough bytes: expected to read {length} bytes")
        value = self.data[self.pos:end]
        self.pos = end
        return value

    def parse_integer(self) -> int:
        self.expect(b"i")
        negative = self.peek() == ord("-")
        if negative:
            self.pos += 1
        number = self.read_number()
        try:
            self.expect(b"e")
        except BencodeError as exc:
            raise BencodeError(f"expected 'e' to terminate integer: {exc}") from exc
        return -number if negative else number

    def parse_list(self) -> list:
        self.expect(b"l")
        items = []
        while self.peek() != ord("e"):
            try:
                items.append(self.parse())
            except BencodeError as exc:
                raise BencodeError(f"parsing list item: {exc}") from exc
        self.expect(b"e")
        return items

    def parse_dictionary(self) -> dict:
        self.expect(b"d")
        items: dict[str, Any] = {}
        while self.peek() != ord("e"):
            try:
                key = self.parse()
            except BencodeError as exc:
                raise BencodeError(f"parsing dictionary key: {exc}") from exc
            if not isinstance(key, bytes):
                raise BencodeError(
                    f"expected string key in dictionary, got {_type_name(key)}"
                )
            try:
                value = self.parse()
            except BencodeError as exc:
                raise BencodeError(f"parsing dictionary item: {exc}") from exc
            items[key.decode("utf-8", "surrogateescape")] = value
        self.expect(b"e")
        return items


def _type_name(value: Any) -> str:
    if isinstance(value, (bytes, str)):
        return "String"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, list):
        return "List"
    return "Dictionary"


def _as_bytes(data: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8", "surrogateescape")
    return bytes(data)


def decode(data: bytes | str) -> BencodeValue:
    """Decode a complete bencoded value; trailing bytes are an error."""
    decoder = _Decoder(_as_bytes(data))
    value = decoder.parse()
    if decoder.pos != len(decoder.data):
        raise BencodeError(
            f"data bytes left unprocessed from index {decoder.pos} even after "
            f"parsing: {decoder.data[decoder.pos:]!r}"
        )
    return value


def decode_partial(data: bytes | str) -> tuple[BencodeValue, bytes]:
    """Decode one value from the front of ``data`` and return it with the rest."""
    decoder = _Decoder(_as_bytes(data))
    value = decoder.parse()
    return value, decoder.data[decoder.pos:]


def _encode_into(value: Any, out: bytearray) -> None:
    if isinstance(value, bool):
        raise TypeError("cannot bencode a bool")
    if isinstance(value, int):
        out += b"i%de" % value
    elif isinstance(value, (bytes, bytearray, memoryview, str)):
        raw = _as_bytes(value)
        out += b"%d:" % len(raw)
        out += raw
    elif isinstance(value, (list, tuple)):
        out += b"l"
        for item in value:
            _encode_into(item, out)
        out += b"e"
    elif isinstance(value, dict):
        out += b"d"
        for raw_key, item in sorted(
            ((_key_to_bytes(k), v) for k, v in value.items()), key=lambda kv: kv[0]
        ):
            out += b"%d:" % len(raw_key)
            out += raw_key
            _encode_into(item, out)
        out += b"e"
    else:
        raise TypeError(f"cannot bencode a value of type {type(value).__name__}")


def encode(value: Any) -> bytes:
    """Encode a value; dictionary keys are written in sorted byte order."""
    out = bytearray()
    _encode_into(value, out)
    return bytes(out)


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", "replace")


def to_display(value: Any) -> str:
    """Render a value in the JSON-like form used for display."""
    if isinstance(value, bool):
        raise TypeError("cannot display a bool")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview, str)):
        return f'"{_text(_as_bytes(value))}"'
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(to_display(item) for item in value) + "]"
    if isinstance(value, dict):
        entries = sorted(
            ((_key_to_bytes(k), v) for k, v in value.items()), key=lambda kv: kv[0]
        )
        return "{" + ",".join(f'"{_text(k)}":{to_display(v)}' for k, v in entries) + "}"
    raise TypeError(f"cannot display a value of type {type(value).__name__}")