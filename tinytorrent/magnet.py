"""Parsing of magnet links."""

from __future__ import annotations

import binascii
import re
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes

_PREFIX = "magnet:?"
_HASH_PREFIX = "urn:btih:"
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class MagnetError(ValueError):
    """Raised when a magnet link cannot be parsed."""


def _path_unescape(text: str) -> str:
    match = _BAD_ESCAPE.search(text)
    if match:
        raise MagnetError(
            f"failed to unescape magnet link: invalid escape {text[match.start():match.start() + 3]!r}"
        )
    return unquote_to_bytes(text).decode("utf-8", "surrogateescape")


@dataclass
class MagnetURI:
    """The fields of a magnet link that this client understands."""

    file_to_download: str = ""
    tracker_url: str = ""
    info_hash: bytes = b""
    info_hash_hex: str = ""

    def _set(self, key: str, value: str) -> None:
        if key == "dn":
            self.file_to_download = value
        elif key == "tr":
            self.tracker_url = value
        elif key == "xt":
            if not value.startswith(_HASH_PREFIX):
                raise MagnetError(f"invalid info hash format: {value}")
            hex_hash = value[len(_HASH_PREFIX):]
            if len(hex_hash) != 40:
                raise MagnetError(f"invalid info hash length: {hex_hash}")
            try:
                digest = binascii.unhexlify(hex_hash)
            except (binascii.Error, ValueError) as exc:
                raise MagnetError(f"failed to decode info hash: {exc}") from exc
            self.info_hash_hex = hex_hash
            self.info_hash = digest
        else:
            raise MagnetError(f"unknown key: {key}")

    @classmethod
    def parse(cls, text: str) -> "MagnetURI":
        """Parse a magnet link; the whole link is unescaped before splitting."""
        text = _path_unescape(text)
        if not text.startswith(_PREFIX):
            raise MagnetError("expected the URL to start with 'magnet:?'")

        magnet = cls()
        rest = text[len(_PREFIX):]
        while rest:
            key, rest = rest[:2], rest[2:]
            if len(key) < 2:
                raise MagnetError(
                    "expected a query parameter, but reached end of string"
                )
            if not rest.startswith("="):
                got = rest[:1] or "end of string"
                raise MagnetError(f"expected '=' but got {got!r}")
            value, _, rest = rest[1:].partition("&")
            magnet._set(key, value)
        return magnet