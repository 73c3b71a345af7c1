"""Peer wire protocol messages: handshakes, piece and metadata messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any

from .bencode import BencodeError, decode, decode_partial, encode
from .utils import random_peer_id

PROTOCOL_NAME = b"BitTorrent protocol"
HANDSHAKE_LENGTH = 68

BLOCK_SIZE = 16384

UNCHOKE_MESSAGE_ID = 1
INTERESTED_MESSAGE_ID = 2
BITFIELD_MESSAGE_ID = 5
REQUEST_MESSAGE_ID = 6
PIECE_MESSAGE_ID = 7

EXTENSION_MESSAGE_ID = 20
EXTENSION_HANDSHAKE_ID = 0

# The ID this client always advertises for the "ut_metadata" extension.
UT_METADATA_EXTENSION_ID = 1

SERVER_PEER_ID = random_peer_id()

# Extension support is bit 20 from the right of the 64 reserved bits.
_EXTENSION_BYTE = 25
_EXTENSION_BIT = 1 << 4


class ProtocolError(ValueError):
    """Raised when a peer message is malformed or unexpected."""


@dataclass
class Handshake:
    """The fixed 68-byte handshake exchanged when a connection opens."""

    info_hash: bytes
    peer_id: bytes
    supports_extensions: bool = False

    def to_bytes(self) -> bytes:
        reserved = bytearray(8)
        if self.supports_extensions:
            reserved[_EXTENSION_BYTE - 1 - len(PROTOCOL_NAME)] |= _EXTENSION_BIT
        return (
            bytes([len(PROTOCOL_NAME)])
            + PROTOCOL_NAME
            + bytes(reserved)
            + bytes(self.info_hash)
            + bytes(self.peer_id)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Handshake":
        if len(data) < HANDSHAKE_LENGTH:
            raise ProtocolError(
                f"handshake needs {HANDSHAKE_LENGTH} bytes, got {len(data)}"
            )
        return cls(
            info_hash=bytes(data[28:48]),
            peer_id=bytes(data[48:68]),
            supports_extensions=bool(data[_EXTENSION_BYTE] & _EXTENSION_BIT),
        )


def _default_extensions() -> dict[str, int]:
    return {"ut_metadata": UT_METADATA_EXTENSION_ID}


@dataclass
class ExtensionHandshake:
    """The extension handshake mapping extension names to message IDs."""

    extension_map: dict[str, int] = field(default_factory=_default_extensions)

    def to_bytes(self) -> bytes:
        """Return the full message, including its 4-byte length prefix."""
        body = bytes([EXTENSION_HANDSHAKE_ID]) + encode({"m": dict(self.extension_map)})
        return (
            struct.pack(">I", len(body) + 1)
            + bytes([EXTENSION_MESSAGE_ID])
            + body
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ExtensionHandshake":
        """Parse a received message whose length prefix was already removed."""
        if len(data) < 2:
            raise ProtocolError(f"data too short for extension handshake: {len(data)}")
        if data[0] != EXTENSION_MESSAGE_ID:
            raise ProtocolError(
                f"invalid message ID: expected {EXTENSION_MESSAGE_ID}, got {data[0]}"
            )
        if data[1] != EXTENSION_HANDSHAKE_ID:
            raise ProtocolError(
                f"invalid message ID: expected {EXTENSION_HANDSHAKE_ID}, got {data[1]}"
            )
        try:
            payload = decode(bytes(data[2:]))
        except BencodeError as exc:
            raise ProtocolError(f"error parsing dictionary: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProtocolError("expected dictionary type for extension handshake")

        extensions: dict[str, int] = {}
        if "m" in payload:
            mapping = payload["m"]
            if not isinstance(mapping, dict):
                raise ProtocolError("expected dictionary type for extensions")
            for name, value in mapping.items():
                if not isinstance(value, int):
                    raise ProtocolError(
                        f"expected integer type for extension value of {name!r}"
                    )
                extensions[name] = value
        return cls(extension_map=extensions)


@dataclass
class PieceMessage:
    """A block of piece data sent by a peer."""

    piece_index: int
    begin: int
    block: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "PieceMessage":
        if len(data) < 9:
            raise ProtocolError(
                "data too short for piece message, expected at least 9 bytes, "
                f"got {len(data)}"
            )
        if data[0] != PIECE_MESSAGE_ID:
            raise ProtocolError(
                f"invalid message ID for piece message, expected {PIECE_MESSAGE_ID}, "
                f"got {data[0]}"
            )
        piece_index, begin = struct.unpack(">II", bytes(data[1:9]))
        return cls(piece_index=piece_index, begin=begin, block=bytes(data[9:]))


def request_message(index: int, begin: int, length: int) -> bytes:
    """Return the body of a request for one block (no length prefix)."""
    return struct.pack(">BIII", REQUEST_MESSAGE_ID, index, begin, length)


def metadata_request_message(extension_id: int, piece_index: int) -> bytes:
    """Return the body of a ut_metadata request (no length prefix)."""
    payload = encode({"msg_type": 0, "piece": piece_index})
    return bytes([EXTENSION_MESSAGE_ID, extension_id]) + payload


def _int_field(mapping: dict, key: str) -> int:
    if key not in mapping:
        raise ProtocolError(f"key {key} not found in dictionary")
    value = mapping[key]
    if not isinstance(value, int):
        raise ProtocolError(f"value for key {key} is not an integer")
    return value


def parse_metadata_message(piece_index: int, message: bytes) -> dict[str, Any]:
    """Validate a ut_metadata data message and return the info dictionary in it."""
    if len(message) < 2:
        raise ProtocolError(f"message too short: {len(message)}")
    if message[0] != EXTENSION_MESSAGE_ID:
        raise ProtocolError(
            f"invalid message ID: expected {EXTENSION_MESSAGE_ID}, got {message[0]}"
        )
    if message[1] != UT_METADATA_EXTENSION_ID:
        raise ProtocolError(
            f"invalid extension ID: expected {UT_METADATA_EXTENSION_ID}, "
            f"got {message[1]}"
        )

    try:
        header, rest = decode_partial(bytes(message[2:]))
    except BencodeError as exc:
        raise ProtocolError(f"error parsing dictionary: {exc}") from exc
    if not isinstance(header, dict):
        raise ProtocolError("expected dictionary type for metadata header")

    if _int_field(header, "msg_type") != 1:
        raise ProtocolError("invalid message type")
    if _int_field(header, "piece") != piece_index:
        raise ProtocolError("invalid piece index")
    if _int_field(header, "total_size") != len(rest):
        raise ProtocolError("invalid total size")

    try:
        info = decode(rest)
    except BencodeError as exc:
        raise ProtocolError(f"error parsing metadata: {exc}") from exc
    if not isinstance(info, dict):
        raise ProtocolError("expected dictionary type for metadata")
    return info