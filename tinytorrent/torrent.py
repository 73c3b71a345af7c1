"""Torrent metainfo: the info dictionary, piece hashes and info hash."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .bencode import BencodeError, decode, encode
from .magnet import MagnetURI
from .utils import bytes_to_hex, sha1_hash

PIECE_HASH_LENGTH = 20


class TorrentError(ValueError):
    """Raised when torrent metainfo is missing or malformed."""


def split_piece_hashes(pieces: bytes) -> list[bytes]:
    """Split concatenated piece hashes into 20-byte digests; a short tail is dropped."""
    count = len(pieces) // PIECE_HASH_LENGTH
    return [
        bytes(pieces[start:start + PIECE_HASH_LENGTH])
        for start in range(0, count * PIECE_HASH_LENGTH, PIECE_HASH_LENGTH)
    ]


def _require(mapping: dict, key: str, kind: type) -> Any:
    if key not in mapping:
        raise TorrentError(f"missing key {key!r}")
    value = mapping[key]
    if not isinstance(value, kind) or isinstance(value, bool):
        raise TorrentError(f"key {key!r} has the wrong type")
    return value


@dataclass
class InfoDict:
    """The parts of the info dictionary needed to download a single file."""

    length: int
    name: str
    piece_length: int
    pieces: list[bytes] = field(default_factory=list)

    @classmethod
    def from_dict(cls, info: dict) -> "InfoDict":
        if not isinstance(info, dict):
            raise TorrentError("info must be a dictionary")
        return cls(
            length=_require(info, "length", int),
            name=_require(info, "name", bytes).decode("utf-8", "replace"),
            piece_length=_require(info, "piece length", int),
            pieces=split_piece_hashes(_require(info, "pieces", bytes)),
        )

    def piece_size(self, index: int) -> int:
        """Length of piece ``index``; the last piece may be shorter."""
        if (index + 1) * self.piece_length > self.length:
            return self.length - index * self.piece_length
        return self.piece_length


@dataclass
class TorrentFileInfo:
    """Tracker URL, info dictionary and info hash of a torrent."""

    tracker_url: str
    info_dict: InfoDict
    info_hash: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "TorrentFileInfo":
        try:
            metainfo = decode(data)
        except BencodeError as exc:
            raise TorrentError(f"error decoding the file: {exc}") from exc
        if not isinstance(metainfo, dict):
            raise TorrentError("torrent file must hold a dictionary")
        info = _require(metainfo, "info", dict)
        announce = _require(metainfo, "announce", bytes)
        return cls(
            tracker_url=announce.decode("utf-8", "replace"),
            info_dict=InfoDict.from_dict(info),
            info_hash=sha1_hash(encode(info)),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> "TorrentFileInfo":
        return cls.from_bytes(Path(path).read_bytes())

    @classmethod
    def from_magnet(cls, magnet: MagnetURI, info: dict) -> "TorrentFileInfo":
        return cls(
            tracker_url=magnet.tracker_url,
            info_dict=InfoDict.from_dict(info),
            info_hash=magnet.info_hash,
        )

    def hex_info_hash(self) -> str:
        return bytes_to_hex(self.info_hash)