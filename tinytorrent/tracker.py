"""Announcing to an HTTP tracker and reading its compact peer list."""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from urllib.parse import urlencode
from urllib.request import urlopen

from .bencode import BencodeError, decode
from .peer import Peer, PeerError

DEFAULT_PORT = 6881
_COMPACT_PEER_LENGTH = 6


class TrackerError(Exception):
    """Raised when the tracker cannot be reached or its reply is malformed."""


@dataclass
class TrackerRequest:
    """The parameters of a GET announce request to an HTTP tracker."""

    tracker_url: str
    info_hash: bytes
    peer_id: bytes
    port: int = DEFAULT_PORT
    uploaded: int = 0
    downloaded: int = 0
    left: int = 0
    compact: int = 1

    def url(self) -> str:
        """Return the full announce URL with query parameters sorted by name."""
        params = {
            "info_hash": bytes(self.info_hash),
            "peer_id": self.peer_id,
            "port": self.port,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "left": self.left,
            "compact": self.compact,
        }
        return f"{self.tracker_url}?{urlencode(sorted(params.items()))}"

    def send(self, connect_to_peers: bool) -> "TrackerResponse":
        """Announce to the tracker; optionally open a connection to every peer."""
        try:
            with urlopen(self.url()) as response:
                body = response.read()
        except OSError as exc:
            raise TrackerError(f"error making GET request: {exc}") from exc
        return TrackerResponse.parse(body, connect_to_peers)


@dataclass
class TrackerResponse:
    """The announce interval and the peers a tracker returned."""

    interval: int
    peers: list[Peer] = field(default_factory=list)

    @classmethod
    def parse(cls, data: bytes, connect_to_peers: bool) -> "TrackerResponse":
        try:
            reply = decode(data)
        except BencodeError as exc:
            raise TrackerError(f"error decoding bencode data: {exc}") from exc
        if not isinstance(reply, dict):
            raise TrackerError("tracker response must be a dictionary")

        interval = reply.get("interval")
        if not isinstance(interval, int) or isinstance(interval, bool):
            raise TrackerError("tracker response has no integer 'interval'")
        compact = reply.get("peers")
        if not isinstance(compact, bytes):
            raise TrackerError("tracker response has no string 'peers'")
        if len(compact) % _COMPACT_PEER_LENGTH:
            raise TrackerError("peers length is not a multiple of 6")

        peers: list[Peer] = []
        for start in range(0, len(compact), _COMPACT_PEER_LENGTH):
            entry = compact[start:start + _COMPACT_PEER_LENGTH]
            ip = socket.inet_ntoa(entry[:4])
            port = int.from_bytes(entry[4:], "big")
            if not connect_to_peers:
                peers.append(Peer(ip=ip, port=port))
                continue
            try:
                peers.append(Peer.connect(f"{ip}:{port}"))
            except PeerError as exc:
                for opened in peers:
                    opened.close()
                raise TrackerError(f"error creating peer from address: {exc}") from exc
        return cls(interval=interval, peers=peers)