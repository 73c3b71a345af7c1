"""A connection to a remote peer and the message exchanges done over it."""

from __future__ import annotations

import logging
import socket
import struct
from dataclasses import dataclass, field

from .magnet import MagnetURI
from .pieces import PieceError, StoredPiece
from .protocol import (
    BITFIELD_MESSAGE_ID,
    HANDSHAKE_LENGTH,
    INTERESTED_MESSAGE_ID,
    PIECE_MESSAGE_ID,
    SERVER_PEER_ID,
    UNCHOKE_MESSAGE_ID,
    ExtensionHandshake,
    Handshake,
    PieceMessage,
    ProtocolError,
    metadata_request_message,
    parse_metadata_message,
)
from .torrent import TorrentError, TorrentFileInfo
from .utils import bytes_to_hex

_LOGGER = logging.getLogger(__name__)

_peer_numbers: dict[str, int] = {}


def _peer_number(address: str) -> int:
    """Return a small stable number per address to make logs readable."""
    return _peer_numbers.setdefault(address, len(_peer_numbers) + 1)


class PeerError(Exception):
    """Raised when talking to a peer fails."""


def _split_host_port(address: str) -> tuple[str, str]:
    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise PeerError(f"invalid address format: {address}")
        return host, rest[1:]
    host, sep, port = address.rpartition(":")
    if not sep:
        raise PeerError(f"invalid address format: missing port in {address}")
    if ":" in host:
        raise PeerError(f"invalid address format: too many colons in {address}")
    return host, port


@dataclass(eq=False)
class Peer:
    """A remote peer; ``sock`` is set once a connection is open."""

    ip: str
    port: int
    extension_message_id: int = -1
    sock: socket.socket | None = field(default=None, repr=False)
    assigned_piece: StoredPiece | None = field(default=None, repr=False)

    @classmethod
    def connect(cls, address: str) -> "Peer":
        """Open a TCP connection to ``host:port``."""
        host, port_text = _split_host_port(address)
        try:
            port = int(port_text)
        except ValueError as exc:
            raise PeerError(f"invalid port number: {port_text!r}") from exc
        try:
            sock = socket.create_connection((host, port))
        except OSError as exc:
            raise PeerError(f"error connecting to address {address}: {exc}") from exc
        return cls(ip=host, port=port, sock=sock)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self) -> "Peer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def log(self, message: str) -> None:
        _LOGGER.info("[Peer %d] %s", _peer_number(f"{self.ip}:{self.port}"), message)

    @property
    def _conn(self) -> socket.socket:
        if self.sock is None:
            raise PeerError(f"no connection to peer {self.ip}:{self.port}")
        return self.sock

    def _write(self, data: bytes) -> None:
        try:
            self._conn.sendall(data)
        except OSError as exc:
            raise PeerError(f"error sending data: {exc}") from exc

    def _read_exact(self, count: int) -> bytes:
        conn = self._conn
        buffer = bytearray()
        while len(buffer) < count:
            try:
                chunk = conn.recv(count - len(buffer))
            except OSError as exc:
                raise PeerError(f"error reading {count} bytes: {exc}") from exc
            if not chunk:
                raise PeerError(
                    f"peer closed connection after {len(buffer)} of {count} bytes"
                )
            buffer += chunk
        return bytes(buffer)

    def send_message(self, payload: bytes) -> None:
        """Send ``payload`` with a 4-byte big-endian length prefix."""
        self._write(struct.pack(">I", len(payload)) + bytes(payload))

    def receive_message(self) -> bytes:
        """Read one length-prefixed message, skipping keep-alives."""
        while True:
            (length,) = struct.unpack(">I", self._read_exact(4))
            if length:
                return self._read_exact(length)

    def perform_handshake(self, info_hash: bytes) -> Handshake:
        """Exchange the opening handshake and return the peer's."""
        ours = Handshake(
            info_hash=bytes(info_hash),
            peer_id=SERVER_PEER_ID,
            supports_extensions=True,
        )
        self._write(ours.to_bytes())
        return Handshake.from_bytes(self._read_exact(HANDSHAKE_LENGTH))

    def perform_extension_handshake(self) -> ExtensionHandshake:
        self._write(ExtensionHandshake().to_bytes())
        reply = self.receive_message()
        try:
            return ExtensionHandshake.from_bytes(reply)
        except ProtocolError as exc:
            raise PeerError(f"error parsing extension handshake response: {exc}") from exc

    def _wait_for(self, message_id: int, name: str) -> None:
        while True:
            message = self.receive_message()
            if message[0] == message_id:
                return
            self.log(f"received message bytes {message!r} while waiting for {name} message")

    def wait_for_bitfield(self) -> None:
        """Block until a bitfield message arrives, discarding others."""
        self._wait_for(BITFIELD_MESSAGE_ID, "bitfield")

    def send_interested(self) -> None:
        """Send ``interested`` and block until the peer unchokes us."""
        self.send_message(bytes([INTERESTED_MESSAGE_ID]))
        self._wait_for(UNCHOKE_MESSAGE_ID, "unchoke")

    def prepare(self, info_hash: bytes) -> None:
        """Handshake, wait for the bitfield and get unchoked."""
        self.perform_handshake(info_hash)
        self.wait_for_bitfield()
        self.send_interested()
        self.log("completed initialization. ready to download pieces")

    def download_piece(self, index: int, length: int, piece_hash: bytes) -> StoredPiece:
        """Request every block of a piece, collect them and verify the hash."""
        if self.assigned_piece is not None:
            raise PeerError("peer already has an assigned piece")
        piece = StoredPiece(index=index, length=length, hash=bytes(piece_hash))
        self.assigned_piece = piece
        self.log(f"assigned piece {index}")
        try:
            for request in piece.request_messages():
                try:
                    self.send_message(request)
                except PeerError as exc:
                    self.log(f"error making request for block: {exc}")
            self.log(f"{piece.number_of_blocks} blocks requested for piece {index}")
            self._receive_complete_piece(piece)
        finally:
            self.assigned_piece = None
        return piece

    def _receive_complete_piece(self, piece: StoredPiece) -> None:
        while not piece.is_complete():
            message = self.receive_message()
            if message[0] != PIECE_MESSAGE_ID:
                raise PeerError(
                    f"received message with ID {message[0]}, "
                    f"expected piece message ID {PIECE_MESSAGE_ID}"
                )
            try:
                piece.handle_piece_message(PieceMessage.from_bytes(message))
            except (ProtocolError, PieceError) as exc:
                raise PeerError(f"error handling piece message: {exc}") from exc
        self.log(f"piece {piece.index} completed")
        try:
            piece.verify_hash()
        except PieceError as exc:
            raise PeerError(f"error verifying piece hash: {exc}") from exc
        self.log(f"piece {piece.index} hash verified")

    def perform_magnet_handshake(self, magnet: MagnetURI, log_ids: bool) -> Handshake:
        """Handshake, wait for the bitfield and negotiate the metadata extension."""
        handshake = self.perform_handshake(magnet.info_hash)
        if log_ids:
            print(f"Peer ID: {bytes_to_hex(handshake.peer_id)}")
        self.wait_for_bitfield()
        if handshake.supports_extensions:
            extensions = self.perform_extension_handshake()
            metadata_id = extensions.extension_map.get("ut_metadata")
            if metadata_id is not None:
                self.extension_message_id = metadata_id
                if log_ids:
                    print(f"Peer Metadata Extension ID: {metadata_id}")
        return handshake

    def fetch_metadata(self, magnet: MagnetURI) -> TorrentFileInfo:
        """Request the info dictionary over ut_metadata and build torrent info."""
        if self.extension_message_id < 0:
            raise PeerError("peer does not support the metadata extension")
        self.send_message(metadata_request_message(self.extension_message_id, 0))
        reply = self.receive_message()
        try:
            info = parse_metadata_message(0, reply)
            return TorrentFileInfo.from_magnet(magnet, info)
        except (ProtocolError, TorrentError) as exc:
            raise PeerError(f"error parsing data message: {exc}") from exc

    def magnet_handshake_and_info(self, magnet: MagnetURI) -> TorrentFileInfo:
        self.perform_magnet_handshake(magnet, False)
        return self.fetch_metadata(magnet)

    def prepare_magnet(self, magnet: MagnetURI) -> TorrentFileInfo:
        """Get the metadata and get unchoked, ready to download pieces."""
        info = self.magnet_handshake_and_info(magnet)
        self.send_interested()
        self.log("completed initialization. ready to download pieces")
        return info