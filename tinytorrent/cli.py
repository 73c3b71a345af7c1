"""Command-line entry point: one sub-command per client stage."""

from __future__ import annotations

import sys
from typing import Callable, Iterable, Sequence

from .bencode import BencodeError, decode, to_display
from .downloader import download_pieces, format_info, get_peers, get_peers_for_torrent
from .magnet import MagnetError, MagnetURI
from .peer import Peer, PeerError
from .pieces import StoredPiece
from .protocol import ProtocolError
from .torrent import TorrentError, TorrentFileInfo
from .tracker import TrackerError
from .utils import bytes_to_hex, write_file

# The amount announced as "left" when the file size is not yet known.
MAGNET_LEFT = 999

_FAILURES = (
    PeerError,
    TrackerError,
    TorrentError,
    MagnetError,
    ProtocolError,
    OSError,
)


def _close_all(peers: Iterable[Peer]) -> None:
    for peer in peers:
        peer.close()


def _load_torrent(path: str) -> TorrentFileInfo | None:
    try:
        return TorrentFileInfo.from_file(path)
    except (TorrentError, OSError) as exc:
        print(f"error creating TorrentFileInfo: {exc}")
        return None


def _load_magnet(link: str) -> MagnetURI | None:
    try:
        return MagnetURI.parse(link)
    except MagnetError as exc:
        print(f"error creating MagnetURI: {exc}")
        return None


def _parse_piece_index(text: str, info: TorrentFileInfo) -> int | None:
    try:
        index = int(text)
    except ValueError as exc:
        print(f"error converting piece index to int: {exc}")
        return None
    if not 0 <= index < len(info.info_dict.pieces):
        print(f"piece index out of range: {index}")
        return None
    return index


def _fetch_peers(
    tracker_url: str, info_hash: bytes, left: int, connect: bool
) -> list[Peer] | None:
    try:
        peers = get_peers(tracker_url, info_hash, left, connect)
    except (TrackerError, OSError) as exc:
        print(f"error getting peers: {exc}")
        return None
    if not peers:
        print("no peers found")
        return None
    return peers


def _download_until_done(peer: Peer, info: TorrentFileInfo, index: int) -> StoredPiece:
    """Retry the piece on the same peer until it downloads and verifies."""
    while True:
        try:
            return peer.download_piece(
                index, info.info_dict.piece_size(index), info.info_dict.pieces[index]
            )
        except PeerError as exc:
            print(f"error downloading piece: {exc}")


def _save(path: str, data: bytes) -> int:
    try:
        write_file(path, data)
    except OSError as exc:
        print(f"error writing data to file: {exc}")
        return 1
    return 0


def handle_decode(args: Sequence[str]) -> int:
    """Decode a bencoded argument and print it in display form."""
    if not args:
        print("no data passed to decode. usage: tinytorrent decode <bytes-to-decode>")
        return 1
    try:
        value = decode(args[0])
    except BencodeError as exc:
        print(f"error decoding the passed data: {exc}")
        return 1
    print(to_display(value))
    return 0


def handle_info(args: Sequence[str]) -> int:
    """Print the summary of a torrent file."""
    if not args:
        print("no data passed to info. usage: tinytorrent info <path-to-file>")
        return 1
    if len(args) > 1:
        print("too many arguments passed to info. usage: tinytorrent info <path-to-file>")
        return 1
    info = _load_torrent(args[0])
    if info is None:
        return 1
    print(format_info(info))
    return 0


def handle_peers(args: Sequence[str]) -> int:
    """Print the peers the tracker returns for a torrent file."""
    if not args:
        print("no data passed to peers. usage: tinytorrent peers <path-to-file>")
        return 1
    if len(args) > 1:
        print("too many arguments passed to peers. usage: tinytorrent peers <path-to-file>")
        return 1
    info = _load_torrent(args[0])
    if info is None:
        return 1
    try:
        peers = get_peers_for_torrent(info, False)
    except (TrackerError, OSError) as exc:
        print(f"error getting peers: {exc}")
        return 1
    for peer in peers:
        print(f"{peer.ip}:{peer.port}")
    return 0


def handle_handshake(args: Sequence[str]) -> int:
    """Handshake with one peer and print its peer ID."""
    if len(args) != 2:
        print(
            "incorrect arguments passed. "
            "usage: tinytorrent handshake <torrent-file> <peer-host:port>"
        )
        return 1
    info = _load_torrent(args[0])
    if info is None:
        return 1
    try:
        peer = Peer.connect(args[1])
    except PeerError as exc:
        print(f"error creating peer: {exc}")
        return 1
    with peer:
        try:
            handshake = peer.perform_handshake(info.info_hash)
        except _FAILURES as exc:
            print(f"error performing handshake: {exc}")
            return 1
    print(f"Peer ID: {bytes_to_hex(handshake.peer_id)}")
    return 0


def handle_download_piece(args: Sequence[str]) -> int:
    """Download one piece of a torrent into a file."""
    if len(args) != 4 or args[0] != "-o":
        print(
            "incorrect arguments passed. usage: tinytorrent download_piece "
            "-o <output-file> <torrent-file> <piece-index>"
        )
        return 1
    info = _load_torrent(args[2])
    if info is None:
        return 1
    index = _parse_piece_index(args[3], info)
    if index is None:
        return 1
    peers = _fetch_peers(info.tracker_url, info.info_hash, info.info_dict.length, True)
    if peers is None:
        return 1
    try:
        peer = peers[0]
        try:
            peer.prepare(info.info_hash)
        except _FAILURES as exc:
            print(f"error preparing to get piece data: {exc}")
            return 1
        piece = _download_until_done(peer, info, index)
        return _save(args[1], piece.data())
    finally:
        _close_all(peers)


def handle_download(args: Sequence[str]) -> int:
    """Download a whole torrent from every peer the tracker returns."""
    if len(args) != 3 or args[0] != "-o":
        print(
            "incorrect arguments passed. "
            "usage: tinytorrent download -o <output-file> <torrent-file>"
        )
        return 1
    info = _load_torrent(args[2])
    if info is None:
        return 1
    peers = _fetch_peers(info.tracker_url, info.info_hash, info.info_dict.length, True)
    if peers is None:
        return 1
    try:
        for peer in peers:
            try:
                peer.prepare(info.info_hash)
            except _FAILURES as exc:
                print(f"error preparing peer: {exc}")
                return 1
        try:
            download_pieces(peers, info, args[1])
        except (OSError, RuntimeError, ValueError) as exc:
            print(f"error writing final file: {exc}")
            return 1
        return 0
    finally:
        _close_all(peers)


def handle_magnet_parse(args: Sequence[str]) -> int:
    """Print the tracker URL and info hash of a magnet link."""
    if len(args) != 1:
        print("incorrect arguments passed. usage: tinytorrent magnet_parse <magnet-link>")
        return 1
    magnet = _load_magnet(args[0])
    if magnet is None:
        return 1
    print(f"Tracker URL: {magnet.tracker_url}")
    print(f"Info Hash: {magnet.info_hash_hex}")
    return 0


def handle_magnet_handshake(args: Sequence[str]) -> int:
    """Handshake with the first peer of a magnet link and print the IDs."""
    if len(args) != 1:
        print(
            "incorrect arguments passed. usage: tinytorrent magnet_handshake <magnet-link>"
        )
        return 1
    magnet = _load_magnet(args[0])
    if magnet is None:
        return 1
    peers = _fetch_peers(magnet.tracker_url, magnet.info_hash, MAGNET_LEFT, True)
    if peers is None:
        return 1
    try:
        peers[0].perform_magnet_handshake(magnet, True)
    except _FAILURES as exc:
        print(f"error performing handshake: {exc}")
        return 1
    finally:
        _close_all(peers)
    return 0


def handle_magnet_info(args: Sequence[str]) -> int:
    """Fetch the metadata of a magnet link and print its summary."""
    if len(args) != 1:
        print("incorrect arguments passed. usage: tinytorrent magnet_info <magnet-link>")
        return 1
    magnet = _load_magnet(args[0])
    if magnet is None:
        return 1
    peers = _fetch_peers(magnet.tracker_url, magnet.info_hash, MAGNET_LEFT, True)
    if peers is None:
        return 1
    try:
        info = peers[0].magnet_handshake_and_info(magnet)
    except _FAILURES as exc:
        print(f"error performing handshake: {exc}")
        return 1
    finally:
        _close_all(peers)
    print(format_info(info))
    return 0


def handle_magnet_download_piece(args: Sequence[str]) -> int:
    """Download one piece of a magnet link's file into a file."""
    if len(args) != 4 or args[0] != "-o":
        print(
            "incorrect arguments passed. usage: tinytorrent magnet_download_piece "
            "-o <output-file> <magnet-link> <piece-index>"
        )
        return 1
    magnet = _load_magnet(args[2])
    if magnet is None:
        return 1
    peers = _fetch_peers(magnet.tracker_url, magnet.info_hash, MAGNET_LEFT, True)
    if peers is None:
        return 1
    try:
        peer = peers[0]
        try:
            info = peer.prepare_magnet(magnet)
        except _FAILURES as exc:
            print(f"error performing handshake: {exc}")
            return 1
        index = _parse_piece_index(args[3], info)
        if index is None:
            return 1
        piece = _download_until_done(peer, info, index)
        return _save(args[1], piece.data())
    finally:
        _close_all(peers)


def handle_magnet_download(args: Sequence[str]) -> int:
    """Download the whole file of a magnet link."""
    if len(args) != 3 or args[0] != "-o":
        print("usage: tinytorrent magnet_download -o <output-file> <magnet-link>")
        return 1
    magnet = _load_magnet(args[2])
    if magnet is None:
        return 1
    peers = _fetch_peers(magnet.tracker_url, magnet.info_hash, MAGNET_LEFT, True)
    if peers is None:
        return 1
    try:
        info: TorrentFileInfo | None = None
        for peer in peers:
            try:
                info = peer.prepare_magnet(magnet)
            except _FAILURES as exc:
                print(f"error performing handshake: {exc}")
                return 1
        assert info is not None
        try:
            download_pieces(peers, info, args[1])
        except (OSError, RuntimeError, ValueError) as exc:
            print(f"error writing final file: {exc}")
            return 1
        return 0
    finally:
        _close_all(peers)


_HANDLERS: dict[str, Callable[[Sequence[str]], int]] = {
    "decode": handle_decode,
    "info": handle_info,
    "peers": handle_peers,
    "handshake": handle_handshake,
    "download_piece": handle_download_piece,
    "download": handle_download,
    "magnet_parse": handle_magnet_parse,
    "magnet_handshake": handle_magnet_handshake,
    "magnet_info": handle_magnet_info,
    "magnet_download_piece": handle_magnet_download_piece,
    "magnet_download": handle_magnet_download,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the sub-command named by the first argument; return an exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("no arguments provided")
        return 1
    handler = _HANDLERS.get(args[0])
    if handler is None:
        print(f"unknown command: {args[0]}")
        return 1
    return handler(args[1:])


if __name__ == "__main__":
    sys.exit(main())