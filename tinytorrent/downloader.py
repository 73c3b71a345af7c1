"""Peer discovery, torrent summaries and concurrent download of all pieces."""

from __future__ import annotations

import os
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .peer import Peer, PeerError
from .protocol import SERVER_PEER_ID
from .torrent import TorrentFileInfo
from .tracker import TrackerRequest
from .utils import bytes_to_hex

RETRY_DELAY = 0.5
_POLL_INTERVAL = 0.05


def get_peers(tracker_url: str, info_hash: bytes, left: int, connect: bool) -> list[Peer]:
    """Ask the tracker for peers; with ``connect`` each peer is connected."""
    request = TrackerRequest(
        tracker_url=tracker_url,
        info_hash=bytes(info_hash),
        peer_id=SERVER_PEER_ID,
        left=left,
    )
    return request.send(connect).peers


def get_peers_for_torrent(info: TorrentFileInfo, connect: bool) -> list[Peer]:
    """Ask the torrent's tracker for peers, announcing the whole file as left."""
    return get_peers(info.tracker_url, info.info_hash, info.info_dict.length, connect)


def format_info(info: TorrentFileInfo) -> str:
    """Return the human-readable summary of a torrent, one field per line."""
    lines = [
        f"Tracker URL: {info.tracker_url}",
        f"Length: {info.info_dict.length}",
        f"Info Hash: {info.hex_info_hash()}",
        f"Piece Length: {info.info_dict.piece_length}",
        "Piece Hashes:",
    ]
    lines.extend(bytes_to_hex(piece) for piece in info.info_dict.pieces)
    return "\n".join(lines)


@dataclass(frozen=True)
class _PieceJob:
    index: int
    length: int
    hash: bytes


def download_pieces(
    peers: Sequence[Peer], info: TorrentFileInfo, output_file: str | os.PathLike
) -> bytes:
    """Download every piece using one worker per peer and write the file.

    A piece whose download fails is put back on the queue after a short
    delay so that any worker may retry it. Returns the file's bytes.
    """
    if not peers:
        raise ValueError("no peers to download from")

    jobs = [
        _PieceJob(index, info.info_dict.piece_size(index), piece_hash)
        for index, piece_hash in enumerate(info.info_dict.pieces)
    ]
    pending: "queue.Queue[_PieceJob]" = queue.Queue()
    for job in jobs:
        pending.put(job)

    results: dict[int, bytes] = {}
    lock = threading.Lock()
    finished = threading.Event()
    if not jobs:
        finished.set()

    def requeue(job: _PieceJob) -> None:
        timer = threading.Timer(RETRY_DELAY, pending.put, args=(job,))
        timer.daemon = True
        timer.start()

    def worker(peer: Peer) -> None:
        while not finished.is_set():
            try:
                job = pending.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                piece = peer.download_piece(job.index, job.length, job.hash)
            except (PeerError, OSError) as exc:
                print(f"error with piece {job.index}: {exc}, retrying")
                requeue(job)
                continue
            with lock:
                results[job.index] = piece.data()
                if len(results) == len(jobs):
                    finished.set()

    threads = [
        threading.Thread(target=worker, args=(peer,), daemon=True) for peer in peers
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    missing = [job.index for job in jobs if job.index not in results]
    if missing:
        raise RuntimeError(f"pieces were not downloaded: {missing}")

    data = b"".join(results[job.index] for job in jobs)
    Path(output_file).write_bytes(data)
    print(f"Downloaded file saved to '{output_file}'")
    return data