"""Small helpers: hex formatting, file writing, hashing and peer IDs."""

from __future__ import annotations

import hashlib
import os
import random
import string
from pathlib import Path

PEER_ID_LENGTH = 20


def bytes_to_hex(data: bytes) -> str:
    """Return the lowercase hex form of ``data``."""
    return bytes(data).hex()


def write_file(path: str | os.PathLike, data: bytes) -> None:
    """Write ``data`` to ``path``, creating parent directories and syncing to disk."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())


def sha1_hash(data: bytes) -> bytes:
    """Return the 20-byte SHA-1 digest of ``data``."""
    return hashlib.sha1(data).digest()


def random_peer_id() -> bytes:
    """Return a 20-byte peer ID made of random lowercase letters."""
    return "".join(
        random.choice(string.ascii_lowercase) for _ in range(PEER_ID_LENGTH)
    ).encode("ascii")