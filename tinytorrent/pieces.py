"""Tracking the blocks of a piece while it is being downloaded."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field

from .protocol import BLOCK_SIZE, PieceMessage, request_message
from .utils import sha1_hash


class PieceError(ValueError):
    """Raised when piece data does not fit the piece or fails verification."""


@dataclass
class PieceBlock:
    """One block of a piece: its offset, length and the bytes received for it."""

    offset: int
    length: int
    data: bytes = b""
    received: bool = False

    def __post_init__(self) -> None:
        if not self.received:
            self.data = bytes(self.length)


@dataclass
class StoredPiece:
    """A piece split into blocks of at most ``BLOCK_SIZE`` bytes."""

    index: int
    length: int
    hash: bytes
    blocks: list[PieceBlock] = field(init=False, repr=False)
    received_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.length < 0:
            raise PieceError(f"piece length cannot be negative: {self.length}")
        self.blocks = [
            PieceBlock(offset, min(BLOCK_SIZE, self.length - offset))
            for offset in range(0, self.length, BLOCK_SIZE)
        ]

    @property
    def number_of_blocks(self) -> int:
        return len(self.blocks)

    def request_messages(self) -> list[bytes]:
        """Return one request body per block, in block order."""
        return [
            request_message(self.index, block.offset, block.length)
            for block in self.blocks
        ]

    def handle_piece_message(self, message: PieceMessage) -> None:
        """Store the block carried by ``message``."""
        if message.piece_index != self.index:
            raise PieceError(
                f"piece message is for piece {message.piece_index}, "
                f"but this piece has index {self.index}"
            )
        block_index = message.begin // BLOCK_SIZE
        if block_index >= self.number_of_blocks:
            raise PieceError(
                f"the message has offset {message.begin} (block index {block_index}), "
                f"whereas this piece only has {self.number_of_blocks} blocks"
            )
        block = self.blocks[block_index]
        if len(message.block) != block.length:
            raise PieceError(
                f"the block at index {block_index} is expected to have length "
                f"{block.length}, but the message data has length {len(message.block)}"
            )
        block.data = bytes(message.block)
        block.received = True
        self.received_count += 1

    def is_complete(self) -> bool:
        return self.received_count == self.number_of_blocks

    def data(self) -> bytes:
        """Return the piece's bytes; warns if some blocks are still missing."""
        if not self.is_complete():
            warnings.warn(
                "reading data of an incompletely downloaded piece; "
                "the result may be incorrect",
                RuntimeWarning,
                stacklevel=2,
            )
        return b"".join(block.data for block in self.blocks)

    def verify_hash(self) -> None:
        """Raise ``PieceError`` unless the SHA-1 of the data matches the piece hash."""
        digest = sha1_hash(self.data())
        if digest != bytes(self.hash):
            raise PieceError(
                "piece hash verification failed, "
                f"expected {bytes(self.hash).hex()}, got {digest.hex()}"
            )