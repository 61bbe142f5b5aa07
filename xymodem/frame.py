"""
Encoding and decoding of a single block on the wire:

    [SOH|STX][sequence][255 - sequence][payload ...][checksum trailer]
"""

import logging
from enum import IntEnum
from typing import Callable, NamedTuple, Optional, Union

from .checksum import Checksum
from .config import BLOCK_SIZES, BLOCK_SIZE_1K, CPMEOF, HEADER_BLOCK_SIZE, SOH, STX, ModemConfig

logger = logging.getLogger(__name__)

# read(size, timeout) -> exactly `size` bytes, or None on timeout
ReadExact = Callable[[int, float], Optional[bytes]]


class BlockStatus(IntEnum):
    """Outcome of decoding one block."""
    ACCEPTED = 0
    REPEATED = 1
    INVALID = 2
    TIMEOUT = 3
    SYNC_LOST = 4


class DecodedBlock(NamedTuple):
    status: BlockStatus
    sequence: Optional[int] = None
    payload: bytes = b''


class FrameCodec:
    """Builds outgoing blocks and validates incoming ones."""

    def __init__(self, config: ModemConfig):
        self.config = config

    @staticmethod
    def make_header(block_size: int, sequence: int) -> bytearray:
        """
        Create the three leading bytes of a block.

        Args:
            block_size: Block size (128 or 1024)
            sequence: Block sequence number

        Returns:
            Header bytes
        """
        if block_size == HEADER_BLOCK_SIZE:
            start = SOH
        elif block_size == BLOCK_SIZE_1K:
            start = STX
        else:
            raise ValueError(f"Invalid block size: {block_size}")
        sequence &= 0xff
        return bytearray([ord(start), sequence, 0xff - sequence])

    def encode(self,
               sequence: int,
               payload: Union[bytes, bytearray],
               checksum: Checksum,
               block_size: int) -> bytes:
        """
        Build the complete wire representation of a block.

        Args:
            sequence: Block sequence number (taken modulo 256)
            payload: Block data, padded with ^Z when shorter than the block
            checksum: Session checksum
            block_size: Block size (128 or 1024)

        Returns:
            Encoded block
        """
        if len(payload) > block_size:
            raise ValueError(f"Payload of {len(payload)} bytes does not fit a {block_size}-byte block")
        data = bytes(payload).ljust(block_size, CPMEOF)
        return bytes(self.make_header(block_size, sequence) + data + checksum.compute(data))

    def decode(self,
               start: bytes,
               expected: int,
               checksum: Checksum,
               read: ReadExact) -> DecodedBlock:
        """
        Read and validate the rest of a block whose start byte has been consumed.

        Args:
            start: SOH or STX, already read from the line
            expected: Sequence number the receiver accepts next
            checksum: Session checksum
            read: Function returning exactly the requested number of bytes, or None on timeout

        Returns:
            DecodedBlock; payload is only set for ACCEPTED blocks
        """
        block_size = BLOCK_SIZES[start]
        timeout = self.config.block_timeout

        numbers = read(2, timeout)
        if numbers is None:
            logger.warning("[Receiver]: Timed out reading the block number.")
            return DecodedBlock(BlockStatus.TIMEOUT)
        sequence, complement = numbers[0], numbers[1]

        # The rest of the block is always drained so the line stays aligned.
        body = read(block_size + checksum.size, timeout)

        if complement != 0xff - sequence:
            logger.warning(f"[Receiver]: Block number {sequence} does not match its complement {complement}.")
            return DecodedBlock(BlockStatus.INVALID, sequence)
        if body is None:
            logger.warning(f"[Receiver]: Timed out reading block {sequence}.")
            return DecodedBlock(BlockStatus.TIMEOUT, sequence)

        payload, trailer = body[:block_size], body[block_size:]
        if not checksum.verify(payload, trailer):
            logger.warning(f"[Receiver]: Checksum failed for block {sequence}.")
            logger.debug(f"[Receiver]: Sender: {trailer.hex()}, Receiver: {checksum.compute(payload).hex()}.")
            return DecodedBlock(BlockStatus.INVALID, sequence)

        if sequence == expected & 0xff:
            return DecodedBlock(BlockStatus.ACCEPTED, sequence, payload)
        if sequence == (expected - 1) & 0xff:
            logger.warning(f"[Receiver]: Repeated block {sequence}, drop the whole block.")
            return DecodedBlock(BlockStatus.REPEATED, sequence)
        logger.error(f"[Receiver]: Expected block {expected & 0xff}, got {sequence}.")
        return DecodedBlock(BlockStatus.SYNC_LOST, sequence)
