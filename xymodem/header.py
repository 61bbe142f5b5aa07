"""
YMODEM block 0: file name and size of the next file, or the end of a batch.
"""

from typing import NamedTuple, Optional, Union

from .config import HEADER_BLOCK_SIZE


class BatchHeader(NamedTuple):
    name: str
    size: Optional[int] = None
    mtime: Optional[int] = None


def encode_header(name: str, size: int, block_size: int = HEADER_BLOCK_SIZE) -> bytes:
    """
    Build the block 0 payload announcing a file.

    Layout is the file name, NUL, the decimal size, a space and NUL,
    zero-filled up to the block size.
    """
    data = name.encode('utf-8') + b'\x00' + str(size).encode('ascii') + b' \x00'
    if len(data) > block_size:
        raise ValueError(f"Header for '{name}' does not fit a {block_size}-byte block")
    return data.ljust(block_size, b'\x00')


def encode_batch_end(block_size: int = HEADER_BLOCK_SIZE) -> bytes:
    """Block 0 payload that ends a batch."""
    return bytes(block_size)


def is_batch_end(payload: Union[bytes, bytearray]) -> bool:
    return not payload or payload[0] == 0


def decode_header(payload: Union[bytes, bytearray]) -> Optional[BatchHeader]:
    """
    Parse a block 0 payload.

    Returns:
        BatchHeader, or None for the end-of-batch block
    """
    if is_batch_end(payload):
        return None

    name, _, rest = bytes(payload).partition(b'\x00')
    fields = rest.split(b'\x00', 1)[0].decode('ascii', errors='replace').split()

    size = None
    mtime = None
    if fields and fields[0].isdigit():
        size = int(fields[0])
    if len(fields) > 1:
        try:
            mtime = int(fields[1], 8)
        except ValueError:
            mtime = None

    return BatchHeader(name.decode('utf-8', errors='replace'), size, mtime)
