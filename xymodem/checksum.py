"""
Block checksums for the XMODEM protocol family.

A session uses exactly one of the two trailers, chosen by the receiver's
handshake byte: NAK asks for the 1-byte additive checksum, 'C' for CRC-16.
"""

from enum import IntEnum
from typing import List, Union


class ChecksumMode(IntEnum):
    """Checksum trailers supported by the protocol."""
    CHECKSUM8 = 0
    CRC16 = 1


def _make_crc16_table(poly: int = 0x1021) -> List[int]:
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ poly
            else:
                crc <<= 1
        table.append(crc & 0xFFFF)
    return table


# CRC-16/XMODEM lookup table
CRC16_TABLE = _make_crc16_table()


def calc_crc16(data: Union[bytes, bytearray], crc: int = 0) -> int:
    """
    Calculate CRC-16/XMODEM for the given data.

    Args:
        data: Data bytes to calculate CRC for
        crc: Initial CRC value (default: 0)

    Returns:
        Calculated CRC-16 value
    """
    for byte in bytearray(data):
        crc = ((crc << 8) & 0xFF00) ^ CRC16_TABLE[((crc >> 8) ^ byte) & 0xFF]
    return crc & 0xFFFF


def calc_checksum(data: Union[bytes, bytearray], checksum: int = 0) -> int:
    """
    Calculate the 8-bit additive checksum for the given data.

    Args:
        data: Data bytes to calculate checksum for
        checksum: Initial checksum value (default: 0)

    Returns:
        Sum of all bytes modulo 256
    """
    total = checksum
    for byte in bytearray(data):
        total = (total + byte) & 0xFF
    return total


class Checksum:
    """Trailer appended to every block of a session."""

    mode = None
    size = 0

    def compute(self, payload: Union[bytes, bytearray]) -> bytes:
        raise NotImplementedError

    def verify(self, payload: Union[bytes, bytearray], trailer: Union[bytes, bytearray]) -> bool:
        """Return True if the trailer matches the payload."""
        return bytes(trailer) == self.compute(payload)

    def __eq__(self, other):
        return isinstance(other, Checksum) and self.mode == other.mode

    def __hash__(self):
        return hash(self.mode)

    def __repr__(self):
        return f'{type(self).__name__}()'


class Checksum8(Checksum):
    """1-byte additive checksum."""

    mode = ChecksumMode.CHECKSUM8
    size = 1

    def compute(self, payload: Union[bytes, bytearray]) -> bytes:
        return bytes([calc_checksum(payload)])


class CRC16(Checksum):
    """2-byte big-endian CRC-16/XMODEM."""

    mode = ChecksumMode.CRC16
    size = 2

    def compute(self, payload: Union[bytes, bytearray]) -> bytes:
        crc_value = calc_crc16(payload)
        return bytes([crc_value >> 8, crc_value & 0xff])


def checksum_for(mode: int) -> Checksum:
    """Return the checksum implementation for a ChecksumMode."""
    if mode == ChecksumMode.CRC16:
        return CRC16()
    if mode == ChecksumMode.CHECKSUM8:
        return Checksum8()
    raise ValueError(f"Invalid checksum mode: {mode}")
