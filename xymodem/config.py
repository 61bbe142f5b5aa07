"""
Configuration module for xymodem.
Contains the wire constants and the tuning values used by the transfer engine.
"""

from typing import Optional

# Control bytes
SOH = b'\x01'  # Start of 128-byte data block
STX = b'\x02'  # Start of 1024-byte data block
EOT = b'\x04'  # End of transmission
ACK = b'\x06'  # Acknowledge
NAK = b'\x15'  # Negative acknowledge / request 8-bit checksum
CAN = b'\x18'  # Cancel transmission
CRC = b'\x43'  # 'C' - Request 16-bit CRC

# Filler for the unused tail of the last data block (^Z)
CPMEOF = b'\x1a'

# Block sizes
HEADER_BLOCK_SIZE = 128
BLOCK_SIZE_1K = 1024

BLOCK_SIZES = {
    SOH: HEADER_BLOCK_SIZE,
    STX: BLOCK_SIZE_1K,
}


class ModemConfig:
    """Immutable tuning values for one transfer engine."""

    def __init__(self,
                 max_errors: int = 10,
                 block_timeout: float = 1.0,
                 request_timeout: float = 3.0,
                 send_block_timeout: float = 10.0,
                 wait_for_receiver_timeout: float = 60.0,
                 max_handshake_waits: Optional[int] = None,
                 crc_attempts: int = 3,
                 purge_timeout: float = 0.05,
                 write_timeout: float = 1.0):
        """
        Initialize the configuration.

        Args:
            max_errors: Consecutive failures tolerated before a transfer is aborted
            block_timeout: Seconds to wait for each byte of a block, and for the EOT reply
            request_timeout: Seconds a receiver waits before repeating its start request
            send_block_timeout: Seconds a sender waits for ACK/NAK after a block
            wait_for_receiver_timeout: Seconds a sender waits for the handshake byte
            max_handshake_waits: Handshake deadlines a sender sits out before giving up (None waits forever)
            crc_attempts: 'C' requests a CRC receiver sends before falling back to NAK
            purge_timeout: Quiet period that ends a line purge
            write_timeout: Timeout handed to the write function
        """
        if max_errors < 1:
            raise ValueError(f"Invalid max_errors: {max_errors}")
        if crc_attempts < 0:
            raise ValueError(f"Invalid crc_attempts: {crc_attempts}")
        if max_handshake_waits is not None and max_handshake_waits < 1:
            raise ValueError(f"Invalid max_handshake_waits: {max_handshake_waits}")
        for name, value in (('block_timeout', block_timeout),
                            ('request_timeout', request_timeout),
                            ('send_block_timeout', send_block_timeout),
                            ('wait_for_receiver_timeout', wait_for_receiver_timeout),
                            ('purge_timeout', purge_timeout),
                            ('write_timeout', write_timeout)):
            if value <= 0:
                raise ValueError(f"Invalid {name}: {value}")

        self._max_errors = max_errors
        self._block_timeout = block_timeout
        self._request_timeout = request_timeout
        self._send_block_timeout = send_block_timeout
        self._wait_for_receiver_timeout = wait_for_receiver_timeout
        self._max_handshake_waits = max_handshake_waits
        self._crc_attempts = crc_attempts
        self._purge_timeout = purge_timeout
        self._write_timeout = write_timeout

    @property
    def max_errors(self) -> int:
        return self._max_errors

    @property
    def block_timeout(self) -> float:
        return self._block_timeout

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def send_block_timeout(self) -> float:
        return self._send_block_timeout

    @property
    def wait_for_receiver_timeout(self) -> float:
        return self._wait_for_receiver_timeout

    @property
    def max_handshake_waits(self) -> Optional[int]:
        return self._max_handshake_waits

    @property
    def crc_attempts(self) -> int:
        return self._crc_attempts

    @property
    def purge_timeout(self) -> float:
        return self._purge_timeout

    @property
    def write_timeout(self) -> float:
        return self._write_timeout


DEFAULT_CONFIG = ModemConfig()
