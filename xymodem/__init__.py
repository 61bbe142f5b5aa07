"""
xymodem - XMODEM, XMODEM-1K and YMODEM file transfer over any byte channel.
"""

from .checksum import CRC16, Checksum, Checksum8, ChecksumMode
from .config import DEFAULT_CONFIG, ModemConfig
from .modem import Modem
from .protocols import XModem, XModem1K, YModem
from .exceptions import (
    ModemException,
    FatalTransmissionException,
    MaxErrorsExceededException,
    PeerCancelledException,
    TransferCancelledException,
    InvalidFilenameException,
    HandshakeFailedException
)

__version__ = '1.0.0'
