"""
XMODEM, XMODEM-1K and YMODEM file transfer on top of the Modem engine.
"""

import logging
import os
import re
from typing import Any, Callable, List, Optional, Union

from tqdm import tqdm

from .checksum import ChecksumMode
from .config import ACK, BLOCK_SIZE_1K, HEADER_BLOCK_SIZE, ModemConfig
from .exceptions import InvalidFilenameException
from .header import decode_header, encode_batch_end, encode_header
from .modem import Modem

logger = logging.getLogger(__name__)

PathLike = Union[str, 'os.PathLike[str]']

# DOS style name: no spaces, short extension
FILENAME_PATTERN = re.compile(r'\w{1,50}\.\w{1,3}', re.ASCII)


def _progress_callback(pbar: tqdm,
                       callback: Optional[Callable[[int], None]]) -> Callable[[int], None]:
    def update(done: int) -> None:
        pbar.update(done - pbar.n)
        if callable(callback):
            callback(done)
    return update


class ModemProtocol:
    """Binds a Modem engine to the communication channel."""

    block_size = HEADER_BLOCK_SIZE

    def __init__(self,
                 read_func: Callable[[int, Optional[float]], Any],
                 write_func: Callable[[Union[bytes, bytearray], Optional[float]], Any],
                 config: Optional[ModemConfig] = None,
                 show_progress: bool = False):
        """
        Initialize the protocol handler.

        Args:
            read_func: Function to read data from the communication channel
            write_func: Function to write data to the communication channel
            config: Engine tuning values
            show_progress: Render a progress bar for every file
        """
        self.modem = Modem(read_func, write_func, config)
        self.show_progress = show_progress


class XModem(ModemProtocol):
    """XMODEM with 128-byte blocks."""

    block_size = HEADER_BLOCK_SIZE

    def send(self,
             path: PathLike,
             cancel_event: Optional[Any] = None,
             callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Send a file.

        Args:
            path: File to send
            cancel_event: Object with is_set(); when set the transfer is cancelled
                before the next block and CAN CAN is sent
            callback: Progress callback receiving the number of bytes sent so far

        Returns:
            Number of bytes sent
        """
        total = os.path.getsize(path)
        with open(path, 'rb') as stream, \
                tqdm(total=total, unit='B', unit_scale=True, desc='Sending',
                     disable=not self.show_progress) as pbar:
            sent = self.modem.send(stream, self.block_size, cancel_event,
                                   _progress_callback(pbar, callback))
        logger.info(f"Sent {path} ({sent} bytes)")
        return sent

    def receive(self,
                path: PathLike,
                crc: bool = False,
                callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Receive a file.

        The last block's ^Z filler is written as received; the sender's file
        length is not known to an XMODEM receiver.

        Args:
            path: Destination file
            crc: Request CRC-16 instead of the 8-bit checksum
            callback: Progress callback receiving the number of bytes received so far

        Returns:
            Number of bytes written
        """
        with open(path, 'wb') as stream, \
                tqdm(unit='B', unit_scale=True, desc='Receiving',
                     disable=not self.show_progress) as pbar:
            received = self.modem.receive(stream, crc, _progress_callback(pbar, callback))
        logger.info(f"Received {path} ({received} bytes)")
        return received


class XModem1K(XModem):
    """XMODEM with 1024-byte blocks."""

    block_size = BLOCK_SIZE_1K


class YModem(ModemProtocol):
    """
    YMODEM batch transfer.
    Block 0 carries the file name and size of each file.
    """

    block_size = BLOCK_SIZE_1K

    def __init__(self,
                 read_func: Callable[[int, Optional[float]], Any],
                 write_func: Callable[[Union[bytes, bytearray], Optional[float]], Any],
                 config: Optional[ModemConfig] = None,
                 show_progress: bool = False,
                 trim_to_header_size: bool = True):
        """
        Initialize the protocol handler.

        Args:
            read_func: Function to read data from the communication channel
            write_func: Function to write data to the communication channel
            config: Engine tuning values
            show_progress: Render a progress bar for every file
            trim_to_header_size: Cut received files to the size announced in block 0
        """
        super().__init__(read_func, write_func, config, show_progress)
        self.trim_to_header_size = trim_to_header_size

    @staticmethod
    def check_filename(path: PathLike) -> str:
        """
        Return the file name of path.

        Raises:
            InvalidFilenameException: If the name is not DOS style
        """
        name = os.path.basename(os.fspath(path))
        if not FILENAME_PATTERN.fullmatch(name):
            raise InvalidFilenameException(name)
        return name

    def send(self,
             path: PathLike,
             cancel_event: Optional[Any] = None,
             callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Send a file preceded by its header block.

        Raises:
            InvalidFilenameException: Before anything is sent, if the name is not DOS style
        """
        name = self.check_filename(path)
        total = os.path.getsize(path)

        with open(path, 'rb') as stream, \
                tqdm(total=total, unit='B', unit_scale=True, desc=name,
                     disable=not self.show_progress) as pbar:
            checksum = self.modem.wait_receiver_request()
            logger.debug(f"[Sender]: Header block for {name}, {total} bytes ->")
            self.modem.send_block(0, encode_header(name, total), HEADER_BLOCK_SIZE, checksum)

            # The receiver asks again before the data blocks; the checksum stays as negotiated.
            self.modem.wait_receiver_request()
            sent = self.modem.send_data_blocks(stream, self.block_size, checksum,
                                               cancel_event=cancel_event,
                                               callback=_progress_callback(pbar, callback))
            self.modem.send_eot()

        logger.info(f"Sent {name} ({sent} bytes)")
        return sent

    def send_batch_end(self) -> None:
        """Send the empty header block that ends a batch."""
        checksum = self.modem.wait_receiver_request()
        logger.debug("[Sender]: Batch end block ->")
        self.modem.send_block(0, encode_batch_end(), HEADER_BLOCK_SIZE, checksum)

    def batch_send(self,
                   *paths: PathLike,
                   cancel_event: Optional[Any] = None,
                   callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Send files in batch mode, followed by the batch end block.

        Every name is checked before the first byte is sent.

        Returns:
            Total number of bytes sent
        """
        for path in paths:
            self.check_filename(path)

        sent = 0
        for path in paths:
            sent += self.send(path, cancel_event, callback)
        self.send_batch_end()
        return sent

    def receive(self,
                path: PathLike,
                callback: Optional[Callable[[int], None]] = None) -> Optional[str]:
        """
        Receive a single file into path, ignoring the name in the header block.

        Returns:
            path, or None if the sender ended the batch instead
        """
        return self._receive(path, False, callback)

    def receive_single_file_in_directory(self,
                                         directory: PathLike,
                                         callback: Optional[Callable[[int], None]] = None
                                         ) -> Optional[str]:
        """
        Receive one file into directory under the name from its header block.

        Returns:
            Path to the created file, or None if the sender ended the batch
        """
        return self._receive(directory, True, callback)

    def receive_files_in_directory(self,
                                   directory: PathLike,
                                   callback: Optional[Callable[[int], None]] = None
                                   ) -> List[str]:
        """
        Receive files into directory until the sender ends the batch.

        Returns:
            Paths of the created files
        """
        paths = []
        while True:
            path = self._receive(directory, True, callback)
            if path is None:
                return paths
            paths.append(path)

    def _receive(self,
                 path: PathLike,
                 in_directory: bool,
                 callback: Optional[Callable[[int], None]]) -> Optional[str]:
        payload, checksum = self.modem.receive_header_block()
        header = decode_header(payload)
        if header is None:
            logger.debug("[Receiver]: <- Batch end block")
            self.modem.write(ACK)
            return None

        logger.debug(f"[Receiver]: File - {header.name}, size - {header.size}")
        if in_directory:
            name = os.path.basename(header.name)
            if name in ('', '.', '..'):
                logger.error(f"[Receiver]: Cannot save a file named '{header.name}', abort and exit!")
                self.modem.abort()
                raise InvalidFilenameException(header.name)
            file_path = os.path.join(os.fspath(path), name)
        else:
            file_path = os.fspath(path)

        try:
            stream = open(file_path, 'wb')
        except OSError:
            logger.error(f"[Receiver]: Cannot open the save path: {file_path}, abort and exit!")
            self.modem.abort()
            raise

        with stream, \
                tqdm(total=header.size, unit='B', unit_scale=True, desc=header.name,
                     disable=not self.show_progress) as pbar:
            self.modem.write(ACK)
            crc = checksum.mode == ChecksumMode.CRC16
            received = self.modem.receive(stream, crc, _progress_callback(pbar, callback))
            if self.trim_to_header_size and header.size is not None and received > header.size:
                stream.truncate(header.size)
                received = header.size

        logger.info(f"Received {file_path} ({received} bytes)")
        return file_path
