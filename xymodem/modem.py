"""
Block-transfer engine shared by the XMODEM, XMODEM-1K and YMODEM protocols.
Runs the sender and receiver state machines over a pair of read/write functions.
"""

import logging
from typing import Any, BinaryIO, Callable, Iterable, Optional, Tuple, Union

from .checksum import CRC16, Checksum, Checksum8, ChecksumMode
from .config import (
    ACK, CAN, CRC, EOT, NAK, SOH, STX,
    DEFAULT_CONFIG, ModemConfig
)
from .exceptions import (
    FatalTransmissionException,
    HandshakeFailedException,
    MaxErrorsExceededException,
    PeerCancelledException,
    TransferCancelledException
)
from .frame import BlockStatus, FrameCodec
from .timer import DeadlineTimer

logger = logging.getLogger(__name__)


class Modem:
    """
    XMODEM/YMODEM transfer engine.

    Owns the byte channel for the duration of one send or receive call.
    Concurrent calls on the same channel are not supported.
    """

    def __init__(self,
                 read_func: Callable[[int, Optional[float]], Any],
                 write_func: Callable[[Union[bytes, bytearray], Optional[float]], Any],
                 config: Optional[ModemConfig] = None):
        """
        Initialize the engine.

        Args:
            read_func: Function reading up to `size` bytes within `timeout` seconds,
                returning empty bytes or None on timeout
            write_func: Function writing data to the communication channel
            config: Tuning values (defaults to DEFAULT_CONFIG)
        """
        self._read = read_func
        self._write = write_func
        self.config = config or DEFAULT_CONFIG
        self.codec = FrameCodec(self.config)

    def read(self, size: int, timeout: float) -> bytes:
        """Read up to `size` bytes; empty bytes on timeout."""
        data = self._read(size, timeout)
        return bytes(data) if data else b''

    def write(self, data: Union[bytes, bytearray]) -> None:
        self._write(data, self.config.write_timeout)

    def read_byte(self, timer: DeadlineTimer) -> Optional[bytes]:
        """Read one byte before the timer expires, or return None."""
        while not timer.expired():
            c = self.read(1, timer.remaining())
            if c:
                return c[:1]
        return None

    def read_exact(self, size: int, timeout: float) -> Optional[bytes]:
        """
        Read exactly `size` bytes.

        The deadline is re-armed after every chunk, so `timeout` bounds the
        gap between bytes rather than the whole read.

        Returns:
            The bytes read, or None on timeout
        """
        buf = bytearray()
        timer = DeadlineTimer(timeout).start()
        while len(buf) < size:
            if timer.expired():
                return None
            chunk = self.read(size - len(buf), timer.remaining())
            if chunk:
                buf.extend(chunk)
                timer.start()
        return bytes(buf)

    def abort(self) -> None:
        """
        Abort the transmission by sending CAN characters.
        """
        for _ in range(2):
            self.write(CAN)

    def purge(self) -> None:
        """
        Purge the input buffer by reading until the line stays quiet.
        """
        while self.read(1, self.config.purge_timeout):
            pass

    def _confirm_cancel(self) -> bool:
        """A CAN was just read; a second one confirms the cancellation."""
        return self.read_byte(DeadlineTimer(self.config.block_timeout).start()) == CAN

    # Sender

    def wait_receiver_request(self) -> Checksum:
        """
        Wait for the receiver's handshake byte.

        Returns:
            CRC16 if the receiver sent 'C', Checksum8 if it sent NAK

        Raises:
            PeerCancelledException: If the receiver sent CAN
            HandshakeFailedException: If max_handshake_waits deadlines expired
        """
        waits = 0
        timer = DeadlineTimer(self.config.wait_for_receiver_timeout).start()
        while True:
            c = self.read_byte(timer)
            if c is None:
                waits += 1
                if self.config.max_handshake_waits is not None and waits >= self.config.max_handshake_waits:
                    logger.error("[Sender]: Waiting for command from Receiver has timed out, abort and exit!")
                    raise HandshakeFailedException()
                logger.warning("[Sender]: Still waiting for command from Receiver.")
                timer.start()
            elif c == CRC:
                logger.debug("[Sender]: <- C")
                return CRC16()
            elif c == NAK:
                logger.debug("[Sender]: <- NAK")
                return Checksum8()
            elif c == CAN:
                logger.warning("[Sender]: Received a request from the Receiver to cancel the transmission, exit.")
                raise PeerCancelledException()

    def send_block(self,
                   sequence: int,
                   payload: Union[bytes, bytearray],
                   block_size: int,
                   checksum: Checksum) -> None:
        """
        Send one block and wait until the receiver acknowledges it.

        Raises:
            PeerCancelledException: If the receiver answered CAN
            FatalTransmissionException: If the receiver answered anything but ACK, NAK or CAN
            MaxErrorsExceededException: If the block was rejected max_errors times
        """
        frame = self.codec.encode(sequence, payload, checksum, block_size)
        errors = 0
        while errors < self.config.max_errors:
            self.write(frame)
            logger.debug(f"[Sender]: Block {sequence & 0xff} ->")

            c = self.read_byte(DeadlineTimer(self.config.send_block_timeout).start())
            if c == ACK:
                logger.debug("[Sender]: <- ACK")
                return
            if c == CAN:
                logger.warning("[Sender]: Received a request from the Receiver to cancel the transmission, exit.")
                raise PeerCancelledException()
            if c is None:
                logger.warning("[Sender]: No response from Receiver, preparing to retransmit.")
            elif c == NAK:
                logger.warning("[Sender]: <- NAK, preparing to retransmit.")
            elif c == CRC and sequence == 0:
                # The receiver already asks for data, so the ACK of block 0 was lost.
                logger.warning("[Sender]: <- C instead of ACK for block 0, preparing to retransmit.")
            else:
                logger.error(f"[Sender]: Unexpected response {c[0]:#04x} to block {sequence & 0xff}, abort and exit!")
                self.abort()
                raise FatalTransmissionException(f'unexpected response {c[0]:#04x}')
            errors += 1

        logger.error("[Sender]: The number of retransmissions has reached the maximum limit, abort and exit!")
        self.abort()
        raise MaxErrorsExceededException(self.config.max_errors)

    def send_data_blocks(self,
                         stream: BinaryIO,
                         block_size: int,
                         checksum: Checksum,
                         sequence: int = 1,
                         cancel_event: Optional[Any] = None,
                         callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Send the stream as consecutive data blocks.

        Args:
            stream: Readable binary stream
            block_size: Block size (128 or 1024)
            checksum: Session checksum
            sequence: Number of the first block
            cancel_event: Object with is_set(); checked before every block
            callback: Progress callback receiving the number of bytes sent so far

        Returns:
            Number of data bytes sent

        Raises:
            TransferCancelledException: If cancel_event was set
        """
        sent = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("[Sender]: Transmission cancelled, notifying Receiver.")
                self.abort()
                raise TransferCancelledException()

            data = self._read_block(stream, block_size)
            if not data:
                logger.debug("[Sender]: Reached EOF")
                return sent

            self.send_block(sequence, data, block_size, checksum)
            sent += len(data)
            if callable(callback):
                callback(sent)
            sequence = (sequence + 1) % 256

    @staticmethod
    def _read_block(stream: BinaryIO, size: int) -> bytes:
        """Read up to size bytes, stopping early only at EOF."""
        data = b''
        while len(data) < size:
            chunk = stream.read(size - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def send_eot(self) -> None:
        """
        Send EOT until the receiver acknowledges it.
        """
        errors = 0
        while errors < self.config.max_errors:
            self.write(EOT)
            logger.debug("[Sender]: EOT ->")

            c = self.read_byte(DeadlineTimer(self.config.block_timeout).start())
            if c == ACK:
                logger.debug("[Sender]: <- ACK")
                return
            if c == CAN:
                logger.warning("[Sender]: Received a request from the Receiver to cancel the transmission, exit.")
                raise PeerCancelledException()
            logger.warning("[Sender]: EOT not acknowledged, preparing to retransmit.")
            errors += 1

        logger.error("[Sender]: The number of retransmissions has reached the maximum limit, abort and exit!")
        self.abort()
        raise MaxErrorsExceededException(self.config.max_errors)

    def send(self,
             stream: BinaryIO,
             block_size: int,
             cancel_event: Optional[Any] = None,
             callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Send one stream: handshake, data blocks from 1, then EOT.

        Returns:
            Number of data bytes sent
        """
        checksum = self.wait_receiver_request()
        sent = self.send_data_blocks(stream, block_size, checksum,
                                     cancel_event=cancel_event, callback=callback)
        self.send_eot()
        return sent

    # Receiver

    def request_transmission_start(self,
                                   crc: bool = True,
                                   start_bytes: Iterable[bytes] = (SOH, STX, EOT)
                                   ) -> Tuple[bytes, Checksum]:
        """
        Ask the sender to start and wait for the first block.

        A CRC receiver sends 'C' for the first crc_attempts requests and then
        falls back to NAK.

        Args:
            crc: Prefer CRC-16 over the 8-bit checksum
            start_bytes: Bytes that count as the start of the transmission

        Returns:
            Tuple of (start byte, checksum matching the last request sent)

        Raises:
            MaxErrorsExceededException: If the sender never answered
            PeerCancelledException: If the sender sent CAN CAN
        """
        start_bytes = tuple(start_bytes)
        errors = 0
        while errors < self.config.max_errors:
            use_crc = crc and errors < self.config.crc_attempts
            self.write(CRC if use_crc else NAK)
            logger.debug(f"[Receiver]: {'C' if use_crc else 'NAK'} ->")

            timer = DeadlineTimer(self.config.request_timeout).start()
            while True:
                c = self.read_byte(timer)
                if c is None:
                    break
                if c in start_bytes:
                    return c, CRC16() if use_crc else Checksum8()
                if c == CAN and self._confirm_cancel():
                    logger.warning("[Receiver]: Received a request from the Sender to cancel the transmission, exit.")
                    raise PeerCancelledException()

            errors += 1
            if crc and errors == self.config.crc_attempts:
                logger.warning("[Receiver]: No response in CRC mode, try checksum mode...")
            else:
                logger.warning("[Receiver]: No response from Sender, repeating the request.")

        logger.error("[Receiver]: Waiting for response from Sender has timed out, abort and exit!")
        self.abort()
        raise MaxErrorsExceededException(self.config.max_errors)

    def next_block_start(self,
                         last_ok: bool,
                         start_bytes: Iterable[bytes] = (SOH, STX, EOT)) -> bytes:
        """
        Wait for the next block; on timeout repeat the last response (ACK or NAK).

        Raises:
            MaxErrorsExceededException: If max_errors waits timed out
            PeerCancelledException: If the sender sent CAN CAN
        """
        start_bytes = tuple(start_bytes)
        errors = 0
        timer = DeadlineTimer(self.config.block_timeout).start()
        while True:
            c = self.read_byte(timer)
            if c in start_bytes:
                return c
            if c == CAN and self._confirm_cancel():
                logger.warning("[Receiver]: Received a request from the Sender to cancel the transmission, exit.")
                raise PeerCancelledException()
            if c is None:
                errors += 1
                if errors >= self.config.max_errors:
                    logger.error("[Receiver]: Waiting for the next block has timed out, abort and exit!")
                    self.abort()
                    raise MaxErrorsExceededException(self.config.max_errors)
                logger.warning("[Receiver]: No block from Sender, repeating the last response.")
                self.write(ACK if last_ok else NAK)
                timer.start()

    def _reject(self, errors: int) -> int:
        """Count a bad block and ask for it again."""
        errors += 1
        if errors >= self.config.max_errors:
            logger.error("[Receiver]: The number of retransmissions has reached the maximum limit, abort and exit!")
            self.abort()
            raise MaxErrorsExceededException(self.config.max_errors)
        logger.warning("[Receiver]: Send a request for retransmission.")
        self.purge()
        self.write(NAK)
        logger.debug("[Receiver]: NAK ->")
        return errors

    def receive_header_block(self) -> Tuple[bytes, Checksum]:
        """
        Receive YMODEM block 0. The block is not acknowledged here; the caller
        sends ACK once it has decided what to do with the header.

        Returns:
            Tuple of (block 0 payload, checksum negotiated for it)

        Raises:
            FatalTransmissionException: If a block other than 0 arrived
        """
        c, checksum = self.request_transmission_start(True, (SOH, STX))
        errors = 0
        while True:
            block = self.codec.decode(c, 0, checksum, self.read_exact)
            if block.status == BlockStatus.ACCEPTED:
                logger.debug("[Receiver]: <- Header block")
                return block.payload, checksum
            if block.status in (BlockStatus.REPEATED, BlockStatus.SYNC_LOST):
                logger.error(f"[Receiver]: Expected header block, got block {block.sequence}, abort and exit!")
                self.abort()
                raise FatalTransmissionException(f'expected block 0, got block {block.sequence}')
            errors = self._reject(errors)
            c = self.next_block_start(False, (SOH, STX))

    def receive_data_blocks(self,
                            stream: BinaryIO,
                            start: bytes,
                            checksum: Checksum,
                            callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Receive data blocks from block 1 until EOT, writing payloads to the stream.

        Args:
            stream: Writable binary stream; the caller closes it
            start: First start byte, as returned by request_transmission_start
            checksum: Session checksum
            callback: Progress callback receiving the number of bytes received so far

        Returns:
            Number of bytes written, including any ^Z filler in the last block

        Raises:
            FatalTransmissionException: If block synchronization was lost
            MaxErrorsExceededException: If max_errors consecutive blocks were bad
        """
        c = start
        expected = 1
        errors = 0
        received = 0
        while True:
            if c == EOT:
                logger.debug("[Receiver]: <- EOT")
                self.write(ACK)
                logger.debug("[Receiver]: ACK ->")
                return received

            block = self.codec.decode(c, expected, checksum, self.read_exact)
            if block.status == BlockStatus.ACCEPTED:
                logger.debug(f"[Receiver]: <- Block {block.sequence}")
                stream.write(block.payload)
                received += len(block.payload)
                expected = (expected + 1) % 256
                errors = 0
                self.write(ACK)
                logger.debug("[Receiver]: ACK ->")
                if callable(callback):
                    callback(received)
                last_ok = True
            elif block.status == BlockStatus.REPEATED:
                self.write(ACK)
                logger.debug("[Receiver]: ACK ->")
                if block.sequence == 0 and received == 0:
                    # Header block resent: the sender waits for the data request again.
                    self.write(CRC if checksum.mode == ChecksumMode.CRC16 else NAK)
                    logger.debug("[Receiver]: Data request ->")
                last_ok = True
            elif block.status == BlockStatus.SYNC_LOST:
                logger.error("[Receiver]: Block synchronization lost, abort and exit!")
                self.abort()
                raise FatalTransmissionException(
                    f'expected block {expected}, got block {block.sequence}')
            else:
                errors = self._reject(errors)
                last_ok = False

            c = self.next_block_start(last_ok)

    def receive(self,
                stream: BinaryIO,
                crc: bool = True,
                callback: Optional[Callable[[int], None]] = None) -> int:
        """
        Receive one stream: request the start, then data blocks until EOT.

        Returns:
            Number of bytes written
        """
        start, checksum = self.request_transmission_start(crc)
        return self.receive_data_blocks(stream, start, checksum, callback)
