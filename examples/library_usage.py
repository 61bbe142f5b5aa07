#!/usr/bin/env python3
"""
Example script demonstrating how to use xymodem as a library.

Two YMODEM endpoints are connected back to back through in-memory queues,
standing in for a serial line. With a real port, pass functions wrapping
serial.Serial.read / serial.Serial.write instead.
"""

import os
import queue
import sys
import tempfile
import threading
import logging

# Add the parent directory to the path so we can import the package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from xymodem import ModemConfig, ModemException, YModem

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def make_line(inbox: queue.Queue, outbox: queue.Queue):
    """Return read/write functions for one end of the in-memory line."""
    buffer = bytearray()

    def read(size, timeout=1):
        if not buffer:
            try:
                buffer.extend(inbox.get(timeout=max(timeout, 0.001)))
            except queue.Empty:
                return b''
        data = bytes(buffer[:size])
        del buffer[:size]
        return data

    def write(data, timeout=1):
        outbox.put(bytes(data))

    return read, write


def main():
    """
    Send two files from one temporary directory to another.
    """
    config = ModemConfig(request_timeout=1.0, wait_for_receiver_timeout=5.0, max_handshake_waits=2)
    to_receiver, to_sender = queue.Queue(), queue.Queue()
    sender = YModem(*make_line(to_sender, to_receiver), config=config, show_progress=True)
    receiver = YModem(*make_line(to_receiver, to_sender), config=config)

    with tempfile.TemporaryDirectory() as src, tempfile.TemporaryDirectory() as dst:
        paths = []
        for name, size in (('BOOT.BIN', 3000), ('README.TXT', 120)):
            path = os.path.join(src, name)
            with open(path, 'wb') as f:
                f.write(os.urandom(size))
            paths.append(path)

        received = []
        thread = threading.Thread(
            target=lambda: received.extend(receiver.receive_files_in_directory(dst)))
        thread.start()

        try:
            sender.batch_send(*paths)
        except ModemException as e:
            logger.error(f"Error: {e}")
            return 1
        finally:
            thread.join()

        for path in received:
            logger.info(f"{os.path.basename(path)}: {os.path.getsize(path)} bytes")

    return 0


if __name__ == "__main__":
    sys.exit(main())
