"""
Test module for the XMODEM, XMODEM-1K and YMODEM file transfer classes.
"""

import os
import shutil
import sys
import tempfile
import threading
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fakes import FAST_CONFIG, PIPE_CONFIG, ScriptedChannel, make_pipe
from xymodem import XModem, XModem1K, YModem
from xymodem.checksum import CRC16, Checksum8
from xymodem.config import ACK, CAN, CRC, EOT, NAK, SOH, STX
from xymodem.exceptions import InvalidFilenameException, TransferCancelledException
from xymodem.frame import FrameCodec
from xymodem.header import decode_header, encode_batch_end, encode_header

codec = FrameCodec(FAST_CONFIG)


def run_in_thread(target, *args):
    """Run target in a daemon thread; the returned dict collects 'value' or 'error'."""
    result = {}

    def runner():
        try:
            result['value'] = target(*args)
        except Exception as e:
            result['error'] = e

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    return thread, result


class ProtocolTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def make_file(self, name, data):
        path = os.path.join(self.tmpdir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def read_file(self, path):
        with open(path, 'rb') as f:
            return f.read()


class TestXModem(ProtocolTestCase):

    def test_send_and_receive(self):
        """A 130-byte file travels as two 128-byte blocks and arrives padded to 256 bytes."""
        data = bytes(range(130))
        source = self.make_file('source.bin', data)
        target = os.path.join(self.tmpdir, 'target.bin')
        sender_end, receiver_end = make_pipe()

        receiver = XModem(receiver_end.read, receiver_end.write, PIPE_CONFIG)
        thread, result = run_in_thread(receiver.receive, target)
        sent = XModem(sender_end.read, sender_end.write, PIPE_CONFIG).send(source)
        thread.join(10)

        self.assertNotIn('error', result)
        self.assertEqual(sent, 130)
        self.assertEqual(result['value'], 256)
        self.assertEqual(self.read_file(target), data + b'\x1a' * 126)

        frames = [w for w in sender_end.written if w[:1] == SOH]
        self.assertEqual(len(frames), 2)
        self.assertTrue(all(len(f) == 128 + 4 for f in frames))
        self.assertEqual(sender_end.written[-1], EOT)
        self.assertEqual(receiver_end.written[0], NAK)
        self.assertEqual(receiver_end.written[-1], ACK)

    def test_send_file_scripted(self):
        source = self.make_file('source.bin', b'hello')
        channel = ScriptedChannel(initial=NAK, replies=[ACK, ACK])
        XModem(channel.read, channel.write, FAST_CONFIG).send(source)
        self.assertEqual(channel.written, [codec.encode(1, b'hello', Checksum8(), 128), EOT])

    def test_cancel(self):
        source = self.make_file('source.bin', bytes(1280))
        cancel = threading.Event()
        cancel.set()
        channel = ScriptedChannel(initial=CRC)
        with self.assertRaises(TransferCancelledException):
            XModem(channel.read, channel.write, FAST_CONFIG).send(source, cancel_event=cancel)
        self.assertEqual(channel.written, [CAN, CAN])

    def test_progress_bar(self):
        source = self.make_file('source.bin', bytes(200))
        channel = ScriptedChannel(initial=CRC, replies=[ACK] * 3)
        progress = []
        modem = XModem(channel.read, channel.write, FAST_CONFIG, show_progress=True)
        self.assertEqual(modem.send(source, callback=progress.append), 200)
        self.assertEqual(progress, [128, 200])


class TestXModem1K(ProtocolTestCase):

    def test_send_uses_1k_blocks(self):
        data = os.urandom(1500)
        source = self.make_file('source.bin', data)
        target = os.path.join(self.tmpdir, 'target.bin')
        sender_end, receiver_end = make_pipe()

        receiver = XModem1K(receiver_end.read, receiver_end.write, PIPE_CONFIG)
        thread, result = run_in_thread(receiver.receive, target, True)
        XModem1K(sender_end.read, sender_end.write, PIPE_CONFIG).send(source)
        thread.join(10)

        self.assertNotIn('error', result)
        frames = [w for w in sender_end.written if w[:1] == STX]
        self.assertEqual(len(frames), 2)
        self.assertTrue(all(len(f) == 1024 + 5 for f in frames))
        self.assertEqual(self.read_file(target), data + b'\x1a' * 548)


class TestYModem(ProtocolTestCase):

    def test_single_file_batch(self):
        source = self.make_file('A.TXT', b'hello')
        outdir = os.path.join(self.tmpdir, 'out')
        os.mkdir(outdir)
        sender_end, receiver_end = make_pipe()

        receiver = YModem(receiver_end.read, receiver_end.write, PIPE_CONFIG)
        thread, result = run_in_thread(receiver.receive_files_in_directory, outdir)
        sent = YModem(sender_end.read, sender_end.write, PIPE_CONFIG).batch_send(source)
        thread.join(10)

        self.assertNotIn('error', result)
        self.assertEqual(sent, 5)
        self.assertEqual(result['value'], [os.path.join(outdir, 'A.TXT')])
        self.assertEqual(os.listdir(outdir), ['A.TXT'])
        self.assertEqual(self.read_file(os.path.join(outdir, 'A.TXT')), b'hello')

        header_frame = sender_end.written[0]
        self.assertEqual(header_frame[:3], b'\x01\x00\xff')
        header = decode_header(header_frame[3:131])
        self.assertEqual((header.name, header.size), ('A.TXT', 5))
        self.assertEqual(sender_end.written[-1], codec.encode(0, encode_batch_end(), CRC16(), 128))

    def test_multiple_files(self):
        first = self.make_file('ONE.BIN', os.urandom(2000))
        second = self.make_file('TWO.BIN', b'')
        outdir = os.path.join(self.tmpdir, 'out')
        os.mkdir(outdir)
        sender_end, receiver_end = make_pipe()

        receiver = YModem(receiver_end.read, receiver_end.write, PIPE_CONFIG)
        thread, result = run_in_thread(receiver.receive_files_in_directory, outdir)
        YModem(sender_end.read, sender_end.write, PIPE_CONFIG).batch_send(first, second)
        thread.join(10)

        self.assertNotIn('error', result)
        self.assertEqual(len(result['value']), 2)
        self.assertEqual(self.read_file(os.path.join(outdir, 'ONE.BIN')), self.read_file(first))
        self.assertEqual(self.read_file(os.path.join(outdir, 'TWO.BIN')), b'')

    def test_send_scripted(self):
        source = self.make_file('A.TXT', b'hello')
        channel = ScriptedChannel(initial=CRC, replies=[ACK + CRC, ACK, ACK])
        YModem(channel.read, channel.write, FAST_CONFIG).send(source)
        self.assertEqual(channel.written, [
            codec.encode(0, encode_header('A.TXT', 5), CRC16(), 128),
            codec.encode(1, b'hello', CRC16(), 1024),
            EOT,
        ])

    def test_receive_to_path(self):
        target = os.path.join(self.tmpdir, 'renamed.bin')
        channel = ScriptedChannel(replies=[
            codec.encode(0, encode_header('A.TXT', 5), CRC16(), 128),
            b'',
            codec.encode(1, b'hello', CRC16(), 1024),
            EOT,
        ])
        path = YModem(channel.read, channel.write, FAST_CONFIG).receive(target)
        self.assertEqual(path, target)
        self.assertEqual(self.read_file(target), b'hello')
        self.assertEqual(channel.written, [CRC, ACK, CRC, ACK, ACK])

    def test_receive_keeps_padding_when_asked(self):
        target = os.path.join(self.tmpdir, 'padded.bin')
        channel = ScriptedChannel(replies=[
            codec.encode(0, encode_header('A.TXT', 5), CRC16(), 128),
            b'',
            codec.encode(1, b'hello', CRC16(), 1024),
            EOT,
        ])
        modem = YModem(channel.read, channel.write, FAST_CONFIG, trim_to_header_size=False)
        modem.receive(target)
        self.assertEqual(self.read_file(target), b'hello' + b'\x1a' * 1019)

    def test_batch_end_creates_no_file(self):
        channel = ScriptedChannel(replies=[codec.encode(0, encode_batch_end(), CRC16(), 128)])
        modem = YModem(channel.read, channel.write, FAST_CONFIG)
        self.assertIsNone(modem.receive_single_file_in_directory(self.tmpdir))
        self.assertEqual(os.listdir(self.tmpdir), [])
        self.assertEqual(channel.written, [CRC, ACK])

    def test_received_name_cannot_leave_directory(self):
        channel = ScriptedChannel(replies=[
            codec.encode(0, encode_header('../EVIL.TXT', 1), CRC16(), 128),
            b'',
            EOT,
        ])
        outdir = os.path.join(self.tmpdir, 'out')
        os.mkdir(outdir)
        path = YModem(channel.read, channel.write, FAST_CONFIG).receive_single_file_in_directory(outdir)
        self.assertEqual(path, os.path.join(outdir, 'EVIL.TXT'))
        self.assertFalse(os.path.exists(os.path.join(self.tmpdir, 'EVIL.TXT')))

    def test_lost_header_ack_is_recovered(self):
        source = self.make_file('A.TXT', b'hello')
        outdir = os.path.join(self.tmpdir, 'out')
        os.mkdir(outdir)
        sender_end, receiver_end = make_pipe()
        receiver_end.lose = [ACK]

        receiver = YModem(receiver_end.read, receiver_end.write, PIPE_CONFIG)
        thread, result = run_in_thread(receiver.receive_single_file_in_directory, outdir)
        sent = YModem(sender_end.read, sender_end.write, PIPE_CONFIG).send(source)
        thread.join(10)

        self.assertNotIn('error', result)
        self.assertEqual(sent, 5)
        self.assertEqual(self.read_file(os.path.join(outdir, 'A.TXT')), b'hello')
        header_frame = codec.encode(0, encode_header('A.TXT', 5), CRC16(), 128)
        self.assertEqual(sender_end.written[:2], [header_frame, header_frame])
        self.assertEqual(sender_end.written[2][:3], STX + b'\x01\xfe')
        self.assertEqual(sender_end.written[-1], EOT)

    def test_unusable_received_name_cancels(self):
        for name in ('..', '.', 'dir/'):
            channel = ScriptedChannel(replies=[codec.encode(0, encode_header(name, 1), CRC16(), 128)])
            modem = YModem(channel.read, channel.write, FAST_CONFIG)
            with self.subTest(name=name):
                with self.assertRaises(InvalidFilenameException) as ctx:
                    modem.receive_single_file_in_directory(self.tmpdir)
                self.assertEqual(ctx.exception.filename, name)
                self.assertEqual(channel.written, [CRC, CAN, CAN])
        self.assertEqual(os.listdir(self.tmpdir), [])

    def test_open_failure_cancels(self):
        channel = ScriptedChannel(replies=[codec.encode(0, encode_header('A.TXT', 5), CRC16(), 128)])
        modem = YModem(channel.read, channel.write, FAST_CONFIG)
        # A directory cannot be opened for writing.
        with self.assertRaises(OSError):
            modem.receive(self.tmpdir)
        self.assertEqual(channel.written, [CRC, CAN, CAN])

    def test_invalid_filename(self):
        channel = ScriptedChannel(initial=CRC)
        modem = YModem(channel.read, channel.write, FAST_CONFIG)
        for name in ('my file.txt', 'LONGNAME.TEXT', 'noext'):
            source = self.make_file(name, b'data')
            with self.subTest(name=name):
                with self.assertRaises(InvalidFilenameException) as ctx:
                    modem.send(source)
                self.assertEqual(ctx.exception.filename, name)
        self.assertEqual(channel.written, [])

    def test_batch_checks_every_name_first(self):
        good = self.make_file('GOOD.TXT', b'data')
        bad = self.make_file('bad name.txt', b'data')
        channel = ScriptedChannel(initial=CRC)
        with self.assertRaises(InvalidFilenameException):
            YModem(channel.read, channel.write, FAST_CONFIG).batch_send(good, bad)
        self.assertEqual(channel.written, [])


if __name__ == '__main__':
    unittest.main()
