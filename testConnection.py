#!/usr/bin/env python3
"""
testConnection.py

Tests for the line-oriented Connection wrapper, run over a local socketpair.

Usage:
  python -m unittest testConnection.py
"""

import socket
import threading
import unittest
from unittest.mock import MagicMock

from chaterrors import PeerDisconnected, IOFailure
from connection import Connection


class TestConnectionUnit(unittest.TestCase):

    def setUp(self):
        self.ours, self.theirs = socket.socketpair()
        self.conn = Connection(self.ours)

    def tearDown(self):
        self.conn.close()
        self.theirs.close()

    def test_read_lines_in_order(self):
        self.theirs.sendall(b"first\nsecond\r\nthird\n")
        self.assertEqual(self.conn.read_line(), "first")
        self.assertEqual(self.conn.read_line(), "second")
        self.assertEqual(self.conn.read_line(), "third")

    def test_read_blank_line(self):
        self.theirs.sendall(b"\n")
        self.assertEqual(self.conn.read_line(), "")

    def test_read_returns_none_at_end_of_stream(self):
        self.theirs.sendall(b"last\n")
        self.theirs.shutdown(socket.SHUT_WR)
        self.assertEqual(self.conn.read_line(), "last")
        self.assertIsNone(self.conn.read_line())

    def test_write_is_buffered_until_flush(self):
        self.conn.write_line("one")
        self.conn.write_line("two")
        self.theirs.settimeout(0.2)
        with self.assertRaises(socket.timeout):
            self.theirs.recv(1024)

        self.conn.flush()
        received = b""
        while received.count(b"\n") < 2:
            received += self.theirs.recv(1024)
        self.assertEqual(received, b"one\ntwo\n")

    def test_flush_with_nothing_pending(self):
        self.conn.flush()

    def test_utf8_round_trip(self):
        self.conn.write_line("Zoë: héllo")
        self.conn.flush()
        other = Connection(self.theirs)
        self.assertEqual(other.read_line(), "Zoë: héllo")

    def test_close_is_idempotent(self):
        self.conn.close()
        self.conn.close()
        self.assertTrue(self.conn.closed)

    def test_close_unblocks_reader(self):
        result = []
        reader = threading.Thread(target=lambda: result.append(self.conn.read_line()))
        reader.start()
        self.conn.close()
        reader.join(timeout=5)
        self.assertFalse(reader.is_alive())
        self.assertEqual(result, [None])


class TestConnectionErrors(unittest.TestCase):

    def test_reset_maps_to_peer_disconnected(self):
        sock = MagicMock()
        conn = Connection(sock)
        conn.reader = MagicMock()
        conn.reader.readline.side_effect = ConnectionResetError("Connection reset by peer")
        with self.assertRaises(PeerDisconnected):
            conn.read_line()

    def test_other_read_error_maps_to_io_failure(self):
        conn = Connection(MagicMock())
        conn.reader = MagicMock()
        conn.reader.readline.side_effect = OSError("boom")
        with self.assertRaises(IOFailure):
            conn.read_line()

    def test_broken_pipe_on_flush(self):
        sock = MagicMock()
        sock.sendall.side_effect = BrokenPipeError()
        conn = Connection(sock)
        conn.write_line("hello")
        with self.assertRaises(PeerDisconnected):
            conn.flush()
        # the failed data is not retried on the next flush
        sock.sendall.side_effect = None
        conn.flush()
        self.assertEqual(sock.sendall.call_count, 1)

    def test_open_unreachable(self):
        # bind then close to get a port nobody listens on
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()
        with self.assertRaises(IOFailure):
            Connection.open("127.0.0.1", port, timeout=2)


if __name__ == "__main__":
    unittest.main()
