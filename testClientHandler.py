#!/usr/bin/env python3
"""
testClientHandler.py

Unit and regression tests for the per-connection handler: login handshake,
broadcast loop, block framing and cleanup.

Usage:
  python -m unittest testClientHandler.py
"""

import unittest
from unittest.mock import MagicMock

from chaterrors import LoginRejected, PeerDisconnected, IOFailure
from clienthandler import (
    ClientHandler,
    parse_login,
    LOGIN_SUCCESS,
    LOGIN_FAILED,
    AWAITING_LOGIN,
    TERMINATED,
)
from segmenter import segment


# -------------------------------------------------------------------
# A fake connection for handler tests
# -------------------------------------------------------------------
class FakeConnection:
    """
    Feeds the handler a fixed list of lines; an Exception instance in the
    list is raised instead of returned. Everything flushed is recorded.
    """
    def __init__(self, lines):
        self.lines = lines[:]
        self.pending = []
        self.sent = []
        self.closed = False
        self.close_calls = 0
        self.peer = ("127.0.0.1", 40000)
        self.fail_writes = None

    def read_line(self):
        if not self.lines:
            return None
        line = self.lines.pop(0)
        if isinstance(line, Exception):
            raise line
        return line

    def write_line(self, text):
        self.pending.append(text)

    def flush(self):
        if self.fail_writes:
            self.pending = []
            raise self.fail_writes
        self.sent.extend(self.pending)
        self.pending = []

    def close(self):
        self.closed = True
        self.close_calls += 1


def make_server(valid_password="secret"):
    server = MagicMock()
    server.password_valid.side_effect = lambda attempt: attempt == valid_password
    server.admit.side_effect = lambda handler: handler.activate()
    return server


###############################################################################
#                            parse_login TESTS                                #
###############################################################################
class TestParseLogin(unittest.TestCase):

    def test_valid_line(self):
        self.assertEqual(parse_login("LOGIN:alice:secret"), ("alice", "secret"))

    def test_wrong_field_count(self):
        for line in ["LOGIN:alice", "LOGIN:alice:se:cret", "LOGIN", "", "hello there"]:
            with self.assertRaises(LoginRejected):
                parse_login(line)

    def test_wrong_prefix(self):
        with self.assertRaises(LoginRejected):
            parse_login("LOGOUT:alice:secret")

    def test_end_of_stream(self):
        with self.assertRaises(LoginRejected):
            parse_login(None)


###############################################################################
#                             handshake TESTS                                 #
###############################################################################
class TestHandlerLogin(unittest.TestCase):

    def test_login_success_then_broadcast(self):
        conn = FakeConnection(["LOGIN:alice:secret", "alice: hello", "alice: again"])
        server = make_server()
        handler = ClientHandler(conn, server)

        handler.run()

        self.assertEqual(conn.sent[:2], [LOGIN_SUCCESS, ""])
        self.assertEqual(handler.nickname, "alice")
        self.assertEqual(
            [c.args for c in server.broadcast.call_args_list],
            [("alice: hello", handler), ("alice: again", handler)],
        )
        server.remove_client.assert_called_once_with(handler)
        self.assertTrue(conn.closed)
        self.assertEqual(handler.state, TERMINATED)
        server.admit.assert_called_once_with(handler)

    def test_wrong_password(self):
        conn = FakeConnection(["LOGIN:bob:nope", "bob: should never be read"])
        server = make_server()
        handler = ClientHandler(conn, server)

        handler.run()

        self.assertEqual(conn.sent, [LOGIN_FAILED, ""])
        self.assertIsNone(handler.nickname)
        server.broadcast.assert_not_called()
        server.remove_client.assert_called_once_with(handler)
        self.assertTrue(conn.closed)
        # second line was left unread
        self.assertEqual(conn.lines, ["bob: should never be read"])

    def test_malformed_login(self):
        for first in ["LOGIN:bob", "LOGIN:bob:secret:extra", "HELLO:bob:secret", "bob: hi"]:
            conn = FakeConnection([first])
            server = make_server()
            handler = ClientHandler(conn, server)
            handler.run()
            self.assertEqual(conn.sent, [LOGIN_FAILED, ""], first)
            server.broadcast.assert_not_called()

    def test_login_iff_password_matches(self):
        for attempt in ["secret", "Secret", "secret ", "", "s"]:
            conn = FakeConnection([f"LOGIN:carol:{attempt}"])
            handler = ClientHandler(conn, make_server())
            handler.run()
            expected = LOGIN_SUCCESS if attempt == "secret" else LOGIN_FAILED
            self.assertEqual(conn.sent[0], expected, attempt)

    def test_disconnect_before_login(self):
        conn = FakeConnection([])
        server = make_server()
        handler = ClientHandler(conn, server)
        handler.run()
        server.password_valid.assert_not_called()
        server.remove_client.assert_called_once_with(handler)
        self.assertTrue(conn.closed)

    def test_initial_state(self):
        handler = ClientHandler(FakeConnection([]), make_server())
        self.assertEqual(handler.state, AWAITING_LOGIN)
        self.assertFalse(handler.active)
        self.assertIsNone(handler.nickname)


###############################################################################
#                            send_message TESTS                               #
###############################################################################
class TestHandlerSend(unittest.TestCase):

    def test_short_message_block(self):
        conn = FakeConnection([])
        handler = ClientHandler(conn, make_server())
        self.assertTrue(handler.send_message("alice: hi"))
        self.assertEqual(conn.sent, ["alice: hi", ""])
        self.assertEqual(handler.messages, [])

    def test_long_message_is_segmented(self):
        conn = FakeConnection([])
        handler = ClientHandler(conn, make_server())
        message = "alice: " + "x" * 150
        handler.send_message(message)
        self.assertEqual(conn.sent, segment(message) + [""])
        self.assertEqual(handler.messages, [])

    def test_buffer_does_not_leak_between_sends(self):
        conn = FakeConnection([])
        handler = ClientHandler(conn, make_server())
        handler.send_message("alice: " + "y" * 200)
        conn.sent = []
        handler.send_message("alice: short")
        self.assertEqual(conn.sent, ["alice: short", ""])

    def test_write_failure_is_not_raised(self):
        conn = FakeConnection([])
        conn.fail_writes = PeerDisconnected("gone")
        handler = ClientHandler(conn, make_server())
        self.assertFalse(handler.send_message("alice: hi"))
        self.assertEqual(handler.messages, [])


###############################################################################
#                        failure / cleanup REGRESSION TESTS                   #
###############################################################################
class TestHandlerFailures(unittest.TestCase):

    def test_peer_reset_mid_session(self):
        conn = FakeConnection(["LOGIN:dave:secret", "dave: one", PeerDisconnected("reset")])
        server = make_server()
        handler = ClientHandler(conn, server)
        handler.run()
        server.broadcast.assert_called_once_with("dave: one", handler)
        server.remove_client.assert_called_once_with(handler)
        self.assertEqual(conn.close_calls, 1)

    def test_io_failure_mid_session(self):
        conn = FakeConnection(["LOGIN:erin:secret", IOFailure("bad fd")])
        server = make_server()
        handler = ClientHandler(conn, server)
        handler.run()
        server.remove_client.assert_called_once_with(handler)
        self.assertTrue(conn.closed)

    def test_removed_before_connection_closed(self):
        order = []
        conn = FakeConnection(["LOGIN:frank:secret"])
        conn.close = lambda: order.append("close")
        server = make_server()
        server.remove_client.side_effect = lambda h: order.append("remove")
        ClientHandler(conn, server).run()
        self.assertEqual(order, ["remove", "close"])


if __name__ == "__main__":
    unittest.main()
