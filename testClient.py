#!/usr/bin/env python3
"""
testClient.py

Unit, regression and integration tests for the outbound ChatClient.
Integration tests run a real ChatServer on a loopback port.

Usage:
  python -m unittest testClient.py
"""

import queue
import socket
import threading
import unittest
from unittest.mock import MagicMock, patch

from chaterrors import PeerDisconnected, IOFailure
from client import ChatClient, login_line
from server import ChatServer

ROUNDS = 4


def free_port():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class Listener:
    """Collects callback invocations from the client thread."""
    def __init__(self):
        self.messages = queue.Queue()
        self.errors = []
        self.error_event = threading.Event()

    def on_message(self, message):
        self.messages.put(message)

    def on_error(self, error):
        self.errors.append(error)
        self.error_event.set()

    def next(self, timeout=5):
        return self.messages.get(timeout=timeout)


###############################################################################
#                                UNIT TESTS                                   #
###############################################################################
class TestClientUnit(unittest.TestCase):

    def test_login_line(self):
        self.assertEqual(login_line("alice", "pw"), "LOGIN:alice:pw")

    def test_initial_state(self):
        client = ChatClient(None, None)
        self.assertFalse(client.running)
        self.assertFalse(client.stopped)
        self.assertIsNone(client.connection)

    def test_set_message_listener(self):
        first, second = MagicMock(), MagicMock()
        client = ChatClient(first, None)
        client.set_message_listener(second)
        self.assertIs(client.message_listener, second)

    def test_send_failure_reports_once_and_terminates(self):
        listener = Listener()
        client = ChatClient(listener.on_message, listener.on_error)
        client.connection = MagicMock()
        client.connection.flush.side_effect = PeerDisconnected("broken pipe")
        client.running = True

        self.assertFalse(client.send_message("alice: hi"))
        self.assertFalse(client.send_message("alice: again"))

        self.assertEqual(len(listener.errors), 1)
        self.assertIsInstance(listener.errors[0], PeerDisconnected)
        self.assertFalse(client.running)
        self.assertTrue(client.stopped)
        client.connection.close.assert_called_once()

    def test_login_writes_login_line(self):
        client = ChatClient(None, None)
        client.connection = MagicMock()
        client.running = True
        client.login("alice", "pw")
        client.connection.write_line.assert_called_once_with("LOGIN:alice:pw")
        client.connection.flush.assert_called_once()

    @patch('client.Connection')
    def test_run_sends_queued_login_through_login(self, mock_connection):
        mock_connection.open.return_value.read_line.return_value = None
        client = ChatClient(None, None)
        client.pending_login = ("alice", "pw")
        with patch.object(client, 'login', wraps=client.login) as login:
            client.run()
        login.assert_called_once_with("alice", "pw")
        mock_connection.open.return_value.write_line.assert_called_once_with("LOGIN:alice:pw")
        self.assertIsNone(client.pending_login)

    def test_terminate_is_idempotent(self):
        client = ChatClient(None, None)
        client.connection = MagicMock()
        client.connection.close.side_effect = [None, OSError("already closed")]
        client.terminate()
        client.terminate()
        self.assertFalse(client.running)

    def test_terminate_clears_flag_before_closing(self):
        client = ChatClient(None, None)
        client.running = True
        seen = []
        client.connection = MagicMock()
        client.connection.close.side_effect = lambda: seen.append(client.running)
        client.terminate()
        self.assertEqual(seen, [False])

    def test_connect_failure_reports_io_failure(self):
        listener = Listener()
        client = ChatClient(listener.on_message, listener.on_error, host="127.0.0.1", port=free_port())
        client.run()
        self.assertEqual(len(listener.errors), 1)
        self.assertIsInstance(listener.errors[0], IOFailure)
        self.assertTrue(client.stopped)


###############################################################################
#                      INTEGRATION TESTS (REAL SERVER)                        #
###############################################################################
class TestClientIntegration(unittest.TestCase):

    def setUp(self):
        self.server = ChatServer("secret", host="127.0.0.1", port=0,
                                 bcrypt_rounds=ROUNDS, accept_timeout=0.05)
        self.server_thread = threading.Thread(target=self.server.start, daemon=True)
        self.server_thread.start()
        self.assertTrue(self.server.ready.wait(5))
        self.clients = []

    def tearDown(self):
        for client in self.clients:
            client.stop()
        self.server.stop()
        self.server_thread.join(timeout=5)

    def make_client(self):
        listener = Listener()
        client = ChatClient(listener.on_message, listener.on_error,
                            host="127.0.0.1", port=self.server.port)
        self.clients.append(client)
        return client, listener

    def test_login_success(self):
        client, listener = self.make_client()
        client.start("Alice", "secret")
        self.assertEqual(listener.next(), "LOGIN_SUCCESS")
        self.assertTrue(client.running)

        client.send_message("Alice: hello")
        self.assertEqual(listener.next(), "Alice: hello")
        self.assertEqual(listener.errors, [])

    def test_login_failed_then_disconnected(self):
        client, listener = self.make_client()
        client.start("Bob", "wrong")
        self.assertEqual(listener.next(), "LOGIN_FAILED")
        self.assertTrue(listener.error_event.wait(5))
        client.thread.join(timeout=5)
        self.assertEqual(len(listener.errors), 1)
        self.assertIsInstance(listener.errors[0], PeerDisconnected)
        self.assertFalse(client.running)

    def test_long_message_end_to_end(self):
        alice, alice_listener = self.make_client()
        bob, bob_listener = self.make_client()
        alice.start("Alice", "secret")
        bob.start("Bob", "secret")
        self.assertEqual(alice_listener.next(), "LOGIN_SUCCESS")
        self.assertEqual(bob_listener.next(), "LOGIN_SUCCESS")

        message = ("Alice: " + "lorem ipsum " * 12)[:149] + "."
        self.assertEqual(len(message), 150)

        alice.send_message(message)
        self.assertEqual(bob_listener.next(), message)
        self.assertEqual(alice_listener.next(), message)

    def test_listener_swap(self):
        client, listener = self.make_client()
        client.start("Carol", "secret")
        self.assertEqual(listener.next(), "LOGIN_SUCCESS")

        chat = Listener()
        client.set_message_listener(chat.on_message)
        client.send_message("Carol: now in the chat window")
        self.assertEqual(chat.next(), "Carol: now in the chat window")
        self.assertTrue(listener.messages.empty())

    def test_stop_does_not_report_error(self):
        client, listener = self.make_client()
        client.start("Dave", "secret")
        self.assertEqual(listener.next(), "LOGIN_SUCCESS")

        client.stop()
        client.thread.join(timeout=5)
        self.assertFalse(client.thread.is_alive())
        self.assertEqual(listener.errors, [])
        self.assertFalse(client.send_message("Dave: too late"))
        self.assertEqual(listener.errors, [])

    def test_server_shutdown_reported_once(self):
        client, listener = self.make_client()
        client.start("Erin", "secret")
        self.assertEqual(listener.next(), "LOGIN_SUCCESS")

        self.server.stop()
        self.assertEqual(listener.next(), "Server is shutting down")
        self.assertTrue(listener.error_event.wait(5))
        client.thread.join(timeout=5)
        self.assertEqual(len(listener.errors), 1)

    def test_departure_seen_by_client(self):
        alice, alice_listener = self.make_client()
        bob, bob_listener = self.make_client()
        alice.start("Alice", "secret")
        self.assertEqual(alice_listener.next(), "LOGIN_SUCCESS")
        bob.start("Bob", "secret")
        self.assertEqual(bob_listener.next(), "LOGIN_SUCCESS")

        bob.stop()
        self.assertEqual(alice_listener.next(), "Bob disconnected")


if __name__ == "__main__":
    unittest.main()
