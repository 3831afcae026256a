#!/usr/bin/env python3
"""
testServer.py

Unit, regression and integration tests for ChatServer: password checks,
broadcast, client removal, shutdown and the accept loop over real sockets.

Usage:
  python -m unittest testServer.py
"""

import socket
import threading
import time
import unittest
from unittest.mock import MagicMock

from chaterrors import BindFailure
from clienthandler import ClientHandler, ACTIVE
from segmenter import segment, reassemble
from server import ChatServer, SHUTDOWN_NOTICE, hashPass

# bcrypt's minimum cost keeps the suite fast
ROUNDS = 4


def make_handler(nickname, active=True):
    handler = MagicMock()
    handler.nickname = nickname
    handler.active = active
    return handler


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


###############################################################################
#                           PASSWORD TESTS                                    #
###############################################################################
class TestServerPassword(unittest.TestCase):

    def setUp(self):
        self.server = ChatServer("Abc123!", bcrypt_rounds=ROUNDS)

    def test_password_valid(self):
        self.assertTrue(self.server.password_valid("Abc123!"))

    def test_password_invalid(self):
        for attempt in ["abc123!", "Abc123", "Abc123! ", "", "x" * 100]:
            self.assertFalse(self.server.password_valid(attempt), attempt)

    def test_password_is_not_stored_in_clear(self):
        self.assertNotIn(b"Abc123!", self.server.password_hash)
        self.assertTrue(self.server.password_hash.startswith(b"$2"))

    def test_hashPass_unit(self):
        hashed = hashPass("pw", rounds=ROUNDS)
        self.assertTrue(hashed.startswith(b"$2b$") or hashed.startswith(b"$2a$"))

    def test_rejects_unusable_password(self):
        with self.assertRaises(ValueError):
            ChatServer("", bcrypt_rounds=ROUNDS)
        with self.assertRaises(ValueError):
            ChatServer("p" * 73, bcrypt_rounds=ROUNDS)

    def test_servers_do_not_share_passwords(self):
        other = ChatServer("different", bcrypt_rounds=ROUNDS)
        self.assertFalse(other.password_valid("Abc123!"))
        self.assertTrue(self.server.password_valid("Abc123!"))


###############################################################################
#                      BROADCAST / REMOVAL UNIT TESTS                         #
###############################################################################
class TestServerRegistry(unittest.TestCase):

    def setUp(self):
        self.server = ChatServer("secret", bcrypt_rounds=ROUNDS)
        self.alice = make_handler("alice")
        self.bob = make_handler("bob")
        self.server.clients.update({self.alice, self.bob})

    def test_broadcast_includes_sender(self):
        self.server.broadcast("alice: hi", self.alice)
        self.alice.send_message.assert_called_once_with("alice: hi")
        self.bob.send_message.assert_called_once_with("alice: hi")

    def test_broadcast_skips_handlers_still_logging_in(self):
        pending = make_handler(None, active=False)
        self.server.clients.add(pending)
        self.server.broadcast("alice: hi", self.alice)
        pending.send_message.assert_not_called()

    def test_remove_client_sends_one_departure_notice(self):
        self.server.remove_client(self.bob)
        self.assertNotIn(self.bob, self.server.clients)
        self.alice.send_message.assert_called_once_with("bob disconnected")
        self.bob.send_message.assert_not_called()

    def test_remove_client_twice_is_noop(self):
        self.server.remove_client(self.bob)
        self.server.remove_client(self.bob)
        self.alice.send_message.assert_called_once_with("bob disconnected")

    def test_remove_unknown_client(self):
        stranger = make_handler("stranger")
        self.server.remove_client(stranger)
        self.alice.send_message.assert_not_called()
        self.assertEqual(self.server.client_count(), 2)

    def test_failed_login_leaves_silently(self):
        never_logged_in = make_handler(None, active=False)
        self.server.clients.add(never_logged_in)
        self.server.remove_client(never_logged_in)
        self.alice.send_message.assert_not_called()
        self.bob.send_message.assert_not_called()

    def test_admit_activates_under_lock(self):
        pending = make_handler("carol", active=False)
        pending.activate.side_effect = lambda: self.assertTrue(self.server.lock.locked())
        self.server.admit(pending)
        pending.activate.assert_called_once()
        self.assertFalse(self.server.lock.locked())

    def test_shutdown_notifies_and_closes_everyone(self):
        pending = make_handler(None, active=False)
        self.server.clients.add(pending)
        self.server.shutdown()
        for handler in (self.alice, self.bob):
            handler.send_message.assert_called_once_with(SHUTDOWN_NOTICE)
            handler.connection.close.assert_called_once()
        # a client still waiting on its login reply gets closed, not notified
        pending.send_message.assert_not_called()
        pending.connection.close.assert_called_once()


###############################################################################
#                         CONCURRENCY REGRESSION TESTS                        #
###############################################################################
class RecordingConnection:
    """Writes straight into one shared transcript, one line at a time."""
    def __init__(self, transcript, name):
        self.transcript = transcript
        self.name = name
        self.peer = None

    def write_line(self, text):
        self.transcript.append((self.name, text))
        # give other threads a chance to cut in
        time.sleep(0)

    def flush(self):
        pass

    def close(self):
        pass


class TestBroadcastAtomicity(unittest.TestCase):

    def test_segmented_blocks_never_interleave(self):
        server = ChatServer("secret", bcrypt_rounds=ROUNDS)
        transcript = []
        handlers = []
        for name in ("alice", "bob", "carol"):
            handler = ClientHandler(RecordingConnection(transcript, name), server)
            handler.nickname = name
            handler.state = ACTIVE
            handlers.append(handler)
        server.clients.update(handlers)

        def spam(handler):
            for i in range(30):
                server.broadcast(f"{handler.nickname}: {i} " + "z" * 200, handler)

        threads = [threading.Thread(target=spam, args=(h,)) for h in handlers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for name in ("alice", "bob", "carol"):
            lines = [text for who, text in transcript if who == name]
            messages, block = [], []
            for line in lines:
                if line:
                    block.append(line)
                else:
                    messages.append(reassemble(block))
                    block = []
            self.assertEqual(len(messages), 90)
            for message in messages:
                sender, rest = message.split(": ", 1)
                self.assertIn(sender, ("alice", "bob", "carol"))
                self.assertTrue(rest.endswith("z" * 200))

        # blocks are contiguous across the whole transcript too
        current = None
        for who, text in transcript:
            if current is None:
                current = who
            self.assertEqual(who, current)
            if text == "":
                current = None


###############################################################################
#                      INTEGRATION TESTS (REAL SOCKETS)                       #
###############################################################################
class RawClient:
    """A bare socket client speaking the wire protocol by hand."""
    def __init__(self, port):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=5)
        self.file = self.sock.makefile('r', encoding='utf-8', newline='\n')

    def send(self, line):
        self.sock.sendall((line + "\n").encode('utf-8'))

    def read_block(self):
        """Return the lines of the next block, or None at end of stream."""
        lines = []
        while True:
            line = self.file.readline()
            if not line:
                return None
            line = line.rstrip("\n")
            if line == "":
                return lines
            lines.append(line)

    def close(self):
        self.file.close()
        self.sock.close()


class TestServerSocketIntegration(unittest.TestCase):

    def setUp(self):
        self.server = ChatServer("secret", host="127.0.0.1", port=0,
                                 bcrypt_rounds=ROUNDS, accept_timeout=0.05)
        self.server_thread = threading.Thread(target=self.server.start, daemon=True)
        self.server_thread.start()
        self.assertTrue(self.server.ready.wait(5))
        self.clients = []

    def tearDown(self):
        self.server.stop()
        self.server_thread.join(timeout=5)
        for c in self.clients:
            c.close()

    def connect(self, username=None, password="secret"):
        c = RawClient(self.server.port)
        self.clients.append(c)
        if username is not None:
            c.send(f"LOGIN:{username}:{password}")
        return c

    def test_login_success_and_failure(self):
        alice = self.connect("Alice")
        self.assertEqual(alice.read_block(), ["LOGIN_SUCCESS"])

        bob = self.connect("Bob", "wrong")
        self.assertEqual(bob.read_block(), ["LOGIN_FAILED"])
        self.assertIsNone(bob.read_block())

        alice.send("Alice: hello")
        self.assertEqual(alice.read_block(), ["Alice: hello"])
        self.assertTrue(wait_for(lambda: self.server.client_count() == 1))

    def test_long_message_reaches_other_client_intact(self):
        alice = self.connect("Alice")
        self.assertEqual(alice.read_block(), ["LOGIN_SUCCESS"])
        bob = self.connect("Bob")
        self.assertEqual(bob.read_block(), ["LOGIN_SUCCESS"])
        self.assertTrue(wait_for(lambda: all(c.active for c in list(self.server.clients))))

        message = "Alice: " + "".join(chr(65 + i % 26) for i in range(143))
        self.assertEqual(len(message), 150)
        alice.send(message)

        block = bob.read_block()
        self.assertGreater(len(block), 1)
        self.assertTrue(all(len(line) <= 90 for line in block))
        self.assertEqual(block, segment(message))
        self.assertEqual(reassemble(block), message)
        self.assertEqual(reassemble(alice.read_block()), message)

    def test_departure_notice(self):
        alice = self.connect("Alice")
        self.assertEqual(alice.read_block(), ["LOGIN_SUCCESS"])
        bob = self.connect("Bob")
        self.assertEqual(bob.read_block(), ["LOGIN_SUCCESS"])

        bob.close()
        self.clients.remove(bob)

        self.assertEqual(alice.read_block(), ["Bob disconnected"])
        self.assertTrue(wait_for(lambda: self.server.client_count() == 1))

    def test_garbage_first_line(self):
        c = self.connect()
        c.send("hello?")
        self.assertEqual(c.read_block(), ["LOGIN_FAILED"])
        self.assertIsNone(c.read_block())

    def test_shutdown_notice_and_disconnect(self):
        alice = self.connect("Alice")
        self.assertEqual(alice.read_block(), ["LOGIN_SUCCESS"])

        self.server.stop()
        self.server_thread.join(timeout=5)
        self.assertFalse(self.server_thread.is_alive())
        self.assertFalse(self.server.accepting)

        self.assertEqual(alice.read_block(), [SHUTDOWN_NOTICE])
        self.assertIsNone(alice.read_block())
        self.assertTrue(wait_for(lambda: self.server.client_count() == 0))

    def test_shutdown_before_login_sends_nothing(self):
        lurker = self.connect()
        self.assertTrue(wait_for(lambda: self.server.client_count() == 1))

        self.server.stop()
        self.server_thread.join(timeout=5)

        # end of stream straight away, no notice ahead of a login reply
        self.assertIsNone(lurker.read_block())

    def test_bind_failure(self):
        other = ChatServer("secret", host="127.0.0.1", port=self.server.port, bcrypt_rounds=ROUNDS)
        with self.assertRaises(BindFailure):
            other.start()
        self.assertFalse(other.accepting)


if __name__ == "__main__":
    unittest.main()
