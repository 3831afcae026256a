#!/usr/bin/env python3
"""
testClientGui.py

Tests for the tkinter login/chat window. The network client is replaced by a
MagicMock; window tests are skipped when no display is available.

Usage:
  python -m unittest testClientGui.py
"""

import unittest
from unittest.mock import MagicMock, patch

try:
    import tkinter as tk
except ImportError:
    tk = None

if tk is not None:
    import clientgui
    from clientgui import validate_login, ClientApp


@unittest.skipIf(tk is None, "tkinter is not installed.")
class TestValidateLogin(unittest.TestCase):

    def test_valid(self):
        self.assertIsNone(validate_login("alice", "pw"))

    def test_invalid_username(self):
        for username in ["", "a" * 16, "al:ice"]:
            self.assertEqual(validate_login(username, "pw"), "Invalid username")

    def test_fifteen_chars_is_fine(self):
        self.assertIsNone(validate_login("a" * 15, "pw"))

    def test_missing_password(self):
        self.assertEqual(validate_login("alice", ""), "Please enter a password")


@unittest.skipIf(tk is None, "tkinter is not installed.")
class TestClientApp(unittest.TestCase):

    def setUp(self):
        try:
            self.root = tk.Tk()
        except tk.TclError:
            self.skipTest("No display available for tkinter.")
        self.root.withdraw()
        patcher = patch.object(clientgui, 'ChatClient')
        self.ChatClient = patcher.start()
        self.addCleanup(patcher.stop)
        self.app = ClientApp(self.root, host="127.0.0.1", port=4321)

    def tearDown(self):
        try:
            self.root.destroy()
        except tk.TclError:
            pass

    def login(self, username="alice", password="pw"):
        self.app.login_frame.username_entry.insert(0, username)
        self.app.login_frame.password_entry.insert(0, password)
        self.app.login_frame.attempt_login()
        return self.ChatClient.return_value

    def deliver(self, kind, payload, client=None):
        self.app.msg_queue.put((client or self.app.client, kind, payload))
        self.app.poll_queue()

    def test_bad_username_never_connects(self):
        self.login(username="a:b")
        self.ChatClient.assert_not_called()
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Invalid username")

    def test_login_starts_client(self):
        client = self.login()
        client.start.assert_called_once_with("alice", "pw")
        _, kwargs = self.ChatClient.call_args
        self.assertEqual(kwargs["port"], 4321)

    def test_login_success_shows_chat(self):
        client = self.login()
        self.deliver("login", "LOGIN_SUCCESS")
        self.assertIsNotNone(self.app.chat_frame)
        client.set_message_listener.assert_called_once()
        self.assertIn("alice", self.app.chat_frame.info_label.cget("text"))

        self.app.chat_frame.message_entry.insert(0, "hello there")
        self.app.chat_frame.send_message()
        client.send_message.assert_called_once_with("alice: hello there")

    def test_whitespace_only_is_not_sent(self):
        client = self.login()
        self.deliver("login", "LOGIN_SUCCESS")
        self.app.chat_frame.message_entry.insert(0, "   ")
        self.app.chat_frame.send_message()
        client.send_message.assert_not_called()

    def test_chat_messages_are_appended(self):
        self.login()
        self.deliver("login", "LOGIN_SUCCESS")
        self.deliver("chat", "bob: hi alice")
        content = self.app.chat_frame.chat_display.get("1.0", tk.END)
        self.assertIn("bob: hi alice", content)

    def test_login_failed(self):
        client = self.login()
        self.deliver("login", "LOGIN_FAILED")
        self.assertIsNone(self.app.chat_frame)
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Invalid credentials")
        client.stop.assert_called_once()
        self.assertIsNone(self.app.client)

    def test_hangup_after_login_failed_keeps_message(self):
        client = self.login()
        # the server closes the socket right after LOGIN_FAILED
        self.app.msg_queue.put((client, "login", "LOGIN_FAILED"))
        self.app.msg_queue.put((client, "error", OSError("closed")))
        self.app.poll_queue()
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Invalid credentials")

    def test_hangup_after_server_full_keeps_message(self):
        client = self.login()
        self.deliver("login", "SERVER_FULL")
        self.deliver("error", OSError("closed"), client=client)
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Server is full")

    def test_retry_after_failure_gets_fresh_errors(self):
        first = self.login()
        self.deliver("login", "LOGIN_FAILED")
        second = MagicMock()
        self.ChatClient.return_value = second
        self.app.login_frame.attempt_login()
        self.assertIs(self.app.client, second)
        # attempt_login cleared the label; the old client must not refill it
        self.deliver("error", OSError("closed"), client=first)
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "")
        self.deliver("error", OSError("refused"))
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Connection failed")

    def test_server_full(self):
        self.login()
        self.deliver("login", "SERVER_FULL")
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Server is full")

    def test_connection_error(self):
        self.login()
        self.deliver("error", OSError("refused"))
        self.assertEqual(self.app.login_frame.error_label.cget("text"), "Connection failed")

    def test_leave_returns_to_login(self):
        client = self.login()
        self.deliver("login", "LOGIN_SUCCESS")
        self.app.leave()
        client.stop.assert_called_once()
        self.assertIsNone(self.app.chat_frame)
        self.assertIsNone(self.app.client)


if __name__ == "__main__":
    unittest.main()
