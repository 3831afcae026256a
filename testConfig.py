#!/usr/bin/env python3
"""
testConfig.py

Tests for password loading and the server command line entry point.

Usage:
  python -m unittest testConfig.py
"""

import os
import unittest
from unittest.mock import patch

import config
import server


class TestLoadPassword(unittest.TestCase):

    def test_explicit_password_wins(self):
        with patch.dict(os.environ, {"CHAT_SERVER_PASSWORD": "from-env"}):
            self.assertEqual(config.load_password("explicit"), "explicit")

    def test_environment_variable(self):
        with patch.dict(os.environ, {"CHAT_SERVER_PASSWORD": "from-env"}):
            self.assertEqual(config.load_password(), "from-env")

    @patch('config.getpass.getpass', return_value="typed")
    def test_prompt_when_unset(self, mock_getpass):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(config.load_password(), "typed")
        mock_getpass.assert_called_once()

    def test_rejects_empty_and_oversized(self):
        with self.assertRaises(ValueError):
            config.load_password("")
        with self.assertRaises(ValueError):
            config.load_password("é" * 40)

    def test_checkValidPassword(self):
        self.assertTrue(config.checkValidPassword("x" * 72))
        self.assertFalse(config.checkValidPassword("x" * 73))
        self.assertFalse(config.checkValidPassword(""))


class TestServerMain(unittest.TestCase):

    @patch('server.ChatServer')
    def test_bad_password_exits_early(self, mock_server):
        self.assertEqual(server.main(["--password", ""]), 2)
        mock_server.assert_not_called()

    @patch('server.ChatServer')
    def test_arguments_reach_server(self, mock_server):
        self.assertEqual(server.main(["--host", "127.0.0.1", "--port", "5555", "--password", "pw"]), 0)
        mock_server.assert_called_once_with("pw", host="127.0.0.1", port=5555)
        mock_server.return_value.start.assert_called_once()

    @patch('server.ChatServer')
    def test_bind_failure_exit_code(self, mock_server):
        mock_server.return_value.start.side_effect = server.BindFailure("in use")
        self.assertEqual(server.main(["--password", "pw"]), 1)


if __name__ == "__main__":
    unittest.main()
