import socket
import threading
import argparse
import logging
import sys

import bcrypt

import config
from chaterrors import BindFailure
from clienthandler import ClientHandler
from connection import Connection

logger = logging.getLogger(__name__)

SHUTDOWN_NOTICE = "Server is shutting down"


def hashPass(password, rounds=12):
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt)


class ChatServer:
    """
    The room: owns the listening socket, every connected ClientHandler and
    the shared password.

    Membership changes and broadcast sends all go through self.lock, so a
    broadcast either reaches a handler with the whole message or not at all.
    """

    def __init__(self, password, host=config.SERVER_HOST, port=config.PORT,
                 bcrypt_rounds=12, accept_timeout=0.5):
        if not config.checkValidPassword(password):
            raise ValueError("Password must be non-empty and at most 72 bytes.")
        self.host = host
        self.port = port
        self.password_hash = hashPass(password, bcrypt_rounds)
        self.accept_timeout = accept_timeout

        self.clients = set()
        self.lock = threading.Lock()
        self.server_socket = None
        self.accepting = False
        self.stop_requested = threading.Event()
        # set once the listening socket is bound, self.port is then the real port
        self.ready = threading.Event()

    def password_valid(self, attempt):
        attempt = attempt.encode('utf-8')
        if len(attempt) > config.MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(attempt, self.password_hash)

    def client_count(self):
        with self.lock:
            return len(self.clients)

    def bind(self):
        try:
            server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise BindFailure(f"Could not create listening socket: {e}") from e
        try:
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen()
        except OSError as e:
            server_socket.close()
            raise BindFailure(f"Could not listen on {self.host}:{self.port}: {e}") from e
        server_socket.settimeout(self.accept_timeout)
        self.server_socket = server_socket
        self.port = server_socket.getsockname()[1]

    def start(self):
        """
        Bind, then accept connections until stop() is called or accept fails.
        Each connection gets its own ClientHandler thread.
        """
        self.bind()
        logger.info("Server listening on %s:%s...", self.host, self.port)
        self.accepting = True
        self.ready.set()
        try:
            while not self.stop_requested.is_set():
                try:
                    conn, addr = self.server_socket.accept()
                except socket.timeout:
                    continue
                conn.settimeout(None)
                handler = ClientHandler(Connection(conn), self)
                with self.lock:
                    self.clients.add(handler)
                    count = len(self.clients)
                logger.info("New connection from %s (client count: %d)", addr, count)
                t = threading.Thread(target=handler.run, daemon=True)
                t.start()
        except OSError as e:
            if not self.stop_requested.is_set():
                logger.error("Error while server was running: %s", e)
        finally:
            self.accepting = False
            self.shutdown()

    def stop(self):
        self.stop_requested.set()

    def admit(self, handler):
        """
        Send the login reply and start including `handler` in broadcasts as one
        step, so no chat line can reach a client ahead of its LOGIN_SUCCESS.
        """
        with self.lock:
            handler.activate()

    def broadcast(self, message, sender):
        """Send `message` to every logged-in client, `sender` included."""
        with self.lock:
            logger.debug("Broadcasting message from %s: %s", sender.nickname, message)
            self._send_to_all(message)

    def _send_to_all(self, message):
        # caller holds self.lock
        for client in list(self.clients):
            if client.active:
                client.send_message(message)

    def remove_client(self, handler):
        with self.lock:
            if handler not in self.clients:
                return
            self.clients.remove(handler)
            count = len(self.clients)
            if handler.nickname is not None:
                self._send_to_all(f"{handler.nickname} disconnected")
        logger.info("Client %s disconnected (client count: %d)", handler.nickname, count)

    def shutdown(self):
        """
        Close the listening socket, tell every logged-in client that we are
        going away, then close all connections so their handler threads unwind.
        Clients still waiting on a login reply are closed without the notice.
        """
        logger.info("Server shutting down")
        if self.server_socket is not None:
            try:
                self.server_socket.close()
            except OSError:
                pass
        with self.lock:
            remaining = list(self.clients)
            for client in remaining:
                if client.active:
                    client.send_message(SHUTDOWN_NOTICE)
        for client in remaining:
            client.connection.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Start the chat server.")
    parser.add_argument("--host", default=config.SERVER_HOST, help="Server hostname or IP")
    parser.add_argument("--port", type=int, default=config.PORT, help="Port number")
    parser.add_argument("--password", default=None,
                        help="Room password (default: CHAT_SERVER_PASSWORD or prompt)")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=config.LOG_FORMAT)

    try:
        password = config.load_password(args.password)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    server = ChatServer(password, host=args.host, port=args.port)
    try:
        server.start()
    except BindFailure as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
