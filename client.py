import threading
import logging

import config
from chaterrors import ChatError, PeerDisconnected, IOFailure
from connection import Connection
from segmenter import Reassembler

logger = logging.getLogger(__name__)


def login_line(username, password):
    return f"LOGIN:{username}:{password}"


class ChatClient:
    """
    Client side of the relay, used by the chat window.

    run() is meant for its own thread: it connects, sends the queued login,
    and hands every reassembled message to the message listener. Errors are
    reported to the error listener once; the client never reconnects.
    """

    def __init__(self, message_listener, error_listener, host=config.CLIENT_HOST, port=config.PORT):
        self.message_listener = message_listener
        self.error_listener = error_listener
        self.host = host
        self.port = port
        self.connection = None
        self.running = False
        self.stopped = False
        self.error_reported = False
        self.pending_login = None
        self.state_lock = threading.Lock()
        self.thread = None

    def set_message_listener(self, listener):
        self.message_listener = listener

    def start(self, username, password):
        """Queue the login and run the receive loop on a daemon thread."""
        self.pending_login = (username, password)
        self.thread = threading.Thread(target=self.run, daemon=True)
        self.thread.start()
        return self.thread

    def run(self):
        try:
            connection = Connection.open(self.host, self.port)
            with self.state_lock:
                if self.stopped:
                    # stop() came in while we were still connecting
                    connection.close()
                    return
                self.connection = connection
                self.running = True
            logger.info("Connected to %s:%s", self.host, self.port)

            if self.pending_login is not None:
                username, password = self.pending_login
                self.pending_login = None
                self.login(username, password)

            reassembler = Reassembler()
            while self.running:
                line = self.connection.read_line()
                if line is None:
                    if self.running:
                        raise PeerDisconnected("Server closed connection.")
                    break
                message = reassembler.feed(line)
                if message is not None and self.message_listener is not None:
                    self.message_listener(message)
        except ChatError as e:
            if self.running or self.connection is None:
                self.report_error(e)
        except Exception as e:
            logger.exception("Error while client was running")
            self.report_error(IOFailure(str(e)))
        finally:
            logger.info("Client terminated")
            self.terminate()

    def login(self, username, password):
        self.send_message(login_line(username, password))

    def send_message(self, message):
        connection = self.connection
        if connection is None or not self.running:
            self.report_error(IOFailure("Not connected."))
            return False
        try:
            connection.write_line(message)
            connection.flush()
            return True
        except ChatError as e:
            logger.error("Error while sending message: %s", e)
            if self.running:
                self.report_error(e)
            self.terminate()
            return False

    def report_error(self, error):
        with self.state_lock:
            if self.error_reported or self.stopped:
                return
            self.error_reported = True
        if self.error_listener is not None:
            self.error_listener(error)

    def terminate(self):
        """Stop the loop, then close the connection. Idempotent."""
        with self.state_lock:
            self.running = False
            self.stopped = True
            connection = self.connection
        if connection is not None:
            try:
                connection.close()
            except Exception:
                # nothing useful to do with close-time errors
                pass

    stop = terminate
