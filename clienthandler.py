import threading
import logging

from chaterrors import LoginRejected, PeerDisconnected, IOFailure
from segmenter import segment, LINE_LIMIT

logger = logging.getLogger(__name__)

LOGIN_PREFIX = "LOGIN"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"

AWAITING_LOGIN = "AWAITING_LOGIN"
ACTIVE = "ACTIVE"
TERMINATED = "TERMINATED"


def parse_login(line):
    """
    Split a 'LOGIN:<username>:<password>' line into (username, password).
    Raises LoginRejected for anything that is not exactly three fields.
    """
    if line is None:
        raise LoginRejected("Connection closed before login.")
    parts = line.split(":")
    if len(parts) != 3 or parts[0] != LOGIN_PREFIX:
        raise LoginRejected("Malformed login line.")
    return parts[1], parts[2]


class ClientHandler:
    """
    Server side of one chat participant.

    Runs the login handshake, then forwards every line it reads to the
    server's broadcast. Whatever way the session ends, the handler removes
    itself from the server and closes its connection.
    """

    def __init__(self, connection, server, limit=LINE_LIMIT):
        self.connection = connection
        self.server = server
        self.limit = limit
        self.nickname = None
        self.state = AWAITING_LOGIN
        # lines of the message currently being written, cleared after every send
        self.messages = []
        self.send_lock = threading.Lock()

    @property
    def active(self):
        return self.state == ACTIVE

    def send_message(self, message):
        """
        Write one message as a block: its wire lines (segmented past the line
        limit) followed by a blank line, flushed together.
        """
        with self.send_lock:
            self.messages.extend(segment(message, self.limit))
            try:
                for msg in self.messages:
                    self.connection.write_line(msg)
                self.connection.write_line("")
                self.connection.flush()
                return True
            except (PeerDisconnected, IOFailure) as e:
                logger.warning("Error while sending message to %s: %s", self.nickname, e)
                return False
            finally:
                self.messages.clear()

    def login(self):
        """Read the first line and check it; binds the nickname on success."""
        username, password = parse_login(self.connection.read_line())
        if not self.server.password_valid(password):
            raise LoginRejected(f"Wrong password for {username!r}.")
        self.nickname = username

    def activate(self):
        # called by the server with its lock held
        self.send_message(LOGIN_SUCCESS)
        self.state = ACTIVE

    def run(self):
        try:
            try:
                self.login()
            except LoginRejected as e:
                logger.info("Login failed from %s: %s", self.connection.peer, e)
                self.send_message(LOGIN_FAILED)
                return

            self.server.admit(self)
            logger.info("%s logged in from %s", self.nickname, self.connection.peer)

            while True:
                message = self.connection.read_line()
                if message is None:
                    break
                logger.debug("Received %s", message)
                self.server.broadcast(message, self)

        except PeerDisconnected:
            logger.info("Client %s disconnected unexpectedly.", self.nickname)
        except IOFailure as e:
            logger.error("An error occurred in ClientHandler for %s: %s", self.nickname, e)
        finally:
            self.terminate()

    def terminate(self):
        self.state = TERMINATED
        self.server.remove_client(self)
        self.connection.close()

    def __repr__(self):
        return f"<ClientHandler {self.nickname!r} {self.state}>"
