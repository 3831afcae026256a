import socket
import threading
import logging

from chaterrors import PeerDisconnected, IOFailure

logger = logging.getLogger(__name__)

ENCODING = 'utf-8'


class Connection:
    """
    Line-oriented wrapper around one connected TCP socket.

    Reads block until a whole '\\n'-terminated line is in. Writes are buffered
    by write_line() and only hit the wire on flush(), so a multi-line block
    goes out in a single sendall().
    """

    def __init__(self, sock):
        self.sock = sock
        try:
            self.peer = sock.getpeername()
        except OSError:
            self.peer = None
        self.reader = sock.makefile('r', encoding=ENCODING, errors='replace', newline='\n')
        self.pending = []
        self.write_lock = threading.Lock()
        self.close_lock = threading.Lock()
        self.closed = False

    @classmethod
    def open(cls, host, port, timeout=None):
        """Connect to host:port and wrap the socket."""
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise IOFailure(f"Could not connect to {host}:{port}: {e}") from e
        # connect timeout only, reads block indefinitely
        sock.settimeout(None)
        return cls(sock)

    def read_line(self):
        """Return the next line without its terminator, or None at end of stream."""
        try:
            line = self.reader.readline()
        except ConnectionResetError as e:
            raise PeerDisconnected(str(e)) from e
        except (OSError, ValueError) as e:
            # ValueError: the reader was closed under us by close()
            if self.closed:
                return None
            raise IOFailure(str(e)) from e
        if not line:
            return None
        if line.endswith('\n'):
            line = line[:-1]
        if line.endswith('\r'):
            line = line[:-1]
        return line

    def write_line(self, text):
        with self.write_lock:
            self.pending.append(text + '\n')

    def flush(self):
        with self.write_lock:
            data, self.pending = ''.join(self.pending), []
            if not data:
                return
            try:
                self.sock.sendall(data.encode(ENCODING))
            except (BrokenPipeError, ConnectionResetError) as e:
                raise PeerDisconnected(str(e)) from e
            except OSError as e:
                raise IOFailure(str(e)) from e

    def close(self):
        """Shut the socket down and release it. Safe to call repeatedly, from any thread."""
        with self.close_lock:
            if self.closed:
                return
            self.closed = True
        try:
            # wakes up a read blocked on another thread
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.reader.close()
        except (OSError, ValueError):
            pass
        try:
            self.sock.close()
        except OSError:
            pass
        logger.debug("Connection with %s closed.", self.peer)
