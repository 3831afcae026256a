import os
import getpass

# Use argument or environment variable
SERVER_HOST = os.getenv("CHAT_SERVER_HOST", "0.0.0.0")
CLIENT_HOST = os.getenv("CHAT_CLIENT_HOST", "127.0.0.1")
PORT = int(os.getenv("CHAT_SERVER_PORT", 1234))
LOG_LEVEL = os.getenv("CHAT_LOG_LEVEL", "INFO")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def checkValidPassword(password):
    if not password:
        return False
    return len(password.encode('utf-8')) <= MAX_PASSWORD_BYTES


def load_password(password=None):
    """
    Resolve the shared room password: explicit value first, then
    CHAT_SERVER_PASSWORD, then an interactive prompt.
    """
    if password is None:
        password = os.getenv("CHAT_SERVER_PASSWORD")
    if password is None:
        password = getpass.getpass("Enter a password to start the server: ")
    if not checkValidPassword(password):
        raise ValueError(
            f"Password must be non-empty and at most {MAX_PASSWORD_BYTES} bytes."
        )
    return password
