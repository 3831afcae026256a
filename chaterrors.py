class ChatError(Exception):
    """Base class for chat relay failures."""


class LoginRejected(ChatError):
    """The first line was not a valid login or carried the wrong password."""


class PeerDisconnected(ChatError):
    """The other side reset or dropped the connection."""


class IOFailure(ChatError):
    """Any other read/write fault on a connection."""


class BindFailure(ChatError):
    """The listening socket could not be created or bound."""
