"""
Exception types shared by the client and the server.

Transport failures (peer reset, refused connection, EOF) use the builtin
ConnectionError family, the same way the socket layer reports them.
"""


class ClackError(Exception):
    """Base class for Clack-specific errors."""
    pass


class ConfigurationError(ClackError, ValueError):
    """Raised when a host or port is invalid, before any connection is made."""
    pass


class ProtocolError(ClackError):
    """Raised when a record on the wire cannot be decoded into a Message."""
    pass


class CipherError(ClackError, ValueError):
    """Raised for characters outside a cipher's alphabet or an unusable cipher setup."""
    pass


class InvalidKey(CipherError):
    """Raised when a cipher rejects its key at construction time."""
    pass


class AuthenticationError(ClackError):
    """Raised when a login attempt does not match. The session survives it."""
    pass
