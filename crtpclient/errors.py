"""Domain-specific errors for crtpclient."""


class CrtpError(Exception):
    """Base error for crtpclient."""


class LinkError(CrtpError):
    """Raised by link implementations on transport failure.

    Always fatal to the current connection.
    """


class NotConnected(CrtpError):
    """Raised when an operation is attempted outside the connected state."""


class Disconnected(NotConnected):
    """Raised on pending operations when the connection drops under them."""


class ProtocolTimeout(CrtpError):
    """Raised when a request got no correlated response within its retry budget."""


class TocFetchTimeout(ProtocolTimeout):
    """Raised when a TOC item request exhausted its retries."""


class DecodeError(CrtpError, ValueError):
    """Raised on malformed inbound payloads."""


class FramingError(DecodeError):
    """Raised when a CRTP packet cannot be framed or unframed."""


class ProtocolError(CrtpError):
    """Raised when the firmware answers a request with an error code."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class LogError(ProtocolError):
    """Raised when the firmware rejects a log block command."""


class ParamError(ProtocolError):
    """Raised when the firmware rejects a parameter read or write."""


class VariableNotFound(CrtpError, LookupError):
    """Raised when a name or id is not present in a TOC."""


class TypeMismatch(CrtpError, TypeError):
    """Raised when a value does not match the declared TOC type."""


class AccessDenied(CrtpError):
    """Raised when writing a read-only parameter."""


class TooManyVariables(CrtpError):
    """Raised when a log block schema exceeds the firmware sample budget."""
