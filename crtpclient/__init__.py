"""crtpclient: asyncio host-side client for the Crazyflie Real-Time Protocol."""

__version__ = "0.3.0"

from .client import Crazyflie, connect
from .config import ClientConfig, configure_logging, load_config, load_config_file
from .errors import (
    AccessDenied,
    CrtpError,
    DecodeError,
    Disconnected,
    FramingError,
    LinkError,
    LogError,
    NotConnected,
    ParamError,
    ProtocolError,
    ProtocolTimeout,
    TocFetchTimeout,
    TooManyVariables,
    TypeMismatch,
    VariableNotFound,
)
from .protocol import Packet, Value, ValueType
from .services import (
    FileTocCache,
    InMemoryTocCache,
    LogBlock,
    LogDecodeFailure,
    LogSample,
    NullTocCache,
    SupervisorState,
    TocEntry,
    default_toc_cache,
)
from .transport import Link, LinkFactory

__all__ = [
    "AccessDenied",
    "ClientConfig",
    "Crazyflie",
    "CrtpError",
    "DecodeError",
    "Disconnected",
    "FileTocCache",
    "FramingError",
    "InMemoryTocCache",
    "Link",
    "LinkError",
    "LinkFactory",
    "LogBlock",
    "LogDecodeFailure",
    "LogError",
    "LogSample",
    "NotConnected",
    "NullTocCache",
    "Packet",
    "ParamError",
    "ProtocolError",
    "ProtocolTimeout",
    "SupervisorState",
    "TocEntry",
    "TocFetchTimeout",
    "TooManyVariables",
    "TypeMismatch",
    "Value",
    "ValueType",
    "VariableNotFound",
    "__version__",
    "configure_logging",
    "connect",
    "default_toc_cache",
    "load_config",
    "load_config_file",
]
