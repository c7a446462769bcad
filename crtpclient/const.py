"""Default values shared by the config model and schema."""

from __future__ import annotations

from typing import Final

from .protocol.protocol import LOG_SAMPLE_BUDGET

DEFAULT_SEND_QUEUE_SIZE: Final[int] = 64
DEFAULT_REQUEST_TIMEOUT: Final[float] = 0.5
DEFAULT_REQUEST_ATTEMPTS: Final[int] = 5
DEFAULT_LOG_SAMPLE_BUDGET: Final[int] = LOG_SAMPLE_BUDGET
DEFAULT_LOG_BLOCK_QUEUE_SIZE: Final[int] = 100
DEFAULT_CONSOLE_QUEUE_SIZE: Final[int] = 0  # unbounded
DEFAULT_CONSOLE_HISTORY_LIMIT_BYTES: Final[int] = 64 * 1024
DEFAULT_PARAM_CACHE_TTL: Final[float | None] = None
DEFAULT_PARAM_PREFETCH_VALUES: Final[bool] = False
DEFAULT_SUPERVISOR_CACHE_TTL: Final[float] = 0.1
DEFAULT_TOC_CACHE_DIR: Final[str | None] = None
DEFAULT_DEBUG_LOGGING: Final[bool] = False

# Minimum platform protocol version this client was written against.
MIN_PROTOCOL_VERSION: Final[int] = 4

LOG_SYSLOG_ENV: Final[str] = "CRTPCLIENT_LOG_SYSLOG"
