"""Data model for crtpclient configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..const import (
    DEFAULT_CONSOLE_HISTORY_LIMIT_BYTES,
    DEFAULT_CONSOLE_QUEUE_SIZE,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_LOG_BLOCK_QUEUE_SIZE,
    DEFAULT_LOG_SAMPLE_BUDGET,
    DEFAULT_PARAM_CACHE_TTL,
    DEFAULT_PARAM_PREFETCH_VALUES,
    DEFAULT_REQUEST_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SEND_QUEUE_SIZE,
    DEFAULT_SUPERVISOR_CACHE_TTL,
    DEFAULT_TOC_CACHE_DIR,
)
from ..protocol.protocol import LOG_SAMPLE_BUDGET, PORT_MAX


def _port_limits_factory() -> dict[int, int]:
    return {}


@dataclass(slots=True)
class ClientConfig:
    """Strongly typed configuration for a connection."""

    send_queue_size: int = DEFAULT_SEND_QUEUE_SIZE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    request_attempts: int = DEFAULT_REQUEST_ATTEMPTS
    port_queue_limits: dict[int, int] = field(default_factory=_port_limits_factory)
    log_sample_budget: int = DEFAULT_LOG_SAMPLE_BUDGET
    log_block_queue_size: int = DEFAULT_LOG_BLOCK_QUEUE_SIZE
    console_queue_size: int = DEFAULT_CONSOLE_QUEUE_SIZE
    console_history_limit_bytes: int = DEFAULT_CONSOLE_HISTORY_LIMIT_BYTES
    param_cache_ttl: float | None = DEFAULT_PARAM_CACHE_TTL
    param_prefetch_values: bool = DEFAULT_PARAM_PREFETCH_VALUES
    supervisor_cache_ttl: float = DEFAULT_SUPERVISOR_CACHE_TTL
    toc_cache_dir: str | None = DEFAULT_TOC_CACHE_DIR
    debug_logging: bool = DEFAULT_DEBUG_LOGGING

    def __post_init__(self) -> None:
        for name in (
            "send_queue_size",
            "request_attempts",
            "log_sample_budget",
            "log_block_queue_size",
            "console_history_limit_bytes",
        ):
            setattr(self, name, self._require_positive(name, int(getattr(self, name))))
        if self.console_queue_size < 0:
            raise ValueError("console_queue_size must be >= 0 (0 means unbounded)")
        if self.request_timeout <= 0.0:
            raise ValueError("request_timeout must be a positive number")
        if self.log_sample_budget > LOG_SAMPLE_BUDGET:
            raise ValueError(
                f"log_sample_budget cannot exceed the packet budget of {LOG_SAMPLE_BUDGET} bytes"
            )
        if self.param_cache_ttl is not None and self.param_cache_ttl < 0.0:
            raise ValueError("param_cache_ttl must be None or a non-negative number")
        if self.supervisor_cache_ttl < 0.0:
            raise ValueError("supervisor_cache_ttl must be a non-negative number")
        self._validate_port_limits()

    def _validate_port_limits(self) -> None:
        limits: dict[int, int] = {}
        for port, limit in self.port_queue_limits.items():
            port_number = int(port)
            if not 0 <= port_number <= PORT_MAX:
                raise ValueError(f"port_queue_limits: port {port_number} outside 0..{PORT_MAX}")
            if int(limit) < 0:
                raise ValueError(f"port_queue_limits: limit for port {port_number} must be >= 0")
            limits[port_number] = int(limit)
        self.port_queue_limits = limits

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value
