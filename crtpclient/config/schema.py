"""Marshmallow schema for ClientConfig validation."""

from __future__ import annotations

import os
from typing import Any, Dict

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates_schema

from ..const import (
    DEFAULT_CONSOLE_HISTORY_LIMIT_BYTES,
    DEFAULT_CONSOLE_QUEUE_SIZE,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_LOG_BLOCK_QUEUE_SIZE,
    DEFAULT_LOG_SAMPLE_BUDGET,
    DEFAULT_PARAM_PREFETCH_VALUES,
    DEFAULT_REQUEST_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SEND_QUEUE_SIZE,
    DEFAULT_SUPERVISOR_CACHE_TTL,
)
from ..protocol.protocol import LOG_SAMPLE_BUDGET, PORT_MAX
from .model import ClientConfig


class ClientConfigSchema(Schema):
    """Declarative validation schema for connection configuration."""

    # Dispatcher
    send_queue_size = fields.Int(load_default=DEFAULT_SEND_QUEUE_SIZE, validate=validate.Range(min=1))
    port_queue_limits = fields.Dict(
        keys=fields.Int(validate=validate.Range(min=0, max=PORT_MAX)),
        values=fields.Int(validate=validate.Range(min=0)),
        load_default=dict,
    )

    # Request/response
    request_timeout = fields.Float(load_default=DEFAULT_REQUEST_TIMEOUT, validate=validate.Range(min=0.001))
    request_attempts = fields.Int(load_default=DEFAULT_REQUEST_ATTEMPTS, validate=validate.Range(min=1))

    # Subsystems
    log_sample_budget = fields.Int(
        load_default=DEFAULT_LOG_SAMPLE_BUDGET,
        validate=validate.Range(min=1, max=LOG_SAMPLE_BUDGET),
    )
    log_block_queue_size = fields.Int(load_default=DEFAULT_LOG_BLOCK_QUEUE_SIZE, validate=validate.Range(min=1))
    console_queue_size = fields.Int(load_default=DEFAULT_CONSOLE_QUEUE_SIZE, validate=validate.Range(min=0))
    console_history_limit_bytes = fields.Int(
        load_default=DEFAULT_CONSOLE_HISTORY_LIMIT_BYTES, validate=validate.Range(min=1)
    )
    param_cache_ttl = fields.Float(load_default=None, allow_none=True, validate=validate.Range(min=0.0))
    param_prefetch_values = fields.Bool(load_default=DEFAULT_PARAM_PREFETCH_VALUES)
    supervisor_cache_ttl = fields.Float(
        load_default=DEFAULT_SUPERVISOR_CACHE_TTL, validate=validate.Range(min=0.0)
    )
    toc_cache_dir = fields.Str(load_default=None, allow_none=True)

    # System
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)

    @validates_schema
    def validate_toc_cache_dir(self, data: Dict[str, Any], **kwargs: Any) -> None:
        directory = data.get("toc_cache_dir")
        if directory is not None and not directory.strip():
            raise ValidationError("toc_cache_dir must be a non-empty path", field_name="toc_cache_dir")

    @staticmethod
    def _normalize_path(value: str) -> str:
        return os.path.abspath(os.path.expanduser(value.strip()))

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> ClientConfig:
        if data.get("toc_cache_dir") is not None:
            data["toc_cache_dir"] = self._normalize_path(data["toc_cache_dir"])
        return ClientConfig(**data)
