"""Logging setup for applications built on crtpclient.

The library itself only creates loggers under ``crtpclient.*``. Call
:func:`configure_logging` from an application to attach a handler to that
namespace. With ``debug_logging`` enabled the dispatcher logs every packet,
and the structured formatter turns those records into a ``packet`` object:

    {"ts": "...", "level": "DEBUG", "logger": "dispatcher",
     "message": "IN 5:2 [00 2A]",
     "packet": {"dir": "IN", "port": 5, "port_name": "LOG",
                "channel": 2, "size": 2, "data": "00 2A"}}
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from ..const import LOG_SYSLOG_ENV
from ..protocol.protocol import Port
from ..util import PACKET_FIELDS
from .model import ClientConfig

LOGGER_NAMESPACE = "crtpclient"
SYSLOG_SOCKETS = (Path("/dev/log"), Path("/var/run/log"))
PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Attributes every LogRecord has; anything else was passed through ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def _port_name(port: int) -> str:
    try:
        return Port(port).name
    except ValueError:
        return f"PORT_{port}"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex(" ").upper()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


class PacketJsonFormatter(logging.Formatter):
    """One JSON object per record; packet records get a ``packet`` field."""

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(LOGGER_NAMESPACE + "."):
            name = name[len(LOGGER_NAMESPACE) + 1 :]
        document: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }

        attrs = vars(record)
        if "crtp_port" in attrs:
            payload = bytes(attrs["crtp_payload"])
            document["packet"] = {
                "dir": attrs["crtp_direction"],
                "port": attrs["crtp_port"],
                "port_name": _port_name(attrs["crtp_port"]),
                "channel": attrs["crtp_channel"],
                "size": len(payload),
                "data": _jsonable(payload),
            }

        extra = {
            key: _jsonable(value)
            for key, value in attrs.items()
            if key not in _STANDARD_ATTRS and key not in PACKET_FIELDS and not key.startswith("_")
        }
        if extra:
            document["extra"] = extra
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return msgspec.json.encode(document).decode()


def syslog_address() -> str | None:
    """Syslog socket to log to, when ``CRTPCLIENT_LOG_SYSLOG`` asks for one."""
    if not os.environ.get(LOG_SYSLOG_ENV):
        return None
    return next((str(path) for path in SYSLOG_SOCKETS if path.exists()), None)


def _handler_config(level: str, formatter: str) -> dict[str, Any]:
    address = syslog_address()
    if address is None:
        return {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "level": level,
            "formatter": formatter,
        }
    return {
        "class": "logging.handlers.SysLogHandler",
        "address": address,
        "facility": SysLogHandler.LOG_USER,
        "level": level,
        "formatter": formatter,
    }


def configure_logging(config: ClientConfig | None = None, *, structured: bool = True) -> None:
    """Attach a handler to the ``crtpclient`` loggers.

    ``config.debug_logging`` selects DEBUG, which includes per-packet
    records. ``structured=False`` gives one plain text line per record.
    Loggers outside the namespace are left alone.
    """
    level = "DEBUG" if config is not None and config.debug_logging else "INFO"
    formatter = "json" if structured else "plain"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": PacketJsonFormatter},
                "plain": {"format": PLAIN_FORMAT},
            },
            "handlers": {"crtpclient": _handler_config(level, formatter)},
            "loggers": {
                LOGGER_NAMESPACE: {
                    "level": level,
                    "handlers": ["crtpclient"],
                    "propagate": False,
                },
            },
        }
    )
    logging.getLogger(LOGGER_NAMESPACE).debug("Logging configured at %s", level)


__all__ = ["PacketJsonFormatter", "configure_logging", "syslog_address"]
