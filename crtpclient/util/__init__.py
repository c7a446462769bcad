"""Small helpers shared across crtpclient modules."""

from __future__ import annotations

import logging

# LogRecord attributes carrying packet details; read by the structured formatter.
PACKET_FIELDS = ("crtp_direction", "crtp_port", "crtp_channel", "crtp_payload")


def log_packet(
    logger_instance: logging.Logger,
    direction: str,
    port: int,
    channel: int,
    payload: bytes,
    level: int = logging.DEBUG,
) -> None:
    """Log one packet as ``IN 5:2 [01 FF]`` with its fields attached to the record."""
    if not logger_instance.isEnabledFor(level):
        return
    logger_instance.log(
        level,
        "%s %d:%d [%s]",
        direction,
        port,
        channel,
        payload.hex(" ").upper(),
        extra={
            "crtp_direction": direction,
            "crtp_port": int(port),
            "crtp_channel": int(channel),
            "crtp_payload": bytes(payload),
        },
    )


def log_hexdump(logger_instance: logging.Logger, level: int, label: str, data: bytes) -> None:
    """Log raw bytes that could not be parsed into a packet."""
    if not logger_instance.isEnabledFor(level):
        return
    logger_instance.log(level, "%s: %s", label, data.hex(" ").upper(), extra={"raw": bytes(data)})


__all__ = ["PACKET_FIELDS", "log_hexdump", "log_packet"]
