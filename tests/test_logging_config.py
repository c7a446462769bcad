"""Tests for the logging configuration."""

import json
import logging
from unittest.mock import patch

import pytest

from crtpclient.config import logging as log_mod
from crtpclient.config.model import ClientConfig
from crtpclient.util import log_packet


@pytest.fixture
def crtp_logger() -> logging.Logger:
    return logging.getLogger("crtpclient")


class _Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def _record(name: str = "crtpclient.console", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="line %d",
        args=(3,),
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_packet_records_become_structured_fields(crtp_logger) -> None:
    capture = _Capture()
    crtp_logger.addHandler(capture)
    crtp_logger.setLevel(logging.DEBUG)
    log_packet(logging.getLogger("crtpclient.dispatcher"), "IN", 5, 2, b"\x00\x2a")

    [record] = capture.records
    assert record.getMessage() == "IN 5:2 [00 2A]"
    document = json.loads(log_mod.PacketJsonFormatter().format(record))

    assert document["logger"] == "dispatcher"
    assert document["level"] == "DEBUG"
    assert document["packet"] == {
        "dir": "IN",
        "port": 5,
        "port_name": "LOG",
        "channel": 2,
        "size": 2,
        "data": "00 2A",
    }
    assert "extra" not in document


def test_packet_logging_is_skipped_above_debug(crtp_logger) -> None:
    capture = _Capture()
    crtp_logger.addHandler(capture)
    crtp_logger.setLevel(logging.INFO)
    log_packet(logging.getLogger("crtpclient.dispatcher"), "OUT", 3, 0, b"\x01")
    assert capture.records == []


def test_unknown_port_and_other_extras() -> None:
    record = _record(
        crtp_direction="OUT", crtp_port=11, crtp_channel=1, crtp_payload=b"", peer=object()
    )
    document = json.loads(log_mod.PacketJsonFormatter().format(record))
    assert document["message"] == "line 3"
    assert document["packet"]["port_name"] == "PORT_11"
    assert document["packet"]["size"] == 0
    assert document["extra"]["peer"].startswith("<object object")


def test_plain_records_have_no_packet_field() -> None:
    document = json.loads(log_mod.PacketJsonFormatter().format(_record(raw=b"\xff")))
    assert "packet" not in document
    assert document["extra"] == {"raw": "FF"}


def test_configure_logging_targets_the_package_namespace(crtp_logger) -> None:
    with patch("crtpclient.config.logging.dictConfig") as mock_dict_config:
        log_mod.configure_logging(ClientConfig(debug_logging=True), structured=False)
    settings = mock_dict_config.call_args[0][0]
    assert "root" not in settings
    assert settings["loggers"]["crtpclient"]["level"] == "DEBUG"
    assert settings["handlers"]["crtpclient"]["formatter"] == "plain"


def test_syslog_when_requested(tmp_path, monkeypatch) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()
    monkeypatch.setenv("CRTPCLIENT_LOG_SYSLOG", "1")
    with patch("crtpclient.config.logging.SYSLOG_SOCKETS", (tmp_path / "missing", fake_socket)):
        assert log_mod.syslog_address() == str(fake_socket)
        with patch("crtpclient.config.logging.dictConfig") as mock_dict_config:
            log_mod.configure_logging()
    handler = mock_dict_config.call_args[0][0]["handlers"]["crtpclient"]
    assert handler["class"] == "logging.handlers.SysLogHandler"
    assert handler["address"] == str(fake_socket)


def test_no_syslog_by_default(monkeypatch) -> None:
    monkeypatch.delenv("CRTPCLIENT_LOG_SYSLOG", raising=False)
    assert log_mod.syslog_address() is None


def test_configure_logging_installs_json_handler(crtp_logger, monkeypatch) -> None:
    monkeypatch.delenv("CRTPCLIENT_LOG_SYSLOG", raising=False)
    log_mod.configure_logging()
    assert crtp_logger.level == logging.INFO
    assert crtp_logger.propagate is False
    assert any(isinstance(h.formatter, log_mod.PacketJsonFormatter) for h in crtp_logger.handlers)
