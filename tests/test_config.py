"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from marshmallow import ValidationError

from crtpclient.config import ClientConfig, load_config, load_config_file


def test_defaults() -> None:
    config = load_config()
    assert config == ClientConfig()
    assert config.request_attempts == 5
    assert config.log_sample_budget == 26
    assert config.param_cache_ttl is None
    assert config.port_queue_limits == {}
    assert config.console_queue_size == 0


def test_overrides_are_validated_and_normalised() -> None:
    config = load_config(
        {
            "request_timeout": 0.2,
            "port_queue_limits": {"5": 10},
            "param_cache_ttl": 1.5,
            "toc_cache_dir": "~/crtp-tocs",
        }
    )
    assert config.request_timeout == 0.2
    assert config.port_queue_limits == {5: 10}
    assert config.toc_cache_dir == os.path.expanduser("~/crtp-tocs")


@pytest.mark.parametrize(
    "raw",
    [
        {"unknown_option": 1},
        {"log_sample_budget": 27},
        {"request_attempts": 0},
        {"request_timeout": 0},
        {"port_queue_limits": {"16": 4}},
        {"toc_cache_dir": "   "},
        {"param_cache_ttl": -1},
    ],
)
def test_invalid_settings(raw: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        load_config(raw)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"send_queue_size": 0},
        {"request_timeout": 0.0},
        {"log_sample_budget": 30},
        {"param_cache_ttl": -0.5},
        {"port_queue_limits": {16: 1}},
        {"port_queue_limits": {3: -1}},
        {"console_queue_size": -1},
    ],
)
def test_model_rejects_invalid_values(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        ClientConfig(**kwargs)  # type: ignore[arg-type]


def test_load_config_file(tmp_path: Path) -> None:
    path = tmp_path / "crtp.json"
    path.write_text('{"console_queue_size": 12, "debug_logging": true}')
    config = load_config_file(path)
    assert config.console_queue_size == 12
    assert config.debug_logging is True


def test_load_config_file_rejects_bad_json(tmp_path: Path) -> None:
    path = tmp_path / "crtp.json"
    path.write_text("{console_queue_size: 12")
    with pytest.raises(ValueError):
        load_config_file(path)


def test_console_queue_size_zero_means_unbounded() -> None:
    assert ClientConfig(console_queue_size=0).console_queue_size == 0
    assert load_config({"console_queue_size": 0}).console_queue_size == 0
