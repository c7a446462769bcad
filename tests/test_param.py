"""Tests for the param subsystem."""

from __future__ import annotations

import asyncio
import logging

import pytest

from crtpclient.config.model import ClientConfig
from crtpclient.errors import AccessDenied, NotConnected, ParamError, TypeMismatch
from crtpclient.protocol.protocol import Port
from crtpclient.protocol.values import Value, ValueType

from mocks import FakeFirmware, connect_firmware

READ, WRITE = 1, 2


def _reads(firmware: FakeFirmware) -> int:
    return firmware.request_count(Port.PARAM, READ)


@pytest.mark.asyncio
async def test_read_decodes_declared_types() -> None:
    cf = await connect_firmware(FakeFirmware())
    assert await cf.param.read("stabilizer.estimator") == Value(ValueType.UINT8, 2)
    assert await cf.param.read("health.offset") == Value(ValueType.INT16, -12)
    assert await cf.param.read("kalman.initialX") == Value(ValueType.FLOAT16, 0.5)
    assert (await cf.param.read(3)).value == 0xDEADBEEF
    await cf.disconnect()


@pytest.mark.asyncio
async def test_read_uses_cache_until_refresh() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    assert cf.param.cached("ring.effect") is None
    await cf.param.read("ring.effect")
    await cf.param.read("ring.effect")
    assert _reads(firmware) == 1
    firmware.param("ring.effect").value = 9
    assert (await cf.param.read("ring.effect", refresh=True)).value == 9
    assert _reads(firmware) == 2
    await cf.disconnect()


@pytest.mark.asyncio
async def test_cached_value_expires_after_ttl() -> None:
    firmware = FakeFirmware()
    config = ClientConfig(request_timeout=0.05, request_attempts=3, param_cache_ttl=0.01)
    cf = await connect_firmware(firmware, config)
    await cf.param.read("ring.effect")
    await asyncio.sleep(0.03)
    await cf.param.read("ring.effect")
    assert _reads(firmware) == 2
    await cf.disconnect()


@pytest.mark.asyncio
async def test_read_is_retried_on_lost_response() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    firmware.drop_responses(Port.PARAM, READ)
    assert (await cf.param.read("ring.effect")).value == 6
    assert _reads(firmware) == 2
    await cf.disconnect()


@pytest.mark.asyncio
async def test_read_error_status() -> None:
    firmware = FakeFirmware()
    firmware.param_read_status[4] = 5
    cf = await connect_firmware(firmware)
    with pytest.raises(ParamError) as excinfo:
        await cf.param.read("ring.effect")
    assert excinfo.value.code == 5
    await cf.disconnect()


@pytest.mark.asyncio
async def test_write_updates_firmware_and_cache() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    await cf.param.write("ring.effect", 3)
    assert firmware.param("ring.effect").value == 3
    assert cf.param.cached("ring.effect") == Value(ValueType.UINT8, 3)

    await cf.param.write("pid_rate.roll_kp", 0.1)
    assert cf.param.cached("pid_rate.roll_kp") == Value.of(ValueType.FLOAT32, 0.1)
    assert await cf.param.read("pid_rate.roll_kp") == Value.of(ValueType.FLOAT32, 0.1)
    assert _reads(firmware) == 0
    await cf.disconnect()


@pytest.mark.asyncio
async def test_rejected_writes_send_nothing() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    with pytest.raises(AccessDenied):
        await cf.param.write("firmware.revision0", 1)
    with pytest.raises(TypeMismatch):
        await cf.param.write("ring.effect", Value(ValueType.FLOAT32, 1.0))
    with pytest.raises(TypeMismatch):
        await cf.param.write("ring.effect", 300)
    with pytest.raises(TypeMismatch):
        await cf.param.write("ring.effect", 1.5)
    assert firmware.request_count(Port.PARAM, WRITE) == 0
    await cf.disconnect()


@pytest.mark.asyncio
async def test_mismatching_echo_is_an_error() -> None:
    firmware = FakeFirmware()
    firmware.write_echo_override[4] = b"\x07"
    cf = await connect_firmware(firmware)
    with pytest.raises(ParamError):
        await cf.param.write("ring.effect", 3)
    assert cf.param.cached("ring.effect") is None
    await cf.disconnect()


@pytest.mark.asyncio
async def test_lossy_helpers() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    assert await cf.param.read_lossy("health.offset") == -12.0
    await cf.param.write_lossy("ring.effect", 300.9)
    assert firmware.param("ring.effect").value == 44
    await cf.disconnect()


@pytest.mark.asyncio
async def test_watchers_see_writes_and_firmware_updates() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    changes = cf.param.watch_changes()
    first = asyncio.ensure_future(anext(changes))
    await asyncio.sleep(0.01)

    await cf.param.write("ring.effect", 2)
    firmware.push_param_update(0, b"\x01")
    async with asyncio.timeout(1):
        assert await first == ("ring.effect", Value(ValueType.UINT8, 2))
        assert await anext(changes) == ("stabilizer.estimator", Value(ValueType.UINT8, 1))
    assert cf.param.cached("stabilizer.estimator") == Value(ValueType.UINT8, 1)
    await changes.aclose()
    await cf.disconnect()


@pytest.mark.asyncio
async def test_update_for_unknown_id_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    with caplog.at_level(logging.WARNING, logger="crtpclient.param"):
        firmware.push_param_update(99, b"\x01")
        await asyncio.sleep(0.01)
    assert any("unknown id 99" in message for message in caplog.messages)
    assert cf.is_connected
    await cf.disconnect()


@pytest.mark.asyncio
async def test_prefetch_reads_every_value_at_connect() -> None:
    firmware = FakeFirmware()
    config = ClientConfig(request_timeout=0.05, request_attempts=3, param_prefetch_values=True)
    cf = await connect_firmware(firmware, config)
    assert _reads(firmware) == len(firmware.params)
    assert cf.param.cached("health.offset") == Value(ValueType.INT16, -12)
    await cf.param.read("health.offset")
    assert _reads(firmware) == len(firmware.params)
    await cf.disconnect()


@pytest.mark.asyncio
async def test_operations_after_disconnect() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    await cf.disconnect()
    with pytest.raises(NotConnected):
        await cf.param.read("ring.effect")
    with pytest.raises(NotConnected):
        await cf.param.write("ring.effect", 1)


@pytest.mark.asyncio
async def test_watcher_registers_before_first_iteration() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    changes = cf.param.watch_changes()
    await cf.param.write("ring.effect", 3)
    async with asyncio.timeout(1):
        assert await anext(changes) == ("ring.effect", Value(ValueType.UINT8, 3))
    await changes.aclose()
    # A closed watcher no longer receives changes.
    await cf.param.write("ring.effect", 4)
    with pytest.raises(StopAsyncIteration):
        await anext(changes)
    await cf.disconnect()
