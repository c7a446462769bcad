"""Supervisor service: arming, crash recovery and the safety state bitfield."""

from __future__ import annotations

import logging
import time

import msgspec

from ..config.model import ClientConfig
from ..errors import Disconnected
from ..protocol.packet import Packet
from ..protocol.protocol import (
    SUPERVISOR_RESPONSE_FLAG,
    Port,
    SupervisorChannel,
    SupervisorCommand,
    SupervisorFlag,
)
from ..protocol.structures import SupervisorArmRequest, SupervisorRequest, SupervisorStateResponse
from .base import PortService
from .dispatcher import Dispatcher

logger = logging.getLogger("crtpclient.supervisor")

_FLAG_LABELS = {
    SupervisorFlag.CAN_BE_ARMED: "Can be armed",
    SupervisorFlag.IS_ARMED: "Is armed",
    SupervisorFlag.IS_AUTO_ARMED: "Is auto armed",
    SupervisorFlag.CAN_FLY: "Can fly",
    SupervisorFlag.IS_FLYING: "Is flying",
    SupervisorFlag.IS_TUMBLED: "Is tumbled",
    SupervisorFlag.IS_LOCKED: "Is locked",
    SupervisorFlag.IS_CRASHED: "Is crashed",
    SupervisorFlag.HL_CONTROL_ACTIVE: "HL control active",
    SupervisorFlag.HL_TRAJ_FINISHED: "HL trajectory finished",
    SupervisorFlag.HL_CONTROL_DISABLED: "HL control disabled",
}


class SupervisorState(msgspec.Struct, frozen=True):
    """Decoded supervisor bitfield."""

    raw: int

    def has(self, flag: SupervisorFlag) -> bool:
        return bool(self.raw >> flag & 1)

    @property
    def can_be_armed(self) -> bool:
        return self.has(SupervisorFlag.CAN_BE_ARMED)

    @property
    def is_armed(self) -> bool:
        return self.has(SupervisorFlag.IS_ARMED)

    @property
    def can_fly(self) -> bool:
        return self.has(SupervisorFlag.CAN_FLY)

    @property
    def is_flying(self) -> bool:
        return self.has(SupervisorFlag.IS_FLYING)

    @property
    def is_tumbled(self) -> bool:
        return self.has(SupervisorFlag.IS_TUMBLED)

    @property
    def is_locked(self) -> bool:
        return self.has(SupervisorFlag.IS_LOCKED)

    @property
    def is_crashed(self) -> bool:
        return self.has(SupervisorFlag.IS_CRASHED)

    def active_states(self) -> list[str]:
        return [label for flag, label in _FLAG_LABELS.items() if self.has(flag)]


class Supervisor(PortService):
    """Supervisor bound to port 9.

    State reads are cached for ``supervisor_cache_ttl`` seconds so that
    polling loops do not flood the link.
    """

    PORT = Port.SUPERVISOR
    NAME = "supervisor"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig) -> None:
        super().__init__(dispatcher, config)
        self._flow = self._new_flow("supervisor.state")
        self._cached: tuple[SupervisorState, float] | None = None

    async def read_state(self, *, refresh: bool = False) -> SupervisorState:
        self._dispatcher.ensure_connected()
        if not refresh and self._cached is not None:
            state, stamp = self._cached
            if time.monotonic() - stamp < self._config.supervisor_cache_ttl:
                return state
        self._start_router()
        request = SupervisorRequest(command=SupervisorCommand.GET_STATE_BITFIELD).encode()
        packet = Packet(self.PORT, SupervisorChannel.INFO, request)
        response: SupervisorStateResponse = await self._flow.request(
            packet, SupervisorCommand.GET_STATE_BITFIELD
        )
        state = SupervisorState(raw=response.bitfield)
        self._cached = (state, time.monotonic())
        return state

    async def send_arming_request(self, arm: bool) -> None:
        """Ask the firmware to arm (or disarm) the motors; no acknowledgement."""
        payload = SupervisorArmRequest(command=SupervisorCommand.ARM_SYSTEM, arm=int(arm)).encode()
        await self._send_command(payload)
        self._cached = None

    async def send_crash_recovery_request(self) -> None:
        """Clear a crashed state so that the vehicle can be armed again."""
        await self._send_command(SupervisorRequest(command=SupervisorCommand.RECOVER_SYSTEM).encode())
        self._cached = None

    async def _send_command(self, payload: bytes) -> None:
        self._dispatcher.ensure_connected()
        await self._dispatcher.send(Packet(self.PORT, SupervisorChannel.COMMAND, payload))

    def _handle_packet(self, packet: Packet) -> None:
        if packet.channel != SupervisorChannel.INFO:
            return
        response = SupervisorStateResponse.decode(packet.payload)
        command = response.command & ~SUPERVISOR_RESPONSE_FLAG
        if not self._flow.pending.resolve(command, response):
            logger.debug("Ignoring unexpected supervisor response 0x%02X", response.command)

    def _on_disconnected(self, exc: Disconnected) -> None:
        self._flow.pending.fail_all(exc)


__all__ = ["Supervisor", "SupervisorState"]
