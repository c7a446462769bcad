"""Localization port: emergency stop and externally measured position.

Everything here is fire-and-forget, like the commander. External position
and pose come from a motion capture system and feed the state estimator;
the firmware expects them at a steady rate while flying.
"""

from __future__ import annotations

import logging

from ..protocol.packet import Packet
from ..protocol.protocol import LocalizationChannel, LocalizationPacket, Port
from ..protocol.structures import ExternalPose, ExternalPosition
from .dispatcher import Dispatcher

logger = logging.getLogger("crtpclient.localization")


class Localization:
    """Send emergency and external positioning packets on port 6."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    async def send_emergency_stop(self) -> None:
        """Stop the motors now. The firmware must be rebooted to fly again."""
        logger.warning("Sending emergency stop")
        await self._send(LocalizationChannel.GENERIC, bytes([LocalizationPacket.EMERGENCY_STOP]))

    async def send_emergency_stop_watchdog(self) -> None:
        """Arm the firmware watchdog; motors stop if it is not refreshed in time."""
        await self._send(LocalizationChannel.GENERIC, bytes([LocalizationPacket.EMERGENCY_STOP_WATCHDOG]))

    async def send_external_position(self, x: float, y: float, z: float) -> None:
        """Position in meters, in the world frame."""
        await self._send(LocalizationChannel.POSITION, ExternalPosition(x=x, y=y, z=z).encode())

    async def send_external_pose(
        self,
        position: tuple[float, float, float],
        quaternion: tuple[float, float, float, float],
    ) -> None:
        """Position in meters and attitude as an ``(x, y, z, w)`` quaternion."""
        x, y, z = position
        qx, qy, qz, qw = quaternion
        payload = ExternalPose(
            packet_type=LocalizationPacket.EXT_POSE, x=x, y=y, z=z, qx=qx, qy=qy, qz=qz, qw=qw
        ).encode()
        await self._send(LocalizationChannel.GENERIC, payload)

    async def _send(self, channel: int, payload: bytes) -> None:
        self._dispatcher.ensure_connected()
        await self._dispatcher.send(Packet(Port.LOCALIZATION, channel, payload))


__all__ = ["Localization"]
