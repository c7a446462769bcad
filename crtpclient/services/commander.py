"""Commander: fire-and-forget flight setpoints.

The firmware disarms the motors when setpoints stop arriving, so callers
must keep sending at the rate their controller requires. Nothing here
waits for a response.
"""

from __future__ import annotations

from ..protocol.packet import Packet
from ..protocol.protocol import (
    COMMANDER_RPYT_CHANNEL,
    MANUAL_THRUST_MAX,
    MANUAL_THRUST_MIN,
    UINT16_MAX,
    GenericSetpointChannel,
    MetaCommand,
    Port,
    SetpointType,
)
from ..protocol.structures import (
    HoverSetpoint,
    ManualSetpoint,
    NotifySetpointStop,
    PositionSetpoint,
    RpytSetpoint,
    VelocityWorldSetpoint,
    ZDistanceSetpoint,
)
from .dispatcher import Dispatcher


class Commander:
    """Send setpoints on the commander and generic setpoint ports."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    async def send_setpoint(self, roll: float, pitch: float, yawrate: float, thrust: int) -> None:
        """Legacy roll/pitch/yaw-rate/thrust setpoint.

        Angles in degrees, yaw rate in degrees per second, thrust 0..65535.
        Pitch is sent negated, as the firmware expects.
        """
        if not 0 <= thrust <= UINT16_MAX:
            raise ValueError(f"Thrust {thrust} outside 0..{UINT16_MAX}")
        payload = RpytSetpoint(roll=roll, pitch=-pitch, yawrate=yawrate, thrust=int(thrust)).encode()
        await self._send(Packet(Port.COMMANDER, COMMANDER_RPYT_CHANNEL, payload))

    async def send_generic_setpoint(self, setpoint_type: SetpointType | int, payload: bytes = b"") -> None:
        """Send a generic setpoint of *setpoint_type* with a pre-encoded body."""
        body = bytes([int(setpoint_type)]) + bytes(payload)
        await self._send(Packet(Port.GENERIC_SETPOINT, GenericSetpointChannel.SETPOINT, body))

    async def send_stop_setpoint(self) -> None:
        """Stop the motors immediately; the vehicle falls."""
        await self.send_generic_setpoint(SetpointType.STOP)

    async def send_position_setpoint(self, x: float, y: float, z: float, yaw: float) -> None:
        """Absolute position in meters and yaw in degrees."""
        await self.send_generic_setpoint(
            SetpointType.POSITION, PositionSetpoint(x=x, y=y, z=z, yaw=yaw).encode()
        )

    async def send_velocity_world_setpoint(self, vx: float, vy: float, vz: float, yawrate: float) -> None:
        """Velocity in the world frame (m/s) and yaw rate (deg/s)."""
        await self.send_generic_setpoint(
            SetpointType.VELOCITY_WORLD,
            VelocityWorldSetpoint(vx=vx, vy=vy, vz=vz, yawrate=yawrate).encode(),
        )

    async def send_zdistance_setpoint(self, roll: float, pitch: float, yawrate: float, zdistance: float) -> None:
        await self.send_generic_setpoint(
            SetpointType.ZDISTANCE,
            ZDistanceSetpoint(roll=roll, pitch=pitch, yawrate=yawrate, zdistance=zdistance).encode(),
        )

    async def send_hover_setpoint(self, vx: float, vy: float, yawrate: float, zdistance: float) -> None:
        """Body-frame velocity (m/s), yaw rate (deg/s) and absolute height (m)."""
        await self.send_generic_setpoint(
            SetpointType.HOVER,
            HoverSetpoint(vx=vx, vy=vy, yawrate=yawrate, zdistance=zdistance).encode(),
        )

    async def send_manual_setpoint(
        self,
        roll: float,
        pitch: float,
        yawrate: float,
        thrust_percentage: float,
        rate: bool = False,
    ) -> None:
        """Manual control with thrust given as a percentage (0..100).

        With ``rate`` false roll and pitch are angles in degrees, otherwise
        rates in degrees per second.
        """
        if not 0.0 <= thrust_percentage <= 100.0:
            raise ValueError(f"Thrust percentage {thrust_percentage} outside 0..100")
        thrust = int(MANUAL_THRUST_MIN + 0.01 * thrust_percentage * (MANUAL_THRUST_MAX - MANUAL_THRUST_MIN))
        await self.send_generic_setpoint(
            SetpointType.MANUAL,
            ManualSetpoint(roll=roll, pitch=pitch, yawrate=yawrate, thrust=thrust, rate=int(rate)).encode(),
        )

    async def send_notify_setpoint_stop(self, remain_valid_ms: int = 0) -> None:
        """Lower the priority of the current setpoint so any source can override it."""
        payload = NotifySetpointStop(
            command=MetaCommand.NOTIFY_SETPOINT_STOP, remain_valid_ms=remain_valid_ms
        ).encode()
        await self._send(Packet(Port.GENERIC_SETPOINT, GenericSetpointChannel.META_COMMAND, payload))

    async def _send(self, packet: Packet) -> None:
        self._dispatcher.ensure_connected()
        await self._dispatcher.send(packet)


__all__ = ["Commander"]
