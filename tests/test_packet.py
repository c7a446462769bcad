"""Tests for CRTP packet framing."""

from __future__ import annotations

import pytest

from crtpclient.errors import DecodeError, FramingError
from crtpclient.protocol.packet import Packet
from crtpclient.protocol.protocol import MAX_PAYLOAD_SIZE, Port


def test_header_places_port_high_and_channel_low() -> None:
    raw = Packet.build(Port.LOG, 2, b"\x01")
    assert raw == bytes([0x5E, 0x01])


def test_parse_ignores_link_bits() -> None:
    assert Packet.parse(bytes([0x51, 0xAA])) == (5, 1, b"\xaa")
    assert Packet.parse(bytes([0x5D, 0xAA])) == (5, 1, b"\xaa")


def test_unknown_ports_are_carried() -> None:
    packet = Packet.from_bytes(bytes([0xB3]) + b"xyz")
    assert (packet.port, packet.channel, packet.payload) == (11, 3, b"xyz")
    assert packet.to_bytes() == bytes([0xBF]) + b"xyz"


def test_header_only_packet_has_empty_payload() -> None:
    packet = Packet.from_bytes(bytes([0xFF]))
    assert packet == Packet(15, 3, b"")


def test_max_payload_is_accepted() -> None:
    payload = bytes(range(MAX_PAYLOAD_SIZE))
    assert Packet.parse(Packet.build(Port.CONSOLE, 0, payload))[2] == payload


def test_oversized_payload_is_rejected() -> None:
    with pytest.raises(FramingError):
        Packet.build(Port.CONSOLE, 0, bytes(MAX_PAYLOAD_SIZE + 1))
    with pytest.raises(FramingError):
        Packet(Port.CONSOLE, 0, bytes(MAX_PAYLOAD_SIZE + 1))
    with pytest.raises(FramingError):
        Packet.parse(bytes(MAX_PAYLOAD_SIZE + 2))


def test_empty_input_is_a_decode_error() -> None:
    with pytest.raises(DecodeError):
        Packet.parse(b"")


@pytest.mark.parametrize(("port", "channel"), [(16, 0), (-1, 0), (0, 4), (2, -1)])
def test_routing_out_of_range(port: int, channel: int) -> None:
    with pytest.raises(FramingError):
        Packet.build(port, channel)


def test_every_route_survives_the_header() -> None:
    for port in range(16):
        for channel in range(4):
            for length in (0, 1, MAX_PAYLOAD_SIZE):
                payload = bytes([port * 4 + channel]) * length
                assert Packet.parse(Packet.build(port, channel, payload)) == (port, channel, payload)
