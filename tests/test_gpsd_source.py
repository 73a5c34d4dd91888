"""Tests for the gpsd fix source."""

import asyncio
import json
from contextlib import aclosing
from datetime import datetime, timezone

import pytest

from gpsbridge.core.reconnect import stream_with_reconnect
from gpsbridge.interfaces.fix_source import Fix, SatelliteCount, SourceVersion
from gpsbridge.source.gpsd_source import (
    KNOTS_PER_METER_PER_SECOND,
    WATCH_COMMAND,
    GpsdFixSource,
    parse_report,
    parse_time,
)

VERSION_REPORT = {
    "class": "VERSION",
    "release": "3.25",
    "rev": "3.25",
    "proto_major": 3,
    "proto_minor": 15,
}

# Longer than the default 64 KiB StreamReader limit
OVERSIZED_LINE = (
    b'{"class":"SKY","pad":"' + b"x" * 70_000 + b'"}\n'
)

TPV_REPORT = {
    "class": "TPV",
    "device": "/dev/ttyACM0",
    "mode": 3,
    "time": "2024-05-01T12:30:45.000Z",
    "lat": 50.087451,
    "lon": 14.421254,
    "altHAE": 280.5,
    "altMSL": 235.0,
    "track": 87.5,
    "speed": 5.0,
}


class TestParseReport:
    """Tests for parse_report."""

    def test_tpv_becomes_fix(self) -> None:
        """Test that a TPV report maps onto a Fix."""
        event = parse_report(json.dumps(TPV_REPORT))

        assert isinstance(event, Fix)
        assert event.mode == 3
        assert event.latitude == 50.087451
        assert event.longitude == 14.421254
        assert event.altitude == 280.5
        assert event.track_degrees == 87.5
        assert event.timestamp == datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc)
        assert event.is_actionable

    def test_speed_converted_to_knots(self) -> None:
        """Test that gpsd speed in m/s becomes knots."""
        event = parse_report(json.dumps(TPV_REPORT))
        assert event.speed_knots == pytest.approx(5.0 * KNOTS_PER_METER_PER_SECOND)
        assert event.speed_knots == pytest.approx(9.719, abs=1e-3)

    def test_altitude_fallbacks(self) -> None:
        """Test that alt and altMSL are used when altHAE is missing."""
        report = {"class": "TPV", "mode": 3, "lat": 1.0, "lon": 2.0, "alt": 12.0}
        assert parse_report(json.dumps(report)).altitude == 12.0

        report = {"class": "TPV", "mode": 3, "lat": 1.0, "lon": 2.0, "altMSL": 7.0}
        assert parse_report(json.dumps(report)).altitude == 7.0

    def test_tpv_without_position(self) -> None:
        """Test that a no-fix TPV parses into an unusable Fix."""
        event = parse_report('{"class":"TPV","mode":1}')

        assert isinstance(event, Fix)
        assert event.latitude is None
        assert event.speed_knots is None
        assert event.timestamp is None
        assert not event.is_actionable

    def test_sky_with_usat(self) -> None:
        """Test that SKY uSat becomes a SatelliteCount."""
        event = parse_report('{"class":"SKY","nSat":12,"uSat":8}')
        assert event == SatelliteCount(satellites_used=8)

    def test_sky_counts_used_satellites(self) -> None:
        """Test that older SKY reports are counted from the satellite list."""
        report = {
            "class": "SKY",
            "satellites": [
                {"PRN": 1, "used": True},
                {"PRN": 2, "used": False},
                {"PRN": 3, "used": True},
            ],
        }
        assert parse_report(json.dumps(report)) == SatelliteCount(satellites_used=2)

    def test_sky_without_satellites_ignored(self) -> None:
        """Test that a SKY report with no satellite data is skipped."""
        assert parse_report('{"class":"SKY","hdop":1.2}') is None

    def test_version(self) -> None:
        """Test that VERSION becomes a SourceVersion."""
        event = parse_report(json.dumps(VERSION_REPORT))
        assert event == SourceVersion(release="3.25", proto_major=3, proto_minor=15)

    @pytest.mark.parametrize(
        "line",
        [
            '{"class":"DEVICES","devices":[]}',
            '{"class":"WATCH","enable":true}',
            "not json",
            "[1, 2, 3]",
            b"\xff\xfe",
            '{"class":"TPV","mode":"three"}',
        ],
    )
    def test_ignored_lines(self, line: str | bytes) -> None:
        """Test that other classes and malformed lines are skipped."""
        assert parse_report(line) is None

    def test_accepts_bytes(self) -> None:
        """Test that raw lines from the socket can be parsed directly."""
        line = (json.dumps(VERSION_REPORT) + "\n").encode()
        assert isinstance(parse_report(line), SourceVersion)


class TestParseTime:
    """Tests for parse_time."""

    def test_zulu_time(self) -> None:
        """Test a gpsd UTC timestamp."""
        assert parse_time("2024-05-01T12:30:45.000Z") == datetime(
            2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc
        )

    def test_missing_or_invalid(self) -> None:
        """Test that missing and unparseable times become None."""
        assert parse_time(None) is None
        assert parse_time("") is None
        assert parse_time("yesterday") is None


class TestGpsdFixSource:
    """Tests for GpsdFixSource against a local fake gpsd."""

    @pytest.mark.asyncio
    async def test_streams_reports_until_close(self) -> None:
        """Test watch handshake, event stream and stream termination."""
        received_commands: list[bytes] = []

        async def fake_gpsd(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            writer.write((json.dumps(VERSION_REPORT) + "\n").encode())
            received_commands.append(await reader.readline())
            for report in (
                {"class": "DEVICES", "devices": []},
                {"class": "SKY", "uSat": 9},
                TPV_REPORT,
            ):
                writer.write((json.dumps(report) + "\n").encode())
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(fake_gpsd, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        source = GpsdFixSource(host="127.0.0.1", port=port)
        events = []
        try:
            await source.connect()
            assert source.is_connected
            with pytest.raises(ConnectionError, match="closed"):
                async for event in source.events():
                    events.append(event)
        finally:
            await source.disconnect()
            server.close()
            await server.wait_closed()

        assert received_commands == [WATCH_COMMAND]
        assert [type(e) for e in events] == [SourceVersion, SatelliteCount, Fix]
        assert events[1].satellites_used == 9
        assert not source.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connection_error(self) -> None:
        """Test that an unreachable gpsd raises ConnectionError."""
        # Bind and close to find a port nobody listens on
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        source = GpsdFixSource(host="127.0.0.1", port=port)
        with pytest.raises(ConnectionError, match="Failed to connect to gpsd"):
            await source.connect()
        assert not source.is_connected

    @pytest.mark.asyncio
    async def test_events_without_connect_raise(self) -> None:
        """Test that streaming requires a connection."""
        source = GpsdFixSource()
        with pytest.raises(ConnectionError):
            async for _ in source.events():
                pass

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self) -> None:
        """Test that disconnecting twice is harmless."""
        source = GpsdFixSource()
        await source.disconnect()
        await source.disconnect()
        assert source.address == ("127.0.0.1", 2947)

    @pytest.mark.asyncio
    async def test_oversized_line_raises_connection_error(self) -> None:
        """Test that a line beyond the stream buffer ends the session cleanly."""

        async def fake_gpsd(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            await reader.readline()
            writer.write(OVERSIZED_LINE)
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(fake_gpsd, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        source = GpsdFixSource(host="127.0.0.1", port=port)
        try:
            await source.connect()
            with pytest.raises(ConnectionError, match="Unreadable line"):
                async for _ in source.events():
                    pass
        finally:
            await source.disconnect()
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_supervisor_recovers_from_oversized_line(self) -> None:
        """Test that an oversized line leads to a reconnect, not a crash."""
        connections: list[int] = []

        async def fake_gpsd(
            reader: asyncio.StreamReader, writer: asyncio.StreamWriter
        ) -> None:
            connections.append(len(connections) + 1)
            await reader.readline()
            if len(connections) == 1:
                writer.write(OVERSIZED_LINE)
            else:
                writer.write((json.dumps(VERSION_REPORT) + "\n").encode())
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(fake_gpsd, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        source = GpsdFixSource(host="127.0.0.1", port=port)
        stream = stream_with_reconnect(source, delay_seconds=0.01)
        try:
            async with aclosing(stream):
                event = await asyncio.wait_for(stream.__anext__(), timeout=5.0)
        finally:
            server.close()
            await server.wait_closed()

        assert isinstance(event, SourceVersion)
        assert len(connections) == 2
        assert not source.is_connected
