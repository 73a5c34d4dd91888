"""gpsd fix source speaking the gpsd JSON protocol over TCP."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from gpsbridge.interfaces.fix_source import (
    Fix,
    FixEvent,
    FixSource,
    SatelliteCount,
    SourceVersion,
)

logger = logging.getLogger(__name__)

WATCH_COMMAND = b'?WATCH={"enable":true,"json":true}\n'

# 1 m/s in knots
KNOTS_PER_METER_PER_SECOND = 3600 / 1852


def parse_time(value: str | None) -> datetime | None:
    """Parse a gpsd ISO-8601 timestamp such as "2024-05-01T12:30:45.000Z"."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Ignoring unparseable gpsd time {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_tpv(report: dict[str, Any]) -> Fix:
    speed = report.get("speed")
    altitude = report.get("altHAE", report.get("alt", report.get("altMSL")))
    return Fix(
        timestamp=parse_time(report.get("time")),
        latitude=report.get("lat"),
        longitude=report.get("lon"),
        altitude=altitude,
        speed_knots=speed * KNOTS_PER_METER_PER_SECOND if speed is not None else None,
        track_degrees=report.get("track"),
        mode=int(report.get("mode", 0)),
    )


def _parse_sky(report: dict[str, Any]) -> SatelliteCount | None:
    if "uSat" in report:
        return SatelliteCount(satellites_used=int(report["uSat"]))
    satellites = report.get("satellites")
    if satellites is None:
        return None
    return SatelliteCount(
        satellites_used=sum(1 for sat in satellites if sat.get("used"))
    )


def _parse_version(report: dict[str, Any]) -> SourceVersion:
    return SourceVersion(
        release=str(report.get("release", "")),
        proto_major=int(report.get("proto_major", 0)),
        proto_minor=int(report.get("proto_minor", 0)),
    )


def parse_report(line: str | bytes) -> FixEvent | None:
    """Turn one gpsd JSON report into an event.

    Args:
        line: One line of gpsd output

    Returns:
        Fix for TPV, SatelliteCount for SKY, SourceVersion for VERSION, or
        None for other report classes and malformed lines
    """
    try:
        report = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug(f"Skipping malformed gpsd line: {e}")
        return None
    if not isinstance(report, dict):
        return None

    try:
        report_class = report.get("class")
        if report_class == "TPV":
            return _parse_tpv(report)
        if report_class == "SKY":
            return _parse_sky(report)
        if report_class == "VERSION":
            return _parse_version(report)
    except (TypeError, ValueError) as e:
        logger.debug(f"Skipping unusable {report.get('class')} report: {e}")
    return None


class GpsdFixSource(FixSource):
    """Fix source for a gpsd daemon.

    Connects over TCP, enables JSON watch mode and turns reports into events.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 2947) -> None:
        """Initialize the gpsd source.

        Args:
            host: gpsd host address
            port: gpsd TCP port
        """
        self._host = host
        self._port = port
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    async def connect(self) -> None:
        """Connect to gpsd and enable watch mode.

        Raises:
            ConnectionError: If gpsd cannot be reached
        """
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self._host, self._port
            )
            self._writer.write(WATCH_COMMAND)
            await self._writer.drain()
        except OSError as e:
            await self.disconnect()
            raise ConnectionError(
                f"Failed to connect to gpsd at {self._host}:{self._port}: {e}"
            ) from e

        logger.info(f"Connected to gpsd at {self._host}:{self._port}")

    async def disconnect(self) -> None:
        """Close the gpsd connection."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing gpsd connection: {e}")
        logger.info("Disconnected from gpsd")

    async def events(self) -> AsyncIterator[FixEvent]:
        """Stream events from gpsd.

        Yields:
            Fix, SatelliteCount or SourceVersion events

        Raises:
            ConnectionError: When gpsd closes the connection or sends a line
                longer than the stream buffer
        """
        reader = self._reader
        if reader is None:
            raise ConnectionError("Not connected to gpsd")

        while True:
            try:
                line = await reader.readline()
            except ValueError as e:
                # Buffer state is unknown after an overrun, so start over
                raise ConnectionError(f"Unreadable line from gpsd: {e}") from e
            if not line:
                raise ConnectionError("gpsd closed the connection")
            event = parse_report(line)
            if event is not None:
                yield event

    @property
    def is_connected(self) -> bool:
        """Check if the source is currently connected."""
        return self._writer is not None

    @property
    def address(self) -> tuple[str, int]:
        """Get the gpsd (host, port)."""
        return self._host, self._port
