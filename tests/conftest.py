"""Shared test fixtures for pytest."""

import os
from datetime import datetime, timezone

import pytest

from gpsbridge.config import Config
from gpsbridge.core.throttle import ThrottlePolicy, ThrottleState
from gpsbridge.interfaces.fix_source import Fix
from tests.mocks import MockFixSource, RecordingTransmitter

requires_fifo = pytest.mark.skipif(
    not hasattr(os, "mkfifo"), reason="named pipes need a POSIX platform"
)


def make_fix(
    latitude: float | None = 50.0,
    longitude: float | None = 14.0,
    mode: int = 3,
    **kwargs,
) -> Fix:
    """Create a Fix with usable defaults."""
    return Fix(latitude=latitude, longitude=longitude, mode=mode, **kwargs)


@pytest.fixture
def fix() -> Fix:
    """Create a fully populated 3-D fix."""
    return Fix(
        timestamp=datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc),
        latitude=50.0,
        longitude=14.0,
        altitude=230.0,
        speed_knots=12.5,
        track_degrees=87.5,
        mode=3,
    )


@pytest.fixture
def throttle_state() -> ThrottleState:
    """Create an empty ThrottleState."""
    return ThrottleState()


@pytest.fixture
def policy() -> ThrottlePolicy:
    """Create a policy with 5s interval, 60s max interval and 10m distance."""
    return ThrottlePolicy(
        interval_seconds=5.0, max_interval_seconds=60.0, min_distance_meters=10.0
    )


@pytest.fixture
def mock_source() -> MockFixSource:
    """Create a MockFixSource with no sessions."""
    return MockFixSource()


@pytest.fixture
def recording_transmitter() -> RecordingTransmitter:
    """Create a RecordingTransmitter."""
    return RecordingTransmitter()


@pytest.fixture
def default_config() -> Config:
    """Create default configuration."""
    return Config.default()
