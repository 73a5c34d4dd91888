"""Fix source interface - typed GPS events and the abstract producer."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Union

# Lowest gpsd mode that carries a usable 2-D or 3-D position
MIN_USABLE_MODE = 2


@dataclass(frozen=True)
class Fix:
    """A single GPS reading.

    Attributes:
        timestamp: Fix time in UTC (optional)
        latitude: Latitude in decimal degrees (optional, fix unusable without it)
        longitude: Longitude in decimal degrees (optional, fix unusable without it)
        altitude: Altitude in meters (optional)
        speed_knots: Speed over ground in knots (optional)
        track_degrees: Course over ground in degrees (optional)
        mode: gpsd fix mode - 0 no fix, 1 insufficient, 2+ usable 2-D/3-D
    """

    timestamp: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    speed_knots: float | None = None
    track_degrees: float | None = None
    mode: int = 0

    @property
    def is_actionable(self) -> bool:
        """Check if the fix carries a usable position."""
        return (
            self.mode >= MIN_USABLE_MODE
            and self.latitude is not None
            and self.longitude is not None
        )


@dataclass(frozen=True)
class SatelliteCount:
    """Number of satellites used in the current solution."""

    satellites_used: int

    def __post_init__(self) -> None:
        """Validate satellite count."""
        if self.satellites_used < 0:
            raise ValueError(
                f"satellites_used cannot be negative, got {self.satellites_used}"
            )


@dataclass(frozen=True)
class SourceVersion:
    """Version information announced by the GPS source."""

    release: str
    proto_major: int = 0
    proto_minor: int = 0


FixEvent = Union[Fix, SatelliteCount, SourceVersion]


class FixSource(ABC):
    """Abstract base class for GPS event producers.

    A source is connected once, streams events until the upstream goes away,
    and can then be connected again. Reconnect policy lives outside the source.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect and subscribe to the upstream GPS service.

        Raises:
            ConnectionError: If the service cannot be reached
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the upstream connection."""

    @abstractmethod
    def events(self) -> AsyncIterator[FixEvent]:
        """Stream events from the upstream service.

        Yields:
            Fix, SatelliteCount or SourceVersion events

        Raises:
            ConnectionError: When the upstream stream terminates
        """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the source is currently connected."""
