"""Configuration loading from YAML files."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, TypeVar

import yaml

from gpsbridge.core.encoder import DEVICE_ID_LENGTH

T = TypeVar("T")


def _dataclass_from_dict(cls: type[T], data: dict[str, Any]) -> T:
    """Create a dataclass instance from a dictionary.

    Uses dataclass field introspection to map dict keys to fields, using
    field defaults when keys are missing. Unknown keys are ignored.

    Args:
        cls: The dataclass type to instantiate
        data: Dictionary with field values

    Returns:
        Instance of the dataclass with values from dict (or defaults)
    """
    kwargs = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = data[f.name]
    return cls(**kwargs)


def _dataclass_to_dict(obj: Any) -> dict[str, Any]:
    """Convert a dataclass instance to a dictionary, recursing into nested ones."""
    result = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if hasattr(value, "__dataclass_fields__"):
            result[f.name] = _dataclass_to_dict(value)
        else:
            result[f.name] = value
    return result


def _check_port(name: str, port: int) -> None:
    if not 1 <= port <= 65535:
        raise ValueError(f"{name} must be between 1 and 65535, got {port}")


@dataclass
class GpsdConfig:
    """gpsd connection configuration."""

    host: str = "127.0.0.1"
    port: int = 2947
    reconnect_delay_seconds: float = 30.0


@dataclass
class ReportingConfig:
    """Throttling and identity of outgoing reports."""

    interval_seconds: float = 5.0  # Minimum time between reports
    max_interval_seconds: float = 60.0  # Report at least this often
    min_distance_meters: float = 10.0  # Movement needed for an early report
    device_id: str = "gpsbridge"  # At most 22 bytes in UTF-8


@dataclass
class DestinationConfig:
    """Tracking endpoint address."""

    host: str = "127.0.0.1"
    port: int = 5000


@dataclass
class PositionQueryConfig:
    """On-demand position query configuration."""

    fifo_path: str | None = None  # None disables position queries
    reopen_delay_seconds: float = 1.0


@dataclass
class Config:
    """Main configuration container."""

    gpsd: GpsdConfig = field(default_factory=GpsdConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    destination: DestinationConfig = field(default_factory=DestinationConfig)
    position_query: PositionQueryConfig = field(default_factory=PositionQueryConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance
        """
        return cls(
            gpsd=_dataclass_from_dict(GpsdConfig, data.get("gpsd") or {}),
            reporting=_dataclass_from_dict(ReportingConfig, data.get("reporting") or {}),
            destination=_dataclass_from_dict(
                DestinationConfig, data.get("destination") or {}
            ),
            position_query=_dataclass_from_dict(
                PositionQueryConfig, data.get("position_query") or {}
            ),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "Config":
        """Create default configuration.

        Returns:
            Config instance with default values
        """
        return cls()

    def validate(self) -> None:
        """Check values the bridge cannot run with.

        Raises:
            ValueError: If a value is out of range
        """
        reporting = self.reporting
        device_id_bytes = len(reporting.device_id.encode("utf-8"))
        if device_id_bytes > DEVICE_ID_LENGTH:
            raise ValueError(
                f"reporting.device_id must be at most {DEVICE_ID_LENGTH} bytes, "
                f"got {device_id_bytes}"
            )
        if reporting.interval_seconds < 0:
            raise ValueError("reporting.interval_seconds cannot be negative")
        if reporting.max_interval_seconds < 0:
            raise ValueError("reporting.max_interval_seconds cannot be negative")
        if reporting.min_distance_meters < 0:
            raise ValueError("reporting.min_distance_meters cannot be negative")

        _check_port("gpsd.port", self.gpsd.port)
        _check_port("destination.port", self.destination.port)
        if self.gpsd.reconnect_delay_seconds <= 0:
            raise ValueError("gpsd.reconnect_delay_seconds must be positive")
        if self.position_query.reopen_delay_seconds < 0:
            raise ValueError("position_query.reopen_delay_seconds cannot be negative")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Configuration as dictionary
        """
        return _dataclass_to_dict(self)

    def save_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file.

        Args:
            path: Path to save configuration
        """
        path = Path(path)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)
