"""Interfaces module - Abstract base classes and event dataclasses."""

from gpsbridge.interfaces.fix_source import (
    Fix,
    FixEvent,
    FixSource,
    SatelliteCount,
    SourceVersion,
)

__all__ = [
    "Fix",
    "FixEvent",
    "FixSource",
    "SatelliteCount",
    "SourceVersion",
]
