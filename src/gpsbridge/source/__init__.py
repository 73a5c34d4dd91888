"""Source module - Fix source implementations."""

from gpsbridge.interfaces.fix_source import FixSource
from gpsbridge.source.gpsd_source import GpsdFixSource

__all__ = [
    "FixSource",
    "GpsdFixSource",
]
