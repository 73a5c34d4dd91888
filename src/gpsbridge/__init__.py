"""gpsbridge - forwards throttled gpsd fixes to a UDP tracking endpoint."""

__version__ = "0.1.0"
