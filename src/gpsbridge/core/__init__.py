"""Core module - Throttling, encoding, transmission and position queries."""

from gpsbridge.core.encoder import DecodedMessage, decode, encode
from gpsbridge.core.position_query import PositionQueryResponder
from gpsbridge.core.reconnect import stream_with_reconnect
from gpsbridge.core.rendezvous import RendezvousWorker, ensure_fifo
from gpsbridge.core.throttle import ThrottlePolicy, ThrottleResult, ThrottleState
from gpsbridge.core.transmitter import Transmitter

__all__ = [
    "DecodedMessage",
    "PositionQueryResponder",
    "RendezvousWorker",
    "ThrottlePolicy",
    "ThrottleResult",
    "ThrottleState",
    "Transmitter",
    "decode",
    "encode",
    "ensure_fifo",
    "stream_with_reconnect",
]
