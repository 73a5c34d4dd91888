"""Tests for the UDP transmitter."""

import socket
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from gpsbridge.core.transmitter import Transmitter


@pytest.fixture
def receiver() -> Iterator[socket.socket]:
    """Create a UDP socket bound to a free local port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


class TestTransmitter:
    """Tests for Transmitter class."""

    def test_send_delivers_datagram(self, receiver: socket.socket) -> None:
        """Test that an opened transmitter delivers bytes unchanged."""
        port = receiver.getsockname()[1]
        transmitter = Transmitter(host="127.0.0.1", port=port)
        transmitter.open()
        try:
            assert transmitter.send(b"\x00\x05payload")
            data, _ = receiver.recvfrom(1024)
        finally:
            transmitter.close()

        assert data == b"\x00\x05payload"

    def test_datagrams_arrive_in_send_order(self, receiver: socket.socket) -> None:
        """Test that consecutive sends arrive in order on loopback."""
        port = receiver.getsockname()[1]
        transmitter = Transmitter(host="127.0.0.1", port=port)
        transmitter.open()
        try:
            for i in range(3):
                transmitter.send(bytes([i]))
            received = [receiver.recvfrom(16)[0] for _ in range(3)]
        finally:
            transmitter.close()

        assert received == [b"\x00", b"\x01", b"\x02"]

    def test_send_before_open_returns_false(self) -> None:
        """Test that sending without a socket fails softly."""
        transmitter = Transmitter(host="127.0.0.1", port=5000)
        assert not transmitter.is_open
        assert transmitter.send(b"data") is False

    def test_send_failure_is_swallowed(self, receiver: socket.socket) -> None:
        """Test that socket errors on send are logged, not raised."""
        transmitter = Transmitter(host="127.0.0.1", port=receiver.getsockname()[1])
        transmitter.open()
        transmitter.close()

        failing = MagicMock()
        failing.send.side_effect = OSError("Network is unreachable")
        transmitter._socket = failing

        assert transmitter.send(b"data") is False
        failing.send.assert_called_once_with(b"data")

    def test_open_failure_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that failing to resolve the destination is fatal."""

        def fail_lookup(*args, **kwargs):
            raise socket.gaierror("Name or service not known")

        monkeypatch.setattr(socket, "getaddrinfo", fail_lookup)
        transmitter = Transmitter(host="tracker.invalid", port=5000)

        with pytest.raises(OSError):
            transmitter.open()
        assert not transmitter.is_open

    def test_close_is_idempotent(self, receiver: socket.socket) -> None:
        """Test that closing twice is harmless."""
        transmitter = Transmitter(host="127.0.0.1", port=receiver.getsockname()[1])
        transmitter.open()
        assert transmitter.is_open

        transmitter.close()
        transmitter.close()
        assert not transmitter.is_open

    def test_destination_property(self) -> None:
        """Test destination property."""
        transmitter = Transmitter(host="10.0.0.5", port=6000)
        assert transmitter.destination == ("10.0.0.5", 6000)
