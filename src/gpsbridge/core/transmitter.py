"""UDP transmitter for encoded tracking messages."""

import logging
import socket

logger = logging.getLogger(__name__)


class Transmitter:
    """Owns the outbound datagram socket.

    The socket is created once by open() and lives for the process lifetime.
    Sending is fire-and-forget: failures are logged and dropped, with no
    retry or queueing.
    """

    def __init__(self, host: str, port: int) -> None:
        """Initialize the transmitter.

        Args:
            host: Tracking endpoint host name or address
            port: Tracking endpoint UDP port
        """
        self._host = host
        self._port = port
        self._socket: socket.socket | None = None

    def open(self) -> None:
        """Create the socket and bind it to the destination.

        Raises:
            OSError: If the destination cannot be resolved or the socket
                cannot be created
        """
        family, sock_type, proto, _, address = socket.getaddrinfo(
            self._host, self._port, type=socket.SOCK_DGRAM
        )[0]
        sock = socket.socket(family, sock_type, proto)
        try:
            sock.connect(address)
        except OSError:
            sock.close()
            raise
        self._socket = sock
        logger.info(f"Transmitting to {self._host}:{self._port} over UDP")

    def close(self) -> None:
        """Close the socket."""
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def send(self, data: bytes) -> bool:
        """Send one datagram.

        Args:
            data: Encoded message

        Returns:
            True if the datagram was handed to the network stack
        """
        if self._socket is None:
            logger.error("Cannot send datagram: transmitter not open")
            return False

        try:
            self._socket.send(data)
        except OSError as e:
            logger.warning(f"Failed to send datagram to {self._host}:{self._port}: {e}")
            return False

        logger.debug(f"Sent {len(data)} bytes to {self._host}:{self._port}")
        return True

    @property
    def is_open(self) -> bool:
        """Check if the socket is open."""
        return self._socket is not None

    @property
    def destination(self) -> tuple[str, int]:
        """Get the configured (host, port)."""
        return self._host, self._port
