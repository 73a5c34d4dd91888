"""Main TrackingBridge orchestrator."""

import asyncio
import logging
import signal
import time
from collections.abc import Callable
from contextlib import aclosing

from gpsbridge.config import Config
from gpsbridge.core.encoder import encode
from gpsbridge.core.position_query import PositionQueryResponder
from gpsbridge.core.reconnect import stream_with_reconnect
from gpsbridge.core.rendezvous import RendezvousWorker
from gpsbridge.core.throttle import ThrottlePolicy, ThrottleResult, ThrottleState
from gpsbridge.core.transmitter import Transmitter
from gpsbridge.interfaces.fix_source import (
    Fix,
    FixEvent,
    FixSource,
    SatelliteCount,
    SourceVersion,
)
from gpsbridge.source.gpsd_source import GpsdFixSource

logger = logging.getLogger(__name__)


class TrackingBridge:
    """Main bridge forwarding throttled fixes to the tracking endpoint.

    The TrackingBridge coordinates:
    - Fix source with reconnect supervision
    - Throttle policy and the shared last-accepted-fix state
    - Message encoding and UDP transmission
    - On-demand position queries through the rendezvous worker

    All events are handled one at a time on the event loop, so accepted
    fixes are transmitted in acceptance order.
    """

    def __init__(
        self,
        config: Config | None = None,
        source: FixSource | None = None,
        transmitter: Transmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the bridge.

        Args:
            config: Bridge configuration (default if not provided)
            source: Custom fix source (creates GpsdFixSource if not provided)
            transmitter: Custom transmitter (created from config if not provided)
            clock: Monotonic clock used for throttling
        """
        self._config = config or Config.default()
        self._config.validate()
        self._clock = clock
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signal_installed = False
        self._stopped = asyncio.Event()

        self._satellites_used = 0
        self._reports_sent = 0

        self._setup_components()
        self._setup_source(source)
        self._setup_transmitter(transmitter)

    def _setup_components(self) -> None:
        """Initialize throttling and position query components."""
        reporting = self._config.reporting
        self._state = ThrottleState()
        self._policy = ThrottlePolicy(
            interval_seconds=reporting.interval_seconds,
            max_interval_seconds=reporting.max_interval_seconds,
            min_distance_meters=reporting.min_distance_meters,
        )
        self._responder = PositionQueryResponder(self._state)

        query = self._config.position_query
        self._rendezvous: RendezvousWorker | None = None
        if query.fifo_path:
            self._rendezvous = RendezvousWorker(
                path=query.fifo_path,
                request_rendering=self._request_rendering,
                reopen_delay_seconds=query.reopen_delay_seconds,
            )

    def _setup_source(self, source: FixSource | None) -> None:
        """Initialize the fix source.

        Args:
            source: Custom source or None to create the default GpsdFixSource
        """
        if source is not None:
            self._source = source
        else:
            self._source = GpsdFixSource(
                host=self._config.gpsd.host, port=self._config.gpsd.port
            )

    def _setup_transmitter(self, transmitter: Transmitter | None) -> None:
        """Initialize the transmitter.

        Args:
            transmitter: Custom transmitter or None to create one from config
        """
        if transmitter is not None:
            self._transmitter = transmitter
        else:
            self._transmitter = Transmitter(
                host=self._config.destination.host,
                port=self._config.destination.port,
            )

    async def start(self) -> None:
        """Open outputs and process fix events until stopped.

        Raises:
            OSError: If the socket or the rendezvous FIFO cannot be created
        """
        logger.info("Starting GPS tracking bridge...")

        try:
            self._loop = asyncio.get_running_loop()
            self._stopped.clear()
            self._transmitter.open()
            if self._rendezvous is not None:
                self._rendezvous.start()
                self._install_trigger_signal()
            self._running = True

            logger.info("Bridge started. Waiting for fixes...")

            events = stream_with_reconnect(
                self._source,
                delay_seconds=self._config.gpsd.reconnect_delay_seconds,
                stopped=self._stopped,
            )
            async with aclosing(events):
                async for event in events:
                    if not self._running:
                        break
                    try:
                        self.handle_event(event)
                    except Exception as e:
                        logger.error(f"Error handling GPS event: {e}")

        except Exception as e:
            logger.error(f"Bridge error: {e}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the bridge and release its resources.

        A running start() returns once the source is disconnected; no further
        reconnect is attempted.
        """
        if not self._running and not self._transmitter.is_open:
            return

        logger.info("Stopping bridge...")
        self._running = False
        self._stopped.set()

        self._remove_trigger_signal()
        if self._rendezvous is not None and self._rendezvous.is_running:
            # Joining blocks; keep the loop free to answer a pending render
            await asyncio.to_thread(self._rendezvous.stop)

        await self._source.disconnect()
        self._transmitter.close()
        logger.info("Bridge stopped")

    def handle_event(self, event: FixEvent) -> ThrottleResult | None:
        """Handle one event from the fix source.

        Args:
            event: Fix, satellite count or source version

        Returns:
            The throttle decision for fixes, None for other events
        """
        if isinstance(event, SatelliteCount):
            self._satellites_used = event.satellites_used
            logger.debug(f"Satellites used: {event.satellites_used}")
            return None

        if isinstance(event, SourceVersion):
            logger.info(
                f"GPS source version {event.release} "
                f"(protocol {event.proto_major}.{event.proto_minor})"
            )
            return None

        return self.handle_fix(event)

    def handle_fix(self, fix: Fix, now: float | None = None) -> ThrottleResult:
        """Throttle, encode and transmit one fix.

        Args:
            fix: Candidate fix
            now: Monotonic time of arrival (defaults to the bridge clock)

        Returns:
            The throttle decision, turned into a rejection when the fix
            cannot be encoded; unencodable fixes leave the state untouched
        """
        if now is None:
            now = self._clock()

        result = self._policy.decide(self._state, fix, now)
        if not result.accepted:
            logger.debug(f"Rejected fix: {result.reason}")
            return result

        # A fix that cannot be encoded is never reported, so it must not
        # become the last accepted fix either
        try:
            data = encode(fix, self._satellites_used, self._config.reporting.device_id)
        except ValueError as e:
            logger.warning(f"Failed to encode fix: {e}")
            return ThrottleResult(accepted=False, reason=f"unencodable fix: {e}")

        self._state.record(fix, now)

        if self._transmitter.send(data):
            self._reports_sent += 1
        logger.debug(
            f"Accepted fix ({result.reason}): {fix.latitude}, {fix.longitude}"
        )
        return result

    def request_position(self) -> bool:
        """Trigger one position query cycle.

        Returns:
            True if a cycle was queued
        """
        if self._rendezvous is None:
            logger.warning("Position query requested but no FIFO is configured")
            return False
        return self._rendezvous.trigger()

    def render_position(self) -> str:
        """Render the last accepted fix as text."""
        return self._responder.render()

    async def _render_position_async(self) -> str:
        return self._responder.render()

    def _request_rendering(self) -> str:
        """Ask the event loop for the current rendering.

        Called from the rendezvous worker thread; blocks on the reply.
        """
        if self._loop is None:
            raise RuntimeError("Bridge event loop is not running")
        future = asyncio.run_coroutine_threadsafe(
            self._render_position_async(), self._loop
        )
        return future.result()

    def _install_trigger_signal(self) -> None:
        """Route SIGUSR1 to request_position where the platform allows it."""
        sigusr1 = getattr(signal, "SIGUSR1", None)
        if sigusr1 is None or self._loop is None:
            logger.warning("SIGUSR1 not available, position queries need request_position()")
            return
        try:
            self._loop.add_signal_handler(sigusr1, self.request_position)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.warning(f"Cannot install SIGUSR1 handler: {e}")
            return
        self._signal_installed = True
        logger.info("Send SIGUSR1 to write the current position to the FIFO")

    def _remove_trigger_signal(self) -> None:
        if self._signal_installed and self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGUSR1)
        self._signal_installed = False

    @property
    def state(self) -> ThrottleState:
        """Get the last accepted fix state."""
        return self._state

    @property
    def rendezvous(self) -> RendezvousWorker | None:
        """Get the rendezvous worker, if position queries are enabled."""
        return self._rendezvous

    @property
    def satellites_used(self) -> int:
        """Get the latest satellite count."""
        return self._satellites_used

    @property
    def reports_sent(self) -> int:
        """Get the number of datagrams sent."""
        return self._reports_sent

    @property
    def is_running(self) -> bool:
        """Check if the bridge is running."""
        return self._running
