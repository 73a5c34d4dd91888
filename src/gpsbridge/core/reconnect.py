"""Reconnect supervision around a fix source."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from gpsbridge.interfaces.fix_source import FixEvent, FixSource

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_SECONDS = 30.0


async def _pause(
    delay_seconds: float,
    sleep: Callable[[float], Awaitable[None]],
    stopped: asyncio.Event | None,
) -> None:
    """Sleep for the reconnect delay, returning early once stopped is set."""
    if stopped is None:
        await sleep(delay_seconds)
        return

    pause = asyncio.ensure_future(sleep(delay_seconds))
    wake = asyncio.ensure_future(stopped.wait())
    try:
        await asyncio.wait({pause, wake}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pause.cancel()
        wake.cancel()


async def stream_with_reconnect(
    source: FixSource,
    delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    stopped: asyncio.Event | None = None,
) -> AsyncIterator[FixEvent]:
    """Stream events from a source, reconnecting after failures.

    Every time the stream ends, cleanly or with a connection error, the
    source is disconnected and connected again after a fixed delay. This is
    the only retry in the bridge.

    Args:
        source: The fix source to supervise
        delay_seconds: Wait between a stream failure and the next connect
        sleep: Awaitable sleep, replaceable in tests
        stopped: When set, no further connect is attempted and the stream
            ends once the current session does (None streams forever)

    Yields:
        Events from the source, across reconnects
    """
    while stopped is None or not stopped.is_set():
        try:
            await source.connect()
            if stopped is not None and stopped.is_set():
                break
            async for event in source.events():
                yield event
            logger.warning("GPS source stream ended")
        except (ConnectionError, OSError) as e:
            if stopped is not None and stopped.is_set():
                logger.debug(f"GPS source closed on shutdown: {e}")
            else:
                logger.warning(f"GPS source failed: {e}")
        finally:
            await source.disconnect()

        if stopped is not None and stopped.is_set():
            break
        logger.info(f"Reconnecting to GPS source in {delay_seconds:g}s")
        await _pause(delay_seconds, sleep, stopped)

    logger.debug("GPS source supervision stopped")
