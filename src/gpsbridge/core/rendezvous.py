"""Rendezvous file worker handing the current position to an external reader.

The rendezvous file is a named pipe (FIFO). Opening it for writing blocks
until a reader attaches, for as long as that takes, so the open/write/close
cycle runs on its own thread and never on the ingestion loop.

The worker talks to the rest of the bridge through single-slot channels:

- a trigger channel (one pending request at most, extra triggers coalesce)
- a request/reply pair, wrapped by the request_rendering callable, that asks
  the primary context for the text to write
- a ready event, set whenever the worker can take another trigger
"""

import logging
import os
import queue
import stat
import threading
import time
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

FIFO_MODE = 0o644


def ensure_fifo(path: str | Path) -> Path:
    """Create the rendezvous FIFO if it does not exist.

    Args:
        path: Filesystem path of the FIFO

    Returns:
        The path as a Path

    Raises:
        FileExistsError: If the path exists and is not a FIFO
        OSError: If the FIFO cannot be created
    """
    path = Path(path)
    if path.exists():
        if not stat.S_ISFIFO(path.stat().st_mode):
            raise FileExistsError(f"Rendezvous path exists and is not a FIFO: {path}")
        logger.debug(f"Reusing existing FIFO {path}")
        return path

    os.mkfifo(path, FIFO_MODE)
    logger.info(f"Created rendezvous FIFO {path}")
    return path


class RendezvousWorker:
    """Writes one line of position text to a FIFO per trigger.

    Each cycle: ask for the text, open the FIFO (blocks until a reader
    attaches), write one line, close, signal ready, then pause before taking
    the next trigger so a missing reader cannot cause a tight loop.
    """

    # Trigger channel payloads
    _REQUEST = True
    _WAKE = False

    RELEASE_POLL_SECONDS = 0.1

    def __init__(
        self,
        path: str | Path,
        request_rendering: Callable[[], str],
        reopen_delay_seconds: float = 1.0,
    ) -> None:
        """Initialize the worker.

        Args:
            path: Filesystem path of the FIFO
            request_rendering: Returns the text to write; may block while the
                primary context renders it
            reopen_delay_seconds: Pause after each cycle
        """
        self._path = Path(path)
        self._request_rendering = request_rendering
        self._reopen_delay = reopen_delay_seconds

        self._triggers: queue.Queue[bool] = queue.Queue(maxsize=1)
        self._ready = threading.Event()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None
        self._cycles_completed = 0

    def start(self) -> None:
        """Create the FIFO if needed and start the worker thread.

        Raises:
            FileExistsError: If the path exists and is not a FIFO
            OSError: If the FIFO cannot be created
        """
        ensure_fifo(self._path)
        self._stopping.clear()
        self._ready.set()
        self._thread = threading.Thread(
            target=self._run, name="gpsbridge-rendezvous", daemon=True
        )
        self._thread.start()
        logger.info(f"Position query worker started on {self._path}")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the worker thread.

        A writer blocked in open() is released by briefly attaching a reader.

        Args:
            timeout: Seconds to wait for the thread to finish
        """
        if self._thread is None:
            return

        self._stopping.set()
        try:
            self._triggers.put_nowait(self._WAKE)
        except queue.Full:
            pass

        # The writer may reach open() after a first release, so keep attaching
        deadline = time.monotonic() + timeout
        while self._thread.is_alive() and time.monotonic() < deadline:
            self._release_blocked_writer()
            self._thread.join(self.RELEASE_POLL_SECONDS)

        if self._thread.is_alive():
            logger.warning("Position query worker did not stop in time")
        self._thread = None
        logger.info("Position query worker stopped")

    def trigger(self) -> bool:
        """Request one rendering cycle.

        Returns:
            True if the request was queued, False if one was already pending
        """
        try:
            self._triggers.put_nowait(self._REQUEST)
        except queue.Full:
            logger.debug("Position request already pending, coalescing trigger")
            return False
        return True

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the worker can take another trigger.

        Returns:
            True if the worker is ready, False on timeout
        """
        return self._ready.wait(timeout)

    def _run(self) -> None:
        while not self._stopping.is_set():
            request = self._triggers.get()
            if self._stopping.is_set() or request is not self._REQUEST:
                continue

            self._ready.clear()
            text = self._render()
            self._write_line(text)
            self._cycles_completed += 1
            self._ready.set()

            self._stopping.wait(self._reopen_delay)

    def _render(self) -> str:
        try:
            return self._request_rendering()
        except Exception as e:
            logger.warning(f"Position rendering request failed: {e}")
            return ""

    def _write_line(self, text: str) -> None:
        try:
            with open(self._path, "w", encoding="utf-8") as fifo:
                fifo.write(text + "\n")
        except BrokenPipeError:
            if self._stopping.is_set():
                logger.debug("Rendezvous write interrupted by shutdown")
            else:
                logger.warning("Reader detached before the position was written")
            return
        except OSError as e:
            logger.warning(f"Failed to write position to {self._path}: {e}")
            return
        logger.debug(f"Wrote position to {self._path}: {text!r}")

    def _release_blocked_writer(self) -> None:
        try:
            fd = os.open(self._path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as e:
            logger.debug(f"Could not attach to {self._path} during shutdown: {e}")
            return
        os.close(fd)

    @property
    def path(self) -> Path:
        """Get the FIFO path."""
        return self._path

    @property
    def is_running(self) -> bool:
        """Check if the worker thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def cycles_completed(self) -> int:
        """Get the number of completed write cycles."""
        return self._cycles_completed
