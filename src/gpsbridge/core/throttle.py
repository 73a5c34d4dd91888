"""Throttle policy deciding which fixes are worth reporting."""

import threading
from typing import NamedTuple

from gpsbridge.core.geodesy import haversine_distance
from gpsbridge.interfaces.fix_source import Fix


class ThrottleResult(NamedTuple):
    """Result of a throttle decision.

    Attributes:
        accepted: Whether the fix should be reported
        reason: Short explanation, used in debug logging
    """

    accepted: bool
    reason: str = ""


class ThrottleState:
    """The most recently accepted fix and when it was accepted.

    Written by the ingestion loop after an accept decision and read by the
    position query path, possibly from another thread. Both fields change
    together under a lock so readers never observe a half-updated pair.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_fix: Fix | None = None
        self._last_accepted_at: float | None = None

    def record(self, fix: Fix, now: float) -> None:
        """Store an accepted fix.

        Args:
            fix: The fix that was accepted
            now: Acceptance time in monotonic seconds
        """
        with self._lock:
            self._last_fix = fix
            self._last_accepted_at = now

    def snapshot(self) -> tuple[Fix | None, float | None]:
        """Get a consistent (last_fix, last_accepted_at) pair."""
        with self._lock:
            return self._last_fix, self._last_accepted_at

    @property
    def last_fix(self) -> Fix | None:
        """Get the most recently accepted fix."""
        return self.snapshot()[0]

    @property
    def last_accepted_at(self) -> float | None:
        """Get the acceptance time of the most recent fix."""
        return self.snapshot()[1]


class ThrottlePolicy:
    """Gates fixes by elapsed time and distance moved.

    - A fix is always accepted when nothing was accepted before or when
      max_interval_seconds have passed (heartbeat while stationary)
    - Within interval_seconds of the last acceptance every fix is rejected
    - Between the two, a fix is accepted only if it moved at least
      min_distance_meters from the last accepted fix
    """

    def __init__(
        self,
        interval_seconds: float,
        max_interval_seconds: float,
        min_distance_meters: float,
    ) -> None:
        """Initialize the throttle policy.

        Args:
            interval_seconds: Minimum time between reports
            max_interval_seconds: Force a report at least this often
            min_distance_meters: Minimum movement to justify an early report
        """
        if interval_seconds < 0:
            raise ValueError(f"interval_seconds cannot be negative, got {interval_seconds}")
        if max_interval_seconds < 0:
            raise ValueError(
                f"max_interval_seconds cannot be negative, got {max_interval_seconds}"
            )
        if min_distance_meters < 0:
            raise ValueError(
                f"min_distance_meters cannot be negative, got {min_distance_meters}"
            )
        self._interval = interval_seconds
        self._max_interval = max_interval_seconds
        self._min_distance = min_distance_meters

    def decide(self, state: ThrottleState, candidate: Fix, now: float) -> ThrottleResult:
        """Decide whether a candidate fix should be reported.

        Does not modify the state; the caller records accepted fixes.

        Args:
            state: Last accepted fix and its acceptance time
            candidate: The new fix
            now: Current time in monotonic seconds

        Returns:
            ThrottleResult with the decision and its reason
        """
        if not candidate.is_actionable:
            return ThrottleResult(accepted=False, reason="unusable fix")

        last_fix, last_accepted_at = state.snapshot()
        if last_fix is None or last_accepted_at is None:
            return ThrottleResult(accepted=True, reason="first fix")

        elapsed = now - last_accepted_at
        if elapsed >= self._max_interval:
            return ThrottleResult(accepted=True, reason="max interval elapsed")

        if elapsed < self._interval:
            return ThrottleResult(accepted=False, reason="within interval")

        distance = haversine_distance(
            last_fix.latitude,
            last_fix.longitude,
            candidate.latitude,
            candidate.longitude,
        )
        if distance < self._min_distance:
            return ThrottleResult(
                accepted=False, reason=f"moved {distance:.1f}m, below minimum"
            )

        return ThrottleResult(accepted=True, reason=f"moved {distance:.1f}m")

    @property
    def interval_seconds(self) -> float:
        """Get the minimum time between reports."""
        return self._interval

    @property
    def max_interval_seconds(self) -> float:
        """Get the heartbeat interval."""
        return self._max_interval

    @property
    def min_distance_meters(self) -> float:
        """Get the minimum movement distance."""
        return self._min_distance
