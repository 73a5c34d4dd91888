"""Human-readable rendering of the last accepted position."""

import logging

from gpsbridge.core.throttle import ThrottleState
from gpsbridge.interfaces.fix_source import Fix

logger = logging.getLogger(__name__)


def format_fix(fix: Fix) -> str:
    """Format a fix as text, e.g. "50.087451N 14.421254E 235.0m".

    Altitude is omitted when the fix has none.
    """
    lat_hemisphere = "N" if fix.latitude >= 0 else "S"
    lon_hemisphere = "E" if fix.longitude >= 0 else "W"
    text = (
        f"{abs(fix.latitude):.6f}{lat_hemisphere} "
        f"{abs(fix.longitude):.6f}{lon_hemisphere}"
    )
    if fix.altitude is not None:
        text += f" {fix.altitude:.1f}m"
    return text


class PositionQueryResponder:
    """Renders the most recently accepted fix on demand."""

    def __init__(self, state: ThrottleState) -> None:
        self._state = state

    def render(self) -> str:
        """Render the last accepted fix.

        Returns:
            Formatted position, or an empty string if nothing was accepted
            yet or formatting failed
        """
        fix = self._state.last_fix
        if fix is None:
            return ""
        try:
            return format_fix(fix)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to render position: {e}")
            return ""
