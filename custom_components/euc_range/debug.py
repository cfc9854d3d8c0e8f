"""Runtime debug switch for the EUC Range integration.

Per-sample tracing is noisy at 2 Hz, so it is only emitted while the
``debug_log`` option is on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .range_types import BatterySample

_LOGGER_NAMESPACE = "custom_components.euc_range"
_TRACE_LOGGER = logging.getLogger(f"{_LOGGER_NAMESPACE}.trace")
_debug_enabled = False


def set_debug_enabled(value: bool) -> None:
    """Flip the integration logger between DEBUG and INFO."""
    global _debug_enabled
    _debug_enabled = bool(value)
    logging.getLogger(_LOGGER_NAMESPACE).setLevel(
        logging.DEBUG if _debug_enabled else logging.INFO
    )


def debug_enabled() -> bool:
    return _debug_enabled


def trace_sample(sample: BatterySample, appended: bool) -> None:
    """Log one processed sample when debug logging is on."""
    if not _debug_enabled:
        return
    _TRACE_LOGGER.debug(
        "t=%.1f V=%.2f Vc=%.2f soc=%.1f km=%.3f v=%.1f P=%.0f flags=%s%s",
        sample.timestamp,
        sample.voltage,
        sample.compensated_voltage,
        sample.battery_percent,
        sample.distance_km,
        sample.speed_kmh,
        sample.power_w,
        ",".join(sorted(flag.value for flag in sample.flags)) or "-",
        "" if appended else " (dropped)",
    )
