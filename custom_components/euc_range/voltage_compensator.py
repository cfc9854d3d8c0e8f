"""Load-aware voltage smoothing.

Raw pack voltage sags under load, which would make the discharge curve
report phantom energy loss. The compensator blends each raw reading into
a running value with a weight that shrinks as power draw rises, so sag
under hard acceleration barely moves the estimate while readings taken
at light load track the true resting voltage quickly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompensatorConfig:
    """Tuning for the compensator."""

    alpha: float = 0.3
    low_power_threshold_w: float = 500.0
    high_power_threshold_w: float = 1500.0
    high_trust: float = 0.8
    medium_trust: float = 0.5
    low_trust: float = 0.2
    # Width of the ramp from medium to low trust above the high threshold
    falloff_w: float = 1000.0

    PRESETS: ClassVar[dict[str, tuple[float, float, float]]] = {
        "small": (0.35, 400.0, 1000.0),
        "medium": (0.3, 500.0, 1500.0),
        "large": (0.25, 600.0, 2000.0),
        "high_performance": (0.25, 800.0, 2500.0),
    }

    @classmethod
    def preset(cls, wheel_class: str) -> CompensatorConfig:
        """Return the preset for a wheel class, medium when unknown."""
        alpha, low, high = cls.PRESETS.get(wheel_class, cls.PRESETS["medium"])
        return cls(alpha=alpha, low_power_threshold_w=low, high_power_threshold_w=high)

    @classmethod
    def for_cell_count(cls, cell_count: int) -> CompensatorConfig:
        """Pick a preset from pack size; bigger packs sag less per cell."""
        if cell_count <= 16:
            return cls.preset("small")
        if cell_count <= 20:
            return cls.preset("medium")
        if cell_count <= 30:
            return cls.preset("large")
        return cls.preset("high_performance")


def power_trust(power_w: float, config: CompensatorConfig) -> float:
    """Return how much a raw reading at this power draw is trusted (0-1)."""
    if power_w < config.low_power_threshold_w:
        return config.high_trust
    if power_w <= config.high_power_threshold_w:
        span = config.high_power_threshold_w - config.low_power_threshold_w
        position = (power_w - config.low_power_threshold_w) / span if span > 0 else 1.0
        return config.high_trust + (config.medium_trust - config.high_trust) * position
    over = power_w - config.high_power_threshold_w
    position = min(1.0, over / config.falloff_w) if config.falloff_w > 0 else 1.0
    return config.medium_trust + (config.low_trust - config.medium_trust) * position


def compensate(
    raw_voltage: float,
    power_w: float,
    previous_compensated: float | None,
    config: CompensatorConfig | None = None,
) -> float:
    """Blend a raw reading into the previous compensated voltage."""
    if previous_compensated is None:
        return raw_voltage
    config = config or CompensatorConfig()
    effective_alpha = config.alpha * power_trust(power_w, config)
    return effective_alpha * raw_voltage + (1.0 - effective_alpha) * previous_compensated


def validate_compensated(
    compensated: float,
    raw_voltage: float,
    max_deviation: float = 5.0,
) -> float:
    """Clamp a compensated value to within max_deviation volts of raw."""
    return max(raw_voltage - max_deviation, min(compensated, raw_voltage + max_deviation))


class VoltageCompensator:
    """Stateful wrapper that remembers the previous compensated voltage."""

    MAX_DEVIATION_V: ClassVar[float] = 5.0

    def __init__(self, config: CompensatorConfig | None = None) -> None:
        self.config = config or CompensatorConfig()
        self.previous: float | None = None

    def update(self, raw_voltage: float, power_w: float) -> float:
        """Compensate a reading and remember it for the next call."""
        value = compensate(raw_voltage, power_w, self.previous, self.config)
        value = validate_compensated(value, raw_voltage, self.MAX_DEVIATION_V)
        self.previous = value
        return value

    def reset(self) -> None:
        """Forget history so the next reading initializes from raw."""
        if self.previous is not None:
            _LOGGER.debug("Range: voltage compensator reset (was %.2f V)", self.previous)
        self.previous = None

    def seed(self, compensated: float | None) -> None:
        """Restore a previously persisted compensated voltage."""
        self.previous = compensated
