"""Typed configuration for the range engine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from .const import (
    CONF_BATTERY_CAPACITY_WH,
    CONF_CELL_COUNT,
    CONF_WHEEL_NAME,
    DEBUG_LOG,
    DEFAULT_BATTERY_CAPACITY_WH,
    DEFAULT_CELL_COUNT,
    DEFAULT_ESTIMATOR,
    DEFAULT_WHEEL_NAME,
    DEFAULT_WINDOW_PRESET,
    ESTIMATORS,
    MAX_BATTERY_CAPACITY_WH,
    MIN_BATTERY_CAPACITY_WH,
    OPTION_AUTO_DETECT,
    OPTION_CALIBRATION,
    OPTION_DEBUG_LOG,
    OPTION_ENABLED,
    OPTION_ESTIMATOR,
    OPTION_WINDOW_PRESET,
    SUPPORTED_CELL_COUNTS,
    WINDOW_PRESETS,
)
from .utils import validate_and_clamp_option, validate_bool, validate_choice

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeConfig:
    """Engine settings, resolved once with documented defaults."""

    wheel_name: str = DEFAULT_WHEEL_NAME
    enabled: bool = True
    cell_count: int = DEFAULT_CELL_COUNT
    battery_capacity_wh: float = DEFAULT_BATTERY_CAPACITY_WH
    auto_detect_wheel: bool = True
    estimator: str = DEFAULT_ESTIMATOR
    window_preset: str = DEFAULT_WINDOW_PRESET
    calibration_enabled: bool = True
    debug_log: bool = DEBUG_LOG

    @classmethod
    def from_entry(
        cls, data: Mapping[str, Any] | None, options: Mapping[str, Any] | None = None
    ) -> RangeConfig:
        """Merge entry data and options; options win. Bad values become defaults."""
        merged: dict[str, Any] = dict(data or {})
        merged.update(options or {})

        name = merged.get(CONF_WHEEL_NAME)
        wheel_name = name.strip() if isinstance(name, str) and name.strip() else DEFAULT_WHEEL_NAME

        cell_count = validate_choice(
            _as_int(merged.get(CONF_CELL_COUNT)),
            SUPPORTED_CELL_COUNTS,
            DEFAULT_CELL_COUNT,
            CONF_CELL_COUNT,
        )
        capacity = merged.get(CONF_BATTERY_CAPACITY_WH)
        battery_capacity_wh = (
            DEFAULT_BATTERY_CAPACITY_WH
            if capacity is None
            else validate_and_clamp_option(
                capacity,
                MIN_BATTERY_CAPACITY_WH,
                MAX_BATTERY_CAPACITY_WH,
                DEFAULT_BATTERY_CAPACITY_WH,
                CONF_BATTERY_CAPACITY_WH,
            )
        )
        return cls(
            wheel_name=wheel_name,
            enabled=validate_bool(merged.get(OPTION_ENABLED), True, OPTION_ENABLED),
            cell_count=cell_count,
            battery_capacity_wh=battery_capacity_wh,
            auto_detect_wheel=validate_bool(merged.get(OPTION_AUTO_DETECT), True, OPTION_AUTO_DETECT),
            estimator=validate_choice(
                merged.get(OPTION_ESTIMATOR), ESTIMATORS, DEFAULT_ESTIMATOR, OPTION_ESTIMATOR
            ),
            window_preset=validate_choice(
                merged.get(OPTION_WINDOW_PRESET),
                WINDOW_PRESETS,
                DEFAULT_WINDOW_PRESET,
                OPTION_WINDOW_PRESET,
            ),
            calibration_enabled=validate_bool(
                merged.get(OPTION_CALIBRATION), True, OPTION_CALIBRATION
            ),
            debug_log=validate_bool(merged.get(OPTION_DEBUG_LOG), DEBUG_LOG, OPTION_DEBUG_LOG),
        )

    def with_battery(self, cell_count: int, capacity_wh: float) -> RangeConfig:
        """Return a copy using a detected battery layout."""
        return replace(self, cell_count=cell_count, battery_capacity_wh=capacity_wh)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        _LOGGER.warning("Invalid %s value %s", CONF_CELL_COUNT, value)
        return None
    return int(number) if number.is_integer() else None
