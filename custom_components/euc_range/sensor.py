"""Sensor entities for the EUC Range integration."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import PERCENTAGE, EntityCategory, UnitOfLength, UnitOfTime
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import RangeCoordinator
from .entity import EucRangeEntity
from .range_types import EstimateStatus, RangeEstimate
from .runtime import EucRangeRuntimeData

_LOGGER = logging.getLogger(__name__)

UNIT_WH_PER_KM = "Wh/km"


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up EUC Range sensors from a config entry."""
    runtime: EucRangeRuntimeData = hass.data[DOMAIN][entry.entry_id]
    coordinator = runtime.coordinator
    wheel_name = runtime.config.wheel_name

    async_add_entities(
        [
            RangeSensor(coordinator, wheel_name),
            RangeConfidenceSensor(coordinator, wheel_name),
            RangeStatusSensor(coordinator, wheel_name),
            RangeEfficiencySensor(coordinator, wheel_name),
            RidingTimeSensor(coordinator, wheel_name),
            RangeStatisticsSensor(coordinator, wheel_name),
        ]
    )


class _EstimateSensor(EucRangeEntity, SensorEntity):
    """Sensor whose value is derived from the published estimate."""

    _attr_native_value: float | str | None = None

    def _value(self, estimate: RangeEstimate) -> float | str | None:
        raise NotImplementedError

    def _refresh_from_coordinator(self) -> bool:
        value = self._value(self._coordinator.estimate)
        if value == self._attr_native_value:
            return False
        self._attr_native_value = value
        return True


class RangeSensor(_EstimateSensor):
    """Estimated remaining range, with the full estimate as attributes."""

    _key = "estimated_range"
    _attr_name = "Estimated range"
    _attr_icon = "mdi:map-marker-distance"
    _attr_device_class = SensorDeviceClass.DISTANCE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UnitOfLength.KILOMETERS
    _attr_suggested_display_precision = 1

    def __init__(self, coordinator: RangeCoordinator, wheel_name: str) -> None:
        self._estimate: RangeEstimate | None = None
        super().__init__(coordinator, wheel_name)

    def _value(self, estimate: RangeEstimate) -> float | None:
        return None if estimate.range_km is None else round(estimate.range_km, 1)

    def _refresh_from_coordinator(self) -> bool:
        estimate = self._coordinator.estimate
        if estimate is self._estimate:
            return False
        self._estimate = estimate
        self._attr_native_value = self._value(estimate)
        return True

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        if self._estimate is None:
            return {}
        attrs = self._estimate.to_dict()
        attrs.pop("range_km", None)
        return attrs


class RangeConfidenceSensor(_EstimateSensor):
    _key = "range_confidence"
    _attr_name = "Range confidence"
    _attr_icon = "mdi:gauge"
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = PERCENTAGE

    def _value(self, estimate: RangeEstimate) -> float | None:
        if estimate.status in (EstimateStatus.COLLECTING, EstimateStatus.CHARGING):
            return None
        return round(estimate.confidence * 100, 1)


class RangeStatusSensor(_EstimateSensor):
    _key = "estimate_status"
    _attr_name = "Estimate status"
    _attr_icon = "mdi:list-status"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [status.value for status in EstimateStatus]

    def _value(self, estimate: RangeEstimate) -> str:
        return estimate.status.value


class RangeEfficiencySensor(_EstimateSensor):
    _key = "average_efficiency"
    _attr_name = "Average efficiency"
    _attr_icon = "mdi:lightning-bolt"
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UNIT_WH_PER_KM
    _attr_suggested_display_precision = 1

    def _value(self, estimate: RangeEstimate) -> float | None:
        if estimate.efficiency_wh_per_km is None:
            return None
        return round(estimate.efficiency_wh_per_km, 2)


class RidingTimeSensor(_EstimateSensor):
    """Remaining riding time at the recent average moving speed."""

    _key = "estimated_riding_time"
    _attr_name = "Estimated riding time"
    _attr_icon = "mdi:timer-outline"
    _attr_device_class = SensorDeviceClass.DURATION
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UnitOfTime.MINUTES

    def _value(self, estimate: RangeEstimate) -> float | None:
        if estimate.estimated_time_minutes is None:
            return None
        return round(estimate.estimated_time_minutes)


class RangeStatisticsSensor(EucRangeEntity, SensorEntity):
    """Diagnostic view of trip sample counts and processing health."""

    _key = "statistics"
    _attr_name = "Trip samples"
    _attr_icon = "mdi:chart-box-outline"
    _attr_entity_category = EntityCategory.DIAGNOSTIC
    _attr_state_class = SensorStateClass.MEASUREMENT
    _signal_attr = "signal_statistics"

    def __init__(self, coordinator: RangeCoordinator, wheel_name: str) -> None:
        self._statistics: dict[str, Any] = {}
        super().__init__(coordinator, wheel_name)

    def _refresh_from_coordinator(self) -> bool:
        statistics = self._coordinator.statistics()
        if statistics == self._statistics:
            return False
        self._statistics = statistics
        self._attr_native_value = statistics.get("total_samples", 0)
        return True

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        attrs = {key: value for key, value in self._statistics.items() if key != "estimate"}
        return attrs
