"""Button entities for the EUC Range integration."""

from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EntityCategory
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import RangeCoordinator
from .runtime import EucRangeRuntimeData

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up EUC Range button entities."""
    runtime: EucRangeRuntimeData = hass.data[DOMAIN][entry.entry_id]
    coordinator = runtime.coordinator
    wheel_name = runtime.config.wheel_name

    async_add_entities(
        [
            ResetTripButton(coordinator, wheel_name),
            ClearHistoryButton(coordinator, wheel_name),
        ]
    )


class _RangeButton(ButtonEntity):
    _attr_entity_category = EntityCategory.CONFIG
    _attr_has_entity_name = True
    _key = ""

    def __init__(self, coordinator: RangeCoordinator, wheel_name: str) -> None:
        """Initialize the button."""
        self._coordinator = coordinator
        self._attr_unique_id = f"{coordinator.entry_id}_{self._key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, coordinator.entry_id)},
            name=wheel_name,
        )


class ResetTripButton(_RangeButton):
    """Button to start a new trip."""

    _attr_icon = "mdi:refresh"
    _attr_name = "Reset trip"
    _key = "reset_trip"

    async def async_press(self) -> None:
        """Handle button press."""
        _LOGGER.info("Range: trip reset requested for %s", self._coordinator.entry_id)
        await self._coordinator.async_reset()


class ClearHistoryButton(_RangeButton):
    """Button to discard learned calibration history."""

    _attr_icon = "mdi:delete-sweep"
    _attr_name = "Clear history"
    _key = "clear_history"

    async def async_press(self) -> None:
        """Handle button press."""
        _LOGGER.info("Range: clearing calibration history for %s", self._coordinator.entry_id)
        await self._coordinator.async_clear_history()
