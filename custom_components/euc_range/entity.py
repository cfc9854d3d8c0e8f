"""Base entity class for EUC Range."""

from __future__ import annotations

import logging
from collections.abc import Callable

from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import Entity

from .const import DOMAIN
from .coordinator import RangeCoordinator

_LOGGER = logging.getLogger(__name__)


class EucRangeEntity(Entity):
    """Base entity bound to one config entry's coordinator.

    Subclasses set ``_key`` and implement ``_refresh_from_coordinator``,
    which returns True when the entity state actually changed.
    """

    _attr_should_poll = False
    _attr_has_entity_name = True
    _key: str = ""
    _signal_attr = "signal_estimate"

    def __init__(self, coordinator: RangeCoordinator, wheel_name: str) -> None:
        self._coordinator = coordinator
        self._attr_unique_id = f"{coordinator.entry_id}_{self._key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, coordinator.entry_id)},
            name=wheel_name,
            manufacturer="EUC Range",
            model=coordinator.manager.wheel_model,
        )
        self._unsubscribe: Callable[[], None] | None = None
        self._refresh_from_coordinator()

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        self._unsubscribe = async_dispatcher_connect(
            self.hass,
            getattr(self._coordinator, self._signal_attr),
            self._handle_update,
        )

    async def async_will_remove_from_hass(self) -> None:
        await super().async_will_remove_from_hass()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    @callback
    def _handle_update(self) -> None:
        if self._refresh_from_coordinator():
            self.async_write_ha_state()

    def _refresh_from_coordinator(self) -> bool:
        raise NotImplementedError
