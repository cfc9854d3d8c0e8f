"""EUC Range integration for Home Assistant."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from .calibration import HistoricalDataStore
from .config import RangeConfig
from .const import DOMAIN
from .coordinator import RangeCoordinator
from .debug import set_debug_enabled
from .range_manager import RangeManager
from .runtime import EucRangeRuntimeData
from .services import async_register_services, async_unregister_services
from .storage import RangeStorage

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.SENSOR,
    Platform.BUTTON,
]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up EUC Range from a config entry."""
    domain_data = hass.data.setdefault(DOMAIN, {})

    _LOGGER.debug("Setting up EUC Range entry %s", entry.entry_id)

    config = RangeConfig.from_entry(entry.data, entry.options)
    set_debug_enabled(config.debug_log)

    coordinator: RangeCoordinator | None = None
    try:
        storage = await RangeStorage.async_create(hass, entry.entry_id)
        history = HistoricalDataStore.from_list(storage.history)
        manager = RangeManager(config, history)
        if storage.recovery:
            manager.restore(storage.recovery, dt_util.utcnow().timestamp())

        coordinator = RangeCoordinator(hass, entry.entry_id, manager, storage)
        runtime_data = EucRangeRuntimeData(
            coordinator=coordinator,
            storage=storage,
            config=config,
        )
        hass.data[DOMAIN][entry.entry_id] = runtime_data

        # Register services if not already done
        if not domain_data.get("_service_registered"):
            async_register_services(hass)
            domain_data["_service_registered"] = True

        await coordinator.async_start()
        await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
        entry.async_on_unload(entry.add_update_listener(_async_update_listener))
        return True

    except Exception:
        if coordinator is not None:
            try:
                await coordinator.async_stop()
            except Exception as cleanup_err:
                _LOGGER.debug("Error stopping coordinator during cleanup: %s", cleanup_err)
        hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
        raise


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry so option changes take effect."""
    _LOGGER.debug("Options changed for %s, reloading", entry.entry_id)
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    domain_data = hass.data.get(DOMAIN)
    if not domain_data or entry.entry_id not in domain_data:
        return True

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not unload_ok:
        return False

    data: EucRangeRuntimeData = domain_data.pop(entry.entry_id)

    # Stopping flushes history and the recovery snapshot
    await data.coordinator.async_stop()

    # Clean up services if this is the last entry
    remaining_entries = [k for k in domain_data.keys() if not k.startswith("_")]
    if not remaining_entries:
        async_unregister_services(hass)
        domain_data.pop("_service_registered", None)
        hass.data.pop(DOMAIN, None)

    return True


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Handle removal of config entry."""
    storage = await RangeStorage.async_create(hass, entry.entry_id)
    await storage.async_remove()
    _LOGGER.debug("Config entry %s removed with its stored history", entry.entry_id)
