"""Service handlers for feeding telemetry and controlling trips."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util

from .const import (
    DOMAIN,
    SERVICE_GET_STATISTICS,
    SERVICE_MARK_DISCONNECTED,
    SERVICE_PUSH_SAMPLE,
    SERVICE_RESET_TRIP,
)
from .range_types import InvalidSampleError, TelemetrySample
from .runtime import EucRangeRuntimeData

_LOGGER = logging.getLogger(__name__)

ENTRY_SCHEMA = vol.Schema({vol.Optional("entry_id"): str})

PUSH_SAMPLE_SCHEMA = vol.Schema(
    {
        vol.Optional("entry_id"): str,
        vol.Optional("timestamp"): vol.Coerce(float),
        vol.Required("voltage"): vol.Coerce(float),
        vol.Required("battery_percent"): vol.Coerce(float),
        vol.Optional("distance_km"): vol.Coerce(float),
        vol.Optional("speed_kmh"): vol.Coerce(float),
        vol.Optional("power_w"): vol.Coerce(float),
        vol.Optional("current_a"): vol.Coerce(float),
        vol.Optional("temperature_c"): vol.Coerce(float),
        vol.Optional("connected", default=True): vol.Boolean(),
        vol.Optional("charging", default=False): vol.Boolean(),
        vol.Optional("wheel_model"): str,
    }
)

MARK_DISCONNECTED_SCHEMA = vol.Schema(
    {
        vol.Optional("entry_id"): str,
        vol.Optional("timestamp"): vol.Coerce(float),
    }
)


def _resolve_target(
    hass: HomeAssistant,
    call_data: dict,
) -> tuple[str, ConfigEntry, EucRangeRuntimeData] | None:
    """Resolve target entry from service call data."""
    entries = {
        k: v
        for k, v in hass.data.get(DOMAIN, {}).items()
        if not k.startswith("_")
    }

    target_entry_id = call_data.get("entry_id")
    if target_entry_id:
        runtime = entries.get(target_entry_id)
        target_entry = hass.config_entries.async_get_entry(target_entry_id)
        if runtime is None or target_entry is None:
            _LOGGER.error("EUC Range service: unknown entry_id %s", target_entry_id)
            return None
        return target_entry_id, target_entry, runtime

    if len(entries) != 1:
        _LOGGER.error(
            "EUC Range service: %s entries configured; specify entry_id",
            "no" if not entries else "multiple",
        )
        return None

    target_entry_id, runtime = next(iter(entries.items()))
    target_entry = hass.config_entries.async_get_entry(target_entry_id)
    if target_entry is None:
        _LOGGER.error("EUC Range service: unable to resolve entry %s", target_entry_id)
        return None

    return target_entry_id, target_entry, runtime


async def async_handle_push_sample(call: ServiceCall) -> None:
    """Handle push_sample service call."""
    resolved = _resolve_target(call.hass, call.data)
    if not resolved:
        return
    _, _, runtime = resolved

    payload: dict[str, Any] = {k: v for k, v in call.data.items() if k != "entry_id"}
    payload.setdefault("timestamp", dt_util.utcnow().timestamp())
    try:
        sample = TelemetrySample.from_dict(payload)
    except InvalidSampleError as err:
        raise HomeAssistantError(f"Invalid telemetry sample: {err}") from err

    await runtime.coordinator.async_push_sample(sample)


async def async_handle_reset_trip(call: ServiceCall) -> None:
    """Handle reset_trip service call."""
    resolved = _resolve_target(call.hass, call.data)
    if not resolved:
        return
    target_entry_id, _, runtime = resolved
    _LOGGER.info("EUC Range reset_trip: resetting trip for entry %s", target_entry_id)
    await runtime.coordinator.async_reset()


async def async_handle_mark_disconnected(call: ServiceCall) -> None:
    """Handle mark_disconnected service call."""
    resolved = _resolve_target(call.hass, call.data)
    if not resolved:
        return
    _, _, runtime = resolved
    await runtime.coordinator.async_mark_disconnected(call.data.get("timestamp"))


async def async_handle_get_statistics(call: ServiceCall) -> ServiceResponse:
    """Handle get_statistics service call and return the statistics."""
    resolved = _resolve_target(call.hass, call.data)
    if not resolved:
        raise HomeAssistantError("Unable to resolve EUC Range entry; specify entry_id")
    target_entry_id, _, runtime = resolved
    coordinator = runtime.coordinator
    if coordinator.running:
        await coordinator.async_wait_idle()
    statistics = coordinator.statistics()
    statistics["entry_id"] = target_entry_id
    return statistics


def async_register_services(hass: HomeAssistant) -> None:
    """Register all EUC Range services."""
    hass.services.async_register(
        DOMAIN,
        SERVICE_PUSH_SAMPLE,
        async_handle_push_sample,
        schema=PUSH_SAMPLE_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_RESET_TRIP,
        async_handle_reset_trip,
        schema=ENTRY_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_MARK_DISCONNECTED,
        async_handle_mark_disconnected,
        schema=MARK_DISCONNECTED_SCHEMA,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_GET_STATISTICS,
        async_handle_get_statistics,
        schema=ENTRY_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )


def async_unregister_services(hass: HomeAssistant) -> None:
    """Unregister all EUC Range services."""
    for service in (
        SERVICE_PUSH_SAMPLE,
        SERVICE_RESET_TRIP,
        SERVICE_MARK_DISCONNECTED,
        SERVICE_GET_STATISTICS,
    ):
        if hass.services.has_service(DOMAIN, service):
            hass.services.async_remove(DOMAIN, service)
            _LOGGER.debug("Unregistered service %s.%s", DOMAIN, service)
