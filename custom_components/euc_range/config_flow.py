"""Config flow for the EUC Range integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult

from .config import RangeConfig
from .const import (
    CONF_BATTERY_CAPACITY_WH,
    CONF_CELL_COUNT,
    CONF_WHEEL_NAME,
    DEFAULT_BATTERY_CAPACITY_WH,
    DEFAULT_CELL_COUNT,
    DEFAULT_WHEEL_NAME,
    DOMAIN,
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

_LOGGER = logging.getLogger(__name__)

MAX_WHEEL_NAME_LENGTH = 64


def _user_schema(defaults: dict[str, Any]) -> vol.Schema:
    return vol.Schema(
        {
            vol.Required(
                CONF_WHEEL_NAME, default=defaults.get(CONF_WHEEL_NAME, DEFAULT_WHEEL_NAME)
            ): str,
            vol.Required(
                CONF_CELL_COUNT, default=defaults.get(CONF_CELL_COUNT, DEFAULT_CELL_COUNT)
            ): vol.In(SUPPORTED_CELL_COUNTS),
            vol.Required(
                CONF_BATTERY_CAPACITY_WH,
                default=defaults.get(CONF_BATTERY_CAPACITY_WH, DEFAULT_BATTERY_CAPACITY_WH),
            ): vol.Coerce(float),
        }
    )


class EucRangeConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):  # type: ignore[call-arg]
    """Handle config flow for EUC Range."""

    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        errors: dict[str, str] = {}
        if user_input is not None:
            wheel_name = str(user_input.get(CONF_WHEEL_NAME, "")).strip()
            capacity = user_input.get(CONF_BATTERY_CAPACITY_WH)
            if not wheel_name or len(wheel_name) > MAX_WHEEL_NAME_LENGTH:
                errors[CONF_WHEEL_NAME] = "invalid_name"
            if user_input.get(CONF_CELL_COUNT) not in SUPPORTED_CELL_COUNTS:
                errors[CONF_CELL_COUNT] = "invalid_cell_count"
            if not isinstance(capacity, (int, float)) or not (
                MIN_BATTERY_CAPACITY_WH <= capacity <= MAX_BATTERY_CAPACITY_WH
            ):
                errors[CONF_BATTERY_CAPACITY_WH] = "invalid_capacity"

            if not errors:
                data = {
                    CONF_WHEEL_NAME: wheel_name,
                    CONF_CELL_COUNT: int(user_input[CONF_CELL_COUNT]),
                    CONF_BATTERY_CAPACITY_WH: float(capacity),
                }
                _LOGGER.debug("Creating EUC Range entry for %s", wheel_name)
                return self.async_create_entry(title=wheel_name, data=data)

        return self.async_show_form(
            step_id="user",
            data_schema=_user_schema(user_input or {}),
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        return EucRangeOptionsFlowHandler(config_entry)


class EucRangeOptionsFlowHandler(config_entries.OptionsFlow):
    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        self._config_entry = config_entry

    async def async_step_init(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        current = RangeConfig.from_entry(self._config_entry.data, self._config_entry.options)
        schema = vol.Schema(
            {
                vol.Required(OPTION_ENABLED, default=current.enabled): bool,
                vol.Required(OPTION_AUTO_DETECT, default=current.auto_detect_wheel): bool,
                vol.Required(OPTION_ESTIMATOR, default=current.estimator): vol.In(ESTIMATORS),
                vol.Required(OPTION_WINDOW_PRESET, default=current.window_preset): vol.In(
                    WINDOW_PRESETS
                ),
                vol.Required(OPTION_CALIBRATION, default=current.calibration_enabled): bool,
                vol.Required(OPTION_DEBUG_LOG, default=current.debug_log): bool,
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema)
