"""Persistence for calibration history and crash recovery."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import (
    DOMAIN,
    HISTORY_STORE_KEY,
    HISTORY_STORE_VERSION,
    RECOVERY_SAVE_DELAY_SECONDS,
    RECOVERY_STORE_KEY,
    RECOVERY_STORE_VERSION,
)

_LOGGER = logging.getLogger(__name__)

HISTORY_SAVE_DELAY_SECONDS = 1.0


class RangeStorage:
    """Per-entry stores for the historical segment ring and the recovery snapshot."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        history_store: Store,
        recovery_store: Store,
        history: list[dict[str, Any]],
        recovery: dict[str, Any] | None,
    ) -> None:
        self._hass = hass
        self._entry_id = entry_id
        self._history_store = history_store
        self._recovery_store = recovery_store
        self.history = history
        self.recovery = recovery
        self._lock = asyncio.Lock()
        self._recovery_pending = False

    @classmethod
    async def async_create(cls, hass: HomeAssistant, entry_id: str) -> RangeStorage:
        """Create and load both stores for an entry."""
        history_store = Store(
            hass, HISTORY_STORE_VERSION, f"{DOMAIN}_{entry_id}_{HISTORY_STORE_KEY}"
        )
        recovery_store = Store(
            hass, RECOVERY_STORE_VERSION, f"{DOMAIN}_{entry_id}_{RECOVERY_STORE_KEY}"
        )

        history_data = await history_store.async_load()
        history: list[dict[str, Any]] = []
        if isinstance(history_data, dict) and isinstance(history_data.get("segments"), list):
            history = history_data["segments"]
        elif history_data is not None:
            _LOGGER.warning("Range: history store for %s is malformed, starting empty", entry_id)

        recovery_data = await recovery_store.async_load()
        recovery = recovery_data if isinstance(recovery_data, dict) else None

        _LOGGER.debug(
            "Range: loaded %d historical segments for %s (recovery snapshot: %s)",
            len(history),
            entry_id,
            "yes" if recovery else "no",
        )
        return cls(hass, entry_id, history_store, recovery_store, history, recovery)

    def schedule_history_save(self, segments_func: Callable[[], list[dict[str, Any]]]) -> None:
        """Debounced write of the historical segment list."""
        self._history_store.async_delay_save(
            lambda: {"segments": segments_func()}, HISTORY_SAVE_DELAY_SECONDS
        )

    def schedule_recovery_save(
        self, snapshot_func: Callable[[], dict[str, Any] | None]
    ) -> None:
        """Write the latest recovery snapshot within RECOVERY_SAVE_DELAY_SECONDS.

        async_delay_save restarts its timer on every call, which at telemetry
        rates would postpone the write until the stream stops. While a write
        is pending further calls are ignored; the snapshot is taken when the
        write runs, so it is still the newest one.
        """
        if self._recovery_pending:
            return
        self._recovery_pending = True

        def _snapshot() -> dict[str, Any]:
            self._recovery_pending = False
            return snapshot_func() or {}

        self._recovery_store.async_delay_save(_snapshot, RECOVERY_SAVE_DELAY_SECONDS)

    async def async_flush(
        self,
        segments: list[dict[str, Any]],
        snapshot: dict[str, Any] | None,
    ) -> None:
        """Write both stores immediately (used on unload)."""
        async with self._lock:
            await self._history_store.async_save({"segments": segments})
            await self._recovery_store.async_save(snapshot or {})
            self._recovery_pending = False

    async def async_remove(self) -> None:
        """Delete both stores when the entry is removed."""
        async with self._lock:
            await self._history_store.async_remove()
            await self._recovery_store.async_remove()
