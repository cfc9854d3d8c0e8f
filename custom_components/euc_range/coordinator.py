"""Single-consumer processing loop for the range engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.util import dt as dt_util

from .config import RangeConfig
from .const import DOMAIN, STALE_AFTER_SECONDS
from .range_manager import RangeManager
from .range_types import RangeEstimate, TelemetrySample
from .storage import RangeStorage
from .utils import async_cancel_task

_LOGGER = logging.getLogger(__name__)

WATCHDOG_INTERVAL_SECONDS = 15
MAX_QUEUED_COMMANDS = 1000


class CommandKind(str, Enum):
    SAMPLE = "sample"
    DISCONNECT = "disconnect"
    CHECK_STALE = "check_stale"
    RESET = "reset"
    CONFIG = "config"
    CLEAR_HISTORY = "clear_history"


@dataclass
class _Command:
    kind: CommandKind
    payload: Any = None
    done: asyncio.Future | None = None


class RangeCoordinator:
    """Own the RangeManager and serialize every mutation onto one task.

    Samples, resets and configuration changes all travel through the same
    queue, so a reset can never interleave with a half-processed sample.
    The published estimate is cached on the manager and broadcast over
    the dispatcher whenever it changes.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        manager: RangeManager,
        storage: RangeStorage | None = None,
    ) -> None:
        self.hass = hass
        self.entry_id = entry_id
        self.manager = manager
        self._storage = storage
        self._queue: asyncio.Queue[_Command] = asyncio.Queue(maxsize=MAX_QUEUED_COMMANDS)
        self._consumer_task: asyncio.Task | None = None
        self.watchdog_task: asyncio.Task | None = None
        self.processed_samples = 0
        self.dropped_samples = 0
        self.processing_errors = 0
        # Seeded from a restored snapshot so the watchdog covers a silent source after restart
        self.last_sample_received: float | None = manager.last_sample_time
        self.last_error: str | None = None
        if storage is not None:
            manager.history.set_change_callback(self._schedule_history_save)

    @property
    def signal_estimate(self) -> str:
        return f"{DOMAIN}_{self.entry_id}_estimate"

    @property
    def signal_statistics(self) -> str:
        return f"{DOMAIN}_{self.entry_id}_statistics"

    @property
    def estimate(self) -> RangeEstimate:
        return self.manager.estimate

    @property
    def running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    # Lifecycle

    async def async_start(self) -> None:
        if self._consumer_task is None:
            self._consumer_task = self.hass.loop.create_task(self._process_loop())
        if self.watchdog_task is None:
            self.watchdog_task = self.hass.loop.create_task(self._watchdog_loop())

    async def async_stop(self) -> None:
        await async_cancel_task(self.watchdog_task)
        self.watchdog_task = None
        await async_cancel_task(self._consumer_task)
        self._consumer_task = None
        self._fail_pending()
        if self._storage is not None:
            try:
                await self._storage.async_flush(
                    self.manager.history.to_list(), self.manager.recovery_snapshot()
                )
            except Exception as err:
                _LOGGER.warning("Range: failed to flush state on stop: %s", err)

    # Commands

    async def async_push_sample(self, sample: TelemetrySample) -> bool:
        """Queue a telemetry sample; returns False if the queue is full."""
        self.last_sample_received = dt_util.utcnow().timestamp()
        try:
            self._queue.put_nowait(_Command(CommandKind.SAMPLE, sample))
        except asyncio.QueueFull:
            self.dropped_samples += 1
            _LOGGER.warning(
                "Range: processing queue full (%d), dropping sample at %s",
                MAX_QUEUED_COMMANDS,
                sample.timestamp,
            )
            return False
        return True

    async def async_mark_disconnected(self, timestamp: float | None = None) -> None:
        if timestamp is None:
            timestamp = dt_util.utcnow().timestamp()
        await self._queue.put(_Command(CommandKind.DISCONNECT, timestamp))

    async def async_reset(self) -> None:
        await self._async_call(CommandKind.RESET)

    async def async_apply_config(self, config: RangeConfig) -> None:
        await self._async_call(CommandKind.CONFIG, config)

    async def async_clear_history(self) -> None:
        await self._async_call(CommandKind.CLEAR_HISTORY)

    async def async_wait_idle(self) -> None:
        """Wait until every queued command has been handled."""
        await self._queue.join()

    async def _async_call(self, kind: CommandKind, payload: Any = None) -> None:
        done: asyncio.Future = self.hass.loop.create_future()
        await self._queue.put(_Command(kind, payload, done))
        if not self.running:
            # Nothing will drain the queue; run inline so callers never hang
            self._drain_now()
        await done

    def statistics(self) -> dict[str, Any]:
        """Read-only snapshot of engine and loop statistics."""
        stats = self.manager.statistics()
        stats["queue"] = {
            "pending": self._queue.qsize(),
            "processed_samples": self.processed_samples,
            "dropped_samples": self.dropped_samples,
            "processing_errors": self.processing_errors,
            "last_error": self.last_error,
        }
        return stats

    # Processing

    def _fail_pending(self) -> None:
        """Release callers still waiting on commands the stopped loop will never run."""
        dropped = 0
        while not self._queue.empty():
            command = self._queue.get_nowait()
            self._queue.task_done()
            if command.done is not None and not command.done.done():
                command.done.set_exception(
                    HomeAssistantError(
                        f"EUC Range {self.entry_id} stopped before {command.kind.value} ran"
                    )
                )
            else:
                dropped += 1
        if dropped:
            _LOGGER.debug("Range: discarded %d queued commands on stop", dropped)

    def _drain_now(self) -> None:
        while not self._queue.empty():
            command = self._queue.get_nowait()
            try:
                self._handle_safely(command)
            finally:
                self._queue.task_done()

    async def _process_loop(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                self._handle_safely(command)
            finally:
                self._queue.task_done()

    def _handle_safely(self, command: _Command) -> None:
        try:
            self._handle(command)
        except Exception as err:
            self.processing_errors += 1
            self.last_error = f"{type(err).__name__}: {err}"
            _LOGGER.exception("Range: failed to handle %s command: %s", command.kind.value, err)
            if command.done is not None and not command.done.done():
                command.done.set_exception(err)
            return
        if command.done is not None and not command.done.done():
            command.done.set_result(None)

    def _handle(self, command: _Command) -> None:
        manager = self.manager
        previous = manager.estimate
        if command.kind is CommandKind.SAMPLE:
            manager.process_sample(command.payload)
            self.processed_samples += 1
            if self._storage is not None:
                self._storage.schedule_recovery_save(manager.recovery_snapshot)
        elif command.kind is CommandKind.DISCONNECT:
            manager.mark_disconnected(command.payload)
        elif command.kind is CommandKind.CHECK_STALE:
            manager.check_stale(command.payload)
        elif command.kind is CommandKind.RESET:
            manager.reset()
            if self._storage is not None:
                # Empty snapshot so a restart does not resume the old trip
                self._storage.schedule_recovery_save(manager.recovery_snapshot)
            self._safe_dispatcher_send(self.signal_statistics)
        elif command.kind is CommandKind.CONFIG:
            manager.apply_config(command.payload)
        elif command.kind is CommandKind.CLEAR_HISTORY:
            manager.clear_history()
            self._safe_dispatcher_send(self.signal_statistics)

        if manager.estimate is not previous:
            self._safe_dispatcher_send(self.signal_estimate)

    def _schedule_history_save(self) -> None:
        if self._storage is not None:
            self._storage.schedule_history_save(self.manager.history.to_list)

    def _safe_dispatcher_send(self, signal: str, *args: Any) -> None:
        """Send a dispatcher signal without letting a broken listener stop the loop."""
        try:
            async_dispatcher_send(self.hass, signal, *args)
        except Exception as err:
            _LOGGER.exception("Exception in dispatcher signal %s handler: %s", signal, err)

    # Watchdog

    async def _watchdog_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(WATCHDOG_INTERVAL_SECONDS)
                await self._async_watchdog_tick()
        except asyncio.CancelledError:
            _LOGGER.debug("Range: watchdog stopped for %s", self.entry_id)
            raise

    async def _async_watchdog_tick(self) -> None:
        now = dt_util.utcnow().timestamp()
        last_received = self.last_sample_received
        connectivity = self.manager.state.lifecycle.connectivity
        if (
            last_received is not None
            and connectivity.connected
            and now - last_received > STALE_AFTER_SECONDS
        ):
            last_sample_time = self.manager.last_sample_time
            _LOGGER.debug("Range: no telemetry for %.0f s, treating source as disconnected", now - last_received)
            await self._queue.put(
                _Command(
                    CommandKind.DISCONNECT,
                    last_sample_time if last_sample_time is not None else last_received,
                )
            )
        await self._queue.put(_Command(CommandKind.CHECK_STALE, now))
        self._safe_dispatcher_send(self.signal_statistics)
