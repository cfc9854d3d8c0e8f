"""Range estimation orchestrator.

RangeManager is the single owner of all per-trip state. Each telemetry
sample goes through the same pipeline:

1. connectivity transition (and stale marking while offline)
2. gap detection and interpolation against the last trip sample
3. voltage compensation
4. charging detection
5. validation and flagging
6. append to the trip (the first sample opens the baseline segment)
7. milestone check for historical calibration
8. throttled estimate recomputation

The manager is synchronous and not thread-safe. RangeCoordinator feeds it
from one asyncio task so nothing else ever mutates it concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from .calibration import HistoricalDataStore, MilestoneTracker
from .config import RangeConfig
from .const import (
    CONNECTION_GAP_SECONDS,
    RECOMPUTE_BATTERY_THRESHOLD,
    RECOMPUTE_COLLECTING_SECONDS,
    RECOMPUTE_HIGH_BATTERY_SECONDS,
    RECOMPUTE_LOW_BATTERY_SECONDS,
    RECOVERY_MAX_AGE_SECONDS,
)
from .debug import trace_sample
from .estimators import RangeEstimator, create_estimator
from .range_types import (
    BatterySample,
    EstimateStatus,
    RangeEstimate,
    SampleFlag,
    TelemetrySample,
)
from .sample_validator import SampleValidator
from .trip_lifecycle import (
    ChargingTransition,
    ConnectivityState,
    LinkEvent,
    TripLifecycle,
)
from .voltage_compensator import CompensatorConfig, VoltageCompensator
from .wheel_database import WheelSpec, find_wheel_spec

_LOGGER = logging.getLogger(__name__)

_COLLECTING_STATUSES = (EstimateStatus.COLLECTING, EstimateStatus.INSUFFICIENT_DATA)


@dataclass
class TripState:
    """Everything a reset throws away, held in one place."""

    lifecycle: TripLifecycle = field(default_factory=TripLifecycle)
    compensator: VoltageCompensator = field(default_factory=VoltageCompensator)
    milestones: MilestoneTracker = field(default_factory=MilestoneTracker)
    estimate: RangeEstimate = field(
        default_factory=lambda: RangeEstimate(status=EstimateStatus.COLLECTING)
    )
    last_sample: BatterySample | None = None
    last_estimate_time: float | None = None
    rejected_samples: int = 0
    segments_recorded: int = 0


class RangeManager:
    """Turn a telemetry stream into a published range estimate."""

    def __init__(
        self,
        config: RangeConfig,
        history: HistoricalDataStore | None = None,
    ) -> None:
        self._base_config = config
        self.config = config
        self.history = history if history is not None else HistoricalDataStore()
        self._detected_model: str | None = None
        self._detected_spec: WheelSpec | None = None
        self._validator = SampleValidator(config.cell_count)
        self._estimator: RangeEstimator = create_estimator(
            config.estimator, config.battery_capacity_wh, config.cell_count, config.window_preset
        )
        self._state = self._new_state()

    # Public read-only views

    @property
    def estimate(self) -> RangeEstimate:
        """Last published estimate (never None)."""
        return self._state.estimate

    @property
    def state(self) -> TripState:
        return self._state

    @property
    def estimator(self) -> RangeEstimator:
        return self._estimator

    @property
    def wheel_model(self) -> str:
        if self._detected_spec is not None:
            return self._detected_spec.display_name
        return self.config.wheel_name

    @property
    def last_sample_time(self) -> float | None:
        last = self._state.last_sample
        return last.timestamp if last is not None else None

    # Commands

    def process_sample(self, telemetry: TelemetrySample) -> RangeEstimate:
        """Run one telemetry sample through the pipeline."""
        if not self.config.enabled:
            return self._state.estimate
        state = self._state
        self._auto_detect(telemetry.wheel_model)

        last = state.last_sample
        lifecycle = state.lifecycle
        event = lifecycle.update_connectivity(
            telemetry.connected, telemetry.timestamp, last.timestamp if last else None
        )
        if not telemetry.connected:
            self._mark_stale_if_needed(telemetry.timestamp)
            return state.estimate

        if last is not None and telemetry.timestamp <= last.timestamp:
            state.rejected_samples += 1
            rejected = BatterySample.from_telemetry(
                telemetry, state.compensator.previous or telemetry.voltage
            ).with_flags(frozenset({SampleFlag.TIME_GAP}))
            trace_sample(rejected, appended=False)
            _LOGGER.debug(
                "Range: dropped out-of-order sample %.3f (last %.3f)",
                telemetry.timestamp,
                last.timestamp,
            )
            return state.estimate

        compensated = state.compensator.update(telemetry.voltage, telemetry.power_w)
        sample = BatterySample.from_telemetry(telemetry, compensated)

        trip_latest = lifecycle.trip.latest_sample
        if trip_latest is not None and (
            event is LinkEvent.RECONNECTED
            or sample.timestamp - trip_latest.timestamp > CONNECTION_GAP_SECONDS
        ):
            lifecycle.fill_gap(trip_latest, sample)

        transition = lifecycle.update_charging(sample, last)
        if transition is ChargingTransition.ENDED:
            state.compensator.reset()
            sample = replace(
                sample,
                compensated_voltage=state.compensator.update(sample.voltage, sample.power_w),
            )
            state.milestones.reset()

        sample = self._validator.validate(sample, last)
        appended = lifecycle.append(sample)
        if not appended:
            state.rejected_samples += 1
        trace_sample(sample, appended)
        state.last_sample = sample

        if appended and sample.is_valid:
            candidate = state.milestones.check(
                sample,
                lifecycle.trip,
                self.config.cell_count,
                self.config.battery_capacity_wh,
                self.wheel_model,
            )
            if candidate is not None and self.history.add_segment(candidate):
                state.segments_recorded += 1

        force = transition in (ChargingTransition.CONFIRMED, ChargingTransition.ENDED) or (
            state.estimate.status is EstimateStatus.STALE
        )
        if force or self._should_recompute(sample):
            self._recompute(sample.timestamp)
        return state.estimate

    def mark_disconnected(self, timestamp: float) -> RangeEstimate:
        """Record that the telemetry source dropped without sending a sample."""
        lifecycle = self._state.lifecycle
        lifecycle.update_connectivity(False, timestamp, self.last_sample_time)
        self._mark_stale_if_needed(timestamp)
        return self._state.estimate

    def check_stale(self, now: float) -> bool:
        """Mark the estimate stale if the source has been offline too long."""
        return self._mark_stale_if_needed(now)

    def reset(self) -> None:
        """Start a new trip; replaces all trip state in one step."""
        self._state = self._new_state()
        _LOGGER.info("Range: trip reset")

    def apply_config(self, config: RangeConfig) -> None:
        """Swap configuration without discarding the current trip."""
        self._base_config = config
        self._detected_model = None
        self._detected_spec = None
        self.config = config
        self._rebuild()
        _LOGGER.info(
            "Range: configuration applied (%s, %dS, %.0f Wh)",
            config.estimator,
            config.cell_count,
            config.battery_capacity_wh,
        )

    def clear_history(self) -> None:
        self.history.clear()
        _LOGGER.info("Range: historical calibration data cleared")

    # Recovery

    def recovery_snapshot(self) -> dict[str, Any] | None:
        """Minimal state needed to resume after a restart."""
        state = self._state
        if state.last_sample is None:
            return None
        connectivity = state.lifecycle.connectivity
        return {
            "last_sample": state.last_sample.to_dict(),
            "connected": connectivity.connected,
            "disconnected_since": connectivity.disconnected_since,
        }

    def restore(self, snapshot: Any, now: float) -> bool:
        """Seed state from a recovery snapshot if it is recent enough."""
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("last_sample"), dict):
            return False
        try:
            sample = BatterySample.from_dict(snapshot["last_sample"])
            since = snapshot.get("disconnected_since")
            disconnected_since = float(since) if since is not None else None
        except (KeyError, TypeError, ValueError) as err:
            _LOGGER.warning("Range: ignoring corrupt recovery snapshot: %s", err)
            return False
        age = now - sample.timestamp
        if age > RECOVERY_MAX_AGE_SECONDS:
            _LOGGER.debug("Range: recovery snapshot too old (%.0f s), starting fresh", age)
            return False

        state = self._state
        state.last_sample = sample
        state.compensator.seed(sample.compensated_voltage)
        state.lifecycle.connectivity = ConnectivityState(
            connected=bool(snapshot.get("connected", True)),
            disconnected_since=disconnected_since,
        )
        _LOGGER.info("Range: resumed from recovery snapshot (%.0f s old)", age)
        return True

    # Statistics

    def statistics(self) -> dict[str, Any]:
        state = self._state
        trip = state.lifecycle.trip
        return {
            "wheel_model": self.wheel_model,
            "cell_count": self.config.cell_count,
            "battery_capacity_wh": self.config.battery_capacity_wh,
            "estimator": self._estimator.name,
            "connected": state.lifecycle.connectivity.connected,
            "charging_state": state.lifecycle.charging_state.value,
            "total_samples": trip.sample_count,
            "valid_samples": trip.valid_count,
            "interpolated_samples": trip.interpolated_count,
            "rejected_samples": state.rejected_samples,
            "segments": trip.segment_counts(),
            "charging_events": len(trip.charging_events),
            "milestones": [milestone.battery_percent for milestone in state.milestones.milestones],
            "historical_segments_recorded": state.segments_recorded,
            "estimate": state.estimate.to_dict(),
            "history": self.history.statistics(),
        }

    # Internals

    def _new_state(self) -> TripState:
        return TripState(
            compensator=VoltageCompensator(CompensatorConfig.for_cell_count(self.config.cell_count))
        )

    def _rebuild(self) -> None:
        config = self.config
        self._validator = SampleValidator(config.cell_count)
        self._estimator = create_estimator(
            config.estimator, config.battery_capacity_wh, config.cell_count, config.window_preset
        )
        self._state.compensator.config = CompensatorConfig.for_cell_count(config.cell_count)

    def _auto_detect(self, model: str | None) -> None:
        if not self._base_config.auto_detect_wheel or not model or model == self._detected_model:
            return
        self._detected_model = model
        spec = find_wheel_spec(model)
        if spec is None:
            _LOGGER.info("Range: wheel model %s not in database, keeping configured battery", model)
            return
        self._detected_spec = spec
        self.config = self._base_config.with_battery(
            spec.battery.cell_count, spec.battery.capacity_wh
        )
        self._rebuild()
        _LOGGER.info(
            "Range: detected %s (%s, %.0f Wh)",
            spec.display_name,
            spec.battery.configuration,
            spec.battery.capacity_wh,
        )

    def _mark_stale_if_needed(self, now: float) -> bool:
        state = self._state
        if not state.lifecycle.is_stale(now):
            return False
        if state.estimate.status in (EstimateStatus.STALE, EstimateStatus.COLLECTING):
            return False
        state.estimate = state.estimate.with_status(EstimateStatus.STALE)
        _LOGGER.info("Range: estimate marked stale after disconnection")
        return True

    def _should_recompute(self, sample: BatterySample) -> bool:
        state = self._state
        if state.last_estimate_time is None:
            return True
        elapsed = sample.timestamp - state.last_estimate_time
        if state.estimate.status in _COLLECTING_STATUSES:
            return elapsed >= RECOMPUTE_COLLECTING_SECONDS
        if sample.battery_percent >= RECOMPUTE_BATTERY_THRESHOLD:
            return elapsed >= RECOMPUTE_HIGH_BATTERY_SECONDS
        return elapsed >= RECOMPUTE_LOW_BATTERY_SECONDS

    def _recompute(self, timestamp: float) -> None:
        state = self._state
        state.last_estimate_time = timestamp
        estimate = self._estimator.estimate(state.lifecycle.trip)
        if estimate is None:
            return
        if estimate.range_km is not None and estimate.efficiency_wh_per_km:
            estimate = self._calibrate(estimate)
        state.estimate = estimate
        _LOGGER.debug(
            "Range: %s estimate %s km (confidence %.2f)",
            estimate.status.value,
            None if estimate.range_km is None else round(estimate.range_km, 1),
            estimate.confidence,
        )

    def _calibrate(self, estimate: RangeEstimate) -> RangeEstimate:
        latest = self._state.lifecycle.trip.latest_sample
        if latest is None:
            return estimate
        factor = self.history.calibration_factor(
            latest.battery_percent,
            estimate.efficiency_wh_per_km,
            self.config.calibration_enabled,
            self.wheel_model,
        )
        if factor == 1.0:
            return estimate

        def scaled(pair: tuple[float, float] | None) -> tuple[float, float] | None:
            return None if pair is None else (pair[0] * factor, pair[1] * factor)

        return replace(
            estimate,
            range_km=estimate.range_km * factor,
            estimated_time_minutes=(
                None
                if estimate.estimated_time_minutes is None
                else estimate.estimated_time_minutes * factor
            ),
            confidence_interval_85=scaled(estimate.confidence_interval_85),
            confidence_interval_95=scaled(estimate.confidence_interval_95),
            calibration_factor=factor,
        )
