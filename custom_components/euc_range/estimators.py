"""Range estimation strategies.

Both strategies share one contract: ``estimate(trip)`` returns a
RangeEstimate, or None when the data is numerically degenerate and the
previous estimate should stand. The minimum-data gate (10 minutes and
10 km since the current baseline) and the charging short-circuit live
in the base class so every strategy applies them identically.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import ClassVar

from .const import (
    ESTIMATOR_SIMPLE_LINEAR,
    ESTIMATOR_WEIGHTED_WINDOW,
    LOW_CONFIDENCE_THRESHOLD,
    MAX_EFFICIENCY_WH_PER_KM,
    MIN_EFFICIENCY_WH_PER_KM,
    MIN_MOVING_SPEED_KMH,
    MIN_TRAVEL_KM,
    MIN_TRAVEL_MINUTES,
)
from .discharge_curve import calculate_energy_consumed, remaining_energy_wh
from .range_types import (
    BatterySample,
    DataQuality,
    EstimateStatus,
    RangeEstimate,
    TripSegment,
    TripSnapshot,
)

_LOGGER = logging.getLogger(__name__)

RECENT_SPEED_SAMPLES = 120


def _status_for(confidence: float) -> EstimateStatus:
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        return EstimateStatus.LOW_CONFIDENCE
    return EstimateStatus.VALID


def recent_average_speed(samples: list[BatterySample]) -> float | None:
    """Mean moving speed over the most recent samples."""
    speeds = [
        sample.speed_kmh
        for sample in samples[-RECENT_SPEED_SAMPLES:]
        if sample.speed_kmh > MIN_MOVING_SPEED_KMH
    ]
    if not speeds:
        return None
    return sum(speeds) / len(speeds)


def estimated_minutes(range_km: float, samples: list[BatterySample]) -> float | None:
    speed = recent_average_speed(samples)
    if speed is None or speed <= MIN_MOVING_SPEED_KMH:
        return None
    return range_km / speed * 60.0


class RangeEstimator:
    """Base class enforcing the shared preconditions."""

    name: ClassVar[str] = "base"

    def __init__(self, capacity_wh: float, cell_count: int) -> None:
        self.capacity_wh = capacity_wh
        self.cell_count = cell_count

    def estimate(self, trip: TripSnapshot) -> RangeEstimate | None:
        baseline = trip.current_baseline_segment
        if trip.is_currently_charging:
            return RangeEstimate(
                status=EstimateStatus.CHARGING,
                estimator=self.name,
                timestamp=trip.latest_sample.timestamp if trip.latest_sample else None,
                data_quality=self._quality(trip, baseline, trip.valid_count),
            )
        if baseline is None or baseline.first is None:
            return None
        valid = trip.valid_samples_since_baseline()
        if not valid:
            return None

        quality = self._quality(trip, baseline, len(valid))
        if not (quality.meets_minimum_time and quality.meets_minimum_distance):
            return RangeEstimate(
                status=EstimateStatus.INSUFFICIENT_DATA,
                estimator=self.name,
                timestamp=valid[-1].timestamp,
                data_quality=quality,
            )
        return self._estimate(baseline, valid, quality)

    def _quality(
        self, trip: TripSnapshot, baseline: TripSegment | None, valid_count: int
    ) -> DataQuality:
        minutes = trip.riding_minutes_since_baseline()
        distance = trip.distance_since_baseline()
        return DataQuality(
            total_samples=trip.sample_count,
            valid_samples=valid_count,
            interpolated_samples=trip.interpolated_count,
            charging_events=len(trip.charging_events),
            baseline_reason=baseline.baseline_reason if baseline else None,
            travel_time_minutes=minutes,
            travel_distance_km=distance,
            meets_minimum_time=minutes >= MIN_TRAVEL_MINUTES,
            meets_minimum_distance=distance >= MIN_TRAVEL_KM,
            time_progress=min(1.0, max(0.0, minutes / MIN_TRAVEL_MINUTES)),
            distance_progress=min(1.0, max(0.0, distance / MIN_TRAVEL_KM)),
        )

    def _estimate(
        self, baseline: TripSegment, valid: list[BatterySample], quality: DataQuality
    ) -> RangeEstimate | None:
        raise NotImplementedError


class SimpleLinearEstimator(RangeEstimator):
    """Average efficiency since the baseline, extrapolated over what is left."""

    name = ESTIMATOR_SIMPLE_LINEAR

    BAND_85: ClassVar[float] = 0.20
    BAND_95: ClassVar[float] = 0.30

    def _estimate(
        self, baseline: TripSegment, valid: list[BatterySample], quality: DataQuality
    ) -> RangeEstimate | None:
        start = baseline.first
        current = valid[-1]
        distance = quality.travel_distance_km
        consumed_wh = calculate_energy_consumed(
            start.compensated_voltage,
            current.compensated_voltage,
            self.cell_count,
            self.capacity_wh,
        )
        if consumed_wh <= 0 or distance <= 0:
            _LOGGER.debug("Range: no measurable consumption yet, keeping previous estimate")
            return None
        efficiency = consumed_wh / distance
        if not math.isfinite(efficiency):
            return None
        remaining_wh = remaining_energy_wh(
            current.compensated_voltage, self.cell_count, self.capacity_wh
        )
        range_km = remaining_wh / efficiency

        confidence = (
            0.3 * min(quality.valid_samples / 100.0, 1.0)
            + 0.4 * min(distance / 20.0, 1.0)
            + 0.3 * min(quality.travel_time_minutes / 20.0, 1.0)
        )
        return RangeEstimate(
            status=_status_for(confidence),
            range_km=range_km,
            confidence=confidence,
            efficiency_wh_per_km=efficiency,
            estimated_time_minutes=estimated_minutes(range_km, valid),
            confidence_interval_85=(range_km * (1 - self.BAND_85), range_km * (1 + self.BAND_85)),
            confidence_interval_95=(range_km * (1 - self.BAND_95), range_km * (1 + self.BAND_95)),
            estimator=self.name,
            timestamp=current.timestamp,
            data_quality=quality,
        )


@dataclass(frozen=True)
class WindowPreset:
    """Tuning for the weighted window estimator."""

    window_minutes: float
    decay_factor: float
    z_85: float
    z_95: float


WINDOW_PRESETS: dict[str, WindowPreset] = {
    "conservative": WindowPreset(window_minutes=45, decay_factor=0.3, z_85=1.44, z_95=2.24),
    "balanced": WindowPreset(window_minutes=30, decay_factor=0.5, z_85=1.28, z_95=1.96),
    "responsive": WindowPreset(window_minutes=15, decay_factor=0.7, z_85=1.15, z_95=1.64),
}


class WeightedWindowEstimator(RangeEstimator):
    """Recent, time-decayed efficiency with a variance-based uncertainty band."""

    name = ESTIMATOR_WEIGHTED_WINDOW

    MIN_WINDOW_SAMPLES: ClassVar[int] = 5

    def __init__(
        self, capacity_wh: float, cell_count: int, preset: WindowPreset | None = None
    ) -> None:
        super().__init__(capacity_wh, cell_count)
        self.preset = preset or WINDOW_PRESETS["balanced"]

    def _weighted_stats(
        self, samples: list[BatterySample], latest: float
    ) -> tuple[float, float, int] | None:
        """Return (mean, std, count) of usable efficiencies, weighted by age."""
        pairs: list[tuple[float, float]] = []
        for sample in samples:
            efficiency = sample.usable_efficiency
            if efficiency is None:
                continue
            age_minutes = (latest - sample.timestamp) / 60.0
            weight = math.exp(
                -self.preset.decay_factor * age_minutes / self.preset.window_minutes
            )
            pairs.append((efficiency, weight))
        weight_sum = sum(weight for _, weight in pairs)
        if weight_sum <= 0:
            return None
        mean = sum(efficiency * weight for efficiency, weight in pairs) / weight_sum
        variance = sum(weight * (efficiency - mean) ** 2 for efficiency, weight in pairs) / weight_sum
        return mean, math.sqrt(variance), len(pairs)

    def _band(self, remaining_wh: float, mean: float, std: float, z: float) -> tuple[float, float]:
        worst = mean + z * std
        best = max(mean - z * std, MIN_EFFICIENCY_WH_PER_KM)
        return remaining_wh / worst, remaining_wh / best

    def _estimate(
        self, baseline: TripSegment, valid: list[BatterySample], quality: DataQuality
    ) -> RangeEstimate | None:
        current = valid[-1]
        window_start = current.timestamp - self.preset.window_minutes * 60.0
        window = [sample for sample in valid if sample.timestamp >= window_start]
        moving_in_window = [sample for sample in window if sample.usable_efficiency is not None]
        samples = window if len(moving_in_window) >= self.MIN_WINDOW_SAMPLES else valid

        stats = self._weighted_stats(samples, current.timestamp)
        if stats is None:
            return None
        mean, std, count = stats
        if not (MIN_EFFICIENCY_WH_PER_KM < mean < MAX_EFFICIENCY_WH_PER_KM):
            _LOGGER.debug("Range: weighted efficiency %.1f Wh/km out of bounds", mean)
            return None

        remaining_wh = remaining_energy_wh(
            current.compensated_voltage, self.cell_count, self.capacity_wh
        )
        range_km = remaining_wh / mean

        variation = std / mean if mean > 0 else 1.0
        variance_confidence = max(0.0, 1.0 - 2.0 * variation)
        data_confidence = min(
            count / 100.0,
            quality.travel_distance_km / 20.0,
            quality.travel_time_minutes / 20.0,
            1.0,
        )
        confidence = 0.5 * variance_confidence + 0.5 * data_confidence

        return RangeEstimate(
            status=_status_for(confidence),
            range_km=range_km,
            confidence=confidence,
            efficiency_wh_per_km=mean,
            estimated_time_minutes=estimated_minutes(range_km, samples),
            confidence_interval_85=self._band(remaining_wh, mean, std, self.preset.z_85),
            confidence_interval_95=self._band(remaining_wh, mean, std, self.preset.z_95),
            estimator=self.name,
            timestamp=current.timestamp,
            data_quality=quality,
        )


def create_estimator(
    name: str, capacity_wh: float, cell_count: int, preset: str | None = None
) -> RangeEstimator:
    """Build the configured estimator; unknown names fall back to weighted window."""
    if name == ESTIMATOR_SIMPLE_LINEAR:
        return SimpleLinearEstimator(capacity_wh, cell_count)
    return WeightedWindowEstimator(
        capacity_wh, cell_count, WINDOW_PRESETS.get(preset or "balanced", WINDOW_PRESETS["balanced"])
    )
