"""Historical calibration from battery milestones.

While riding, each 5% battery crossing records how far the trip got and
how much energy it used since the current baseline. Consecutive
milestones become historical segments, which are kept in a bounded,
persisted store and used to nudge new estimates toward what the wheel
actually achieved before.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .const import (
    CALIBRATION_MAX_FACTOR,
    CALIBRATION_MIN_FACTOR,
    HISTORY_MAX_SEGMENTS,
    MILESTONE_PERCENTS,
)
from .discharge_curve import calculate_energy_consumed
from .range_types import BatteryMilestone, BatterySample, HistoricalSegment, TripSnapshot

_LOGGER = logging.getLogger(__name__)


def milestone_crossed(previous_percent: int, current_percent: float) -> int | None:
    """Return the milestone crossed going from previous to current, if any."""
    current = int(current_percent)
    for milestone in MILESTONE_PERCENTS:
        if previous_percent > milestone >= current:
            return milestone
    return None


class HistoricalDataStore:
    """Bounded store of historical segments, newest first."""

    def __init__(
        self,
        segments: list[HistoricalSegment] | None = None,
        max_segments: int = HISTORY_MAX_SEGMENTS,
    ) -> None:
        self._max_segments = max_segments
        self._segments: list[HistoricalSegment] = sorted(
            segments or [], key=lambda segment: segment.timestamp, reverse=True
        )[:max_segments]
        self._on_change: Callable[[], None] | None = None

    def set_change_callback(self, callback: Callable[[], None] | None) -> None:
        """Register a callback fired whenever stored data changes."""
        self._on_change = callback

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    @property
    def segments(self) -> list[HistoricalSegment]:
        return list(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def add_segment(self, segment: HistoricalSegment) -> bool:
        """Store a segment if it is valid; returns whether it was kept."""
        if not segment.is_valid:
            _LOGGER.debug(
                "Range: rejected historical segment %d%%->%d%% (%.2f km, %.1f Wh/km)",
                segment.start_percent,
                segment.end_percent,
                segment.distance_km,
                segment.efficiency_wh_per_km,
            )
            return False
        self._segments.append(segment)
        self._segments.sort(key=lambda item: item.timestamp, reverse=True)
        del self._segments[self._max_segments:]
        _LOGGER.debug(
            "Range: stored historical segment %d%%->%d%% at %.1f Wh/km (%d kept)",
            segment.start_percent,
            segment.end_percent,
            segment.efficiency_wh_per_km,
            len(self._segments),
        )
        self._notify()
        return True

    def clear(self) -> None:
        self._segments.clear()
        self._notify()

    def segments_for_wheel(self, wheel_model: str) -> list[HistoricalSegment]:
        return [segment for segment in self._segments if segment.wheel_model == wheel_model]

    def average_efficiency(
        self, start_percent: int, end_percent: int, wheel_model: str | None = None
    ) -> float | None:
        """Distance-weighted efficiency of segments overlapping a battery range."""
        pool = self.segments_for_wheel(wheel_model) if wheel_model else self._segments
        relevant = [
            segment
            for segment in pool
            if (segment.start_percent >= start_percent and segment.end_percent <= end_percent)
            or end_percent <= segment.start_percent <= start_percent
            or end_percent <= segment.end_percent <= start_percent
        ]
        total_distance = sum(segment.distance_km for segment in relevant)
        if total_distance <= 0:
            return None
        return (
            sum(segment.efficiency_wh_per_km * segment.distance_km for segment in relevant)
            / total_distance
        )

    def calibration_factor(
        self,
        current_percent: float,
        predicted_efficiency: float,
        enabled: bool = True,
        wheel_model: str | None = None,
    ) -> float:
        """Predicted / historical efficiency, clamped; 1.0 without data."""
        if not enabled or predicted_efficiency <= 0:
            return 1.0
        historical = self.average_efficiency(100, int(current_percent), wheel_model)
        if historical is None or historical <= 0:
            return 1.0
        factor = predicted_efficiency / historical
        return max(CALIBRATION_MIN_FACTOR, min(factor, CALIBRATION_MAX_FACTOR))

    def statistics(self) -> dict[str, Any]:
        if not self._segments:
            return {
                "total_segments": 0,
                "total_distance_km": 0.0,
                "average_efficiency_wh_per_km": None,
                "oldest_timestamp": None,
                "newest_timestamp": None,
                "unique_wheels": [],
            }
        total_distance = sum(segment.distance_km for segment in self._segments)
        return {
            "total_segments": len(self._segments),
            "total_distance_km": round(total_distance, 2),
            "average_efficiency_wh_per_km": round(
                sum(segment.efficiency_wh_per_km for segment in self._segments)
                / len(self._segments),
                2,
            ),
            "oldest_timestamp": self._segments[-1].timestamp,
            "newest_timestamp": self._segments[0].timestamp,
            "unique_wheels": sorted({segment.wheel_model for segment in self._segments}),
        }

    def to_list(self) -> list[dict[str, Any]]:
        """Convert to a list of dictionaries for persistence."""
        return [segment.to_dict() for segment in self._segments]

    @classmethod
    def from_list(cls, data: Any) -> HistoricalDataStore:
        """Create from persisted data, skipping corrupt entries."""
        segments: list[HistoricalSegment] = []
        if not isinstance(data, list):
            if data is not None:
                _LOGGER.warning("Range: ignoring malformed historical data (%s)", type(data).__name__)
            return cls()
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                segments.append(HistoricalSegment.from_dict(item))
            except (KeyError, TypeError, ValueError) as err:
                _LOGGER.warning("Range: skipping corrupt historical segment: %s", err)
        return cls(segments)


class MilestoneTracker:
    """Detect 5% crossings and turn milestone pairs into historical segments."""

    def __init__(self) -> None:
        self.milestones: list[BatteryMilestone] = []
        self._last_percent: int | None = None

    def reset(self) -> None:
        """Start over, e.g. after a new baseline."""
        self.milestones.clear()
        self._last_percent = None

    def check(
        self,
        sample: BatterySample,
        trip: TripSnapshot,
        cell_count: int,
        capacity_wh: float,
        wheel_model: str | None = None,
    ) -> HistoricalSegment | None:
        """Record a milestone if one was crossed; may return a candidate segment."""
        if self._last_percent is None:
            self._last_percent = int(sample.battery_percent)
            return None
        milestone = milestone_crossed(self._last_percent, sample.battery_percent)
        if milestone is None:
            self._last_percent = int(sample.battery_percent)
            return None
        if self.milestones and milestone >= self.milestones[-1].battery_percent:
            # Already recorded on this baseline (battery reading bounced)
            self._last_percent = milestone
            return None

        baseline = trip.current_baseline_segment
        start = baseline.first if baseline is not None else None
        if start is None or sample.distance_km <= start.distance_km:
            return None
        distance = sample.distance_km - start.distance_km
        energy_wh = calculate_energy_consumed(
            start.compensated_voltage, sample.compensated_voltage, cell_count, capacity_wh
        )
        efficiency = energy_wh / distance
        if efficiency <= 0:
            return None

        reached = BatteryMilestone(
            battery_percent=milestone,
            voltage=sample.compensated_voltage,
            distance_km=distance,
            time_seconds=sample.timestamp - start.timestamp,
            timestamp=sample.timestamp,
            average_efficiency=efficiency,
        )
        self.milestones.append(reached)
        self._last_percent = milestone
        _LOGGER.debug(
            "Range: milestone %d%% at %.2f km (%.1f Wh/km)", milestone, distance, efficiency
        )
        if len(self.milestones) < 2:
            return None
        return self._segment_between(self.milestones[-2], reached, cell_count, capacity_wh, wheel_model)

    @staticmethod
    def _segment_between(
        start: BatteryMilestone,
        end: BatteryMilestone,
        cell_count: int,
        capacity_wh: float,
        wheel_model: str | None,
    ) -> HistoricalSegment | None:
        distance = end.distance_km - start.distance_km
        if distance <= 0:
            return None
        energy_wh = calculate_energy_consumed(start.voltage, end.voltage, cell_count, capacity_wh)
        return HistoricalSegment(
            start_percent=start.battery_percent,
            end_percent=end.battery_percent,
            start_voltage=start.voltage,
            end_voltage=end.voltage,
            distance_km=distance,
            duration_seconds=end.time_seconds - start.time_seconds,
            efficiency_wh_per_km=energy_wh / distance,
            timestamp=end.timestamp,
            wheel_model=wheel_model or "Unknown",
            battery_capacity_wh=capacity_wh,
        )
