"""Trip lifecycle: connectivity, gap interpolation and charging detection.

Connectivity and charging are explicit state machines. Their transition
functions are pure so they can be exercised on their own; TripLifecycle
applies the resulting transitions to the trip snapshot.

A trip is never reset from here. Gaps of any length become a
CONNECTION_GAP segment and a charge becomes a CHARGING segment followed
by a fresh baseline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .const import (
    CHARGING_BATTERY_RISE,
    CHARGING_MAX_DISTANCE_KM,
    CHARGING_VOLTAGE_RISE,
    INTERPOLATION_INTERVAL_SECONDS,
    MAX_INTERPOLATED_SAMPLES,
    STALE_AFTER_SECONDS,
)
from .range_types import (
    BatterySample,
    ChargingEvent,
    SampleFlag,
    SegmentType,
    TripSegment,
    TripSnapshot,
)

_LOGGER = logging.getLogger(__name__)


class LinkEvent(str, Enum):
    """Outcome of feeding a connected/disconnected reading."""

    ONLINE = "online"
    WENT_OFFLINE = "went_offline"
    STILL_OFFLINE = "still_offline"
    RECONNECTED = "reconnected"


@dataclass(frozen=True)
class ConnectivityState:
    connected: bool = True
    disconnected_since: float | None = None


def next_connectivity(
    state: ConnectivityState,
    connected: bool,
    timestamp: float,
    last_sample_time: float | None,
) -> tuple[ConnectivityState, LinkEvent]:
    """Advance the connectivity machine by one reading."""
    if not connected:
        if state.connected:
            since = last_sample_time if last_sample_time is not None else timestamp
            return ConnectivityState(connected=False, disconnected_since=since), LinkEvent.WENT_OFFLINE
        return state, LinkEvent.STILL_OFFLINE
    if not state.connected:
        return ConnectivityState(), LinkEvent.RECONNECTED
    return state, LinkEvent.ONLINE


def is_stale(state: ConnectivityState, now: float) -> bool:
    """Return True once the source has been offline longer than allowed."""
    return (
        not state.connected
        and state.disconnected_since is not None
        and now - state.disconnected_since > STALE_AFTER_SECONDS
    )


class ChargingState(str, Enum):
    NOT_CHARGING = "not_charging"
    CHARGING_SUSPECTED = "charging_suspected"
    CHARGING_CONFIRMED = "charging_confirmed"


class ChargingTransition(str, Enum):
    NONE = "none"
    SUSPECTED = "suspected"
    CONFIRMED = "confirmed"
    FALSE_ALARM = "false_alarm"
    ENDED = "ended"


def charging_indicated(sample: BatterySample, previous: BatterySample) -> bool:
    """Voltage or charge rose while the wheel did not move, or the wheel says so."""
    if SampleFlag.CHARGING_DETECTED in sample.flags:
        return True
    rising = (
        sample.voltage - previous.voltage > CHARGING_VOLTAGE_RISE
        or sample.battery_percent - previous.battery_percent > CHARGING_BATTERY_RISE
    )
    return rising and sample.distance_km - previous.distance_km < CHARGING_MAX_DISTANCE_KM


def next_charging_state(
    state: ChargingState, indicated: bool
) -> tuple[ChargingState, ChargingTransition]:
    """Advance the charging machine; two matching samples in a row confirm."""
    if state is ChargingState.NOT_CHARGING:
        if indicated:
            return ChargingState.CHARGING_SUSPECTED, ChargingTransition.SUSPECTED
        return state, ChargingTransition.NONE
    if state is ChargingState.CHARGING_SUSPECTED:
        if indicated:
            return ChargingState.CHARGING_CONFIRMED, ChargingTransition.CONFIRMED
        return ChargingState.NOT_CHARGING, ChargingTransition.FALSE_ALARM
    if indicated:
        return state, ChargingTransition.NONE
    return ChargingState.NOT_CHARGING, ChargingTransition.ENDED


def interpolation_count(gap_seconds: float) -> int:
    """Number of synthetic samples for a gap; 0 when too short or too long."""
    count = int(gap_seconds // INTERPOLATION_INTERVAL_SECONDS)
    if count <= 0 or count >= MAX_INTERPOLATED_SAMPLES:
        return 0
    return count


def _lerp(start: float, end: float, progress: float) -> float:
    return start + (end - start) * progress


def interpolate_gap(before: BatterySample, after: BatterySample) -> list[BatterySample]:
    """Linearly fill the gap between two real samples at 5 s spacing."""
    gap = after.timestamp - before.timestamp
    count = interpolation_count(gap)
    samples: list[BatterySample] = []
    for index in range(1, count + 1):
        progress = index / (count + 1)
        temperature = before.temperature_c
        if before.temperature_c is not None and after.temperature_c is not None:
            temperature = _lerp(before.temperature_c, after.temperature_c, progress)
        samples.append(
            BatterySample(
                timestamp=before.timestamp + gap * progress,
                voltage=_lerp(before.voltage, after.voltage, progress),
                compensated_voltage=_lerp(
                    before.compensated_voltage, after.compensated_voltage, progress
                ),
                battery_percent=_lerp(before.battery_percent, after.battery_percent, progress),
                distance_km=_lerp(before.distance_km, after.distance_km, progress),
                speed_kmh=_lerp(before.speed_kmh, after.speed_kmh, progress),
                power_w=_lerp(before.power_w, after.power_w, progress),
                current_a=_lerp(before.current_a, after.current_a, progress),
                temperature_c=temperature,
                flags=frozenset({SampleFlag.INTERPOLATED}),
            )
        )
    return samples


class TripLifecycle:
    """Apply connectivity, gap and charging transitions to one trip."""

    def __init__(self, trip: TripSnapshot | None = None) -> None:
        self.trip = trip if trip is not None else TripSnapshot()
        self.connectivity = ConnectivityState()
        self.charging_state = ChargingState.NOT_CHARGING
        self._suspected: BatterySample | None = None
        self._before_charge: BatterySample | None = None

    # Connectivity

    def update_connectivity(
        self, connected: bool, timestamp: float, last_sample_time: float | None
    ) -> LinkEvent:
        self.connectivity, event = next_connectivity(
            self.connectivity, connected, timestamp, last_sample_time
        )
        if event is LinkEvent.WENT_OFFLINE:
            _LOGGER.info(
                "Range: telemetry source disconnected (since %s)",
                self.connectivity.disconnected_since,
            )
        elif event is LinkEvent.RECONNECTED:
            _LOGGER.info("Range: telemetry source reconnected at %s", timestamp)
        return event

    def is_stale(self, now: float) -> bool:
        return is_stale(self.connectivity, now)

    # Gaps

    def fill_gap(self, before: BatterySample, after: BatterySample) -> int:
        """Record a connection gap; returns the number of synthetic samples."""
        interpolated = interpolate_gap(before, after)
        gap = after.timestamp - before.timestamp
        if not interpolated and gap < MAX_INTERPOLATED_SAMPLES * INTERPOLATION_INTERVAL_SECONDS:
            # Short hiccup: nothing to fill, riding continues in the same segment
            return 0
        segment = TripSegment(SegmentType.CONNECTION_GAP, start_time=before.timestamp)
        for sample in interpolated:
            segment.add_sample(sample)
        self.trip.segments.append(segment)
        _LOGGER.debug(
            "Range: %.1f s gap recorded with %d interpolated samples", gap, len(interpolated)
        )
        return len(interpolated)

    # Charging

    def update_charging(
        self, sample: BatterySample, previous: BatterySample | None
    ) -> ChargingTransition:
        """Run charging detection for a sample that has not been appended yet."""
        if previous is None:
            return ChargingTransition.NONE
        indicated = charging_indicated(sample, previous)
        self.charging_state, transition = next_charging_state(self.charging_state, indicated)

        if transition is ChargingTransition.SUSPECTED:
            self._suspected = sample
            self._before_charge = previous
            _LOGGER.debug("Range: charging suspected at %s", sample.timestamp)
        elif transition is ChargingTransition.FALSE_ALARM:
            self._suspected = None
            self._before_charge = None
        elif transition is ChargingTransition.CONFIRMED:
            self._open_charging()
        elif transition is ChargingTransition.ENDED:
            self._close_charging(sample)
        return transition

    def _open_charging(self) -> None:
        suspected = self._suspected
        before = self._before_charge or suspected
        if suspected is None or before is None:
            return
        segment = TripSegment(SegmentType.CHARGING, start_time=suspected.timestamp)
        current = self.trip.current_segment
        if (
            current is not None
            and current.samples
            and current.samples[-1].timestamp == suspected.timestamp
        ):
            segment.add_sample(current.samples.pop())
        self.trip.segments.append(segment)
        self.trip.charging_events.append(
            ChargingEvent(
                start_time=suspected.timestamp,
                voltage_before=before.voltage,
                battery_before=before.battery_percent,
            )
        )
        self.trip.is_currently_charging = True
        _LOGGER.info(
            "Range: charging confirmed (from %.1f V / %.0f%%)",
            before.voltage,
            before.battery_percent,
        )

    def _close_charging(self, sample: BatterySample) -> None:
        if self.trip.charging_events and self.trip.charging_events[-1].is_open:
            self.trip.charging_events[-1].close(sample)
        self.trip.is_currently_charging = False
        self._suspected = None
        self._before_charge = None
        self.start_baseline(sample.timestamp, f"Post-charging ({sample.timestamp:.0f})")
        _LOGGER.info(
            "Range: charging ended at %.1f V / %.0f%%, new baseline",
            sample.voltage,
            sample.battery_percent,
        )

    # Segments

    def start_baseline(self, timestamp: float, reason: str) -> TripSegment:
        segment = TripSegment(
            SegmentType.NORMAL_RIDING,
            start_time=timestamp,
            is_baseline=True,
            baseline_reason=reason,
        )
        self.trip.segments.append(segment)
        return segment

    def append(self, sample: BatterySample) -> bool:
        """Add a real sample to the active segment; False if out of order."""
        latest = self.trip.latest_sample
        if latest is not None and sample.timestamp <= latest.timestamp:
            return False
        segment = self.trip.current_segment
        if segment is None:
            segment = self.start_baseline(sample.timestamp, f"Trip start ({sample.timestamp:.0f})")
        elif segment.segment_type is SegmentType.CONNECTION_GAP:
            segment = TripSegment(SegmentType.NORMAL_RIDING, start_time=sample.timestamp)
            self.trip.segments.append(segment)
        return segment.add_sample(sample)
