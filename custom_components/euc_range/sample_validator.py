"""Anomaly flagging for battery samples."""

from __future__ import annotations

from .const import (
    CELL_VOLTAGE_MAX,
    CELL_VOLTAGE_MIN,
    CHARGING_FLAG_BATTERY_RISE,
    CHARGING_FLAG_VOLTAGE_RISE,
    DISTANCE_JUMP_KM,
    DISTANCE_JUMP_WINDOW_SECONDS,
    MAX_ACCELERATION_KMH_PER_S,
    MAX_INSTANT_EFFICIENCY,
    MAX_SPEED_KMH,
    STATIONARY_SPEED_KMH,
    TIME_GAP_SECONDS,
)
from .range_types import BatterySample, SampleFlag


def detect_time_gap(sample: BatterySample, previous: BatterySample) -> bool:
    """Gap since the previous sample, or a duplicate/out-of-order timestamp."""
    delta = sample.timestamp - previous.timestamp
    return delta <= 0 or delta > TIME_GAP_SECONDS


def detect_distance_anomaly(sample: BatterySample, previous: BatterySample) -> bool:
    """Trip meter jumped too far too fast, or ran backwards."""
    delta_km = sample.distance_km - previous.distance_km
    if delta_km < 0:
        return True
    delta_s = sample.timestamp - previous.timestamp
    return delta_km > DISTANCE_JUMP_KM and delta_s < DISTANCE_JUMP_WINDOW_SECONDS


def detect_charging(sample: BatterySample, previous: BatterySample) -> bool:
    """Battery or voltage climbed noticeably while standing still."""
    battery_rise = sample.battery_percent - previous.battery_percent
    voltage_rise = sample.voltage - previous.voltage
    return sample.speed_kmh < STATIONARY_SPEED_KMH and (
        battery_rise >= CHARGING_FLAG_BATTERY_RISE or voltage_rise >= CHARGING_FLAG_VOLTAGE_RISE
    )


def detect_voltage_anomaly(sample: BatterySample, cell_count: int) -> bool:
    """Raw or compensated voltage is outside the physical cell window."""
    low = CELL_VOLTAGE_MIN * cell_count
    high = CELL_VOLTAGE_MAX * cell_count
    return not (low <= sample.voltage <= high and low <= sample.compensated_voltage <= high)


def detect_efficiency_outlier(sample: BatterySample) -> bool:
    efficiency = sample.instant_efficiency
    if efficiency is None:
        return False
    return efficiency < 0 or efficiency > MAX_INSTANT_EFFICIENCY


def detect_speed_anomaly(sample: BatterySample, previous: BatterySample | None) -> bool:
    """Negative or implausible speed, or acceleration beyond what a wheel can do."""
    if sample.speed_kmh < 0 or sample.speed_kmh > MAX_SPEED_KMH:
        return True
    if previous is None:
        return False
    delta_s = sample.timestamp - previous.timestamp
    if delta_s <= 0:
        return False
    acceleration = (sample.speed_kmh - previous.speed_kmh) / delta_s
    return abs(acceleration) > MAX_ACCELERATION_KMH_PER_S


class SampleValidator:
    """Compute the flag set for each incoming sample."""

    def __init__(self, cell_count: int) -> None:
        self.cell_count = cell_count

    def flags_for(
        self, sample: BatterySample, previous: BatterySample | None
    ) -> frozenset[SampleFlag]:
        flags: set[SampleFlag] = set()
        if detect_voltage_anomaly(sample, self.cell_count):
            flags.add(SampleFlag.VOLTAGE_ANOMALY)
        if detect_efficiency_outlier(sample):
            flags.add(SampleFlag.EFFICIENCY_OUTLIER)
        if detect_speed_anomaly(sample, previous):
            flags.add(SampleFlag.SPEED_ANOMALY)
        if previous is not None:
            if detect_time_gap(sample, previous):
                flags.add(SampleFlag.TIME_GAP)
            if detect_distance_anomaly(sample, previous):
                flags.add(SampleFlag.DISTANCE_ANOMALY)
            if detect_charging(sample, previous):
                flags.add(SampleFlag.CHARGING_DETECTED)
        return frozenset(flags)

    def validate(self, sample: BatterySample, previous: BatterySample | None) -> BatterySample:
        """Return the sample with anomaly flags merged in."""
        flags = self.flags_for(sample, previous)
        return sample.with_flags(flags) if flags else sample
