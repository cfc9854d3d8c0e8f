"""Data types for range estimation."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar

from .const import (
    HISTORY_MIN_DISTANCE_KM,
    HISTORY_MIN_PERCENT_DELTA,
    MAX_EFFICIENCY_WH_PER_KM,
    MIN_EFFICIENCY_WH_PER_KM,
    MIN_MOVING_SPEED_KMH,
)


class InvalidSampleError(ValueError):
    """Raised when a telemetry payload cannot be turned into a sample."""


class SampleFlag(str, Enum):
    """Data-quality flags attached to a battery sample."""

    TIME_GAP = "time_gap"
    DISTANCE_ANOMALY = "distance_anomaly"
    VOLTAGE_ANOMALY = "voltage_anomaly"
    EFFICIENCY_OUTLIER = "efficiency_outlier"
    SPEED_ANOMALY = "speed_anomaly"
    CHARGING_DETECTED = "charging_detected"
    INTERPOLATED = "interpolated"


# Every flag except INTERPOLATED rules a sample out of estimation
DISQUALIFYING_FLAGS = frozenset(SampleFlag) - {SampleFlag.INTERPOLATED}


class SegmentType(str, Enum):
    """Kind of trip segment."""

    NORMAL_RIDING = "normal_riding"
    CONNECTION_GAP = "connection_gap"
    CHARGING = "charging"
    PARKED = "parked"


class EstimateStatus(str, Enum):
    """Status of a published range estimate."""

    INSUFFICIENT_DATA = "insufficient_data"
    COLLECTING = "collecting"
    VALID = "valid"
    CHARGING = "charging"
    LOW_CONFIDENCE = "low_confidence"
    STALE = "stale"


def _float(data: dict[str, Any], key: str, default: float | None = None) -> float | None:
    value = data.get(key, default)
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError) as err:
        raise InvalidSampleError(f"{key} is not numeric: {value!r}") from err
    if not math.isfinite(result):
        raise InvalidSampleError(f"{key} is not finite: {value!r}")
    return result


@dataclass(frozen=True)
class TelemetrySample:
    """One raw telemetry reading pushed by the wheel bridge."""

    timestamp: float  # Unix seconds
    voltage: float
    battery_percent: float
    distance_km: float = 0.0
    speed_kmh: float = 0.0
    power_w: float = 0.0
    current_a: float = 0.0
    temperature_c: float | None = None
    connected: bool = True
    charging: bool = False
    wheel_model: str | None = None

    REQUIRED: ClassVar[tuple[str, ...]] = ("timestamp", "voltage", "battery_percent")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelemetrySample:
        """Parse a service payload; raises InvalidSampleError."""
        missing = [key for key in cls.REQUIRED if data.get(key) is None]
        if missing:
            raise InvalidSampleError(f"Missing telemetry fields: {', '.join(missing)}")
        model = str(data.get("wheel_model") or "").strip()
        return cls(
            timestamp=_float(data, "timestamp"),
            voltage=_float(data, "voltage"),
            battery_percent=_float(data, "battery_percent"),
            distance_km=_float(data, "distance_km", 0.0),
            speed_kmh=_float(data, "speed_kmh", 0.0),
            power_w=_float(data, "power_w", 0.0),
            current_a=_float(data, "current_a", 0.0),
            temperature_c=_float(data, "temperature_c"),
            connected=bool(data.get("connected", True)),
            charging=bool(data.get("charging", False)),
            wheel_model=model or None,
        )


@dataclass(frozen=True)
class BatterySample:
    """A telemetry reading after compensation and validation."""

    timestamp: float
    voltage: float
    compensated_voltage: float
    battery_percent: float
    distance_km: float
    speed_kmh: float
    power_w: float
    current_a: float = 0.0
    temperature_c: float | None = None
    flags: frozenset[SampleFlag] = frozenset()

    @classmethod
    def from_telemetry(cls, sample: TelemetrySample, compensated_voltage: float) -> BatterySample:
        """Build a battery sample from raw telemetry."""
        flags = frozenset({SampleFlag.CHARGING_DETECTED}) if sample.charging else frozenset()
        return cls(
            timestamp=sample.timestamp,
            voltage=sample.voltage,
            compensated_voltage=compensated_voltage,
            battery_percent=sample.battery_percent,
            distance_km=sample.distance_km,
            speed_kmh=sample.speed_kmh,
            power_w=sample.power_w,
            current_a=sample.current_a,
            temperature_c=sample.temperature_c,
            flags=flags,
        )

    @property
    def instant_efficiency(self) -> float | None:
        """Wh/km at this instant, or None when effectively stationary."""
        if self.speed_kmh <= MIN_MOVING_SPEED_KMH:
            return None
        return self.power_w / self.speed_kmh

    @property
    def is_interpolated(self) -> bool:
        return SampleFlag.INTERPOLATED in self.flags

    @property
    def is_valid(self) -> bool:
        """Return True when the sample may be used for estimation."""
        if self.flags & DISQUALIFYING_FLAGS:
            return False
        if self.voltage <= 0 or not 0.0 <= self.battery_percent <= 100.0:
            return False
        efficiency = self.instant_efficiency
        if efficiency is None:
            return True
        return math.isfinite(efficiency) and efficiency >= 0

    @property
    def usable_efficiency(self) -> float | None:
        """Instant efficiency if it lies in the realistic band, else None."""
        efficiency = self.instant_efficiency
        if efficiency is None or not math.isfinite(efficiency):
            return None
        if MIN_EFFICIENCY_WH_PER_KM < efficiency < MAX_EFFICIENCY_WH_PER_KM:
            return efficiency
        return None

    def with_flags(self, flags: frozenset[SampleFlag]) -> BatterySample:
        return replace(self, flags=self.flags | flags)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "timestamp": self.timestamp,
            "voltage": self.voltage,
            "compensated_voltage": self.compensated_voltage,
            "battery_percent": self.battery_percent,
            "distance_km": self.distance_km,
            "speed_kmh": self.speed_kmh,
            "power_w": self.power_w,
            "current_a": self.current_a,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BatterySample:
        """Create from dictionary; raises on missing required fields."""
        return cls(
            timestamp=float(data["timestamp"]),
            voltage=float(data["voltage"]),
            compensated_voltage=float(data.get("compensated_voltage", data["voltage"])),
            battery_percent=float(data["battery_percent"]),
            distance_km=float(data.get("distance_km", 0.0)),
            speed_kmh=float(data.get("speed_kmh", 0.0)),
            power_w=float(data.get("power_w", 0.0)),
            current_a=float(data.get("current_a", 0.0)),
        )


@dataclass(eq=False)
class TripSegment:
    """A run of samples sharing one riding condition."""

    segment_type: SegmentType
    start_time: float
    samples: list[BatterySample] = field(default_factory=list)
    is_baseline: bool = False
    baseline_reason: str | None = None

    def add_sample(self, sample: BatterySample) -> bool:
        """Append a sample; refuses timestamps that do not move forward."""
        if self.samples and sample.timestamp <= self.samples[-1].timestamp:
            return False
        self.samples.append(sample)
        return True

    @property
    def first(self) -> BatterySample | None:
        return self.samples[0] if self.samples else None

    @property
    def last(self) -> BatterySample | None:
        return self.samples[-1] if self.samples else None

    @property
    def end_time(self) -> float | None:
        return self.samples[-1].timestamp if self.samples else None

    @property
    def valid_samples(self) -> list[BatterySample]:
        return [sample for sample in self.samples if sample.is_valid]


# Segment types that count as travel when measuring riding time
RIDING_SEGMENT_TYPES = frozenset({SegmentType.NORMAL_RIDING, SegmentType.CONNECTION_GAP})


@dataclass
class ChargingEvent:
    """A mid-trip charge; open until charging stops."""

    start_time: float
    voltage_before: float
    battery_before: float
    end_time: float | None = None
    voltage_after: float | None = None
    battery_after: float | None = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def close(self, sample: BatterySample) -> None:
        self.end_time = sample.timestamp
        self.voltage_after = sample.voltage
        self.battery_after = sample.battery_percent


@dataclass
class TripSnapshot:
    """Aggregate state of one trip: segments and charging events."""

    segments: list[TripSegment] = field(default_factory=list)
    charging_events: list[ChargingEvent] = field(default_factory=list)
    is_currently_charging: bool = False

    @property
    def samples(self) -> list[BatterySample]:
        """Flattened sample history in timestamp order."""
        return [sample for segment in self.segments for sample in segment.samples]

    @property
    def sample_count(self) -> int:
        return sum(len(segment.samples) for segment in self.segments)

    @property
    def valid_count(self) -> int:
        return sum(len(segment.valid_samples) for segment in self.segments)

    @property
    def interpolated_count(self) -> int:
        return sum(
            1 for segment in self.segments for sample in segment.samples if sample.is_interpolated
        )

    @property
    def start_time(self) -> float | None:
        return self.segments[0].start_time if self.segments else None

    @property
    def current_segment(self) -> TripSegment | None:
        return self.segments[-1] if self.segments else None

    @property
    def latest_sample(self) -> BatterySample | None:
        for segment in reversed(self.segments):
            if segment.samples:
                return segment.samples[-1]
        return None

    @property
    def current_baseline_segment(self) -> TripSegment | None:
        """Last baseline segment, or the first riding segment as fallback."""
        for segment in reversed(self.segments):
            if segment.is_baseline:
                return segment
        for segment in self.segments:
            if segment.segment_type is SegmentType.NORMAL_RIDING:
                return segment
        return None

    def segments_since_baseline(self) -> list[TripSegment]:
        """Riding segments from the current baseline onward."""
        baseline = self.current_baseline_segment
        if baseline is None:
            return []
        index = self.segments.index(baseline)
        return [
            segment
            for segment in self.segments[index:]
            if segment.segment_type in RIDING_SEGMENT_TYPES
        ]

    def valid_samples_since_baseline(self) -> list[BatterySample]:
        return [
            sample
            for segment in self.segments_since_baseline()
            for sample in segment.samples
            if sample.is_valid
        ]

    def riding_minutes_since_baseline(self) -> float:
        """Riding time in minutes, summed per segment over valid samples."""
        total = 0.0
        for segment in self.segments_since_baseline():
            valid = segment.valid_samples
            if len(valid) >= 2:
                total += valid[-1].timestamp - valid[0].timestamp
        return total / 60.0

    def distance_since_baseline(self) -> float:
        baseline = self.current_baseline_segment
        if baseline is None or baseline.first is None:
            return 0.0
        latest = self.latest_sample
        if latest is None:
            return 0.0
        return latest.distance_km - baseline.first.distance_km

    def segment_counts(self) -> dict[str, int]:
        counts = {segment_type.value: 0 for segment_type in SegmentType}
        for segment in self.segments:
            counts[segment.segment_type.value] += 1
        return counts


@dataclass(frozen=True)
class DataQuality:
    """How much data backs an estimate."""

    total_samples: int = 0
    valid_samples: int = 0
    interpolated_samples: int = 0
    charging_events: int = 0
    baseline_reason: str | None = None
    travel_time_minutes: float = 0.0
    travel_distance_km: float = 0.0
    meets_minimum_time: bool = False
    meets_minimum_distance: bool = False
    time_progress: float = 0.0
    distance_progress: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RangeEstimate:
    """Published remaining-range estimate."""

    status: EstimateStatus
    range_km: float | None = None
    confidence: float = 0.0
    efficiency_wh_per_km: float | None = None
    estimated_time_minutes: float | None = None
    confidence_interval_85: tuple[float, float] | None = None
    confidence_interval_95: tuple[float, float] | None = None
    calibration_factor: float = 1.0
    estimator: str | None = None
    timestamp: float | None = None
    data_quality: DataQuality = field(default_factory=DataQuality)

    @property
    def sample_count(self) -> int:
        return self.data_quality.valid_samples

    def with_status(self, status: EstimateStatus) -> RangeEstimate:
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        """Flatten for state attributes and service responses."""
        return {
            "status": self.status.value,
            "range_km": _round(self.range_km, 1),
            "confidence": round(self.confidence, 3),
            "efficiency_wh_per_km": _round(self.efficiency_wh_per_km, 2),
            "estimated_time_minutes": _round(self.estimated_time_minutes, 1),
            "confidence_interval_85": _round_pair(self.confidence_interval_85),
            "confidence_interval_95": _round_pair(self.confidence_interval_95),
            "calibration_factor": round(self.calibration_factor, 3),
            "estimator": self.estimator,
            "timestamp": self.timestamp,
            "sample_count": self.sample_count,
            "data_quality": self.data_quality.to_dict(),
        }


def _round(value: float | None, digits: int) -> float | None:
    return None if value is None else round(value, digits)


def _round_pair(pair: tuple[float, float] | None) -> list[float] | None:
    return None if pair is None else [round(pair[0], 1), round(pair[1], 1)]


@dataclass(frozen=True)
class BatteryMilestone:
    """Trip statistics captured when the battery crosses a 5% step."""

    battery_percent: int
    voltage: float
    distance_km: float
    time_seconds: float
    timestamp: float
    average_efficiency: float


@dataclass(frozen=True)
class HistoricalSegment:
    """Real-world efficiency observed between two milestones."""

    start_percent: int
    end_percent: int
    start_voltage: float
    end_voltage: float
    distance_km: float
    duration_seconds: float
    efficiency_wh_per_km: float
    timestamp: float
    wheel_model: str = "Unknown"
    battery_capacity_wh: float = 0.0

    @property
    def is_valid(self) -> bool:
        """Return True when the segment is trustworthy enough to keep."""
        return (
            self.distance_km >= HISTORY_MIN_DISTANCE_KM
            and self.start_percent - self.end_percent >= HISTORY_MIN_PERCENT_DELTA
            and MIN_EFFICIENCY_WH_PER_KM <= self.efficiency_wh_per_km <= MAX_EFFICIENCY_WH_PER_KM
            and self.start_percent > self.end_percent
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for persistence."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoricalSegment:
        """Create from dictionary; raises on malformed input."""
        return cls(
            start_percent=int(data["start_percent"]),
            end_percent=int(data["end_percent"]),
            start_voltage=float(data["start_voltage"]),
            end_voltage=float(data["end_voltage"]),
            distance_km=float(data["distance_km"]),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            efficiency_wh_per_km=float(data["efficiency_wh_per_km"]),
            timestamp=float(data["timestamp"]),
            wheel_model=str(data.get("wheel_model") or "Unknown"),
            battery_capacity_wh=float(data.get("battery_capacity_wh", 0.0)),
        )
