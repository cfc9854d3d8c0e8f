"""Tests for range_types module."""

import math

import pytest

from custom_components.euc_range.range_types import (
    BatterySample,
    EstimateStatus,
    HistoricalSegment,
    InvalidSampleError,
    RangeEstimate,
    SampleFlag,
    SegmentType,
    TelemetrySample,
    TripSegment,
    TripSnapshot,
)


def _sample(ts, km=0.0, speed=20.0, power=360.0, voltage=80.0, percent=90.0, flags=()):
    return BatterySample(
        timestamp=ts,
        voltage=voltage,
        compensated_voltage=voltage,
        battery_percent=percent,
        distance_km=km,
        speed_kmh=speed,
        power_w=power,
        flags=frozenset(flags),
    )


class TestTelemetrySample:
    """Tests for parsing pushed telemetry."""

    def test_from_dict_defaults(self):
        """Test optional fields fall back to defaults."""
        sample = TelemetrySample.from_dict({"timestamp": 10, "voltage": "80.5", "battery_percent": 90})
        assert sample.voltage == 80.5
        assert sample.distance_km == 0.0
        assert sample.connected is True
        assert sample.charging is False
        assert sample.wheel_model is None

    def test_missing_required_field(self):
        """Test a payload without voltage is rejected."""
        with pytest.raises(InvalidSampleError, match="voltage"):
            TelemetrySample.from_dict({"timestamp": 10, "battery_percent": 90})

    def test_non_numeric_field(self):
        """Test non-numeric values are rejected."""
        with pytest.raises(InvalidSampleError):
            TelemetrySample.from_dict({"timestamp": 10, "voltage": "abc", "battery_percent": 90})

    def test_non_finite_field(self):
        """Test NaN and infinity are rejected."""
        with pytest.raises(InvalidSampleError):
            TelemetrySample.from_dict(
                {"timestamp": 10, "voltage": 80, "battery_percent": 90, "speed_kmh": math.inf}
            )

    def test_wheel_model_trimmed(self):
        """Test blank wheel models become None and others are trimmed."""
        base = {"timestamp": 1, "voltage": 80, "battery_percent": 90}
        assert TelemetrySample.from_dict({**base, "wheel_model": "  "}).wheel_model is None
        assert TelemetrySample.from_dict({**base, "wheel_model": " Master "}).wheel_model == "Master"


class TestBatterySample:
    """Tests for battery sample derived properties."""

    def test_instant_efficiency(self):
        """Test efficiency is power over speed while moving."""
        assert _sample(0, speed=20.0, power=360.0).instant_efficiency == pytest.approx(18.0)

    def test_stationary_efficiency_is_none_and_valid(self):
        """Test stationary samples have no efficiency but stay valid."""
        sample = _sample(0, speed=0.5, power=50.0)
        assert sample.instant_efficiency is None
        assert sample.is_valid

    def test_disqualifying_flags(self):
        """Test any flag other than interpolated invalidates a sample."""
        assert not _sample(0, flags=[SampleFlag.TIME_GAP]).is_valid
        assert _sample(0, flags=[SampleFlag.INTERPOLATED]).is_valid

    def test_negative_efficiency_invalid(self):
        """Test regenerative power while moving is not a valid sample."""
        assert not _sample(0, power=-200.0).is_valid

    def test_out_of_range_percent_invalid(self):
        """Test battery percent must be within 0-100."""
        assert not _sample(0, percent=101.0).is_valid

    def test_usable_efficiency_band(self):
        """Test usable efficiency excludes values outside (5, 200) Wh/km."""
        assert _sample(0, power=360.0).usable_efficiency == pytest.approx(18.0)
        assert _sample(0, power=50.0).usable_efficiency is None
        assert _sample(0, power=5000.0).usable_efficiency is None

    def test_with_flags_merges(self):
        """Test flags accumulate rather than replace."""
        sample = _sample(0, flags=[SampleFlag.TIME_GAP]).with_flags(
            frozenset({SampleFlag.SPEED_ANOMALY})
        )
        assert sample.flags == {SampleFlag.TIME_GAP, SampleFlag.SPEED_ANOMALY}

    def test_from_telemetry_charging_flag(self):
        """Test a charging telemetry reading is flagged on conversion."""
        telemetry = TelemetrySample(timestamp=1, voltage=80, battery_percent=50, charging=True)
        sample = BatterySample.from_telemetry(telemetry, 80.0)
        assert SampleFlag.CHARGING_DETECTED in sample.flags


class TestTripSegment:
    """Tests for trip segments."""

    def test_rejects_non_increasing_timestamps(self):
        """Test samples must arrive in strictly increasing order."""
        segment = TripSegment(SegmentType.NORMAL_RIDING, start_time=0)
        assert segment.add_sample(_sample(1))
        assert not segment.add_sample(_sample(1))
        assert not segment.add_sample(_sample(0.5))
        assert len(segment.samples) == 1


class TestTripSnapshot:
    """Tests for trip snapshot aggregates."""

    def _trip(self):
        first = TripSegment(
            SegmentType.NORMAL_RIDING, 0, is_baseline=True, baseline_reason="Trip start (0)"
        )
        for ts in range(0, 61, 10):
            first.add_sample(_sample(ts, km=ts / 100))
        gap = TripSegment(SegmentType.CONNECTION_GAP, 60)
        gap.add_sample(_sample(65, km=0.65, flags=[SampleFlag.INTERPOLATED]))
        resumed = TripSegment(SegmentType.NORMAL_RIDING, 70)
        for ts in range(70, 131, 10):
            resumed.add_sample(_sample(ts, km=ts / 100))
        return TripSnapshot(segments=[first, gap, resumed])

    def test_counts(self):
        """Test sample counts across segments."""
        trip = self._trip()
        assert trip.sample_count == 15
        assert trip.valid_count == 15
        assert trip.interpolated_count == 1
        assert trip.segment_counts()[SegmentType.CONNECTION_GAP.value] == 1

    def test_riding_minutes_summed_per_segment(self):
        """Test riding time excludes the spans between segments."""
        trip = self._trip()
        assert trip.riding_minutes_since_baseline() == pytest.approx((60 + 60) / 60)

    def test_distance_since_baseline(self):
        """Test distance is measured from the first baseline sample."""
        assert self._trip().distance_since_baseline() == pytest.approx(1.3)

    def test_baseline_falls_back_to_first_riding_segment(self):
        """Test a trip without an explicit baseline uses the first riding segment."""
        segment = TripSegment(SegmentType.NORMAL_RIDING, 0)
        trip = TripSnapshot(segments=[segment])
        assert trip.current_baseline_segment is segment

    def test_charging_segment_excluded(self):
        """Test charging segments do not contribute samples for estimation."""
        riding = TripSegment(SegmentType.NORMAL_RIDING, 0, is_baseline=True)
        riding.add_sample(_sample(0))
        charging = TripSegment(SegmentType.CHARGING, 10)
        charging.add_sample(_sample(10, speed=0.0))
        trip = TripSnapshot(segments=[riding, charging])
        assert len(trip.valid_samples_since_baseline()) == 1


class TestRangeEstimate:
    """Tests for range estimate serialization."""

    def test_to_dict_rounds(self):
        """Test published values are rounded for display."""
        estimate = RangeEstimate(
            status=EstimateStatus.VALID,
            range_km=42.456,
            confidence=0.81234,
            confidence_interval_85=(30.04, 50.06),
        )
        data = estimate.to_dict()
        assert data["status"] == "valid"
        assert data["range_km"] == 42.5
        assert data["confidence"] == 0.812
        assert data["confidence_interval_85"] == [30.0, 50.1]
        assert data["confidence_interval_95"] is None

    def test_with_status(self):
        """Test with_status keeps the other fields."""
        estimate = RangeEstimate(status=EstimateStatus.VALID, range_km=10.0)
        stale = estimate.with_status(EstimateStatus.STALE)
        assert stale.status is EstimateStatus.STALE
        assert stale.range_km == 10.0


class TestHistoricalSegment:
    """Tests for historical segment validity."""

    def _segment(self, **overrides):
        values = {
            "start_percent": 90,
            "end_percent": 85,
            "start_voltage": 82.0,
            "end_voltage": 81.0,
            "distance_km": 5.0,
            "duration_seconds": 900.0,
            "efficiency_wh_per_km": 20.0,
            "timestamp": 1000.0,
        }
        values.update(overrides)
        return HistoricalSegment(**values)

    def test_valid(self):
        """Test a plausible segment is valid."""
        assert self._segment().is_valid

    def test_too_short(self):
        """Test segments under 2 km are rejected."""
        assert not self._segment(distance_km=1.5).is_valid

    def test_implausible_efficiency(self):
        """Test efficiencies outside 5-200 Wh/km are rejected."""
        assert not self._segment(efficiency_wh_per_km=250.0).is_valid

    def test_dict_round_trip_defaults(self):
        """Test missing optional keys load with defaults."""
        data = self._segment().to_dict()
        del data["wheel_model"]
        loaded = HistoricalSegment.from_dict(data)
        assert loaded.wheel_model == "Unknown"
        assert loaded.distance_km == 5.0
