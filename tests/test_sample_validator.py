"""Tests for sample_validator module."""

from custom_components.euc_range.range_types import BatterySample, SampleFlag
from custom_components.euc_range.sample_validator import (
    SampleValidator,
    detect_charging,
    detect_distance_anomaly,
    detect_speed_anomaly,
    detect_time_gap,
    detect_voltage_anomaly,
)


def _sample(ts, km=0.0, speed=20.0, power=360.0, voltage=80.0, compensated=None, percent=90.0):
    return BatterySample(
        timestamp=ts,
        voltage=voltage,
        compensated_voltage=voltage if compensated is None else compensated,
        battery_percent=percent,
        distance_km=km,
        speed_kmh=speed,
        power_w=power,
    )


class TestDetectors:
    """Tests for individual anomaly detectors."""

    def test_time_gap(self):
        """Test gaps over 5 s and non-increasing timestamps are flagged."""
        previous = _sample(100)
        assert not detect_time_gap(_sample(100.5), previous)
        assert not detect_time_gap(_sample(105), previous)
        assert detect_time_gap(_sample(105.5), previous)
        assert detect_time_gap(_sample(100), previous)
        assert detect_time_gap(_sample(99), previous)

    def test_distance_anomaly(self):
        """Test jumps and backwards odometers are flagged."""
        previous = _sample(100, km=1.0)
        assert not detect_distance_anomaly(_sample(101, km=1.01), previous)
        assert detect_distance_anomaly(_sample(101, km=1.6), previous)
        assert not detect_distance_anomaly(_sample(200, km=1.6), previous)
        assert detect_distance_anomaly(_sample(101, km=0.9), previous)

    def test_charging(self):
        """Test battery or voltage climbing while stationary is flagged."""
        previous = _sample(100, speed=0.0, percent=50.0, voltage=75.0)
        assert detect_charging(_sample(101, speed=0.0, percent=53.0, voltage=75.0), previous)
        assert detect_charging(_sample(101, speed=0.0, percent=50.0, voltage=76.0), previous)
        assert not detect_charging(_sample(101, speed=0.0, percent=51.0, voltage=75.5), previous)
        assert not detect_charging(_sample(101, speed=10.0, percent=53.0, voltage=75.0), previous)

    def test_voltage_anomaly(self):
        """Test raw or compensated voltage outside the cell window is flagged."""
        assert not detect_voltage_anomaly(_sample(0, voltage=80.0), 20)
        assert detect_voltage_anomaly(_sample(0, voltage=85.0), 20)
        assert detect_voltage_anomaly(_sample(0, voltage=59.0), 20)
        assert detect_voltage_anomaly(_sample(0, voltage=80.0, compensated=59.0), 20)

    def test_speed_anomaly(self):
        """Test speed limits and acceleration limits."""
        assert detect_speed_anomaly(_sample(0, speed=-1.0), None)
        assert detect_speed_anomaly(_sample(0, speed=81.0), None)
        assert not detect_speed_anomaly(_sample(0, speed=50.0), None)
        previous = _sample(100, speed=10.0)
        assert detect_speed_anomaly(_sample(101, speed=35.0), previous)
        assert not detect_speed_anomaly(_sample(101, speed=25.0), previous)


class TestSampleValidator:
    """Tests for the combined validator."""

    def test_clean_sample_unchanged(self):
        """Test a clean sample comes back without flags."""
        validator = SampleValidator(20)
        previous = _sample(100, km=1.0)
        sample = _sample(100.5, km=1.0025)
        assert validator.validate(sample, previous) is sample
        assert validator.validate(sample, previous).is_valid

    def test_first_sample_skips_relative_checks(self):
        """Test checks needing a previous sample are skipped for the first one."""
        validator = SampleValidator(20)
        assert validator.flags_for(_sample(0), None) == frozenset()

    def test_efficiency_outlier(self):
        """Test instantaneous efficiency over 200 Wh/km is flagged."""
        validator = SampleValidator(20)
        flags = validator.flags_for(_sample(0, speed=10.0, power=2500.0), None)
        assert flags == {SampleFlag.EFFICIENCY_OUTLIER}

    def test_multiple_flags(self):
        """Test several anomalies accumulate on one sample."""
        validator = SampleValidator(20)
        previous = _sample(100, km=1.0)
        flags = validator.flags_for(_sample(120, km=0.5, voltage=90.0), previous)
        assert SampleFlag.TIME_GAP in flags
        assert SampleFlag.DISTANCE_ANOMALY in flags
        assert SampleFlag.VOLTAGE_ANOMALY in flags
