"""Tests for trip_lifecycle module."""

import pytest

from custom_components.euc_range.range_types import BatterySample, SampleFlag, SegmentType
from custom_components.euc_range.trip_lifecycle import (
    ChargingState,
    ChargingTransition,
    ConnectivityState,
    LinkEvent,
    TripLifecycle,
    charging_indicated,
    interpolate_gap,
    interpolation_count,
    is_stale,
    next_charging_state,
    next_connectivity,
)


def _sample(ts, km=0.0, speed=20.0, voltage=80.0, percent=90.0, charging=False):
    return BatterySample(
        timestamp=ts,
        voltage=voltage,
        compensated_voltage=voltage,
        battery_percent=percent,
        distance_km=km,
        speed_kmh=speed,
        power_w=360.0 if speed else 0.0,
        flags=frozenset({SampleFlag.CHARGING_DETECTED}) if charging else frozenset(),
    )


class TestConnectivity:
    """Tests for the connectivity state machine."""

    def test_went_offline_uses_last_sample_time(self):
        """Test disconnection is dated from the last good sample."""
        state, event = next_connectivity(ConnectivityState(), False, 200.0, 150.0)
        assert event is LinkEvent.WENT_OFFLINE
        assert state == ConnectivityState(connected=False, disconnected_since=150.0)

    def test_still_offline_keeps_start(self):
        """Test repeated disconnected readings keep the original start time."""
        offline = ConnectivityState(connected=False, disconnected_since=150.0)
        state, event = next_connectivity(offline, False, 300.0, 150.0)
        assert event is LinkEvent.STILL_OFFLINE
        assert state.disconnected_since == 150.0

    def test_reconnect(self):
        """Test a connected reading after an outage clears the state."""
        offline = ConnectivityState(connected=False, disconnected_since=150.0)
        state, event = next_connectivity(offline, True, 300.0, 150.0)
        assert event is LinkEvent.RECONNECTED
        assert state == ConnectivityState()

    def test_stale_after_threshold(self):
        """Test staleness only after more than 60 s offline."""
        offline = ConnectivityState(connected=False, disconnected_since=100.0)
        assert not is_stale(offline, 160.0)
        assert is_stale(offline, 160.5)
        assert not is_stale(ConnectivityState(), 10_000.0)


class TestChargingStateMachine:
    """Tests for the charging state machine."""

    def test_two_indications_confirm(self):
        """Test charging needs two consecutive indications."""
        state, transition = next_charging_state(ChargingState.NOT_CHARGING, True)
        assert transition is ChargingTransition.SUSPECTED
        state, transition = next_charging_state(state, True)
        assert transition is ChargingTransition.CONFIRMED
        assert state is ChargingState.CHARGING_CONFIRMED

    def test_false_alarm(self):
        """Test a single indication reverts to not charging."""
        state, transition = next_charging_state(ChargingState.CHARGING_SUSPECTED, False)
        assert transition is ChargingTransition.FALSE_ALARM
        assert state is ChargingState.NOT_CHARGING

    def test_end(self):
        """Test charging ends when indications stop."""
        state, transition = next_charging_state(ChargingState.CHARGING_CONFIRMED, False)
        assert transition is ChargingTransition.ENDED
        assert state is ChargingState.NOT_CHARGING

    def test_indicated_by_voltage_rise_without_movement(self):
        """Test a voltage rise while parked indicates charging."""
        previous = _sample(0, km=5.0, speed=0.0, voltage=75.0)
        assert charging_indicated(_sample(1, km=5.0, speed=0.0, voltage=75.6), previous)
        assert not charging_indicated(_sample(1, km=5.0, speed=0.0, voltage=75.4), previous)
        assert not charging_indicated(_sample(1, km=5.1, speed=0.0, voltage=75.6), previous)

    def test_indicated_by_flag(self):
        """Test the wheel's own charging flag indicates charging."""
        previous = _sample(0, speed=0.0)
        assert charging_indicated(_sample(1, speed=0.0, charging=True), previous)


class TestInterpolation:
    """Tests for gap interpolation."""

    @pytest.mark.parametrize(
        ("gap", "count"), [(0, 0), (4.9, 0), (5, 1), (20, 4), (3595, 719), (3600, 0)]
    )
    def test_interpolation_count(self, gap, count):
        """Test synthetic sample count bounds."""
        assert interpolation_count(gap) == count

    def test_linear_values(self):
        """Test interpolated samples lie on the line between the endpoints."""
        before = _sample(100, km=1.0, voltage=80.0, percent=90.0)
        after = _sample(120, km=1.4, voltage=79.0, percent=88.0)
        samples = interpolate_gap(before, after)
        assert len(samples) == 4
        assert [sample.timestamp for sample in samples] == pytest.approx([104, 108, 112, 116])
        assert samples[0].distance_km == pytest.approx(1.08)
        assert samples[-1].voltage == pytest.approx(79.2)
        assert all(sample.is_interpolated and sample.is_valid for sample in samples)


class TestTripLifecycle:
    """Tests for applying transitions to a trip."""

    def test_first_sample_opens_baseline(self):
        """Test the first appended sample starts the trip baseline."""
        lifecycle = TripLifecycle()
        assert lifecycle.append(_sample(100))
        baseline = lifecycle.trip.current_baseline_segment
        assert baseline is lifecycle.trip.segments[0]
        assert baseline.baseline_reason == "Trip start (100)"

    def test_append_rejects_out_of_order(self):
        """Test out-of-order samples are refused."""
        lifecycle = TripLifecycle()
        lifecycle.append(_sample(100))
        assert not lifecycle.append(_sample(99))
        assert lifecycle.trip.sample_count == 1

    def test_short_gap_adds_no_segment(self):
        """Test a gap too short to interpolate keeps the same segment."""
        lifecycle = TripLifecycle()
        lifecycle.append(_sample(100))
        assert lifecycle.fill_gap(_sample(100), _sample(103)) == 0
        assert len(lifecycle.trip.segments) == 1

    def test_gap_segment_then_continuation(self):
        """Test a gap adds a connection segment and riding resumes after it."""
        lifecycle = TripLifecycle()
        first = _sample(100, km=1.0)
        lifecycle.append(first)
        after = _sample(130, km=1.3)
        assert lifecycle.fill_gap(first, after) == 6
        assert lifecycle.append(after)
        types = [segment.segment_type for segment in lifecycle.trip.segments]
        assert types == [
            SegmentType.NORMAL_RIDING,
            SegmentType.CONNECTION_GAP,
            SegmentType.NORMAL_RIDING,
        ]
        assert lifecycle.trip.interpolated_count == 6

    def test_long_gap_is_empty_segment(self):
        """Test an hour-long gap is recorded without synthetic samples."""
        lifecycle = TripLifecycle()
        first = _sample(100)
        lifecycle.append(first)
        assert lifecycle.fill_gap(first, _sample(100 + 7200)) == 0
        assert lifecycle.trip.segments[-1].segment_type is SegmentType.CONNECTION_GAP
        assert lifecycle.trip.segments[-1].samples == []

    def test_charging_cycle(self):
        """Test charging opens a segment and event, then a new baseline."""
        lifecycle = TripLifecycle()
        riding = _sample(100, km=5.0, speed=0.0, voltage=75.0, percent=40.0)
        lifecycle.append(riding)

        suspected = _sample(101, km=5.0, speed=0.0, voltage=75.0, percent=40.0, charging=True)
        assert lifecycle.update_charging(suspected, riding) is ChargingTransition.SUSPECTED
        lifecycle.append(suspected)

        confirmed = _sample(102, km=5.0, speed=0.0, voltage=75.2, percent=40.0, charging=True)
        assert lifecycle.update_charging(confirmed, suspected) is ChargingTransition.CONFIRMED
        lifecycle.append(confirmed)

        trip = lifecycle.trip
        assert trip.is_currently_charging
        assert trip.current_segment.segment_type is SegmentType.CHARGING
        assert trip.current_segment.samples[0] is suspected
        assert trip.segments[0].samples == [riding]
        event = trip.charging_events[0]
        assert event.voltage_before == 75.0
        assert event.is_open

        charged = _sample(199, km=5.0, speed=0.0, voltage=82.0, percent=90.0, charging=True)
        assert lifecycle.update_charging(charged, confirmed) is ChargingTransition.NONE
        lifecycle.append(charged)

        done = _sample(200, km=5.0, speed=0.0, voltage=82.0, percent=90.0)
        assert lifecycle.update_charging(done, charged) is ChargingTransition.ENDED
        lifecycle.append(done)

        assert not trip.is_currently_charging
        assert not event.is_open
        assert event.voltage_after == 82.0
        baseline = trip.current_baseline_segment
        assert baseline.baseline_reason == "Post-charging (200)"
        assert baseline.samples == [done]

    def test_false_alarm_keeps_sample_in_riding(self):
        """Test a single charging indication leaves the trip untouched."""
        lifecycle = TripLifecycle()
        riding = _sample(100, speed=0.0)
        lifecycle.append(riding)
        suspected = _sample(101, speed=0.0, charging=True)
        lifecycle.update_charging(suspected, riding)
        lifecycle.append(suspected)
        after = _sample(102, speed=0.0)
        assert lifecycle.update_charging(after, suspected) is ChargingTransition.FALSE_ALARM
        assert len(lifecycle.trip.segments) == 1
        assert not lifecycle.trip.charging_events
