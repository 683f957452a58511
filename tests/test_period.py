"""Tests for period arithmetic."""

import pytest
from datetime import datetime, timedelta, timezone

from aw_conjure_integration.sync.period import (
    Period,
    beginning,
    era_of,
    iso8601,
    last_complete,
    since_end_of_period,
    since_last_complete_at,
    since_start_of_day,
)

UTC = timezone.utc
BIN_SIZES = [5, 6, 10, 12, 15, 20, 30, 60]


def at(hour: int, minute: int = 0, second: int = 0, day: int = 1) -> datetime:
    return datetime(2024, 1, day, hour, minute, second, tzinfo=UTC)


class TestIso8601:
    """Tests for timestamp rendering."""

    def test_millisecond_precision(self):
        """Test rendering keeps milliseconds and uses Z."""
        t = datetime(2024, 1, 1, 0, 30, 5, 123456, tzinfo=UTC)
        assert iso8601(t) == "2024-01-01T00:30:05.123Z"

    def test_converts_to_utc(self):
        """Test offsets are normalized to UTC."""
        t = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert iso8601(t) == "2024-01-01T00:00:00.000Z"

    def test_rejects_naive(self):
        """Test naive datetimes are refused."""
        with pytest.raises(ValueError):
            iso8601(datetime(2024, 1, 1))


class TestPeriod:
    """Tests for the Period type."""

    def test_beginning(self):
        """Test a period spans exactly one bin."""
        period = beginning(15, at(0, 30))
        assert period == Period(at(0, 30), at(0, 45))

    def test_dict_round_trip_is_millisecond_exact(self):
        """Test encoding to epoch millis and back."""
        start = datetime(2024, 1, 1, 0, 0, 0, 123000, tzinfo=UTC)
        period = beginning(15, start)

        encoded = period.to_dict()
        assert encoded == {"start": 1704067200123, "end": 1704068100123}
        assert Period.from_dict(encoded) == period

    def test_iso_interval(self):
        """Test the interval form used by ActivityWatch queries."""
        period = beginning(15, at(0, 30))
        assert period.to_iso_interval() == "2024-01-01T00:30:00.000Z/2024-01-01T00:45:00.000Z"

    def test_era_of(self):
        """Test flooring to the hour."""
        assert era_of(at(13, 59, 59)) == at(13)
        assert era_of(at(13)) == at(13)


class TestLastComplete:
    """Tests for last_complete."""

    def test_mid_hour(self):
        """Test 00:47 with 15 minute bins gives [00:30, 00:45)."""
        assert last_complete(15, at(0, 47)) == Period(at(0, 30), at(0, 45))

    def test_first_bin_of_hour_uses_previous_hour(self):
        """Test a time early in the hour falls back to the previous hour's last bin."""
        assert last_complete(15, at(1, 7)) == Period(at(0, 45), at(1, 0))

    def test_exact_boundary(self):
        """Test a period that ends exactly now counts as complete."""
        assert last_complete(15, at(0, 45)) == Period(at(0, 30), at(0, 45))
        assert last_complete(15, at(1, 0)) == Period(at(0, 45), at(1, 0))

    def test_hour_bins(self):
        """Test 60 minute bins are whole hours."""
        assert last_complete(60, at(5, 30)) == Period(at(4), at(5))

    @pytest.mark.parametrize("bin_size", BIN_SIZES)
    def test_bounds_hold_for_every_bin_size(self, bin_size):
        """Test end <= now < end + bin for many instants."""
        step = timedelta(minutes=bin_size)
        t = at(0)
        while t < at(3):
            period = last_complete(bin_size, t)
            assert period.end <= t
            assert period.end > t - step
            assert period.end - period.start == step
            assert period.start.minute % bin_size == 0
            t += timedelta(minutes=7, seconds=13)


class TestSinceEndOfPeriod:
    """Tests for since_end_of_period."""

    def test_contiguous_from_end(self):
        """Test periods run from end_of_period through the last complete one."""
        periods = since_end_of_period(15, at(0), at(0, 47))

        assert periods == [
            Period(at(0), at(0, 15)),
            Period(at(0, 15), at(0, 30)),
            Period(at(0, 30), at(0, 45)),
        ]

    def test_single_period(self):
        """Test exactly one due period."""
        assert since_end_of_period(15, at(0, 30), at(0, 47)) == [Period(at(0, 30), at(0, 45))]

    def test_none_due(self):
        """Test nothing is due until the next bin completes."""
        assert since_end_of_period(15, at(0, 45), at(0, 47)) is None
        assert since_end_of_period(15, at(0, 45), at(0, 59, 59)) is None

    @pytest.mark.parametrize("bin_size", BIN_SIZES)
    def test_properties(self, bin_size):
        """Test contiguity and the end point across bin sizes."""
        end = at(0)
        now = at(5, 17)
        periods = since_end_of_period(bin_size, end, now)

        assert periods[0].start == end
        assert periods[-1].end == last_complete(bin_size, now).end
        for previous, current in zip(periods, periods[1:]):
            assert current.start == previous.end


class TestSinceLastCompleteAt:
    """Tests for since_last_complete_at."""

    def test_next_bin(self):
        """Test the bin completed since the last sync is due."""
        periods = since_last_complete_at(15, at(0, 47), at(1, 2))
        assert periods == [Period(at(0, 45), at(1, 0))]

    def test_nothing_new(self):
        """Test no periods are due within the same bin."""
        assert since_last_complete_at(15, at(0, 47), at(0, 59)) is None


class TestSinceStartOfDay:
    """Tests for since_start_of_day."""

    def test_utc_day(self):
        """Test eras and periods from UTC midnight."""
        rewrite = since_start_of_day(15, UTC, at(2, 20))

        assert rewrite.eras == [at(0), at(1), at(2)]
        assert len(rewrite.periods) == 9
        assert rewrite.periods[0] == Period(at(0), at(0, 15))
        assert rewrite.periods[-1] == Period(at(2), at(2, 15))

    def test_fractional_offset_rounds_midnight_up(self):
        """Test local midnight is ceiled to a whole UTC hour."""
        zone = timezone(timedelta(hours=5, minutes=30))
        rewrite = since_start_of_day(15, zone, at(2, 20))

        # Local midnight is 18:30 UTC the previous day
        first_era = datetime(2023, 12, 31, 19, tzinfo=UTC)
        assert rewrite.eras[0] == first_era
        assert rewrite.eras[-1] == at(2)
        assert len(rewrite.eras) == 8
        assert rewrite.periods[0].start == first_era
        assert len(rewrite.periods) == 29

    def test_nothing_due_just_after_midnight(self):
        """Test None before the first bin of the day completes."""
        assert since_start_of_day(15, UTC, at(0, 10)) is None
