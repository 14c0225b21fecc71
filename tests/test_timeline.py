"""Tests for the deterministic timeline math."""

from collections import Counter
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from lockstep_radio.core.timeline import (
    TEMPORAL_ANCHOR,
    check_clock,
    cycle_index,
    daily_seed,
    elapsed_seconds,
    locate,
    next_midnight,
    rotation_date,
    shuffle,
    upcoming,
)
from lockstep_radio.exceptions import ClockError, ConfigurationError
from lockstep_radio.models.sync import PlaybackPosition

from .conftest import MARCH_1, make_track


class TestLocate:
    @pytest.mark.parametrize("elapsed,expected", [
        (0, (0, 0)),
        (179, (0, 179)),
        (180, (1, 0)),
        (300, (2, 0)),
        (389, (2, 89)),
        (390, (0, 0)),
    ])
    def test_reference_scenario(self, abc_tracks, elapsed, expected):
        position = locate(abc_tracks, elapsed)
        assert (position.track_index, position.offset_seconds) == expected

    def test_boundary_belongs_to_next_track(self, abc_tracks):
        assert locate(abc_tracks, 180) == PlaybackPosition(track_index=1, offset_seconds=0)
        assert locate(abc_tracks, 179.999).track_index == 0

    @pytest.mark.parametrize("elapsed", [0, 17, 179.5, 250, 389.75])
    @pytest.mark.parametrize("k", [1, 2, 1000, 4_382_000])
    def test_periodic_in_total_duration(self, abc_tracks, elapsed, k):
        assert locate(abc_tracks, elapsed) == locate(abc_tracks, elapsed + k * 390)

    def test_offset_within_track(self, abc_tracks):
        for elapsed in range(0, 2000, 7):
            position = locate(abc_tracks, elapsed)
            track = abc_tracks[position.track_index]
            assert 0 <= position.offset_seconds < track.duration

    def test_float_elapsed(self, abc_tracks):
        position = locate(abc_tracks, 1709251200.25)
        assert 0 <= position.offset_seconds < abc_tracks[position.track_index].duration

    def test_empty_playlist_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            locate([], 10)

    def test_zero_total_duration_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            locate([SimpleNamespace(duration=0), SimpleNamespace(duration=0)], 10)

    def test_cycle_index(self, abc_tracks):
        assert cycle_index(abc_tracks, 389) == 0
        assert cycle_index(abc_tracks, 390) == 1
        assert cycle_index(abc_tracks, 390 * 5 + 12) == 5


class TestShuffle:
    def test_is_permutation(self):
        items = [make_track(str(i), 60 + i) for i in range(25)]
        for seed in (0, 1, 42, 1709251200, 10 ** 12):
            result = shuffle(items, seed)
            assert Counter(t.id for t in result) == Counter(t.id for t in items)

    def test_deterministic(self):
        items = list(range(50))
        assert shuffle(items, 1709251200) == shuffle(items, 1709251200)

    def test_pinned_order(self):
        # Pins the generator constants and iteration order
        assert shuffle(["a", "b", "c"], 0) == ["c", "b", "a"]

    def test_does_not_mutate_input(self):
        items = list(range(10))
        shuffle(items, 7)
        assert items == list(range(10))

    def test_different_seeds_usually_differ(self):
        items = list(range(30))
        orders = {tuple(shuffle(items, seed)) for seed in range(1709251200, 1709251200 + 86400 * 5, 86400)}
        assert len(orders) > 1

    @pytest.mark.parametrize("items", [[], ["only"]])
    def test_short_sequences(self, items):
        result = shuffle(items, 99)
        assert result == items
        assert result is not items

    def test_no_shared_state_between_calls(self):
        items = list(range(20))
        first = shuffle(items, 5)
        shuffle(list(range(100)), 6)
        assert shuffle(items, 5) == first


class TestDailySeed:
    def test_same_day_same_seed(self):
        start = datetime(2024, 3, 1, 0, 0, 0, tzinfo=timezone.utc)
        end = datetime(2024, 3, 1, 23, 59, 59, tzinfo=timezone.utc)
        assert daily_seed(start) == daily_seed(end) == 1709251200

    def test_changes_at_midnight(self):
        before = datetime(2024, 3, 1, 23, 59, 59, tzinfo=timezone.utc)
        after = datetime(2024, 3, 2, 0, 0, 0, tzinfo=timezone.utc)
        assert daily_seed(after) != daily_seed(before)
        assert daily_seed(after) - daily_seed(before) == 86400

    def test_uses_utc_day_not_local_day(self):
        # 23:30 in New York on March 1st is already March 2nd in UTC
        eastern = timezone(timedelta(hours=-5))
        late_evening = datetime(2024, 3, 1, 23, 30, tzinfo=eastern)
        assert daily_seed(late_evening) == daily_seed(datetime(2024, 3, 2, tzinfo=timezone.utc))
        assert rotation_date(late_evening).isoformat() == "2024-03-02"

    def test_naive_datetime_is_utc(self):
        assert daily_seed(datetime(2024, 3, 1, 12, 0)) == 1709251200

    def test_next_midnight(self):
        assert next_midnight(MARCH_1 + timedelta(hours=5)) == datetime(2024, 3, 2, tzinfo=timezone.utc)


class TestClock:
    def test_elapsed_seconds(self):
        assert elapsed_seconds(TEMPORAL_ANCHOR) == 0
        assert elapsed_seconds(MARCH_1) == 1709251200

    def test_sane_clock_passes(self):
        assert check_clock(MARCH_1) == MARCH_1

    @pytest.mark.parametrize("reading", [
        datetime(1969, 12, 31, tzinfo=timezone.utc),
        datetime(1985, 6, 1, tzinfo=timezone.utc),
        datetime(2150, 1, 1, tzinfo=timezone.utc),
    ])
    def test_implausible_clock(self, reading):
        with pytest.raises(ClockError):
            check_clock(reading)

    def test_not_a_datetime(self):
        with pytest.raises(ClockError):
            check_clock(1709251200)


def test_upcoming_starts_with_current_track(abc_tracks):
    # 1709251200 % 390 == 150, so track A is 150s in
    schedule = upcoming(abc_tracks, MARCH_1, count=4)
    assert [index for _, index in schedule] == [0, 1, 2, 0]
    assert schedule[0][0] == MARCH_1 - timedelta(seconds=150)
    assert schedule[1][0] == MARCH_1 + timedelta(seconds=30)
