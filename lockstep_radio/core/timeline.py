"""Deterministic wall-clock timeline math.

Everything here is a pure function of its arguments. Any client that
evaluates these functions with the same playlist and the same instant lands
on the same track and offset, which is the only synchronization mechanism
the system has.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence, TypeVar

from ..exceptions import ClockError, ConfigurationError
from ..models.sync import PlaybackPosition

T = TypeVar('T')

# Instant zero for every client. Never changes.
TEMPORAL_ANCHOR = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Linear-congruential generator constants. Changing any of these breaks
# compatibility with every other client.
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280

# Plausible clock range
EARLIEST_PLAUSIBLE = datetime(2000, 1, 1, tzinfo=timezone.utc)
LATEST_PLAUSIBLE = datetime(2100, 1, 1, tzinfo=timezone.utc)

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    """Default time source."""
    return datetime.now(timezone.utc)


def as_utc(now: datetime) -> datetime:
    """Normalize ``now`` to an aware UTC datetime.

    Naive datetimes are taken to already be UTC; the local timezone of the
    process is never consulted.
    """
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def check_clock(
    now: datetime,
    earliest: datetime = EARLIEST_PLAUSIBLE,
    latest: datetime = LATEST_PLAUSIBLE
) -> datetime:
    """Validate a clock reading.

    Args:
        now: Clock reading
        earliest: Earliest plausible instant
        latest: Latest plausible instant

    Returns:
        ``now`` normalized to UTC

    Raises:
        ClockError: If the reading is before the anchor or outside the range
    """
    if not isinstance(now, datetime):
        raise ClockError(f"Clock returned {type(now).__name__}, expected datetime")

    now = as_utc(now)
    if now < TEMPORAL_ANCHOR:
        raise ClockError(f"Clock reads {now.isoformat()}, before the temporal anchor")
    if now < as_utc(earliest) or now >= as_utc(latest):
        raise ClockError(
            f"Clock reads {now.isoformat()}, outside plausible range "
            f"{as_utc(earliest).date()} .. {as_utc(latest).date()}"
        )
    return now


def elapsed_seconds(now: datetime) -> float:
    """Seconds from the temporal anchor to ``now``."""
    return (as_utc(now) - TEMPORAL_ANCHOR).total_seconds()


def rotation_date(now: datetime) -> date:
    """UTC calendar day containing ``now``."""
    return as_utc(now).date()


def daily_seed(now: datetime) -> int:
    """Seconds from the temporal anchor to the UTC midnight that starts ``now``'s day.

    Identical for every instant of one UTC day; changes exactly at UTC midnight.
    """
    day = rotation_date(now)
    midnight = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return (midnight - TEMPORAL_ANCHOR).days * SECONDS_PER_DAY


def next_midnight(now: datetime) -> datetime:
    day = rotation_date(now) + timedelta(days=1)
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def shuffle(sequence: Sequence[T], seed: int) -> List[T]:
    """Deterministic Fisher-Yates permutation of ``sequence``.

    The generator state starts from ``seed`` on every call and lives only in
    this frame. The input is not modified.

    Args:
        sequence: Items to permute
        seed: Integer seed (normally ``daily_seed(now)``)

    Returns:
        New list holding the same items in shuffled order
    """
    items = list(sequence)
    state = seed
    for i in range(len(items) - 1, 0, -1):
        state = (state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        draw = state / LCG_MODULUS
        j = math.floor(draw * (i + 1))
        items[i], items[j] = items[j], items[i]
    return items


def _total_duration(tracks: Sequence[Any]) -> int:
    total = sum(track.duration for track in tracks)
    if total <= 0:
        raise ConfigurationError(
            "Cannot locate on a timeline with zero total duration "
            "(empty playlist or all-zero durations)"
        )
    return total


def locate(tracks: Sequence[Any], elapsed: float) -> PlaybackPosition:
    """Map elapsed time to the current track and the offset inside it.

    A boundary instant belongs to the next track at offset 0.

    Args:
        tracks: Ordered tracks (anything with a ``duration`` in seconds)
        elapsed: Seconds since the temporal anchor

    Returns:
        PlaybackPosition

    Raises:
        ConfigurationError: If the total duration is zero
    """
    total = _total_duration(tracks)
    cycle_position = elapsed % total

    lower = 0
    for index, track in enumerate(tracks):
        upper = lower + track.duration
        if upper > cycle_position:
            return PlaybackPosition(track_index=index, offset_seconds=cycle_position - lower)
        lower = upper

    # Float rounding can leave cycle_position == total
    return PlaybackPosition(track_index=0, offset_seconds=0)


def cycle_index(tracks: Sequence[Any], elapsed: float) -> int:
    """Number of complete passes through the playlist before ``elapsed``."""
    return int(elapsed // _total_duration(tracks))


def upcoming(
    tracks: Sequence[Any],
    now: datetime,
    count: Optional[int] = None
) -> List[tuple]:
    """List ``(start_time, track_index)`` for the current and following tracks.

    Args:
        tracks: Ordered tracks
        now: Reference instant
        count: Number of entries (default: one full cycle)

    Returns:
        List of (datetime, int) tuples in play order
    """
    if count is None:
        count = len(tracks)

    elapsed = elapsed_seconds(now)
    position = locate(tracks, elapsed)
    start = as_utc(now) - timedelta(seconds=position.offset_seconds)

    schedule = []
    index = position.track_index
    for _ in range(count):
        schedule.append((start, index))
        start = start + timedelta(seconds=tracks[index].duration)
        index = (index + 1) % len(tracks)
    return schedule
