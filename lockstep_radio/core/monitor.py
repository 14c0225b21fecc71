"""Drift detection and correction for a single playback client."""

import logging
import queue
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import partial
from typing import Callable, List, Optional, Tuple

from ..exceptions import (
    ClockError,
    ConfigurationError,
    DriftExceeded,
    NetworkError,
    PlaylistNotFoundError,
)
from ..models.playlist import Playlist
from ..models.sync import DriftSample, PlaybackPosition, SyncState
from ..models.track import Track
from .controller import PlaybackController
from .provider import PlaylistProvider
from .timeline import (
    EARLIEST_PLAUSIBLE,
    LATEST_PLAUSIBLE,
    check_clock,
    cycle_index,
    daily_seed,
    elapsed_seconds,
    locate,
    rotation_date,
    utc_now,
)

StateListener = Callable[[SyncState, SyncState, str], None]


@dataclass
class _Correction:
    """A load/seek in flight, identified by its sequence number."""

    seq: int
    kind: str
    issued_at: datetime
    acknowledged: bool = False
    error: Optional[Exception] = None


@dataclass(frozen=True)
class _Event:
    kind: str  # 'ack', 'track_ended' or 'error'
    seq: Optional[int] = None
    error: Optional[Exception] = None


class DriftMonitor:
    """Keeps one client's playback aligned with the shared timeline.

    All state is written from ``start`` and ``tick`` only. Controller
    callbacks may arrive on any thread; they are queued and consumed by the
    next tick.
    """

    def __init__(
        self,
        provider: PlaylistProvider,
        controller: PlaybackController,
        logger: logging.Logger,
        clock: Callable[[], datetime] = utc_now,
        threshold: float = 5.0,
        confirmation_timeout: float = 10.0,
        backoff_base: float = 5.0,
        backoff_max: float = 60.0,
        escalate_after: int = 3,
        earliest: datetime = EARLIEST_PLAUSIBLE,
        latest: datetime = LATEST_PLAUSIBLE
    ):
        """Initialize the drift monitor.

        Args:
            provider: Source of the day's playlist
            controller: Playback device to drive
            logger: Logger instance
            clock: Time source
            threshold: Maximum tolerated drift in seconds
            confirmation_timeout: Seconds to wait for a correction to be confirmed
            backoff_base: Delay after the first failed correction in seconds
            backoff_max: Upper bound for the correction retry delay
            escalate_after: Consecutive failures before reporting persistent desync
            earliest: Earliest plausible clock reading
            latest: Latest plausible clock reading
        """
        self.provider = provider
        self.controller = controller
        self.logger = logger
        self.clock = clock
        self.threshold = threshold
        self.confirmation_timeout = confirmation_timeout
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.escalate_after = escalate_after
        self.earliest = earliest
        self.latest = latest

        self._state = SyncState.UNINITIALIZED
        self._events: "queue.Queue[_Event]" = queue.Queue()
        self._closed = False
        self._suspended = False

        # Active timeline
        self._playlist: Optional[Playlist] = None
        self._active_seed: Optional[int] = None
        self._source_version: Optional[str] = None
        self._source_date = None

        # Next day's timeline, waiting for the current track to finish
        self._staged: Optional[Playlist] = None
        self._staged_seed: Optional[int] = None
        self._staged_source: Optional[Playlist] = None
        self._staged_during: Optional[Tuple[int, int]] = None
        self._refresh_failures = 0
        self._refresh_retry_at: Optional[datetime] = None

        # Corrections
        self._seq = 0
        self._pending: Optional[_Correction] = None
        self._failures = 0
        self._retry_at: Optional[datetime] = None
        self._persistent_desync = False

        self._state_listeners: List[StateListener] = []
        self._desync_listeners: List[Callable[[int], None]] = []
        self._clock_listeners: List[Callable[[ClockError], None]] = []

        controller.add_track_ended_callback(self._on_track_ended)
        controller.add_error_callback(self._on_controller_error)

    # Public properties

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def playlist(self) -> Optional[Playlist]:
        """Active playlist in today's shuffled order."""
        return self._playlist

    @property
    def active_seed(self) -> Optional[int]:
        return self._active_seed

    @property
    def playlist_version(self) -> Optional[str]:
        """Version of the published playlist the active order was derived from."""
        return self._source_version

    @property
    def persistent_desync(self) -> bool:
        return self._persistent_desync

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def rotation_pending(self) -> bool:
        return self._staged is not None

    def expected_position(self, now: Optional[datetime] = None) -> Optional[PlaybackPosition]:
        """Where the active timeline says playback should be."""
        if self._playlist is None:
            return None
        now = self.clock() if now is None else now
        return locate(self._playlist, elapsed_seconds(now))

    # Listeners

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_persistent_desync_listener(self, listener: Callable[[int], None]) -> None:
        self._desync_listeners.append(listener)

    def add_clock_error_listener(self, listener: Callable[[ClockError], None]) -> None:
        self._clock_listeners.append(listener)

    # Lifecycle

    def start(self, now: Optional[datetime] = None) -> None:
        """Load today's playlist and issue the initial load.

        Raises:
            ConfigurationError: If the playlist is invalid
            NetworkError: If the playlist cannot be fetched and nothing is cached
            PlaylistNotFoundError: If no playlist is published for today
        """
        now = self.clock() if now is None else now
        try:
            now = check_clock(now, self.earliest, self.latest)
        except ClockError as e:
            # The first sane tick loads the playlist
            self._suspend(e)
            return

        self._install(self.provider.fetch(rotation_date(now)), now)
        self.tick(now)

    def close(self) -> None:
        """Cancel the session. Late acknowledgements and events are ignored."""
        if self._closed:
            return
        self._closed = True
        self._pending = None
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break
        self.logger.info("Sync session closed")

    def tick(self, now: Optional[datetime] = None) -> Optional[DriftSample]:
        """Run one monitoring iteration.

        Args:
            now: Instant to evaluate (default: read the clock)

        Returns:
            The drift sample measured this tick, or None if nothing was measured
        """
        if self._closed:
            return None

        now = self.clock() if now is None else now
        try:
            now = check_clock(now, self.earliest, self.latest)
        except ClockError as e:
            self._suspend(e)
            return None

        if self._suspended:
            self._suspended = False
            self.logger.info("Clock looks sane again, resuming synchronization")

        if self._playlist is None:
            try:
                self._install(self.provider.fetch(rotation_date(now)), now)
            except (NetworkError, PlaylistNotFoundError) as e:
                self.logger.warning(f"Cannot start synchronization yet: {e}")
                return None

        errors, track_ended = self._drain_events()
        self._check_rotation(now, track_ended)

        expected = locate(self._playlist, elapsed_seconds(now))
        sample = None

        if self._state == SyncState.UNINITIALIZED:
            sample = self._tick_uninitialized(now, expected, errors)
            errors = []

        if self._state == SyncState.SYNCED:
            sample = self._tick_synced(now, expected, errors)
        elif self._state == SyncState.RESYNCING:
            sample = self._tick_resyncing(now, expected, errors)

        if self._state == SyncState.DRIFTED:
            self._tick_drifted(now, expected, sample)

        return sample

    # State handlers

    def _tick_uninitialized(
        self,
        now: datetime,
        expected: PlaybackPosition,
        errors: List[Exception]
    ) -> Optional[DriftSample]:
        pending = self._pending
        if pending is not None:
            if pending.acknowledged and pending.error is None:
                self._pending = None
                self._succeed()
                self._transition(SyncState.SYNCED, "playback started")
                return None
            if pending.acknowledged:
                self._fail(now, f"initial load failed: {pending.error}")
            elif errors:
                self._fail(now, f"player error: {errors[-1]}")
            elif self._timed_out(pending, now):
                self._fail(now, "initial load was not confirmed in time")
            else:
                return None

        if self._may_retry(now):
            self._issue(now, expected, load=True)
        return None

    def _tick_synced(
        self,
        now: datetime,
        expected: PlaybackPosition,
        errors: List[Exception]
    ) -> DriftSample:
        sample = self._sample(now, expected)
        if errors:
            self._transition(SyncState.DRIFTED, f"player error: {errors[-1]}")
        elif sample.exceeds(self.threshold):
            self._transition(SyncState.DRIFTED, self._describe(sample))
        return sample

    def _tick_resyncing(
        self,
        now: datetime,
        expected: PlaybackPosition,
        errors: List[Exception]
    ) -> Optional[DriftSample]:
        pending = self._pending
        if pending is None:
            self._transition(SyncState.DRIFTED, "correction was invalidated")
            return None

        if errors:
            self._fail(now, f"player error: {errors[-1]}")
            return None
        if pending.acknowledged and pending.error is not None:
            self._fail(now, f"{pending.kind} failed: {pending.error}")
            return None

        sample = None
        if pending.acknowledged:
            sample = self._sample(now, expected)
            if not sample.exceeds(self.threshold):
                self._pending = None
                self._succeed()
                self._transition(SyncState.SYNCED, f"resynced, drift {sample.drift:.2f}s")
                return sample

        if self._timed_out(pending, now):
            self._fail(now, f"{pending.kind} #{pending.seq} not confirmed within {self.confirmation_timeout}s")
        return sample

    def _tick_drifted(
        self,
        now: datetime,
        expected: PlaybackPosition,
        sample: Optional[DriftSample]
    ) -> None:
        if not self._may_retry(now):
            return
        if sample is None:
            sample = self._sample(now, expected)
        self._issue(now, expected, load=sample.track_mismatch)

    # Corrections

    def _issue(self, now: datetime, expected: PlaybackPosition, load: bool) -> None:
        track = self._playlist[expected.track_index]
        offset = expected.offset_seconds

        self._seq += 1
        correction = _Correction(seq=self._seq, kind='load' if load else 'seek', issued_at=now)
        self._pending = correction
        done = partial(self._on_ack, correction.seq)

        self.logger.info(
            f"Correction #{correction.seq}: {correction.kind} "
            f"{track.display_name} at {offset:.2f}s"
        )
        try:
            if load:
                self.controller.load(track, offset, done)
            else:
                self.controller.seek(offset, done)
        except Exception as e:
            self.logger.error(f"Player rejected {correction.kind}: {e}")
            self._pending = None
            self._fail(now, f"{correction.kind} raised: {e}")
            return

        if self._state != SyncState.UNINITIALIZED:
            self._transition(SyncState.RESYNCING, f"{correction.kind} #{correction.seq} issued")

    def _fail(self, now: datetime, reason: str) -> None:
        self._pending = None
        self._failures += 1
        delay = min(self.backoff_base * (2 ** (self._failures - 1)), self.backoff_max)
        self._retry_at = now + timedelta(seconds=delay)

        self.logger.warning(
            f"Resync attempt {self._failures} failed ({reason}), retrying in {delay:.0f}s"
        )
        if self._state in (SyncState.SYNCED, SyncState.RESYNCING):
            self._transition(SyncState.DRIFTED, reason)

        if self._failures >= self.escalate_after and not self._persistent_desync:
            self._persistent_desync = True
            self.logger.warning(
                f"Persistent desync: {self._failures} consecutive resync failures, "
                "still retrying"
            )
            for listener in list(self._desync_listeners):
                self._call_listener(listener, self._failures)

    def _succeed(self) -> None:
        if self._persistent_desync:
            self.logger.info(f"Recovered from persistent desync after {self._failures} failure(s)")
        self._failures = 0
        self._retry_at = None
        self._persistent_desync = False

    def _may_retry(self, now: datetime) -> bool:
        return self._retry_at is None or now >= self._retry_at

    def _timed_out(self, correction: _Correction, now: datetime) -> bool:
        return (now - correction.issued_at).total_seconds() >= self.confirmation_timeout

    def _sample(self, now: datetime, expected: PlaybackPosition) -> DriftSample:
        actual_index = None
        actual_offset = None
        try:
            track = self.controller.current_track()
            if track is not None:
                index = self._playlist.index_of(track.id)
                actual_index = index if index >= 0 else None
            actual_offset = self.controller.report_position()
        except Exception as e:
            self.logger.warning(f"Player did not report a position: {e}")

        return DriftSample(
            expected_offset=expected.offset_seconds,
            actual_offset=actual_offset,
            measured_at=now,
            expected_track_index=expected.track_index,
            actual_track_index=actual_index,
        )

    def _describe(self, sample: DriftSample) -> str:
        if sample.track_mismatch:
            return (
                f"wrong track (expected #{sample.expected_track_index}, "
                f"playing #{sample.actual_track_index})"
            )
        return str(DriftExceeded(sample.drift, self.threshold))

    # Day rotation

    def _install(self, source: Playlist, now: datetime) -> None:
        seed = daily_seed(now)
        self._playlist = source.shuffled(seed)
        self._active_seed = seed
        self._source_version = source.version
        self._source_date = source.rotation_date
        self.logger.info(
            f"Loaded playlist for {source.rotation_date} (version {source.version}, "
            f"{len(source)} tracks, {source.total_duration}s), seed {seed}"
        )
        if source.rotation_date != rotation_date(now):
            self._refresh_backoff(now, f"only a playlist for {source.rotation_date} is available")

    def _play_through(self, now: datetime) -> Tuple[int, int]:
        elapsed = elapsed_seconds(now)
        return cycle_index(self._playlist, elapsed), locate(self._playlist, elapsed).track_index

    def _check_rotation(self, now: datetime, track_ended: bool) -> None:
        seed = daily_seed(now)
        today = rotation_date(now)

        # Only a track end that happened after staging completes the staged track
        was_staged = self._staged is not None
        if not was_staged and (seed != self._active_seed or self._source_date != today):
            self._refresh(now, seed, today)

        if self._staged is None:
            return
        if (was_staged and track_ended) or self._play_through(now) != self._staged_during:
            self._apply_staged()

    def _refresh(self, now: datetime, seed: int, today: date) -> None:
        if self._refresh_retry_at is not None and now < self._refresh_retry_at:
            return

        try:
            fetched = self.provider.fetch(today)
        except (NetworkError, PlaylistNotFoundError, ConfigurationError) as e:
            self._refresh_backoff(now, f"{e}")
            return

        if fetched.rotation_date != today:
            self._refresh_backoff(now, f"only a playlist for {fetched.rotation_date} is available")
        else:
            self._refresh_failures = 0
            self._refresh_retry_at = None

        if seed == self._active_seed and fetched.version == self._source_version:
            self._source_date = fetched.rotation_date
            return

        self._staged = fetched.shuffled(seed)
        self._staged_seed = seed
        self._staged_source = fetched
        self._staged_during = self._play_through(now)
        self.logger.info(
            f"Staged playlist for {fetched.rotation_date} (version {fetched.version}), "
            "switching after the current track"
        )

    def _refresh_backoff(self, now: datetime, reason: str) -> None:
        self._refresh_failures += 1
        delay = min(self.backoff_base * (2 ** (self._refresh_failures - 1)), self.backoff_max)
        self._refresh_retry_at = now + timedelta(seconds=delay)
        self.logger.warning(
            f"Playlist refresh failed ({reason}), keeping the current playlist; "
            f"retrying in {delay:.0f}s"
        )

    def _apply_staged(self) -> None:
        source = self._staged_source
        self._playlist = self._staged
        self._active_seed = self._staged_seed
        self._source_version = source.version
        self._source_date = source.rotation_date
        self._staged = None
        self._staged_seed = None
        self._staged_source = None
        self._staged_during = None
        self.logger.info(
            f"Rotated to playlist for {source.rotation_date} (version {source.version}), "
            f"seed {self._active_seed}"
        )

        # A correction aimed at the old order is meaningless now
        if self._pending is not None:
            self._pending = None
            if self._state == SyncState.RESYNCING:
                self._transition(SyncState.DRIFTED, "playlist rotated")

    # Events

    def _on_ack(self, seq: int, error: Optional[Exception] = None) -> None:
        if not self._closed:
            self._events.put(_Event('ack', seq=seq, error=error))

    def _on_track_ended(self, track: Track) -> None:
        if not self._closed:
            self._events.put(_Event('track_ended'))

    def _on_controller_error(self, error: Exception) -> None:
        if not self._closed:
            self._events.put(_Event('error', error=error))

    def _drain_events(self) -> Tuple[List[Exception], bool]:
        errors: List[Exception] = []
        track_ended = False
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break

            if event.kind == 'track_ended':
                track_ended = True
            elif event.kind == 'error':
                errors.append(event.error)
            elif self._pending is None or event.seq != self._pending.seq:
                self.logger.debug(f"Discarding stale acknowledgement for correction #{event.seq}")
            else:
                self._pending.acknowledged = True
                self._pending.error = event.error
        return errors, track_ended

    # Helpers

    def _transition(self, new_state: SyncState, reason: str) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        message = f"Sync state {old_state.value} -> {new_state.value}: {reason}"
        if new_state == SyncState.DRIFTED:
            self.logger.warning(message)
        else:
            self.logger.info(message)

        for listener in list(self._state_listeners):
            self._call_listener(listener, old_state, new_state, reason)

    def _suspend(self, error: ClockError) -> None:
        if self._suspended:
            return
        self._suspended = True
        self.logger.warning(f"Synchronization suspended: {error}")
        for listener in list(self._clock_listeners):
            self._call_listener(listener, error)

    def _call_listener(self, listener: Callable, *args) -> None:
        try:
            listener(*args)
        except Exception as e:
            self.logger.error(f"Listener {listener!r} failed: {e}", exc_info=True)
