"""Playback controller interface and an in-memory implementation."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from ..exceptions import PlaybackError
from ..models.track import Track
from .timeline import utc_now

# done(error) acknowledges a load/seek; error is None on success
Acknowledge = Callable[[Optional[Exception]], None]


class PlaybackController(ABC):
    """Capability interface for the device that actually plays audio.

    ``load`` and ``seek`` may complete asynchronously. Implementations call
    ``done(None)`` once the command has taken effect, or ``done(error)`` if
    it failed, from any thread.
    """

    def __init__(self):
        self._track_ended_callbacks: List[Callable[[Track], None]] = []
        self._error_callbacks: List[Callable[[Exception], None]] = []

    @abstractmethod
    def load(self, track: Track, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        """Load ``track`` and start playing at ``offset_seconds``."""

    @abstractmethod
    def seek(self, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        """Seek within the current track."""

    @abstractmethod
    def report_position(self) -> Optional[float]:
        """Current offset in seconds inside the loaded track, or None if idle."""

    @abstractmethod
    def current_track(self) -> Optional[Track]:
        """Track currently loaded, or None."""

    def close(self) -> None:
        """Release the device."""
        self._track_ended_callbacks.clear()
        self._error_callbacks.clear()

    def add_track_ended_callback(self, callback: Callable[[Track], None]) -> None:
        self._track_ended_callbacks.append(callback)

    def add_error_callback(self, callback: Callable[[Exception], None]) -> None:
        self._error_callbacks.append(callback)

    def _emit_track_ended(self, track: Track) -> None:
        for callback in list(self._track_ended_callbacks):
            callback(track)

    def _emit_error(self, error: Exception) -> None:
        for callback in list(self._error_callbacks):
            callback(error)


class SimulatedPlaybackController(PlaybackController):
    """Plays tracks against a clock without producing any audio.

    Useful for dry runs and tests. ``rate`` above or below 1.0 makes the
    simulated player run fast or slow so drift builds up over time.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        rate: float = 1.0,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize the simulated player.

        Args:
            clock: Time source the simulated playhead follows
            rate: Playback speed multiplier
            logger: Optional logger
        """
        super().__init__()
        self.clock = clock
        self.rate = rate
        self.logger = logger or logging.getLogger(__name__)

        self.defer_acks = False
        self.pending_acks: List[Callable[[], None]] = []
        self.fail_corrections = False
        self.commands: List[tuple] = []

        self._track: Optional[Track] = None
        self._base_offset = 0.0
        self._started_at: Optional[datetime] = None
        self._ended = False

    def load(self, track: Track, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        self.commands.append(('load', track.id, offset_seconds))
        if self.fail_corrections:
            self._acknowledge(done, PlaybackError(f"Could not load {track.media_uri}"))
            return

        self.logger.debug(f"[simulated] load {track.display_name} at {offset_seconds:.2f}s")
        self._track = track
        self._base_offset = offset_seconds
        self._started_at = self.clock()
        self._ended = False
        self._acknowledge(done, None)

    def seek(self, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        self.commands.append(('seek', offset_seconds))
        if self._track is None:
            self._acknowledge(done, PlaybackError("Nothing loaded"))
            return
        if self.fail_corrections:
            self._acknowledge(done, PlaybackError("Seek failed"))
            return

        self.logger.debug(f"[simulated] seek to {offset_seconds:.2f}s")
        self._base_offset = offset_seconds
        self._started_at = self.clock()
        self._ended = False
        self._acknowledge(done, None)

    def report_position(self) -> Optional[float]:
        if self._track is None or self._started_at is None:
            return None

        played = (self.clock() - self._started_at).total_seconds() * self.rate
        position = self._base_offset + played
        if position >= self._track.duration:
            if not self._ended:
                self._ended = True
                self._emit_track_ended(self._track)
            return float(self._track.duration)
        return position

    def current_track(self) -> Optional[Track]:
        return self._track

    def nudge(self, seconds: float) -> None:
        """Shift the playhead without telling anyone, as a glitch would."""
        self._base_offset += seconds

    def fail(self, error: Exception) -> None:
        """Raise an asynchronous device error."""
        self._emit_error(error)

    def flush_acks(self) -> None:
        """Deliver all deferred acknowledgements in issue order."""
        pending, self.pending_acks = self.pending_acks, []
        for ack in pending:
            ack()

    def _acknowledge(self, done: Optional[Acknowledge], error: Optional[Exception]) -> None:
        if done is None:
            return
        if self.defer_acks:
            self.pending_acks.append(lambda: done(error))
        else:
            done(error)
