"""Synchronization state models."""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SyncState(str, Enum):
    """Drift monitor state enumeration."""

    UNINITIALIZED = "uninitialized"
    SYNCED = "synced"
    DRIFTED = "drifted"
    RESYNCING = "resyncing"


@dataclass(frozen=True)
class PlaybackPosition:
    """Where the shared timeline is at a given instant. Never persisted."""

    track_index: int
    offset_seconds: float


@dataclass(frozen=True)
class DriftSample:
    """One comparison of expected vs. reported playback, taken per tick."""

    expected_offset: float
    actual_offset: Optional[float]
    measured_at: datetime
    expected_track_index: int = 0
    actual_track_index: Optional[int] = None

    @property
    def drift(self) -> float:
        if self.actual_offset is None:
            return math.inf
        return abs(self.expected_offset - self.actual_offset)

    @property
    def track_mismatch(self) -> bool:
        return self.actual_track_index != self.expected_track_index

    def exceeds(self, threshold: float) -> bool:
        """True if playback is on the wrong track or off by more than ``threshold``."""
        return self.track_mismatch or self.drift > threshold


@dataclass(frozen=True)
class SyncEvent:
    """Recorded state transition, kept for diagnostics."""

    occurred_at: datetime
    from_state: SyncState
    to_state: SyncState
    detail: Optional[str] = None
