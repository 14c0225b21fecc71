"""Exception types for Lockstep Radio."""


class LockstepError(Exception):
    """Base class for all Lockstep Radio errors."""


class ConfigurationError(LockstepError):
    """Playlist or settings cannot describe a valid timeline.

    Raised for empty playlists, zero total duration and malformed track
    records. Fatal at load time.
    """


class NetworkError(LockstepError):
    """A playlist or media fetch failed in transit. Recoverable."""


class PlaylistNotFoundError(LockstepError):
    """The provider has no playlist for the requested day."""


class ClockError(LockstepError):
    """The system clock reports an implausible instant."""


class PlaybackError(LockstepError):
    """The playback controller could not load, seek or report."""


class DriftExceeded(LockstepError):
    """Actual playback is further from the timeline than the threshold allows."""

    def __init__(self, drift: float, threshold: float):
        super().__init__(f"Drift of {drift:.2f}s exceeds threshold of {threshold:.2f}s")
        self.drift = drift
        self.threshold = threshold
