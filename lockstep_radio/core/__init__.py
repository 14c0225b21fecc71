"""Core functionality for Lockstep Radio."""

from .controller import PlaybackController, SimulatedPlaybackController
from .monitor import DriftMonitor
from .mpv import MpvPlaybackController
from .notifier import Notifier
from .provider import (
    CachingPlaylistProvider,
    FilePlaylistProvider,
    HttpPlaylistProvider,
    PlaylistProvider,
)
from .scheduler import SyncScheduler
from .timeline import TEMPORAL_ANCHOR, daily_seed, locate, shuffle

__all__ = [
    "CachingPlaylistProvider",
    "DriftMonitor",
    "FilePlaylistProvider",
    "HttpPlaylistProvider",
    "MpvPlaybackController",
    "Notifier",
    "PlaybackController",
    "PlaylistProvider",
    "SimulatedPlaybackController",
    "SyncScheduler",
    "TEMPORAL_ANCHOR",
    "daily_seed",
    "locate",
    "shuffle",
]
