"""Data models for Lockstep Radio."""

from .playlist import Playlist
from .sync import DriftSample, PlaybackPosition, SyncEvent, SyncState
from .track import Track

__all__ = ["DriftSample", "PlaybackPosition", "Playlist", "SyncEvent", "SyncState", "Track"]
