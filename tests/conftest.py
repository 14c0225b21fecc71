"""Shared fixtures for Lockstep Radio tests."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from lockstep_radio.core.provider import PlaylistProvider
from lockstep_radio.exceptions import PlaylistNotFoundError
from lockstep_radio.models.playlist import Playlist
from lockstep_radio.models.track import Track

# 1709251200 seconds after the anchor
MARCH_1 = datetime(2024, 3, 1, tzinfo=timezone.utc)


class FakeClock:
    """Settable time source."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class StaticProvider(PlaylistProvider):
    """In-memory provider; ``errors`` are raised once per day, then cleared."""

    def __init__(
        self,
        playlists: Optional[Dict[date, Playlist]] = None,
        errors: Optional[Dict[date, Exception]] = None
    ):
        self.playlists = dict(playlists or {})
        self.errors = dict(errors or {})
        self.calls = []

    def fetch(self, day: date) -> Playlist:
        self.calls.append(day)
        error = self.errors.pop(day, None)
        if error is not None:
            raise error
        if day not in self.playlists:
            raise PlaylistNotFoundError(f"nothing for {day}")
        return self.playlists[day]


def make_track(track_id: str, duration: int) -> Track:
    return Track(
        id=track_id,
        title=f"Song {track_id}",
        artist="Tester",
        duration=duration,
        media_uri=f"https://cdn.example.com/{track_id}.mp3",
        artwork_uri=f"https://cdn.example.com/{track_id}.jpg",
    )


def make_playlist(day: date, *tracks) -> Playlist:
    """make_playlist(day, ("A", 180), ("B", 120))"""
    return Playlist(tuple(make_track(track_id, duration) for track_id, duration in tracks), day)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and cache files out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("LOCKSTEP_RADIO_HOME", str(home))
    return home


@pytest.fixture
def logger():
    return logging.getLogger("lockstep_radio.tests")


@pytest.fixture
def abc_tracks():
    return [make_track("A", 180), make_track("B", 120), make_track("C", 90)]
