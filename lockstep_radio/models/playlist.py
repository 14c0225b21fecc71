"""Playlist data models."""

import hashlib
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Iterator, List, Tuple

from ..exceptions import ConfigurationError
from .track import Track


@dataclass(frozen=True)
class Playlist:
    """Ordered, immutable track list for one UTC rotation day."""

    tracks: Tuple[Track, ...]
    rotation_date: date
    total_duration: int = field(init=False)

    def __post_init__(self):
        """Freeze the track order and validate the timeline."""
        tracks = tuple(self.tracks)
        object.__setattr__(self, 'tracks', tracks)

        if not tracks:
            raise ConfigurationError("Playlist is empty")

        seen = set()
        for track in tracks:
            if track.id in seen:
                raise ConfigurationError(f"Duplicate track id in playlist: {track.id}")
            seen.add(track.id)

        total = sum(track.duration for track in tracks)
        if total <= 0:
            raise ConfigurationError("Playlist total duration must be > 0")
        object.__setattr__(self, 'total_duration', total)

    @classmethod
    def from_records(cls, records: Iterable[Any], rotation_date: date) -> 'Playlist':
        """Build a playlist from wire records.

        Args:
            records: Ordered iterable of track records (see Track.from_dict)
            rotation_date: UTC day the playlist is published for

        Returns:
            Playlist instance

        Raises:
            ConfigurationError: If the payload is not a list or a record is invalid
        """
        if not isinstance(records, list):
            raise ConfigurationError("Playlist payload must be a JSON array of tracks")
        return cls(tuple(Track.from_dict(record) for record in records), rotation_date)

    def to_records(self) -> List[dict]:
        return [track.to_dict() for track in self.tracks]

    @property
    def version(self) -> str:
        """Short digest of the ordered (id, duration) pairs."""
        digest = hashlib.sha1()
        for track in self.tracks:
            digest.update(f"{track.id}:{track.duration};".encode('utf-8'))
        return digest.hexdigest()[:12]

    def shuffled(self, seed: int) -> 'Playlist':
        """Return this playlist in the deterministic order for ``seed``."""
        from ..core.timeline import shuffle

        return Playlist(tuple(shuffle(self.tracks, seed)), self.rotation_date)

    def index_of(self, track_id: str) -> int:
        """Return the position of ``track_id``, or -1 if absent."""
        for index, track in enumerate(self.tracks):
            if track.id == track_id:
                return index
        return -1

    def __len__(self) -> int:
        return len(self.tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self.tracks)

    def __getitem__(self, index: int) -> Track:
        return self.tracks[index]
