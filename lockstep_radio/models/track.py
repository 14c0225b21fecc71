"""Track data models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError


@dataclass(frozen=True)
class Track:
    """Track metadata model. Immutable once loaded."""

    id: str
    title: str
    artist: str
    duration: int  # Duration in seconds
    media_uri: str
    artwork_uri: Optional[str] = None

    def __post_init__(self):
        """Validate identity and duration."""
        if not self.id:
            raise ConfigurationError("Track id must not be empty")

        # bool is an int subclass, reject it explicitly
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise ConfigurationError(
                f"Track {self.id}: duration must be an integer number of seconds"
            )
        if self.duration <= 0:
            raise ConfigurationError(f"Track {self.id}: duration must be > 0")

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'Track':
        """Build a track from a playlist wire record.

        Args:
            record: Mapping with id, title, artist, duration, mediaUri, artworkUri

        Returns:
            Track instance

        Raises:
            ConfigurationError: If the record is missing fields or is invalid
        """
        if not isinstance(record, dict):
            raise ConfigurationError(f"Track record must be an object, got {type(record).__name__}")

        missing = [key for key in ('id', 'duration', 'mediaUri') if key not in record]
        if missing:
            raise ConfigurationError(f"Track record missing fields: {', '.join(missing)}")

        return cls(
            id=str(record['id']),
            title=record.get('title') or "",
            artist=record.get('artist') or "",
            duration=record['duration'],
            media_uri=record['mediaUri'],
            artwork_uri=record.get('artworkUri'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire representation of this track."""
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'duration': self.duration,
            'mediaUri': self.media_uri,
            'artworkUri': self.artwork_uri,
        }

    @property
    def display_name(self) -> str:
        if self.artist:
            return f"{self.artist} - {self.title}"
        return self.title or self.id
