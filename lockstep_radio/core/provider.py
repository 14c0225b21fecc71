"""Playlist providers: where the day's track list comes from."""

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Optional, Union

import requests

from ..config.database import DatabaseHandler
from ..exceptions import ConfigurationError, NetworkError, PlaylistNotFoundError
from ..models.playlist import Playlist


def _expand(template: str, day: date) -> str:
    return template.replace("{date}", day.isoformat())


class PlaylistProvider(ABC):
    """Fetches the ordered playlist published for a UTC day."""

    @abstractmethod
    def fetch(self, day: date) -> Playlist:
        """Fetch the playlist for ``day``.

        Raises:
            PlaylistNotFoundError: If nothing is published for the day
            NetworkError: If the fetch failed in transit
            ConfigurationError: If the payload is not a valid playlist
        """


class HttpPlaylistProvider(PlaylistProvider):
    """Reads playlist JSON from an HTTP(S) endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 15,
        user_agent: str = "lockstep-radio/0.1"
    ):
        """Initialize the provider.

        Args:
            url: Playlist URL; ``{date}`` is replaced with the ISO day
            timeout: Request timeout in seconds
            user_agent: User-Agent header value
        """
        self.url = url
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})

    def fetch(self, day: date) -> Playlist:
        url = _expand(self.url, day)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch playlist from {url}: {e}") from e

        if response.status_code == 404:
            raise PlaylistNotFoundError(f"No playlist published at {url}")
        if response.status_code >= 400:
            raise NetworkError(f"Playlist request to {url} failed with HTTP {response.status_code}")

        try:
            records = response.json()
        except ValueError as e:
            raise NetworkError(f"Playlist response from {url} is not valid JSON: {e}") from e

        return Playlist.from_records(records, day)


class FilePlaylistProvider(PlaylistProvider):
    """Reads playlist JSON from the local filesystem."""

    def __init__(self, path: Union[str, Path]):
        """Initialize the provider.

        Args:
            path: File path; ``{date}`` is replaced with the ISO day
        """
        self.path = str(path)

    def fetch(self, day: date) -> Playlist:
        path = Path(_expand(self.path, day)).expanduser()
        if not path.exists():
            raise PlaylistNotFoundError(f"Playlist file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                records = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Playlist file {path} is not valid JSON: {e}") from e

        return Playlist.from_records(records, day)


class CachingPlaylistProvider(PlaylistProvider):
    """Retries an upstream provider and falls back to the sqlite cache."""

    def __init__(
        self,
        upstream: PlaylistProvider,
        db: DatabaseHandler,
        logger: logging.Logger,
        max_retries: int = 2,
        retry_delay: float = 1.0
    ):
        """Initialize the caching wrapper.

        Args:
            upstream: Provider that does the real fetch
            db: Database handler holding cached playlists
            logger: Logger instance
            max_retries: Retries after the first failed attempt
            retry_delay: Initial delay between retries in seconds (doubles each retry)
        """
        self.upstream = upstream
        self.db = db
        self.logger = logger
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def fetch(self, day: date) -> Playlist:
        try:
            playlist = self._fetch_with_retry(day)
        except NetworkError as e:
            cached = self._cached(day)
            if cached is None:
                self.logger.error(f"No cached playlist to fall back on: {e}")
                raise
            return cached

        try:
            self.db.save_playlist(playlist)
        except Exception as e:
            self.logger.warning(f"Failed to cache playlist for {day}: {e}")
        return playlist

    def _fetch_with_retry(self, day: date) -> Playlist:
        attempt = 0
        while True:
            try:
                playlist = self.upstream.fetch(day)
                self.logger.debug(
                    f"Fetched playlist for {day}: {len(playlist)} track(s), "
                    f"version {playlist.version}"
                )
                return playlist
            except NetworkError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.retry_delay * (2 ** attempt)
                attempt += 1
                self.logger.warning(
                    f"Playlist fetch failed ({e}), retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                time.sleep(delay)

    def _cached(self, day: date) -> Optional[Playlist]:
        cached = self.db.get_playlist(day)
        if cached is not None:
            self.logger.warning(f"Using cached playlist for {day}")
            return cached

        cached = self.db.get_latest_playlist()
        if cached is not None:
            self.logger.warning(
                f"No cached playlist for {day}, using the one from {cached.rotation_date}"
            )
        return cached
