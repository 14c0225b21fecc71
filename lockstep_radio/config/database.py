"""Database management for Lockstep Radio."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.playlist import Playlist
from ..models.sync import SyncEvent, SyncState


class DatabaseHandler:
    """SQLite database handler for the playlist cache and sync history."""

    def __init__(self, db_path: Path):
        """Initialize database handler.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self) -> None:
        """Initialize database schema."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # One cached playlist per rotation day, in published order
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS playlists (
                    rotation_date TEXT PRIMARY KEY,
                    version TEXT NOT NULL,
                    track_count INTEGER NOT NULL,
                    total_duration INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    fetched_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    occurred_at TIMESTAMP NOT NULL,
                    from_state TEXT NOT NULL,
                    to_state TEXT NOT NULL,
                    detail TEXT
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_sync_events_time ON sync_events(occurred_at)")

    # Playlist cache

    def save_playlist(self, playlist: Playlist) -> None:
        """Store or replace the cached playlist for its rotation day.

        Args:
            playlist: Playlist as published (unshuffled)
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT OR REPLACE INTO playlists
                (rotation_date, version, track_count, total_duration, payload, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                playlist.rotation_date.isoformat(),
                playlist.version,
                len(playlist),
                playlist.total_duration,
                json.dumps(playlist.to_records()),
                datetime.now(timezone.utc).isoformat()
            ))

    def get_playlist(self, rotation_date: date) -> Optional[Playlist]:
        """Get the cached playlist for a day.

        Args:
            rotation_date: UTC day

        Returns:
            Playlist or None if not cached
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM playlists WHERE rotation_date = ?",
                (rotation_date.isoformat(),)
            )
            row = cursor.fetchone()
            return self._row_to_playlist(row) if row else None

    def get_latest_playlist(self) -> Optional[Playlist]:
        """Get the most recent cached playlist.

        Returns:
            Playlist or None if the cache is empty
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM playlists ORDER BY rotation_date DESC LIMIT 1")
            row = cursor.fetchone()
            return self._row_to_playlist(row) if row else None

    def list_playlists(self) -> List[Dict[str, Any]]:
        """Summaries of all cached playlists, newest first."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT rotation_date, version, track_count, total_duration, fetched_at
                FROM playlists
                ORDER BY rotation_date DESC
            """)
            return [dict(row) for row in cursor.fetchall()]

    def prune_playlists(self, keep: int = 7) -> int:
        """Delete all but the ``keep`` most recent cached playlists.

        Returns:
            Number of rows deleted
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                DELETE FROM playlists WHERE rotation_date NOT IN (
                    SELECT rotation_date FROM playlists ORDER BY rotation_date DESC LIMIT ?
                )
            """, (keep,))
            return cursor.rowcount

    @staticmethod
    def _row_to_playlist(row: sqlite3.Row) -> Playlist:
        return Playlist.from_records(
            json.loads(row['payload']),
            date.fromisoformat(row['rotation_date'])
        )

    # Sync history

    def record_event(self, event: SyncEvent) -> None:
        """Append a state transition to the sync history.

        Args:
            event: Transition to record
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO sync_events (occurred_at, from_state, to_state, detail)
                VALUES (?, ?, ?, ?)
            """, (
                event.occurred_at.isoformat(),
                event.from_state.value,
                event.to_state.value,
                event.detail
            ))

    def get_recent_events(self, limit: int = 20) -> List[SyncEvent]:
        """Get the most recent sync events, newest first.

        Args:
            limit: Maximum number of events

        Returns:
            List of SyncEvent objects
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM sync_events ORDER BY id DESC LIMIT ?",
                (limit,)
            )
            return [
                SyncEvent(
                    occurred_at=datetime.fromisoformat(row['occurred_at']),
                    from_state=SyncState(row['from_state']),
                    to_state=SyncState(row['to_state']),
                    detail=row['detail']
                )
                for row in cursor.fetchall()
            ]

    def get_state_counts(self) -> Dict[str, int]:
        """Count recorded transitions by target state."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT to_state, COUNT(*) as count
                FROM sync_events
                GROUP BY to_state
            """)

            counts = {state.value: 0 for state in SyncState}
            for row in cursor.fetchall():
                counts[row['to_state']] = row['count']

            return counts
