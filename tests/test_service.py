"""Tests for service wiring."""

import pytest

from lockstep_radio.config.database import DatabaseHandler
from lockstep_radio.config.settings import Settings
from lockstep_radio.core.controller import SimulatedPlaybackController
from lockstep_radio.core.provider import (
    CachingPlaylistProvider,
    FilePlaylistProvider,
    HttpPlaylistProvider,
)
from lockstep_radio.exceptions import ConfigurationError
from lockstep_radio.models.sync import SyncState
from lockstep_radio.service import LockstepService, build_provider


@pytest.fixture
def db(tmp_path):
    return DatabaseHandler(tmp_path / "cache.db")


def test_build_provider_for_url(db, logger):
    settings = Settings()
    settings.provider.url = "https://radio.example.com/{date}.json"
    settings.provider.max_retries = 4

    provider = build_provider(settings, db, logger)
    assert isinstance(provider, CachingPlaylistProvider)
    assert isinstance(provider.upstream, HttpPlaylistProvider)
    assert provider.max_retries == 4


def test_build_provider_for_path(db, logger, tmp_path):
    settings = Settings()
    settings.provider.path = str(tmp_path / "{date}.json")

    provider = build_provider(settings, db, logger)
    assert isinstance(provider.upstream, FilePlaylistProvider)


def test_build_provider_requires_source(db, logger):
    with pytest.raises(ConfigurationError):
        build_provider(Settings(), db, logger)


def test_simulated_player_override():
    service = LockstepService(player="simulated")
    assert isinstance(service.create_controller(), SimulatedPlaybackController)


def test_transitions_are_recorded():
    service = LockstepService(player="simulated")
    service.record_transition(SyncState.SYNCED, SyncState.DRIFTED, "drift 7.00s")

    events = service.db.get_recent_events()
    assert len(events) == 1
    assert events[0].to_state == SyncState.DRIFTED
    assert events[0].detail == "drift 7.00s"


def test_shutdown_closes_monitor_without_scheduler():
    service = LockstepService(player="simulated")
    service.running = True
    service.controller = service.create_controller()

    class Closable:
        closed = False

        def close(self):
            self.closed = True

    service.monitor = Closable()
    service.shutdown(exit_process=False)
    assert service.monitor.closed
    assert not service.running


def test_controller_events_request_an_immediate_tick():
    service = LockstepService(player="simulated")

    class RecordingScheduler:
        triggered = 0

        def is_running(self):
            return True

        def trigger_immediate_tick(self):
            self.triggered += 1

    # Nothing to trigger before the scheduler exists
    service.request_tick(RuntimeError("player gone"))

    service.scheduler = RecordingScheduler()
    service.request_tick(RuntimeError("player gone"))
    service.request_tick()
    assert service.scheduler.triggered == 2
