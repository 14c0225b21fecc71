"""Tests for the tick scheduler."""

import threading

from lockstep_radio.core.scheduler import SyncScheduler
from lockstep_radio.models.sync import SyncState


class StubMonitor:
    state = SyncState.SYNCED

    def __init__(self, error=None):
        self.error = error
        self.ticks = 0
        self.closed = False
        self.ticked = threading.Event()

    def tick(self):
        self.ticks += 1
        self.ticked.set()
        if self.error:
            raise self.error
        return None

    def close(self):
        self.closed = True


def test_safe_tick_swallows_errors(logger):
    monitor = StubMonitor(error=RuntimeError("boom"))
    scheduler = SyncScheduler(logger, monitor, tick_interval_seconds=5)

    scheduler._safe_tick()
    scheduler._safe_tick()
    assert monitor.ticks == 2


def test_start_schedules_ticks_and_stop_closes_monitor(logger):
    monitor = StubMonitor()
    scheduler = SyncScheduler(logger, monitor, tick_interval_seconds=30)

    scheduler.start()
    try:
        assert scheduler.is_running()
        assert scheduler.get_next_run_time() is not None
    finally:
        scheduler.stop()

    assert not scheduler.is_running()
    assert monitor.closed
    assert scheduler.get_next_run_time() is None


def test_stop_without_start_still_closes_monitor(logger):
    monitor = StubMonitor()
    SyncScheduler(logger, monitor).stop()
    assert monitor.closed


def test_immediate_tick_runs_before_the_interval(logger):
    monitor = StubMonitor()
    scheduler = SyncScheduler(logger, monitor, tick_interval_seconds=3600)

    scheduler.start()
    try:
        scheduler.trigger_immediate_tick()
        assert monitor.ticked.wait(timeout=5)
    finally:
        scheduler.stop()

    assert monitor.ticks == 1
