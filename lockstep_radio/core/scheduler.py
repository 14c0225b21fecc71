"""Scheduler for periodic drift monitor ticks."""

import logging
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .monitor import DriftMonitor


class SyncScheduler:
    """Runs ``DriftMonitor.tick`` on a fixed interval, one tick at a time."""

    def __init__(
        self,
        logger: logging.Logger,
        monitor: DriftMonitor,
        tick_interval_seconds: float = 5.0
    ):
        """Initialize scheduler.

        Args:
            logger: Logger instance
            monitor: Drift monitor to tick
            tick_interval_seconds: Seconds between ticks
        """
        self.logger = logger
        self.monitor = monitor
        self.tick_interval_seconds = tick_interval_seconds

        # A single worker keeps ticks strictly sequential
        self.scheduler = BackgroundScheduler(
            executors={'default': ThreadPoolExecutor(max_workers=1)},
            job_defaults={'coalesce': True, 'max_instances': 1},
            timezone='UTC'
        )
        self._job_id = "drift_tick"

    def start(self) -> None:
        """Start the scheduler."""
        try:
            trigger = IntervalTrigger(seconds=self.tick_interval_seconds)
            self.logger.info(
                f"Starting sync loop with interval: {self.tick_interval_seconds} seconds"
            )

            self.scheduler.add_job(
                self._safe_tick,
                trigger=trigger,
                id=self._job_id,
                name="Drift Tick",
                replace_existing=True
            )

            self.scheduler.start()
            self.logger.info("Scheduler started successfully")

        except Exception as e:
            self.logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self) -> None:
        """Cancel pending ticks and close the monitor session."""
        try:
            if self.scheduler.running:
                self.logger.info("Stopping scheduler...")
                if self.scheduler.get_job(self._job_id):
                    self.scheduler.remove_job(self._job_id)
                self.scheduler.shutdown(wait=True)
                self.logger.info("Scheduler stopped")
        except Exception as e:
            self.logger.error(f"Error stopping scheduler: {e}")
        finally:
            self.monitor.close()

    def _safe_tick(self) -> None:
        """Wrapper for the tick with error handling.

        Errors in a tick never stop the loop.
        """
        try:
            sample = self.monitor.tick()
            if sample is not None:
                self.logger.debug(
                    f"Tick: state={self.monitor.state.value} "
                    f"expected=#{sample.expected_track_index}@{sample.expected_offset:.2f}s "
                    f"drift={sample.drift:.2f}s"
                )
        except Exception as e:
            self.logger.error(f"Error in scheduled tick: {e}", exc_info=True)

    def trigger_immediate_tick(self) -> None:
        """Run a tick now, outside of the interval."""
        try:
            self.logger.debug("Triggering immediate tick")
            self.scheduler.add_job(
                self._safe_tick,
                id="manual_tick",
                replace_existing=True
            )
        except Exception as e:
            self.logger.error(f"Failed to trigger immediate tick: {e}")

    def get_next_run_time(self) -> Optional[str]:
        """Get the next scheduled tick time.

        Returns:
            Next run time as string, or None if scheduler not running
        """
        job = self.scheduler.get_job(self._job_id)
        if job and job.next_run_time:
            return str(job.next_run_time)
        return None

    def is_running(self) -> bool:
        return self.scheduler.running
