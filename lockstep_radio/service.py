"""Main background service for Lockstep Radio."""

import signal
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config.database import DatabaseHandler
from .config.settings import Settings
from .core.controller import PlaybackController, SimulatedPlaybackController
from .core.monitor import DriftMonitor
from .core.mpv import MpvPlaybackController
from .core.notifier import Notifier
from .core.provider import (
    CachingPlaylistProvider,
    FilePlaylistProvider,
    HttpPlaylistProvider,
    PlaylistProvider,
)
from .core.scheduler import SyncScheduler
from .exceptions import ConfigurationError
from .models.sync import SyncEvent, SyncState
from .utils.logger import setup_logger
from .utils.platform import is_windows


def build_provider(settings: Settings, db: DatabaseHandler, logger) -> PlaylistProvider:
    """Create the cached playlist provider described by ``settings``.

    Raises:
        ConfigurationError: If no playlist source is configured
    """
    source = settings.provider
    if source.url:
        upstream = HttpPlaylistProvider(source.url, timeout=source.timeout)
    elif source.path:
        upstream = FilePlaylistProvider(source.path)
    else:
        raise ConfigurationError("No playlist source configured (set provider.url or provider.path)")

    return CachingPlaylistProvider(
        upstream,
        db,
        logger,
        max_retries=source.max_retries,
        retry_delay=source.retry_delay
    )


class LockstepService:
    """Plays the shared timeline and keeps it in sync until stopped."""

    def __init__(self, config_path: Optional[Path] = None, player: Optional[str] = None):
        """Initialize the service.

        Args:
            config_path: Path to configuration file (optional)
            player: Override for the configured player backend
        """
        self.running = False
        self.config_path = config_path

        self.settings = Settings.from_file_or_default(config_path)
        if player:
            self.settings.player.backend = player

        self.logger = setup_logger(
            log_file=self.settings.logging.path,
            level=self.settings.logging.level,
            max_size_mb=self.settings.logging.max_size_mb,
            backup_count=self.settings.logging.backup_count,
            console=True
        )

        self.logger.info("Initializing Lockstep Radio service")

        self.db = DatabaseHandler(self.settings.cache.path)
        self.controller: Optional[PlaybackController] = None
        self.monitor: Optional[DriftMonitor] = None
        self.notifier: Optional[Notifier] = None
        self.scheduler: Optional[SyncScheduler] = None

    def create_controller(self) -> PlaybackController:
        """Create and start the configured playback controller."""
        player = self.settings.player
        if player.backend == "simulated":
            self.logger.info(f"Using simulated player (rate {player.simulated_rate})")
            return SimulatedPlaybackController(rate=player.simulated_rate, logger=self.logger)

        controller = MpvPlaybackController(
            logger=self.logger,
            mpv_path=player.mpv_path,
            ipc_path=player.ipc_path
        )
        controller.start()
        return controller

    def request_tick(self, *_) -> None:
        """Controller callback: run the next tick now instead of at the interval."""
        if self.scheduler and self.scheduler.is_running():
            self.scheduler.trigger_immediate_tick()

    def record_transition(self, old: SyncState, new: SyncState, reason: str) -> None:
        """State listener: keep a history of transitions in the cache database."""
        try:
            self.db.record_event(SyncEvent(
                occurred_at=datetime.now(timezone.utc),
                from_state=old,
                to_state=new,
                detail=reason
            ))
        except Exception as e:
            self.logger.warning(f"Failed to record sync event: {e}")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, shutting down...")
            self.shutdown()

        signal.signal(signal.SIGINT, signal_handler)

        if is_windows():
            signal.signal(signal.SIGBREAK, signal_handler)
        else:
            signal.signal(signal.SIGTERM, signal_handler)

    def start(self) -> None:
        """Start the sync service."""
        try:
            self.running = True
            self.setup_signal_handlers()

            provider = build_provider(self.settings, self.db, self.logger)
            self.controller = self.create_controller()

            self.notifier = Notifier(
                logger=self.logger,
                enabled=self.settings.notifications.enabled
            )

            sync = self.settings.sync
            self.monitor = DriftMonitor(
                provider=provider,
                controller=self.controller,
                logger=self.logger,
                threshold=sync.drift_threshold_seconds,
                confirmation_timeout=sync.confirmation_timeout_seconds,
                backoff_base=sync.backoff_base_seconds,
                backoff_max=sync.backoff_max_seconds,
                escalate_after=sync.escalate_after,
                earliest=self.settings.clock.earliest_datetime,
                latest=self.settings.clock.latest_datetime
            )
            self.monitor.add_state_listener(self.record_transition)
            if self.settings.notifications.on_persistent_desync:
                self.monitor.add_persistent_desync_listener(self.notifier.notify_persistent_desync)
            if self.settings.notifications.on_clock_error:
                self.monitor.add_clock_error_listener(self.notifier.notify_clock_error)

            # Configuration errors are fatal here
            self.logger.info("Loading today's playlist...")
            self.monitor.start()

            pruned = self.db.prune_playlists(keep=self.settings.cache.keep_days)
            if pruned:
                self.logger.debug(f"Pruned {pruned} old cached playlist(s)")

            self.scheduler = SyncScheduler(
                logger=self.logger,
                monitor=self.monitor,
                tick_interval_seconds=sync.tick_interval_seconds
            )
            self.scheduler.start()

            # Player errors and track ends are handled without waiting for the interval
            self.controller.add_error_callback(self.request_tick)
            self.controller.add_track_ended_callback(self.request_tick)

            self.logger.info("Service started successfully")
            self.logger.info("Press Ctrl+C to stop")

            self._keep_alive()

        except KeyboardInterrupt:
            self.logger.info("Keyboard interrupt received")
            self.shutdown()
        except Exception as e:
            self.logger.error(f"Service error: {e}", exc_info=True)
            if self.notifier:
                self.notifier.notify_error(str(e))
            self.shutdown(exit_process=False)
            raise

    def _keep_alive(self) -> None:
        """Keep the service alive.

        Windows doesn't support signal.pause(), so we use a sleep loop.
        """
        if is_windows():
            while self.running:
                time.sleep(1)
        else:
            while self.running:
                signal.pause()

    def shutdown(self, exit_process: bool = True) -> None:
        """Graceful shutdown."""
        if not self.running:
            return

        self.logger.info("Shutting down service...")
        self.running = False

        # Cancels pending ticks and closes the monitor session
        if self.scheduler:
            self.scheduler.stop()
        elif self.monitor:
            self.monitor.close()

        if self.controller:
            self.controller.close()

        self.logger.info("Service stopped")

        if exit_process:
            sys.exit(0)


def main():
    """Main entry point."""
    service = LockstepService()
    service.start()


if __name__ == "__main__":
    main()
