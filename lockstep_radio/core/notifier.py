"""Desktop warnings for sync problems a listener would notice."""

import logging
import sys
from typing import Optional

try:
    from plyer import notification as plyer_notification
    PLYER_AVAILABLE = True
except ImportError:
    PLYER_AVAILABLE = False

if sys.platform == 'win32':
    try:
        from winotify import Notification as WinNotification
        WINOTIFY_AVAILABLE = True
    except ImportError:
        WINOTIFY_AVAILABLE = False
else:
    WINOTIFY_AVAILABLE = False


class Notifier:
    """Cross-platform desktop notification handler."""

    def __init__(
        self,
        logger: logging.Logger,
        enabled: bool = True,
        app_name: str = "Lockstep Radio"
    ):
        """Initialize notifier.

        Args:
            logger: Logger instance
            enabled: Whether notifications are enabled
            app_name: Application name shown in notifications
        """
        self.logger = logger
        self.enabled = enabled
        self.app_name = app_name
        self.backend = self._detect_backend() if enabled else None

        if self.enabled and not self.backend:
            self.logger.warning("No notification backend available, notifications disabled")
            self.enabled = False

    def _detect_backend(self) -> Optional[str]:
        if WINOTIFY_AVAILABLE:
            return 'winotify'
        if PLYER_AVAILABLE:
            return 'plyer'
        return None

    def send(self, title: str, message: str, duration: int = 5) -> bool:
        """Send a desktop notification.

        Args:
            title: Notification title
            message: Notification body
            duration: Seconds to show it (ignored by some backends)

        Returns:
            True if the notification was handed to the backend
        """
        if not self.enabled:
            return False

        try:
            if self.backend == 'winotify':
                WinNotification(
                    app_id=self.app_name,
                    title=title,
                    msg=message,
                    duration="short"
                ).show()
            else:
                plyer_notification.notify(
                    title=title,
                    message=message,
                    app_name=self.app_name,
                    timeout=duration
                )
            self.logger.debug(f"Notification sent via {self.backend}: {title}")
            return True

        except Exception as e:
            self.logger.error(f"Failed to send notification: {e}")
            return False

    def notify_persistent_desync(self, failures: int) -> bool:
        return self.send(
            title="Playback Out Of Sync",
            message=f"Could not resync after {failures} attempts, still trying"
        )

    def notify_clock_error(self, error: Exception) -> bool:
        return self.send(
            title="Clock Problem",
            message=f"Synchronization paused: {error}"
        )

    def notify_error(self, error_message: str) -> bool:
        return self.send(title="Lockstep Radio Error", message=error_message)
