"""Configuration management for Lockstep Radio."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from ..utils.platform import get_config_dir


@dataclass
class ProviderConfig:
    """Playlist source configuration."""

    url: Optional[str] = None
    path: Optional[str] = None
    timeout: float = 15
    max_retries: int = 2
    retry_delay: float = 1.0

    def __post_init__(self):
        """Validate configuration."""
        if self.url and self.path:
            raise ValueError("provider: set either url or path, not both")
        if self.timeout <= 0:
            raise ValueError("provider.timeout must be > 0")
        if not (0 <= self.max_retries <= 10):
            raise ValueError("provider.max_retries must be between 0 and 10")
        if self.retry_delay < 0:
            raise ValueError("provider.retry_delay must be >= 0")

    @property
    def source(self) -> Optional[str]:
        return self.url or self.path


@dataclass
class CacheConfig:
    """Playlist cache configuration."""

    path: Optional[Path] = None
    keep_days: int = 7

    def __post_init__(self):
        """Set default database path if not specified."""
        if self.path is None:
            self.path = get_config_dir() / 'cache.db'
        elif isinstance(self.path, str):
            self.path = Path(self.path).expanduser()

        if self.keep_days < 1:
            raise ValueError("cache.keep_days must be >= 1")


@dataclass
class SyncConfig:
    """Drift monitor configuration."""

    tick_interval_seconds: float = 5.0
    drift_threshold_seconds: float = 5.0
    confirmation_timeout_seconds: float = 10.0
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 60.0
    escalate_after: int = 3

    def __post_init__(self):
        """Validate configuration."""
        if self.tick_interval_seconds <= 0:
            raise ValueError("sync.tick_interval_seconds must be > 0")
        if self.drift_threshold_seconds <= 0:
            raise ValueError("sync.drift_threshold_seconds must be > 0")
        if self.confirmation_timeout_seconds < self.tick_interval_seconds:
            raise ValueError("sync.confirmation_timeout_seconds must be >= tick_interval_seconds")
        if self.backoff_base_seconds <= 0:
            raise ValueError("sync.backoff_base_seconds must be > 0")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("sync.backoff_max_seconds must be >= backoff_base_seconds")
        if self.escalate_after < 1:
            raise ValueError("sync.escalate_after must be >= 1")


@dataclass
class ClockConfig:
    """Plausible range for system clock readings (ISO dates, UTC)."""

    earliest: str = "2000-01-01"
    latest: str = "2100-01-01"

    def __post_init__(self):
        """Validate configuration."""
        if self.earliest_datetime >= self.latest_datetime:
            raise ValueError("clock.earliest must be before clock.latest")

    @property
    def earliest_datetime(self) -> datetime:
        return _parse_utc(self.earliest)

    @property
    def latest_datetime(self) -> datetime:
        return _parse_utc(self.latest)


@dataclass
class PlayerConfig:
    """Playback device configuration."""

    backend: str = "mpv"
    mpv_path: str = "mpv"
    ipc_path: str = "/tmp/lockstep-radio-mpv.sock"
    simulated_rate: float = 1.0

    def __post_init__(self):
        """Validate configuration."""
        valid_backends = ["mpv", "simulated"]
        if self.backend not in valid_backends:
            raise ValueError(f"player.backend must be one of {valid_backends}")
        if self.simulated_rate <= 0:
            raise ValueError("player.simulated_rate must be > 0")


@dataclass
class NotificationConfig:
    """Notification configuration."""

    enabled: bool = True
    on_persistent_desync: bool = True
    on_clock_error: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""

    path: Optional[Path] = None
    level: str = "INFO"
    max_size_mb: int = 10
    backup_count: int = 5

    def __post_init__(self):
        """Validate configuration and set defaults."""
        if self.path is None:
            self.path = get_config_dir() / 'service.log'
        elif isinstance(self.path, str):
            self.path = Path(self.path).expanduser()

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")


def _parse_utc(value: str) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Settings:
    """Main settings container."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> 'Settings':
        """Load settings from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Settings instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        return cls(
            provider=ProviderConfig(**(data.get('provider') or {})),
            cache=CacheConfig(**(data.get('cache') or {})),
            sync=SyncConfig(**(data.get('sync') or {})),
            clock=ClockConfig(**(data.get('clock') or {})),
            player=PlayerConfig(**(data.get('player') or {})),
            notifications=NotificationConfig(**(data.get('notifications') or {})),
            logging=LoggingConfig(**(data.get('logging') or {})),
        )

    @classmethod
    def from_file_or_default(cls, config_path: Optional[Path] = None) -> 'Settings':
        """Load settings from file or return defaults.

        Args:
            config_path: Path to configuration file (optional)

        Returns:
            Settings instance
        """
        if config_path is None:
            config_path = get_config_dir() / 'config.yaml'

        if config_path.exists():
            try:
                return cls.from_file(config_path)
            except Exception as e:
                logging.warning(f"Failed to load config from {config_path}: {e}")
                logging.warning("Using default configuration")
                return cls()
        else:
            logging.info(f"Config file not found at {config_path}, using defaults")
            return cls()

    def to_dict(self) -> dict:
        """Plain-data form suitable for YAML."""
        data = {
            'provider': asdict(self.provider),
            'cache': asdict(self.cache),
            'sync': asdict(self.sync),
            'clock': asdict(self.clock),
            'player': asdict(self.player),
            'notifications': asdict(self.notifications),
            'logging': asdict(self.logging),
        }
        data['cache']['path'] = str(self.cache.path) if self.cache.path else None
        data['logging']['path'] = str(self.logging.path) if self.logging.path else None
        return data

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save settings to YAML file.

        Args:
            config_path: Path to save configuration (default: config.yaml in config dir)
        """
        if config_path is None:
            config_path = get_config_dir() / 'config.yaml'

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False, indent=2)
