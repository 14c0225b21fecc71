"""Platform-specific utilities for cross-platform compatibility."""

import os
import sys
from pathlib import Path

APP_DIR_NAME = 'lockstep-radio'


def is_windows() -> bool:
    """Check if running on Windows."""
    return sys.platform == 'win32' or os.name == 'nt'


def is_macos() -> bool:
    """Check if running on macOS."""
    return sys.platform == 'darwin'


def get_config_dir() -> Path:
    """Get the configuration directory based on the platform.

    The ``LOCKSTEP_RADIO_HOME`` environment variable overrides the default.

    Returns:
        Path: Configuration directory path
            - Windows: %APPDATA%/lockstep-radio
            - macOS: ~/Library/Application Support/lockstep-radio
            - Linux: ~/.config/lockstep-radio
    """
    override = os.environ.get('LOCKSTEP_RADIO_HOME')
    if override:
        config_dir = Path(override).expanduser()
    else:
        if is_windows():
            base = Path(os.environ.get('APPDATA', Path.home()))
        elif is_macos():
            base = Path.home() / 'Library' / 'Application Support'
        else:  # Linux and others
            base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
        config_dir = base / APP_DIR_NAME

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir
