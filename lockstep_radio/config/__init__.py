"""Configuration module for Lockstep Radio."""

from .database import DatabaseHandler
from .settings import Settings

__all__ = ["DatabaseHandler", "Settings"]
