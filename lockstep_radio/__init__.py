"""Lockstep Radio: clients that play one shared audio timeline from wall-clock time."""

__version__ = "0.1.0"
