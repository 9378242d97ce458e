"""Quorra: a personal automation agent with autonomous background processes."""

__version__ = "0.1.0"
