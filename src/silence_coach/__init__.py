"""Microphone silence detector with a visual pause countdown."""

__version__ = "0.1.0"
