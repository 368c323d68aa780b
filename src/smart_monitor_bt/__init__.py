"""Bluetooth audio device lifecycle service for the Smart Monitor."""

__version__ = "0.1.0"
