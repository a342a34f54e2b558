"""Async UDP link manager for Tello-style quadcopters."""

__version__ = "0.1.0"
