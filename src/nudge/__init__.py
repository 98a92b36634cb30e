"""Nudge - scheduled and recurring notification delivery."""

__version__ = "0.1.0"
