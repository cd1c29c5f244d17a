"""Scripted chat booking bot for a dental clinic, with realtime dashboard sync."""

__version__ = "1.0.0"
