"""Anime release parsing, quality decisions and library organization."""

__version__ = "0.1.0"
