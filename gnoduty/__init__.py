"""Gnoland validator signing monitor."""

__version__ = "0.1.0"
