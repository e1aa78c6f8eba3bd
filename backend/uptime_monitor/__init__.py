"""Uptime monitor - periodic HTTP(S) checks with running uptime statistics."""

__version__ = "1.0.0"
