"""Checklist velocity tracking mined from Git history."""

__version__ = "0.1.0"
