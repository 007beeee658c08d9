"""Slack focus-session and break assistant."""

__version__ = "0.1.0"
