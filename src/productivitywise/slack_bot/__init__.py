"""Slack transport: bolt handlers, DM delivery and status updates."""
