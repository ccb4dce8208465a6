"""Workspace — rig and town-session roster read from the town directory."""
