"""Vibecheck feature: verdicts, bans and timed reinvites."""
