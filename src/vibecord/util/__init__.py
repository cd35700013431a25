"""
Utility functions and helpers for Vibecord.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log files. Suppresses noise from
  verbose libraries (Discord internals, httpx, aiosqlite). Uses prompt_toolkit
  for non-blocking console I/O.

- **random_source.py**: Seedable source of randomness shared by the features,
  so verdicts, persona draws and reply sampling can be replayed in tests.
"""
