"""Data types shared across Vibecord."""
