"""The feature processors: responses, aichat and vibecheck."""
