"""
Event pipeline shared by all features: dispatch, bounded queues,
deduplication, rate limiting and delayed actions.
"""
