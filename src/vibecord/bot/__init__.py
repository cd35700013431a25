"""
Discord integration for Vibecord.

- ports: the PlatformClient interface the features depend on
- discord_platform: py-cord implementation of that interface
- event_listener: cog turning gateway events into dispatcher payloads
"""
