"""
Vibecord - a Discord bot with vibes

Vibecord listens to Discord messages and runs three independent features
against each one:

- responses: scripted replies and reactions for configured patterns
- aichat: an LLM chat persona that answers mentions and sometimes joins in
- vibecheck: a random vibe check that temporarily removes users who fail it

Configuration is merged from flags, environment variables, a watched YAML or
JSON file and defaults, and reloaded without restarting the bot.
"""

__version__ = "0.0.1"
