"""
LLM access for Vibecord.

Wraps an OpenAI-compatible chat completion endpoint behind the small
CompletionClient interface used by the AI chat feature.
"""
