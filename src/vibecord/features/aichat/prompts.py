"""Prompt assembly for the AI chat feature."""

from __future__ import annotations

from typing import Dict, List, Sequence

from vibecord.bot.ports import UserProfile
from vibecord.features.aichat.context_store import ROLE_HUMAN, ConversationContext

STYLE_PROMPT = (
    "Your messages are as terse as possible to keep messages short. "
    "Do your best to always refer to the user's query, "
    "however you are part of a larger conversation and so participate as a general member of the crowd.\n"
    "Details about the user:\n"
    "username={username}, first name={first_name}, last name={last_name}, timezone={timezone}.\n"
    "Prefer referring to the user by their first name when available. "
    "Use the user's timezone to make assumptions about their location."
)


def context_prefix(context: Sequence[ConversationContext]) -> str:
    """Render stored messages as a ``Recent conversation:`` transcript."""
    if not context:
        return ""
    lines = ["Recent conversation:"]
    for entry in context:
        speaker = "User" if entry.role == ROLE_HUMAN else "Assistant"
        lines.append(f"{speaker}: {entry.message}")
    return "\n".join(lines) + "\n\n"


def build_chat_messages(
    persona: str,
    profile: UserProfile,
    context: Sequence[ConversationContext],
    text: str,
) -> List[Dict[str, str]]:
    """
    Build the chat completion messages for one reply.

    Returns:
        list: The persona system message, a system message describing the
        user, and the user's message prefixed with recent conversation.
    """
    return [
        {"role": "system", "content": persona},
        {
            "role": "system",
            "content": STYLE_PROMPT.format(
                username=profile.username,
                first_name=profile.first_name,
                last_name=profile.last_name,
                timezone=profile.timezone,
            ),
        },
        {"role": "user", "content": f"{context_prefix(context)}\n{text}"},
    ]
