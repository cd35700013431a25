"""Narrow interfaces the features use to talk to the chat platform."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class UserProfile:
    """What the AI chat feature knows about the person it is talking to."""
    user_id: str
    username: str
    first_name: str = ""
    last_name: str = ""
    timezone: str = ""

    @property
    def display_name(self) -> str:
        return self.first_name or self.username


class PlatformError(Exception):
    """A platform call failed (missing channel, permissions, network)."""


@runtime_checkable
class PlatformClient(Protocol):
    """Outbound calls to the messaging platform."""

    @property
    def bot_user_id(self) -> str:
        ...

    async def post_message(self, channel_id: str, text: str) -> None:
        ...

    async def add_reaction(self, channel_id: str, message_id: str, reaction: str) -> None:
        ...

    async def kick_user(self, channel_id: str, user_id: str) -> None:
        ...

    async def invite_user(self, channel_id: str, user_id: str) -> None:
        ...

    async def get_user_profile(self, user_id: str) -> UserProfile:
        ...
