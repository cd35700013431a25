"""Event listener Cog for Vibecord.

This cog has exactly ONE responsibility: turn Discord gateway events into raw
event payloads and hand them to the dispatcher. All feature logic lives in
the feature processors.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

import discord
from discord.ext import commands

from vibecord.configuration.app_configuration import AppConfig
from vibecord.core.dispatcher import EventDispatcher
from vibecord.datatypes.event_datatypes import EventKind
from vibecord.util.logger import get_logger

logger = get_logger("event_listener_cog")


def message_payload(message: discord.Message, bot_user: discord.ClientUser | None) -> Dict[str, Any]:
    """Describe a Discord message as a raw dispatcher payload."""
    mentioned = bot_user is not None and bot_user in message.mentions
    return {
        "kind": EventKind.APP_MENTION.value if mentioned else EventKind.MESSAGE.value,
        "user_id": str(message.author.id),
        "channel_id": str(message.channel.id),
        "message_id": str(message.id),
        "text": message.content or "",
        "username": message.author.name,
        "bot_id": str(message.author.id) if message.author.bot else "",
        "timestamp": message.created_at,
    }


class EventListenerCog(commands.Cog):
    """
    Thin listener that forwards messages and thread joins to the dispatcher.

    Parameters
    ----------
    bot:
        Discord bot instance.
    dispatcher:
        Receives the raw payloads and fans them out to the features.
    get_config:
        Returns the current configuration snapshot.
    """

    def __init__(
        self,
        bot: discord.Bot,
        dispatcher: EventDispatcher,
        get_config: Callable[[], AppConfig],
    ) -> None:
        self.bot = bot
        self._dispatcher = dispatcher
        self._get_config = get_config
        logger.info("[EVENT LISTENER] Event listener cog loaded")

    def _channel_allowed(self, channel_id: int) -> bool:
        preferred = self._get_config().platform.preferred_channels
        return not preferred or str(channel_id) in preferred

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        logger.info("[EVENT LISTENER] Connected as %s (%s)", self.bot.user, self.bot.user.id if self.bot.user else "?")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or not self._channel_allowed(message.channel.id):
            return
        self._dispatcher.dispatch_payload(message_payload(message, self.bot.user))

    @commands.Cog.listener(name="on_thread_member_join")
    async def on_thread_member_join(self, member: discord.ThreadMember) -> None:
        if not self._channel_allowed(member.thread_id):
            return
        self._dispatcher.dispatch_payload({
            "kind": EventKind.MEMBER_JOINED.value,
            "user_id": str(member.id),
            "channel_id": str(member.thread_id),
        })


def setup(
    bot: discord.Bot,
    dispatcher: EventDispatcher,
    get_config: Callable[[], AppConfig],
) -> None:
    """Register the EventListenerCog with the bot."""
    bot.add_cog(EventListenerCog(bot, dispatcher, get_config))
