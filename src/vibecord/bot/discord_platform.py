"""
py-cord implementation of :class:`~vibecord.bot.ports.PlatformClient`.

Discord has no per-channel kick, so removing a user from a channel is done
with a member permission overwrite that hides the channel, and letting them
back in clears that overwrite. Threads have real membership and use
``remove_user``/``add_user`` instead.
"""

from __future__ import annotations

from typing import Any

import discord

from vibecord.bot.ports import PlatformError, UserProfile
from vibecord.util.logger import get_logger

logger = get_logger("discord_platform")

KICK_REASON = "Failed vibecheck"
INVITE_REASON = "Vibecheck ban expired"


def _snowflake(value: str, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PlatformError(f"invalid {what} id: {value!r}") from exc


class DiscordPlatformClient:
    """Outbound platform calls against a running ``discord.Bot``."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    @property
    def bot_user_id(self) -> str:
        return str(self.bot.user.id) if self.bot.user else ""

    async def _channel(self, channel_id: str) -> Any:
        snowflake = _snowflake(channel_id, "channel")
        channel = self.bot.get_channel(snowflake)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(snowflake)
        except discord.DiscordException as exc:
            raise PlatformError(f"channel {channel_id} not found: {exc}") from exc

    async def _member(self, channel: discord.abc.GuildChannel, user_id: str) -> discord.Member:
        snowflake = _snowflake(user_id, "user")
        member = channel.guild.get_member(snowflake)
        if member is not None:
            return member
        try:
            return await channel.guild.fetch_member(snowflake)
        except discord.DiscordException as exc:
            raise PlatformError(f"member {user_id} not found in guild {channel.guild.id}: {exc}") from exc

    async def post_message(self, channel_id: str, text: str) -> None:
        channel = await self._channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            raise PlatformError(f"channel {channel_id} cannot receive messages")
        try:
            await channel.send(text)
        except discord.DiscordException as exc:
            raise PlatformError(f"send message to {channel_id}: {exc}") from exc

    async def add_reaction(self, channel_id: str, message_id: str, reaction: str) -> None:
        channel = await self._channel(channel_id)
        if not hasattr(channel, "get_partial_message"):
            raise PlatformError(f"channel {channel_id} does not support reactions")
        message = channel.get_partial_message(_snowflake(message_id, "message"))
        try:
            await message.add_reaction(reaction)
        except discord.DiscordException as exc:
            raise PlatformError(f"add reaction {reaction} to {message_id}: {exc}") from exc

    async def kick_user(self, channel_id: str, user_id: str) -> None:
        channel = await self._channel(channel_id)
        try:
            if isinstance(channel, discord.Thread):
                await channel.remove_user(discord.Object(id=_snowflake(user_id, "user")))
                return
            if not isinstance(channel, discord.abc.GuildChannel):
                raise PlatformError(f"channel {channel_id} is not a guild channel")
            member = await self._member(channel, user_id)
            await channel.set_permissions(member, view_channel=False, send_messages=False, reason=KICK_REASON)
        except discord.DiscordException as exc:
            raise PlatformError(f"kick {user_id} from {channel_id}: {exc}") from exc
        logger.debug("[DISCORD] Removed user %s from channel %s", user_id, channel_id)

    async def invite_user(self, channel_id: str, user_id: str) -> None:
        channel = await self._channel(channel_id)
        try:
            if isinstance(channel, discord.Thread):
                await channel.add_user(discord.Object(id=_snowflake(user_id, "user")))
                return
            if not isinstance(channel, discord.abc.GuildChannel):
                raise PlatformError(f"channel {channel_id} is not a guild channel")
            member = await self._member(channel, user_id)
            await channel.set_permissions(member, overwrite=None, reason=INVITE_REASON)
        except discord.DiscordException as exc:
            raise PlatformError(f"invite {user_id} to {channel_id}: {exc}") from exc
        logger.debug("[DISCORD] Restored user %s to channel %s", user_id, channel_id)

    async def get_user_profile(self, user_id: str) -> UserProfile:
        snowflake = _snowflake(user_id, "user")
        user = self.bot.get_user(snowflake)
        if user is None:
            try:
                user = await self.bot.fetch_user(snowflake)
            except discord.DiscordException as exc:
                raise PlatformError(f"fetch user {user_id}: {exc}") from exc
        return UserProfile(
            user_id=user_id,
            username=user.name,
            first_name=getattr(user, "global_name", None) or "",
        )
