"""
LLM-backed chat feature.

Direct mentions are answered subject to a small mention budget. Other
messages draw from a slower ambient budget and are additionally sampled, so
the bot joins in now and then instead of answering everything. Each user
keeps the same persona for a while, and the last few exchanges with that
persona are fed back into the prompt.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from vibecord.ai.llm_client import CompletionClient, CompletionRequest
from vibecord.bot.ports import PlatformClient, UserProfile
from vibecord.configuration.app_configuration import AppConfig
from vibecord.core.dedup import MessageDeduplicator
from vibecord.core.feature_processor import FeatureProcessor
from vibecord.core.rate_limiter import TokenBucket
from vibecord.datatypes.event_datatypes import Event, EventKind
from vibecord.features.aichat.context_store import (
    ROLE_ASSISTANT,
    ROLE_HUMAN,
    ContextStore,
    ConversationContext,
)
from vibecord.features.aichat.personas import PersonaAssigner, persona_prompt
from vibecord.features.aichat.prompts import build_chat_messages
from vibecord.util.random_source import RandomSource

EVENT_BURST = 5
EVENT_REFILL_SECONDS = 180.0
MENTION_BURST = 3
MENTION_REFILL_SECONDS = 60.0

WILD_CHANCE = 0.3
MIN_TEMPERATURE = 0.3
CALM_MAX_TEMPERATURE = 1.0
CALM_MAX_LENGTH = 300
WILD_MAX_TEMPERATURE = 2.0
WILD_MAX_LENGTH = 1000
MIN_LENGTH = 3


def truncate_reply(text: str, max_chars: int) -> str:
    """Cut ``text`` to at most ``max_chars``, preferring a word boundary."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    boundary = cut.rfind(" ")
    if boundary > 0:
        cut = cut[:boundary]
    return cut.rstrip()


class AIChatFeature(FeatureProcessor):
    """Answers mentions and occasionally chimes in using a sticky persona."""

    name = "aichat"
    queue_size = 10

    def __init__(
        self,
        config: AppConfig,
        platform: PlatformClient,
        llm: CompletionClient,
        context_store: Optional[ContextStore] = None,
        *,
        random: RandomSource | None = None,
        personas: PersonaAssigner | None = None,
        event_limiter: TokenBucket | None = None,
        mention_limiter: TokenBucket | None = None,
        deduplicator: MessageDeduplicator | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(config, deduplicator=deduplicator)
        self.platform = platform
        self.llm = llm
        self.context_store = context_store
        self.random = random or RandomSource()
        self.personas = personas or PersonaAssigner(config.aichat.sticky_duration, self.random)
        self.event_limiter = event_limiter or TokenBucket(EVENT_REFILL_SECONDS, EVENT_BURST)
        self.mention_limiter = mention_limiter or TokenBucket(MENTION_REFILL_SECONDS, MENTION_BURST)
        self.clock = clock

    def apply_config(self, config: AppConfig) -> None:
        self.personas.sticky_duration = config.aichat.sticky_duration

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def is_bot_mentioned(self, text: str) -> bool:
        bot_id = self.platform.bot_user_id
        if not bot_id:
            return False
        return f"<@{bot_id}>" in text or f"<@!{bot_id}>" in text

    def should_respond(self, event: Event) -> bool:
        """Spend from the right budget and decide whether to answer ``event``."""
        if event.kind is EventKind.APP_MENTION or self.is_bot_mentioned(event.text):
            if not self.mention_limiter.allow():
                self.logger.debug("[AICHAT] Mention rate limit exceeded user=%s channel=%s", event.user_id, event.channel_id)
                return False
            return True

        if not self.event_limiter.allow():
            self.logger.debug("[AICHAT] Rate limit exceeded, dropping event user=%s channel=%s", event.user_id, event.channel_id)
            return False
        if self.random.bool(self.config.aichat.ambient_drop_chance):
            return False
        return True

    async def handle_event(self, event: Event) -> None:
        if not event.is_message:
            return
        if self.should_respond(event):
            await self.respond(event)

    # ------------------------------------------------------------------
    # Reply
    # ------------------------------------------------------------------

    async def user_profile(self, event: Event) -> UserProfile:
        try:
            return await self.platform.get_user_profile(event.user_id)
        except Exception as exc:
            self.logger.error("[AICHAT] Failed to get user info for %s: %s", event.user_id, exc)
            return UserProfile(user_id=event.user_id, username=event.username)

    async def recent_context(self, event: Event, persona_name: str) -> list[ConversationContext]:
        if self.context_store is None:
            return []
        settings = self.config.aichat
        try:
            return await self.context_store.get_recent_context(
                event.user_id,
                event.channel_id,
                persona_name,
                max_messages=settings.max_context_messages,
                max_age=settings.max_context_age,
                max_tokens=settings.max_context_tokens,
            )
        except Exception as exc:
            self.logger.warning(
                "[AICHAT] Failed to retrieve conversation context user=%s channel=%s: %s",
                event.user_id, event.channel_id, exc,
            )
            return []

    def sampling(self) -> tuple[float, int]:
        """Draw (temperature, max reply length); about 30% of replies go wild."""
        if self.random.bool(WILD_CHANCE):
            max_temperature, max_length = WILD_MAX_TEMPERATURE, WILD_MAX_LENGTH
        else:
            max_temperature, max_length = CALM_MAX_TEMPERATURE, CALM_MAX_LENGTH
        return self.random.uniform(MIN_TEMPERATURE, max_temperature), self.random.randint(MIN_LENGTH, max_length)

    async def respond(self, event: Event) -> None:
        text = event.text.strip()
        self.logger.debug("[AICHAT] Responding to user=%s channel=%s", event.user_id, event.channel_id)

        profile = await self.user_profile(event)
        persona_name = self.personas.persona_for(event.user_id, self.config.aichat.personas)
        context = await self.recent_context(event, persona_name)

        messages = build_chat_messages(
            persona_prompt(persona_name, self.config.aichat.personas), profile, context, text,
        )
        temperature, max_length = self.sampling()

        try:
            completion = await self.llm.complete(CompletionRequest(messages=messages, temperature=temperature))
        except Exception as exc:
            self.logger.error(
                "[AICHAT] Failed to generate content user=%s channel=%s: %s", event.user_id, event.channel_id, exc,
            )
            return

        reply = truncate_reply(completion, max_length)
        try:
            await self.platform.post_message(event.channel_id, reply)
        except Exception as exc:
            self.logger.error("[AICHAT] Failed to post response in channel %s: %s", event.channel_id, exc)
            return

        await self.remember(event, persona_name, text, reply)

    async def remember(self, event: Event, persona_name: str, text: str, reply: str) -> None:
        if self.context_store is None:
            return
        now = self.clock()
        entries = (
            ConversationContext(event.user_id, event.channel_id, persona_name, text, ROLE_HUMAN, now),
            ConversationContext(
                event.user_id, event.channel_id, persona_name, reply, ROLE_ASSISTANT, now + timedelta(milliseconds=1),
            ),
        )
        for entry in entries:
            try:
                await self.context_store.store_context(entry)
            except Exception as exc:
                self.logger.warning(
                    "[AICHAT] Failed to store %s context user=%s channel=%s: %s",
                    entry.role, event.user_id, event.channel_id, exc,
                )
