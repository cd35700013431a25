"""
Scripted pattern responses.

Each configured :class:`ResponseRule` is tried in order against the message.
Plain rules match the whole trimmed message case-insensitively; regex rules
are searched case-insensitively anywhere in it. The first matching rule adds
its reactions and posts a single reply, and evaluation stops there.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Pattern

from vibecord.bot.ports import PlatformClient
from vibecord.configuration.app_configuration import AppConfig
from vibecord.configuration.config_file import ResponseRule
from vibecord.core.dedup import MessageDeduplicator
from vibecord.core.feature_processor import FeatureProcessor
from vibecord.core.rate_limiter import TokenBucket
from vibecord.datatypes.event_datatypes import Event
from vibecord.util.random_source import RandomSource

TRIGGER_BURST = 10
TRIGGER_REFILL_SECONDS = 6.0


class ResponsesFeature(FeatureProcessor):
    """Replies to messages that match the configured ``chat.responses`` rules."""

    name = "responses"
    queue_size = 100

    def __init__(
        self,
        config: AppConfig,
        platform: PlatformClient,
        *,
        random: RandomSource | None = None,
        trigger_limiter: TokenBucket | None = None,
        deduplicator: MessageDeduplicator | None = None,
    ) -> None:
        super().__init__(config, deduplicator=deduplicator)
        self.platform = platform
        self.random = random or RandomSource()
        self.trigger_limiter = trigger_limiter or TokenBucket(TRIGGER_REFILL_SECONDS, TRIGGER_BURST)
        self._compiled: Dict[str, Optional[Pattern[str]]] = {}

    def apply_config(self, config: AppConfig) -> None:
        self._compiled.clear()

    def _regex(self, pattern: str) -> Optional[Pattern[str]]:
        if pattern not in self._compiled:
            try:
                self._compiled[pattern] = re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                self.logger.error("[RESPONSES] Invalid response pattern %r, skipping: %s", pattern, exc)
                self._compiled[pattern] = None
        return self._compiled[pattern]

    def matches(self, rule: ResponseRule, message: str) -> bool:
        if rule.is_regexp:
            regex = self._regex(rule.pattern)
            return regex is not None and regex.search(message) is not None
        return message.casefold() == rule.pattern.strip().casefold()

    def find_rule(self, text: str) -> Optional[ResponseRule]:
        """Return the first rule matching ``text``, if any."""
        message = text.strip()
        for rule in self.config.chat.responses:
            if self.matches(rule, message):
                return rule
        return None

    def pick_reply(self, rule: ResponseRule) -> str:
        if rule.random_messages:
            return self.random.pick(rule.random_messages)
        return rule.message

    async def handle_event(self, event: Event) -> None:
        if not event.is_message:
            return

        rule = self.find_rule(event.text)
        if rule is None:
            return
        if not self.trigger_limiter.allow():
            self.logger.debug("[RESPONSES] Rate limited response in channel %s", event.channel_id)
            return

        self.logger.info("[RESPONSES] Message matched response pattern %r in channel %s", rule.pattern, event.channel_id)

        for reaction in rule.reactions:
            try:
                await self.platform.add_reaction(event.channel_id, event.message_id, reaction)
            except Exception as exc:
                self.logger.error(
                    "[RESPONSES] Failed to add reaction %s in channel %s: %s", reaction, event.channel_id, exc,
                )

        reply = self.pick_reply(rule)
        if not reply:
            return
        try:
            await self.platform.post_message(event.channel_id, reply)
        except Exception as exc:
            self.logger.error("[RESPONSES] Failed to post response in channel %s: %s", event.channel_id, exc)
