"""
Vibecheck moderation feature.

A message matching the trigger pattern gets a probabilistic verdict. Users
who fail (and are not preferred users) are recorded in the
:class:`BanRegistry` and removed from the channel a few seconds later. A
periodic sweep lets them back in once the ban expires.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Awaitable, Callable, List, Pattern

from vibecord.bot.ports import PlatformClient
from vibecord.configuration.app_configuration import DEFAULT_TRIGGER_PATTERN, AppConfig
from vibecord.core.dedup import MessageDeduplicator
from vibecord.core.delayed_tasks import DelayedTaskScheduler
from vibecord.core.feature_processor import FeatureProcessor
from vibecord.core.rate_limiter import TokenBucket
from vibecord.datatypes.event_datatypes import Event, EventKind
from vibecord.features.vibecheck.ban_registry import BanRegistry
from vibecord.features.vibecheck.vibe_responses import (
    FAIL_REACTION,
    PASS_REACTION,
    random_response,
    still_banned_message,
)
from vibecord.util.random_source import RandomSource

PASS_WEIGHT = 0.8
WEDNESDAY_PASS_WEIGHT = 0.2
WEDNESDAY = 2

SWEEP_INTERVAL_SECONDS = 10.0
KICK_DELAY_SECONDS = 5.0
REKICK_DELAY_SECONDS = 2.0

TRIGGER_BURST = 10
TRIGGER_REFILL_SECONDS = 6.0


class VibecheckFeature(FeatureProcessor):
    """Runs vibe checks on matching messages and enforces the resulting bans."""

    name = "vibecheck"
    queue_size = 100

    def __init__(
        self,
        config: AppConfig,
        platform: PlatformClient,
        *,
        registry: BanRegistry | None = None,
        scheduler: DelayedTaskScheduler | None = None,
        random: RandomSource | None = None,
        local_now: Callable[[], datetime] = datetime.now,
        trigger_limiter: TokenBucket | None = None,
        deduplicator: MessageDeduplicator | None = None,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        kick_delay: float = KICK_DELAY_SECONDS,
        rekick_delay: float = REKICK_DELAY_SECONDS,
    ) -> None:
        super().__init__(config, deduplicator=deduplicator)
        self.platform = platform
        self.registry = registry or BanRegistry(config.vibecheck.data_dir)
        self.scheduler = scheduler or DelayedTaskScheduler("vibecheck-kicks")
        self.random = random or RandomSource()
        self.local_now = local_now
        self.trigger_limiter = trigger_limiter or TokenBucket(TRIGGER_REFILL_SECONDS, TRIGGER_BURST)
        self.sweep_interval = sweep_interval
        self.kick_delay = kick_delay
        self.rekick_delay = rekick_delay
        self.pattern: Pattern[str] = re.compile(DEFAULT_TRIGGER_PATTERN, re.IGNORECASE)
        self.apply_config(config)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def apply_config(self, config: AppConfig) -> None:
        try:
            self.pattern = re.compile(config.vibecheck.trigger_pattern, re.IGNORECASE)
        except re.error as exc:
            self.logger.error(
                "[VIBECHECK] Invalid trigger pattern %r, keeping %r: %s",
                config.vibecheck.trigger_pattern, self.pattern.pattern, exc,
            )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        if event.kind is EventKind.MEMBER_JOINED:
            await self.handle_member_joined(event)
        else:
            await self.handle_message(event)

    def pass_weight(self) -> float:
        return WEDNESDAY_PASS_WEIGHT if self.local_now().weekday() == WEDNESDAY else PASS_WEIGHT

    async def handle_message(self, event: Event) -> None:
        message = event.text.strip()
        if not self.pattern.search(message):
            return
        if not self.trigger_limiter.allow():
            self.logger.debug("[VIBECHECK] Rate limited trigger in channel %s", event.channel_id)
            return

        self.logger.info("[VIBECHECK] Message matched vibecheck pattern in channel %s", event.channel_id)
        passed = self.random.bool(self.pass_weight())

        try:
            await self.platform.add_reaction(
                event.channel_id, event.message_id, PASS_REACTION if passed else FAIL_REACTION,
            )
        except Exception as exc:
            self.logger.error(
                "[VIBECHECK] Failed to add reaction in channel %s for user %s: %s",
                event.channel_id, event.user_id, exc,
            )

        settings = self.config.vibecheck
        response = random_response(
            passed,
            self.random,
            good_reactions=settings.good_reactions,
            good_text=settings.good_text,
            bad_reactions=settings.bad_reactions,
            bad_text=settings.bad_text,
        )
        try:
            await self.platform.post_message(event.channel_id, response)
        except Exception as exc:
            self.logger.error("[VIBECHECK] Failed to post response in channel %s: %s", event.channel_id, exc)

        if passed or settings.is_exempt(event.user_id, event.username):
            return

        self.registry.add(event.user_id, event.channel_id, settings.ban_duration)
        await self.scheduler.schedule(
            ("kick", event.user_id, event.channel_id),
            self.kick_delay,
            self._kick_action(event.channel_id, event.user_id, "User kicked from channel due to low vibe"),
            description=f"kick {event.user_id} from {event.channel_id}",
        )

    async def handle_member_joined(self, event: Event) -> None:
        record = self.registry.is_banned(event.user_id, event.channel_id)
        if record is None:
            return

        remaining = record.reinvite_at - self.registry.now()
        self.logger.info(
            "[VIBECHECK] Banned user %s attempted to rejoin channel %s, kicking again (%.0fs remaining)",
            event.user_id, event.channel_id, remaining.total_seconds(),
        )
        await self.scheduler.schedule(
            ("kick", event.user_id, event.channel_id),
            self.rekick_delay,
            self._kick_action(event.channel_id, event.user_id, "Re-kicked banned user from channel"),
            description=f"re-kick {event.user_id} from {event.channel_id}",
        )

        try:
            await self.platform.post_message(event.channel_id, still_banned_message(remaining))
        except Exception as exc:
            self.logger.error(
                "[VIBECHECK] Failed to post ban time remaining message in channel %s: %s", event.channel_id, exc,
            )

    def _kick_action(self, channel_id: str, user_id: str, success_message: str) -> Callable[[], Awaitable[None]]:
        async def kick() -> None:
            try:
                await self.platform.kick_user(channel_id, user_id)
            except Exception as exc:
                self.logger.error("[VIBECHECK] Failed to kick user %s from channel %s: %s", user_id, channel_id, exc)
                return
            self.logger.info("[VIBECHECK] %s: user=%s channel=%s", success_message, user_id, channel_id)

        return kick

    # ------------------------------------------------------------------
    # Reinvite sweep
    # ------------------------------------------------------------------

    def background_loops(self) -> List[Callable[[], Awaitable[None]]]:
        return [self._sweep_loop]

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("[VIBECHECK] Unexpected error during reinvite sweep")

    async def sweep(self) -> int:
        """Reinvite every user whose ban expired, then drop old records.

        Returns:
            int: Number of successful reinvites.
        """
        due = self.registry.claim_due_reinvites()
        if due:
            self.logger.debug("[VIBECHECK] Found %d user(s) to reinvite", len(due))

        reinvited = 0
        for record in due:
            try:
                await self.platform.invite_user(record.channel_id, record.user_id)
            except Exception as exc:
                self.logger.error(
                    "[VIBECHECK] Failed to reinvite user %s to channel %s: %s",
                    record.user_id, record.channel_id, exc,
                )
                continue
            reinvited += 1
            self.logger.info(
                "[VIBECHECK] Reinvited user %s to channel %s after timeout (kicked at %s)",
                record.user_id, record.channel_id, record.kicked_at.isoformat(),
            )

        self.registry.collect_garbage()
        return reinvited

    def on_start(self) -> None:
        self.scheduler.reopen()

    async def on_stop(self) -> None:
        await self.scheduler.shutdown()
