"""Tests for the AI chat feature."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from vibecord.ai.llm_client import CompletionError
from vibecord.bot.ports import PlatformError, UserProfile
from vibecord.configuration.app_configuration import ConfigOverrides, build_config
from vibecord.core.rate_limiter import TokenBucket
from vibecord.datatypes.event_datatypes import EventKind
from vibecord.features.aichat.aichat_feature import AIChatFeature, truncate_reply
from vibecord.features.aichat.context_store import ROLE_ASSISTANT, ROLE_HUMAN, ConversationContext
from vibecord.features.aichat.personas import GLAZER_PROMPT, PersonaAssigner


def make_llm(reply="sure thing"):
    llm = Mock()
    llm.complete = AsyncMock(return_value=reply)
    return llm


def make_store(context=()):
    store = Mock()
    store.get_recent_context = AsyncMock(return_value=list(context))
    store.store_context = AsyncMock()
    return store


@pytest.fixture
def make_feature(platform, scripted_random, clock, wall_clock):
    def factory(llm=None, store=None, overrides=None, random=None, **kwargs):
        config = build_config(overrides or ConfigOverrides(personas="pirate: Talk like a pirate."))
        random = random or scripted_random()
        kwargs.setdefault("event_limiter", TokenBucket(180, 5, clock=clock))
        kwargs.setdefault("mention_limiter", TokenBucket(60, 3, clock=clock))
        kwargs.setdefault("personas", PersonaAssigner(config.aichat.sticky_duration, random, clock=clock))
        return AIChatFeature(
            config,
            platform,
            llm or make_llm(),
            store,
            random=random,
            clock=wall_clock,
            **kwargs,
        )

    return factory


@pytest.mark.parametrize("text, limit, expected", [
    ("short", 10, "short"),
    ("hello brave new world", 13, "hello brave"),
    ("abcdefghij", 4, "abcd"),
    ("trailing words   here", 17, "trailing words"),
])
def test_truncate_reply(text, limit, expected):
    assert truncate_reply(text, limit) == expected


class TestGating:

    @pytest.mark.asyncio
    async def test_app_mention_is_answered(self, make_feature, platform, event_factory):
        feature = make_feature()

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="<@BOT> hi"))

        platform.post_message.assert_awaited_once_with("C1", "sure thing")

    @pytest.mark.asyncio
    async def test_mention_in_text_uses_mention_budget(self, make_feature, platform, event_factory):
        feature = make_feature()

        for index in range(5):
            await feature.handle_event(event_factory(text="<@!BOT> again", message_id=f"M{index}"))

        assert platform.post_message.await_count == 3
        assert feature.event_limiter.tokens == 5

    @pytest.mark.asyncio
    async def test_ambient_message_can_be_dropped(self, make_feature, platform, scripted_random, event_factory):
        random = scripted_random(bools=[True])
        feature = make_feature(random=random)

        await feature.handle_event(event_factory(text="just chatting"))

        platform.post_message.assert_not_awaited()
        assert random.weights == [0.4]

    @pytest.mark.asyncio
    async def test_ambient_message_answered_when_not_dropped(self, make_feature, platform, scripted_random, event_factory):
        feature = make_feature(random=scripted_random(bools=[False, False]))

        await feature.handle_event(event_factory(text="just chatting"))

        platform.post_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ambient_budget_exhausted(self, make_feature, platform, event_factory):
        feature = make_feature()

        for index in range(7):
            await feature.handle_event(event_factory(text="chatter", message_id=f"M{index}"))

        assert platform.post_message.await_count == 5

    @pytest.mark.asyncio
    async def test_member_joined_is_ignored(self, make_feature, platform, event_factory):
        feature = make_feature()

        await feature.handle_event(event_factory(kind=EventKind.MEMBER_JOINED))

        feature.llm.complete.assert_not_awaited()
        platform.post_message.assert_not_awaited()


class TestRespond:

    @pytest.mark.asyncio
    async def test_prompt_contains_persona_profile_and_context(self, make_feature, event_factory, wall_clock):
        store = make_store([
            ConversationContext("U1", "C1", "pirate", "earlier", ROLE_HUMAN, wall_clock()),
        ])
        feature = make_feature(store=store)

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="  where is the gold?  "))

        store.get_recent_context.assert_awaited_once_with(
            "U1", "C1", "pirate", max_messages=10, max_age=timedelta(hours=24), max_tokens=2000,
        )
        request = feature.llm.complete.await_args.args[0]
        assert request.messages[0]["content"] == "Talk like a pirate."
        assert "first name=Alice" in request.messages[1]["content"]
        assert request.messages[2]["content"] == "Recent conversation:\nUser: earlier\n\n\nwhere is the gold?"

    @pytest.mark.asyncio
    async def test_calm_sampling(self, make_feature, scripted_random, event_factory):
        random = scripted_random(bools=[False], uniforms=[0.7], randints=[5])
        feature = make_feature(llm=make_llm("one two three"), random=random)

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="hi"))

        request = feature.llm.complete.await_args.args[0]
        assert request.temperature == 0.7
        assert random.weights == [0.3]
        feature.platform.post_message.assert_awaited_once_with("C1", "one")

    def test_wild_sampling_bounds(self, make_feature, scripted_random):
        random = scripted_random(bools=[True])
        feature = make_feature(random=random)

        temperature, max_length = feature.sampling()

        # scripted uniform returns the low bound and randint the high one
        assert temperature == 0.3
        assert max_length == 1000

    @pytest.mark.asyncio
    async def test_stores_exchange(self, make_feature, event_factory, wall_clock):
        store = make_store()
        feature = make_feature(store=store)

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="hi there"))

        stored = [call.args[0] for call in store.store_context.await_args_list]
        assert [(c.role, c.message, c.persona_name) for c in stored] == [
            (ROLE_HUMAN, "hi there", "pirate"),
            (ROLE_ASSISTANT, "sure thing", "pirate"),
        ]
        assert stored[1].timestamp - stored[0].timestamp == timedelta(milliseconds=1)
        assert stored[0].timestamp == wall_clock()

    @pytest.mark.asyncio
    async def test_llm_failure_posts_nothing(self, make_feature, platform, event_factory):
        llm = make_llm()
        llm.complete.side_effect = CompletionError("down")
        store = make_store()
        feature = make_feature(llm=llm, store=store)

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="hi"))

        platform.post_message.assert_not_awaited()
        store.store_context.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_post_failure_stores_nothing(self, make_feature, platform, event_factory):
        platform.post_message.side_effect = PlatformError("forbidden")
        store = make_store()
        feature = make_feature(store=store)

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="hi"))

        store.store_context.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_profile_and_context_failures_are_tolerated(self, make_feature, platform, event_factory):
        platform.get_user_profile.side_effect = PlatformError("unknown user")
        store = make_store()
        store.get_recent_context.side_effect = RuntimeError("db locked")
        feature = make_feature(store=store)

        await feature.handle_event(
            event_factory(kind=EventKind.APP_MENTION, text="hi", username="bob"),
        )

        request = feature.llm.complete.await_args.args[0]
        assert "username=bob" in request.messages[1]["content"]
        assert not request.messages[2]["content"].startswith("Recent conversation")
        platform.post_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_personas_uses_default_prompt(self, make_feature, event_factory):
        feature = make_feature(overrides=ConfigOverrides())

        await feature.handle_event(event_factory(kind=EventKind.APP_MENTION, text="hi"))

        request = feature.llm.complete.await_args.args[0]
        assert request.messages[0]["content"] == GLAZER_PROMPT

    def test_config_change_updates_sticky_duration(self, make_feature):
        feature = make_feature()
        feature.on_config_changed(build_config(ConfigOverrides(sticky_duration=timedelta(minutes=5))))
        assert feature.personas.sticky_duration == timedelta(minutes=5)

    def test_profile_fallback_type(self, make_feature):
        assert UserProfile(user_id="U1", username="bob").display_name == "bob"
