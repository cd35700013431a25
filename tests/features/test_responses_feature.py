"""Tests for scripted pattern responses."""

import pytest

from vibecord.bot.ports import PlatformError
from vibecord.configuration.app_configuration import build_config
from vibecord.configuration.config_file import ChatFileConfig, FileConfig, ResponseRule
from vibecord.core.rate_limiter import TokenBucket
from vibecord.datatypes.event_datatypes import EventKind
from vibecord.features.responses import ResponsesFeature


def config_with(*rules):
    return build_config(file_config=FileConfig(chat=ChatFileConfig(responses=tuple(rules))))


@pytest.fixture
def make_feature(platform, scripted_random):
    def factory(*rules, **kwargs):
        kwargs.setdefault("random", scripted_random())
        return ResponsesFeature(config_with(*rules), platform, **kwargs)

    return factory


@pytest.mark.asyncio
async def test_plain_pattern_posts_exactly_one_reply(make_feature, platform, event_factory):
    feature = make_feature(ResponseRule(pattern="hello", message="hi!"))

    await feature.handle_event(event_factory(text="hello"))

    platform.post_message.assert_awaited_once_with("C1", "hi!")
    platform.add_reaction.assert_not_awaited()


@pytest.mark.parametrize("text, matched", [
    ("hello", True),
    ("  HeLLo  ", True),
    ("hello world", False),
    ("say hello", False),
])
def test_plain_pattern_matches_whole_message(make_feature, text, matched):
    feature = make_feature(ResponseRule(pattern="hello", message="hi!"))
    assert (feature.find_rule(text) is not None) is matched


@pytest.mark.parametrize("text, matched", [
    ("PING", True),
    ("ping me later", True),
    ("please ping", False),
])
def test_regex_pattern_searches_case_insensitively(make_feature, text, matched):
    feature = make_feature(ResponseRule(pattern="^ping", message="pong", is_regexp=True))
    assert (feature.find_rule(text) is not None) is matched


def test_invalid_regex_is_skipped(make_feature):
    bad = ResponseRule(pattern="(unclosed", message="never", is_regexp=True)
    good = ResponseRule(pattern="unclosed", message="fine", is_regexp=True)
    feature = make_feature(bad, good)

    assert feature.find_rule("(unclosed") == good
    assert feature._compiled["(unclosed"] is None


@pytest.mark.asyncio
async def test_first_matching_rule_wins(make_feature, platform, event_factory):
    feature = make_feature(
        ResponseRule(pattern="hel+o", message="first", is_regexp=True),
        ResponseRule(pattern="hello", message="second"),
    )

    await feature.handle_event(event_factory(text="hello"))

    platform.post_message.assert_awaited_once_with("C1", "first")


@pytest.mark.asyncio
async def test_random_messages_take_precedence(make_feature, platform, scripted_random, event_factory):
    feature = make_feature(
        ResponseRule(pattern="roll", message="unused", random_messages=("one", "two", "three")),
        random=scripted_random(pick_index=1),
    )

    await feature.handle_event(event_factory(text="roll"))

    platform.post_message.assert_awaited_once_with("C1", "two")


@pytest.mark.asyncio
async def test_reactions_then_reply(make_feature, platform, event_factory):
    feature = make_feature(ResponseRule(pattern="gm", message="gm!", reactions=("☀️", "👋")))

    await feature.handle_event(event_factory(text="gm"))

    assert [call.args for call in platform.add_reaction.await_args_list] == [
        ("C1", "M1", "☀️"),
        ("C1", "M1", "👋"),
    ]
    platform.post_message.assert_awaited_once_with("C1", "gm!")


@pytest.mark.asyncio
async def test_reaction_only_rule(make_feature, platform, event_factory):
    feature = make_feature(ResponseRule(pattern="nice", reactions=("🔥",)))

    await feature.handle_event(event_factory(text="nice"))

    platform.add_reaction.assert_awaited_once_with("C1", "M1", "🔥")
    platform.post_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_reaction_still_replies(make_feature, platform, event_factory):
    platform.add_reaction.side_effect = PlatformError("forbidden")
    feature = make_feature(ResponseRule(pattern="gm", message="gm!", reactions=("☀️",)))

    await feature.handle_event(event_factory(text="gm"))

    platform.post_message.assert_awaited_once_with("C1", "gm!")


@pytest.mark.asyncio
async def test_rate_limited(make_feature, platform, event_factory, clock):
    feature = make_feature(
        ResponseRule(pattern="hello", message="hi!"),
        trigger_limiter=TokenBucket(6, 2, clock=clock),
    )

    for index in range(3):
        await feature.handle_event(event_factory(text="hello", message_id=f"M{index}"))
    assert platform.post_message.await_count == 2

    clock.advance(6)
    await feature.handle_event(event_factory(text="hello", message_id="M9"))
    assert platform.post_message.await_count == 3


@pytest.mark.asyncio
async def test_ignores_member_joined(make_feature, platform, event_factory):
    feature = make_feature(ResponseRule(pattern="", message="never"))

    await feature.handle_event(event_factory(kind=EventKind.MEMBER_JOINED))

    platform.post_message.assert_not_awaited()


def test_config_change_clears_compiled_patterns(make_feature):
    feature = make_feature(ResponseRule(pattern="^a", message="x", is_regexp=True))
    feature.find_rule("abc")
    assert feature._compiled

    feature.on_config_changed(config_with(ResponseRule(pattern="^b", message="y", is_regexp=True)))

    assert feature._compiled == {}
    assert feature.find_rule("bcd").message == "y"
