"""
Pytest configuration and fixtures for Vibecord tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from vibecord.bot.ports import UserProfile  # noqa: E402
from vibecord.datatypes.event_datatypes import Event, EventKind  # noqa: E402
from vibecord.util.random_source import RandomSource  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Manually advanced aware datetime clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedRandom(RandomSource):
    """RandomSource returning queued answers; records the weights it was asked about."""

    def __init__(self, bools=(), uniforms=(), randints=(), pick_index=0):
        super().__init__(seed=0)
        self.bools = list(bools)
        self.uniforms = list(uniforms)
        self.randints = list(randints)
        self.pick_index = pick_index
        self.weights = []

    def bool(self, weight):
        self.weights.append(weight)
        return self.bools.pop(0) if self.bools else False

    def pick(self, values):
        if not values:
            raise ValueError("cannot pick from an empty sequence")
        return values[self.pick_index % len(values)]

    def uniform(self, low, high):
        return self.uniforms.pop(0) if self.uniforms else low

    def randint(self, low, high):
        return self.randints.pop(0) if self.randints else high


def make_event(kind=EventKind.MESSAGE, text="", user_id="U1", channel_id="C1", message_id="M1", **kwargs):
    return Event(kind=kind, user_id=user_id, channel_id=channel_id, text=text, message_id=message_id, **kwargs)


def make_platform(bot_user_id="BOT"):
    platform = Mock()
    platform.bot_user_id = bot_user_id
    platform.post_message = AsyncMock()
    platform.add_reaction = AsyncMock()
    platform.kick_user = AsyncMock()
    platform.invite_user = AsyncMock()
    platform.get_user_profile = AsyncMock(
        return_value=UserProfile(user_id="U1", username="alice", first_name="Alice", last_name="A", timezone="UTC"),
    )
    return platform


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeWallClock()


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def platform():
    return make_platform()
