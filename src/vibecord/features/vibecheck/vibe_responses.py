"""Canned vibecheck verdict messages."""

from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from vibecord.util.random_source import RandomSource

PASS_REACTION = "👌"
FAIL_REACTION = "🚫"

GOOD_EMOJIS = ("🎉", "👌", "🗿", "✅", "🎉", "😎", "🐈", "😴")
BAD_EMOJIS = ("😬", "⛔", "🚨", "😞", "😢", "🥀", "🚫")

GOOD_TEXT = (
    "V I B E C H E C K - P A S S E D",
    "V I B E C H E C K - P A S S E D",
    "V I B E C H E C K - P A S S E D",
    "V I B E C H E C K - P A S S E D",
    "V I B E C H E C K - F L A W L E S S",
    "V I B E C H E C K - P A S S",
    "V I B E - I S - G O O D",
    "L G T M",
    "👌V👌I👌B👌E👌",
    "vibes are 👌",
    "👁️ 🫦 👁️",
    "h e l l o   v i b e   i ' m   b o t",
)

BAD_TEXT = (
    "V I B E C H E C K - F A I L E D",
    "V I B E C H E C K - F A I L E D",
    "V I B E C H E C K - F A I L E D",
    "BAD!",
    "really really not great",
    "noooooooo",
    "V I B E C H E C K - F A I L E D ⛔",
    "nah, not the vibe",
    "V I B E  T A R I F F  U N P A I D",
    "🖕",
)


def format_response(emoji: str, text: str) -> str:
    """Three emoji, the text, three emoji."""
    return " ".join([emoji] * 3 + [text] + [emoji] * 3)


def random_response(
    passed: bool,
    random: RandomSource,
    *,
    good_reactions: Sequence[str] = (),
    good_text: Sequence[str] = (),
    bad_reactions: Sequence[str] = (),
    bad_text: Sequence[str] = (),
) -> str:
    """Build a verdict message, preferring configured pools over the built-in ones."""
    if passed:
        emoji = random.pick(good_reactions or GOOD_EMOJIS)
        text = random.pick(good_text or GOOD_TEXT)
    else:
        emoji = random.pick(bad_reactions or BAD_EMOJIS)
        text = random.pick(bad_text or BAD_TEXT)
    return format_response(emoji, text)


def format_remaining(remaining: timedelta) -> str:
    """``"N minutes and S seconds"`` or ``"S seconds"`` for under a minute."""
    total = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(total, 60)
    if minutes > 0:
        return f"{minutes} minutes and {seconds} seconds"
    return f"{seconds} seconds"


def still_banned_message(remaining: timedelta) -> str:
    return f"🚫 User is still banned for {format_remaining(remaining)}. Please wait before rejoining."
