"""Tests for chat prompt assembly."""

from datetime import datetime, timezone

from vibecord.bot.ports import UserProfile
from vibecord.features.aichat.context_store import ROLE_ASSISTANT, ROLE_HUMAN, ConversationContext
from vibecord.features.aichat.prompts import build_chat_messages, context_prefix

NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)


def entry(role, message):
    return ConversationContext("U1", "C1", "pirate", message, role, NOW)


def test_empty_context_has_no_prefix():
    assert context_prefix([]) == ""


def test_context_prefix_transcript():
    context = [entry(ROLE_HUMAN, "hi"), entry(ROLE_ASSISTANT, "ahoy")]
    assert context_prefix(context) == "Recent conversation:\nUser: hi\nAssistant: ahoy\n\n"


def test_build_chat_messages():
    profile = UserProfile(user_id="U1", username="alice", first_name="Alice", last_name="A", timezone="Europe/Oslo")

    messages = build_chat_messages("Talk like a pirate.", profile, [entry(ROLE_HUMAN, "hi")], "where is the gold?")

    assert [m["role"] for m in messages] == ["system", "system", "user"]
    assert messages[0]["content"] == "Talk like a pirate."
    assert "username=alice, first name=Alice, last name=A, timezone=Europe/Oslo." in messages[1]["content"]
    assert messages[2]["content"] == "Recent conversation:\nUser: hi\n\n\nwhere is the gold?"


def test_build_chat_messages_without_context():
    profile = UserProfile(user_id="U1", username="alice")
    messages = build_chat_messages("persona", profile, [], "hello")
    assert messages[2]["content"] == "\nhello"
