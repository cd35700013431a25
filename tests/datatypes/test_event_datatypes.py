"""Tests for event payload validation."""

from datetime import datetime, timezone

import pytest

from vibecord.datatypes.event_datatypes import Event, EventKind, EventValidationError


class TestEventFromPayload:

    def test_message_payload(self):
        event = Event.from_payload({
            "kind": "message",
            "user_id": 123,
            "channel_id": " C1 ",
            "message_id": "M1",
            "text": "hello",
            "username": "alice",
            "timestamp": "2024-05-06T12:00:00+00:00",
        })

        assert event.kind is EventKind.MESSAGE
        assert event.user_id == "123"
        assert event.channel_id == "C1"
        assert event.username == "alice"
        assert event.timestamp == datetime(2024, 5, 6, 12, tzinfo=timezone.utc)
        assert event.is_message and not event.from_bot

    def test_member_joined_needs_no_message_id(self):
        event = Event.from_payload({"kind": "member_joined", "user_id": "U1", "channel_id": "C1"})
        assert event.kind is EventKind.MEMBER_JOINED
        assert event.is_message is False
        assert event.timestamp is not None

    def test_bot_messages_are_flagged(self):
        event = Event.from_payload(
            {"kind": "message", "user_id": "U1", "channel_id": "C1", "message_id": "M1", "bot_id": "B1"}
        )
        assert event.from_bot is True

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"kind": "reaction_added", "user_id": "U1", "channel_id": "C1"},
        {"kind": "message", "channel_id": "C1", "message_id": "M1"},
        {"kind": "message", "user_id": "U1", "message_id": "M1"},
        {"kind": "message", "user_id": "U1", "channel_id": "C1"},
        {"kind": "message", "user_id": "  ", "channel_id": "C1", "message_id": "M1"},
        {"kind": "message", "user_id": True, "channel_id": "C1", "message_id": "M1"},
        {"kind": "message", "user_id": "U1", "channel_id": "C1", "message_id": "M1", "text": 5},
        {"kind": "message", "user_id": "U1", "channel_id": "C1", "message_id": "M1", "timestamp": "yesterday"},
    ])
    def test_malformed_payloads_raise(self, payload):
        with pytest.raises(EventValidationError):
            Event.from_payload(payload)

    def test_validation_error_is_value_error(self):
        assert issubclass(EventValidationError, ValueError)
