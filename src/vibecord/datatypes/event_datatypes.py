"""
Normalized platform events.

Every feature processor consumes the same immutable :class:`Event`. Transports
(the py-cord listener, tests, any future webhook) hand raw mappings to
:meth:`Event.from_payload`, which rejects anything malformed before it can
reach a processor queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class EventKind(str, Enum):
    """Kinds of platform events the features react to."""

    MESSAGE = "message"
    APP_MENTION = "app_mention"
    MEMBER_JOINED = "member_joined"

    def __str__(self) -> str:
        return self.value


class EventValidationError(ValueError):
    """Raised when a raw payload cannot be turned into an :class:`Event`."""


@dataclass(frozen=True)
class Event:
    """
    Immutable envelope for a single platform event.

    Attributes:
        kind (EventKind): What happened.
        user_id (str): Originating user.
        channel_id (str): Channel the event happened in.
        text (str): Message text; empty for membership events.
        message_id (str): Platform-assigned message id, used as the dedup key.
        username (str): Display username when the platform provides one.
        bot_id (str): Non-empty when the message was sent by a bot.
        timestamp (datetime): When the platform says the event happened.
    """

    kind: EventKind
    user_id: str
    channel_id: str
    text: str = ""
    message_id: str = ""
    username: str = ""
    bot_id: str = ""
    timestamp: datetime | None = None

    @property
    def is_message(self) -> bool:
        return self.kind in (EventKind.MESSAGE, EventKind.APP_MENTION)

    @property
    def from_bot(self) -> bool:
        """True for bot-authored or anonymous messages, which features ignore."""
        return bool(self.bot_id) or not self.user_id

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Event":
        """Validate a raw mapping and build an Event from it.

        Required keys are ``kind``, ``user_id`` and ``channel_id``; message
        kinds additionally require ``message_id`` since it keys deduplication.

        Raises:
            EventValidationError: If the payload is not a mapping, the kind is
                unknown, or a required field is missing or empty.
        """
        if not isinstance(payload, Mapping):
            raise EventValidationError(f"event payload must be a mapping, got {type(payload).__name__}")

        raw_kind = payload.get("kind")
        try:
            kind = EventKind(str(raw_kind))
        except ValueError as exc:
            raise EventValidationError(f"unknown event kind: {raw_kind!r}") from exc

        user_id = _required_str(payload, "user_id")
        channel_id = _required_str(payload, "channel_id")

        message_id = _optional_str(payload, "message_id")
        if kind is not EventKind.MEMBER_JOINED and not message_id:
            raise EventValidationError(f"{kind} event is missing message_id")

        text = payload.get("text") or ""
        if not isinstance(text, str):
            raise EventValidationError("event text must be a string")

        timestamp = payload.get("timestamp")
        if timestamp is not None and not isinstance(timestamp, datetime):
            try:
                timestamp = datetime.fromisoformat(str(timestamp))
            except ValueError as exc:
                raise EventValidationError(f"invalid event timestamp: {timestamp!r}") from exc
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            kind=kind,
            user_id=user_id,
            channel_id=channel_id,
            text=text,
            message_id=message_id,
            username=_optional_str(payload, "username"),
            bot_id=_optional_str(payload, "bot_id"),
            timestamp=timestamp,
        )


def _required_str(payload: Mapping[str, Any], key: str) -> str:
    value = _optional_str(payload, key)
    if not value:
        raise EventValidationError(f"event is missing {key}")
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise EventValidationError(f"event field {key} must be a string or integer id")
    return str(value).strip()
