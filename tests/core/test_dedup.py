"""Tests for the message deduplicator."""

from vibecord.core.dedup import MessageDeduplicator


class TestMessageDeduplicator:

    def test_first_delivery_is_not_duplicate(self, clock):
        dedupe = MessageDeduplicator(clock=clock)
        assert dedupe.is_duplicate("U1", "C1", "M1") is False

    def test_redelivery_within_window_is_duplicate(self, clock):
        dedupe = MessageDeduplicator(window_seconds=30, clock=clock)
        dedupe.is_duplicate("U1", "C1", "M1")
        clock.advance(29)
        assert dedupe.is_duplicate("U1", "C1", "M1") is True

    def test_key_includes_user_channel_and_message(self, clock):
        dedupe = MessageDeduplicator(clock=clock)
        dedupe.is_duplicate("U1", "C1", "M1")
        assert dedupe.is_duplicate("U2", "C1", "M1") is False
        assert dedupe.is_duplicate("U1", "C2", "M1") is False
        assert dedupe.is_duplicate("U1", "C1", "M2") is False

    def test_expired_entries_are_swept_on_insert(self, clock):
        dedupe = MessageDeduplicator(window_seconds=30, clock=clock)
        dedupe.is_duplicate("U1", "C1", "M1")
        dedupe.is_duplicate("U1", "C1", "M2")
        clock.advance(31)
        assert dedupe.is_duplicate("U1", "C1", "M3") is False
        assert len(dedupe) == 1

    def test_message_is_new_again_after_window(self, clock):
        dedupe = MessageDeduplicator(window_seconds=30, clock=clock)
        dedupe.is_duplicate("U1", "C1", "M1")
        clock.advance(31)
        assert dedupe.is_duplicate("U1", "C1", "M1") is False
