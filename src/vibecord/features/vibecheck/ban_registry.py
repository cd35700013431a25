"""
Durable record of users banned from channels by the vibecheck.

The whole map is written to ``<data_dir>/kicked_users.json`` after every
mutation and read back at startup. Memory is authoritative: a failed write is
logged and the in-memory state is kept.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from vibecord.configuration.config_file import format_duration
from vibecord.util.logger import get_logger

logger = get_logger("ban_registry")

KICKED_USERS_FILE = "kicked_users.json"
REINVITED_RETENTION = timedelta(hours=24)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def record_key(user_id: str, channel_id: str) -> str:
    return f"{user_id}:{channel_id}"


@dataclass(frozen=True)
class BanRecord:
    """A user banned from one channel, and whether they were let back in."""
    user_id: str
    channel_id: str
    kicked_at: datetime
    reinvite_at: datetime
    reinvited: bool = False

    @property
    def key(self) -> str:
        return record_key(self.user_id, self.channel_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "channel_id": self.channel_id,
            "kicked_at": self.kicked_at.isoformat(),
            "reinvite_at": self.reinvite_at.isoformat(),
            "reinvited": self.reinvited,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BanRecord":
        """Raises ``KeyError``/``ValueError``/``TypeError`` on malformed entries."""
        reinvited = data.get("reinvited", False)
        if not isinstance(reinvited, bool):
            raise TypeError("reinvited must be a boolean")
        return cls(
            user_id=str(data["user_id"]),
            channel_id=str(data["channel_id"]),
            kicked_at=_parse_timestamp(data["kicked_at"]),
            reinvite_at=_parse_timestamp(data["reinvite_at"]),
            reinvited=reinvited,
        )


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError("timestamp must be a string")
    # Older files may carry a trailing "Z" instead of an offset.
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BanRegistry:
    """
    Thread-safe map of ``user:channel`` to :class:`BanRecord`.

    State machine per record: banned while ``now < reinvite_at``; then due for
    reinvite; ``reinvited`` flips to True exactly once when a sweep claims it;
    reinvited records older than 24h past ``reinvite_at`` are deleted.

    Args:
        data_dir: Directory holding the JSON snapshot.
        clock: Returns the current time as an aware datetime.
    """

    def __init__(self, data_dir: Path | str, clock: Clock = utc_now) -> None:
        self.data_dir = Path(data_dir)
        self.file_path = self.data_dir / KICKED_USERS_FILE
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, BanRecord] = {}
        self.load()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, user_id: str, channel_id: str, duration: timedelta) -> BanRecord:
        """Ban ``user_id`` from ``channel_id`` for ``duration``, replacing any earlier record."""
        now = self._clock()
        record = BanRecord(
            user_id=user_id,
            channel_id=channel_id,
            kicked_at=now,
            reinvite_at=now + duration,
        )
        with self._lock:
            self._records[record.key] = record
            self._save_locked()
        logger.info(
            "[BAN REGISTRY] Banned user %s from channel %s for %s until %s",
            user_id, channel_id, format_duration(duration), record.reinvite_at.isoformat(),
        )
        return record

    def claim_due_reinvites(self) -> List[BanRecord]:
        """
        Return records whose ban has expired and mark them reinvited.

        Marking happens in the same locked pass, so a record is returned by at
        most one call regardless of whether the caller's reinvite succeeds.
        """
        now = self._clock()
        due: List[BanRecord] = []
        with self._lock:
            for key, record in self._records.items():
                if not record.reinvited and now >= record.reinvite_at:
                    due.append(record)
                    self._records[key] = replace(record, reinvited=True)
            if due:
                self._save_locked()
        return due

    def collect_garbage(self) -> int:
        """Delete reinvited records whose ``reinvite_at`` is more than 24h old."""
        cutoff = self._clock() - REINVITED_RETENTION
        with self._lock:
            stale = [
                key for key, record in self._records.items()
                if record.reinvited and record.reinvite_at < cutoff
            ]
            for key in stale:
                del self._records[key]
            if stale:
                self._save_locked()
        if stale:
            logger.debug("[BAN REGISTRY] Removed %d reinvited record(s)", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def get(self, user_id: str, channel_id: str) -> Optional[BanRecord]:
        with self._lock:
            return self._records.get(record_key(user_id, channel_id))

    def is_banned(self, user_id: str, channel_id: str) -> Optional[BanRecord]:
        """Return the active ban record, or ``None`` if the user may be in the channel."""
        now = self._clock()
        with self._lock:
            record = self._records.get(record_key(user_id, channel_id))
        if record is None or record.reinvited or now >= record.reinvite_at:
            return None
        return record

    def records(self) -> List[BanRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory map with the file contents. Missing or corrupt file → empty."""
        records: Dict[str, BanRecord] = {}
        try:
            raw = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raw = None
        except OSError as exc:
            logger.error("[BAN REGISTRY] Failed to read %s: %s", self.file_path, exc)
            raw = None

        if raw:
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError("top-level value must be an object")
            except ValueError as exc:
                logger.error("[BAN REGISTRY] Corrupt ban file %s, starting empty: %s", self.file_path, exc)
                data = {}

            for key, entry in data.items():
                try:
                    record = BanRecord.from_dict(entry)
                except (KeyError, ValueError, TypeError, AttributeError) as exc:
                    logger.warning("[BAN REGISTRY] Skipping malformed record %s: %s", key, exc)
                    continue
                records[record.key] = record

        with self._lock:
            self._records = records
        if records:
            logger.info("[BAN REGISTRY] Loaded %d ban record(s) from %s", len(records), self.file_path)

    def _save_locked(self) -> None:
        payload = {key: record.to_dict() for key, record in self._records.items()}
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".kicked_users.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.replace(tmp_path, self.file_path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("[BAN REGISTRY] Failed to save ban records to %s: %s", self.file_path, exc)
