"""Append-only event log: the audit trail of every fund state change.

Every successful write on a fund produces one event record that is
appended to the log. Events are immutable once written. The log serves as:
1. The audit trail for contributors and creators.
2. The input for replaying or reconciling a fund against token transfers.

Events are appended only after the fund call has fully succeeded, so an
aborted call never leaves a record behind.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of fund events."""
    CONTRIBUTED = "contributed"
    AIRDROPPED = "airdropped"
    FEES_COLLECTED = "fees_collected"
    WITHDRAWN = "withdrawn"
    REFUNDED = "refunded"
    POSITION_SPLIT = "position_split"
    POSITION_TRANSFERRED = "position_transferred"
    FUNDS_WITHDRAWN = "funds_withdrawn"
    GOAL_EXTENDED = "goal_extended"
    STAKE_ADDED = "stake_added"
    STAKE_REMOVED = "stake_removed"
    STAKE_TRANSFERRED = "stake_transferred"
    FUND_PAUSED = "fund_paused"
    FUND_UNPAUSED = "fund_unpaused"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


def _canonical_hash(fields: dict[str, Any]) -> str:
    canonical = json.dumps(fields, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable fund event.

    The event_hash covers every other field and is checked again when
    the log is reloaded from disk.
    """
    event_id: str
    event_kind: EventKind
    fund_id: str
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        fund_id: str,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        digest = _canonical_hash({
            "event_id": event_id,
            "event_kind": event_kind.value,
            "fund_id": fund_id,
            "timestamp_utc": ts_str,
            "actor_id": actor_id,
            "payload": payload,
        })
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            fund_id=fund_id,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=digest,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "fund_id": self.fund_id,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL persistence.

    Events can only be appended, never modified or deleted. Several funds
    may share one log; ``events`` filters by kind and ``fund_events`` by
    fund.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._append_to_file(event)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def fund_events(self, fund_id: str) -> list[EventRecord]:
        return [e for e in self._events if e.fund_id == fund_id]

    def count_for_fund(self, fund_id: str) -> int:
        return sum(1 for e in self._events if e.fund_id == fund_id)

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        """Append a single event to the JSONL file."""
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]
                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash({
                    "event_id": data["event_id"],
                    "event_kind": data["event_kind"],
                    "fund_id": data["fund_id"],
                    "timestamp_utc": data["timestamp_utc"],
                    "actor_id": data["actor_id"],
                    "payload": data["payload"],
                })
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=data["event_id"],
                    event_kind=EventKind(data["event_kind"]),
                    fund_id=data["fund_id"],
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                self._events.append(event)
                self._event_ids.add(event.event_id)
