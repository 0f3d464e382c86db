"""Persistence: append-only audit trail for fund events."""

from crowdledger.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
