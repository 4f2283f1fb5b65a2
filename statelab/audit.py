"""
StateLab — Work Order Audit Log

Append-only record of every successful transition, creation included.
Shares the DatabaseBackend with the work order store so that an event
is only ever committed together with the state change it describes.

Features:
  - Append-only: no UPDATE, no DELETE exposed
  - SHA-256 hash chain per work order: each event includes the hash of
    the previous event for the same work order
  - Tamper detection: verify_chain() on demand
  - History query: most recent first

Usage:
    log = SQLEventLog(db)
    log.append(WorkOrderEvent.create(wo_id, None, WorkOrderState.DRAFT, "CREATE"))

    events = log.list_by_work_order(wo_id)
    ok, message = log.verify_chain(wo_id)
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from statelab.db import DatabaseBackend
from statelab.state_machine import WorkOrderState

logger = logging.getLogger("statelab.audit")


# ═══════════════════════════════════════════════════════════════════
# Audit Event
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkOrderEvent:
    """Immutable record of one transition."""
    id: str
    work_order_id: str
    from_state: WorkOrderState | None
    to_state: WorkOrderState
    action: str
    notes: str | None
    occurred_at: float
    previous_hash: str = ""
    event_hash: str = ""

    @staticmethod
    def create(
        work_order_id: str,
        from_state: WorkOrderState | None,
        to_state: WorkOrderState,
        action: str,
        notes: str | None = None,
        now: float | None = None,
    ) -> WorkOrderEvent:
        return WorkOrderEvent(
            id=str(uuid.uuid4()),
            work_order_id=work_order_id,
            from_state=from_state,
            to_state=to_state,
            action=action,
            notes=notes,
            occurred_at=now if now is not None else time.time(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "work_order_id": self.work_order_id,
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "action": self.action,
            "notes": self.notes,
            "occurred_at": self.occurred_at,
            "previous_hash": self.previous_hash,
            "event_hash": self.event_hash,
        }


# ═══════════════════════════════════════════════════════════════════
# Hash Chain
# ═══════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64


def compute_event_hash(previous_hash: str, event: WorkOrderEvent) -> str:
    """Compute SHA-256 hash for an audit event."""
    content = "|".join([
        previous_hash,
        event.work_order_id,
        event.from_state.value if event.from_state else "",
        event.to_state.value,
        event.action,
        event.notes or "",
        repr(event.occurred_at),
    ])
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════════
# Event Store
# ═══════════════════════════════════════════════════════════════════

SCHEMA = """
CREATE TABLE IF NOT EXISTS work_order_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    work_order_id TEXT NOT NULL,
    from_state TEXT,
    to_state TEXT NOT NULL,
    action TEXT NOT NULL,
    notes TEXT,
    occurred_at REAL NOT NULL,
    previous_hash TEXT NOT NULL,
    event_hash TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_work_order
    ON work_order_events(work_order_id, occurred_at);
"""

_COLUMNS = (
    "id, work_order_id, from_state, to_state, action, notes, "
    "occurred_at, previous_hash, event_hash"
)


class EventRepository(Protocol):
    """Append-only contract the service depends on."""

    def append(self, event: WorkOrderEvent) -> WorkOrderEvent: ...

    def list_by_work_order(self, work_order_id: str) -> list[WorkOrderEvent]: ...


class SQLEventLog:
    """EventRepository over a DatabaseBackend, with a per-work-order hash chain."""

    def __init__(self, db: DatabaseBackend):
        self.db = db
        self.db.executescript(SCHEMA)

    def _last_hash(self, work_order_id: str) -> str:
        row = self.db.fetchone(
            """SELECT event_hash FROM work_order_events
               WHERE work_order_id = ? ORDER BY seq DESC LIMIT 1""",
            (work_order_id,),
        )
        return row["event_hash"] if row else GENESIS_HASH

    def append(self, event: WorkOrderEvent) -> WorkOrderEvent:
        """Chain and persist one event. Returns the stored event."""
        with self.db.transaction():
            previous_hash = self._last_hash(event.work_order_id)
            chained = dataclasses.replace(
                event,
                previous_hash=previous_hash,
                event_hash=compute_event_hash(previous_hash, event),
            )
            self.db.execute(
                f"INSERT INTO work_order_events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    chained.id, chained.work_order_id,
                    chained.from_state.value if chained.from_state else None,
                    chained.to_state.value, chained.action, chained.notes,
                    chained.occurred_at, chained.previous_hash, chained.event_hash,
                ),
            )
        logger.debug(
            "Appended %s event for %s (%s → %s)",
            chained.action, chained.work_order_id,
            chained.from_state.value if chained.from_state else None,
            chained.to_state.value,
        )
        return chained

    def list_by_work_order(self, work_order_id: str) -> list[WorkOrderEvent]:
        """All events for a work order, most recent first."""
        rows = self.db.fetchall(
            f"""SELECT {_COLUMNS} FROM work_order_events
                WHERE work_order_id = ?
                ORDER BY occurred_at DESC, seq DESC""",
            (work_order_id,),
        )
        return [self._row_to_event(r) for r in rows]

    # ── Integrity Verification ──────────────────────────────────

    def verify_chain(self, work_order_id: str) -> tuple[bool, str]:
        """
        Verify the hash chain for one work order.

        Returns (is_valid, message).
        """
        rows = self.db.fetchall(
            f"""SELECT {_COLUMNS} FROM work_order_events
                WHERE work_order_id = ? ORDER BY seq ASC""",
            (work_order_id,),
        )
        if not rows:
            return True, "Empty history — nothing to verify"

        expected_prev = GENESIS_HASH
        for row in rows:
            event = self._row_to_event(row)
            if event.previous_hash != expected_prev:
                return False, (
                    f"Chain broken at event {event.id}: "
                    f"expected previous_hash={expected_prev[:16]}..., "
                    f"got {event.previous_hash[:16]}..."
                )
            computed = compute_event_hash(event.previous_hash, event)
            if computed != event.event_hash:
                return False, (
                    f"Tampered event {event.id}: "
                    f"computed hash={computed[:16]}..., "
                    f"stored hash={event.event_hash[:16]}..."
                )
            expected_prev = event.event_hash

        return True, f"Chain verified: {len(rows)} events, integrity intact"

    def _row_to_event(self, row: dict[str, Any]) -> WorkOrderEvent:
        return WorkOrderEvent(
            id=row["id"],
            work_order_id=row["work_order_id"],
            from_state=WorkOrderState(row["from_state"]) if row["from_state"] else None,
            to_state=WorkOrderState(row["to_state"]),
            action=row["action"],
            notes=row["notes"],
            occurred_at=row["occurred_at"],
            previous_hash=row["previous_hash"],
            event_hash=row["event_hash"],
        )
