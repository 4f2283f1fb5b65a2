"""
StateLab — Work Order Store

SQL-backed persistence for the work order aggregate. Runs on any
DatabaseBackend (db.py); SQLite by default.

Optimistic concurrency: save() is a single conditional UPDATE that only
matches when the stored version equals the version carried by the
object. Zero affected rows means another writer got there first.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from statelab.db import DatabaseBackend
from statelab.exceptions import ConcurrencyConflict, NotFoundError
from statelab.state_machine import WorkOrderState
from statelab.types import WorkOrder

logger = logging.getLogger("statelab.store")


SCHEMA = """
CREATE TABLE IF NOT EXISTS work_orders (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    state TEXT NOT NULL,
    version INTEGER NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_work_orders_state ON work_orders(state);
CREATE INDEX IF NOT EXISTS idx_work_orders_created ON work_orders(created_at);
"""


class WorkOrderRepository(Protocol):
    """Persistence contract the service depends on."""

    def add(self, work_order: WorkOrder) -> WorkOrder: ...

    def get(self, work_order_id: str) -> WorkOrder | None: ...

    def save(self, work_order: WorkOrder) -> WorkOrder: ...

    def list_all(self) -> list[WorkOrder]: ...

    def list_by_state(self, state: WorkOrderState) -> list[WorkOrder]: ...

    def count(self) -> int: ...

    def count_by_state(self) -> dict[WorkOrderState, int]: ...

    def oldest_created_at_by_state(self) -> dict[WorkOrderState, float]: ...

    def state_summary(self) -> dict[WorkOrderState, tuple[int, float]]: ...


class SQLWorkOrderRepository:
    """WorkOrderRepository over a DatabaseBackend."""

    def __init__(self, db: DatabaseBackend):
        self.db = db
        self.db.executescript(SCHEMA)

    # ─── Writes ──────────────────────────────────────────────────────

    def add(self, work_order: WorkOrder) -> WorkOrder:
        self.db.execute("""
            INSERT INTO work_orders
            (id, title, description, state, version, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            work_order.id, work_order.title, work_order.description,
            work_order.state.value, work_order.version,
            work_order.created_at, work_order.updated_at,
        ))
        return work_order

    def save(self, work_order: WorkOrder) -> WorkOrder:
        """
        Compare-and-swap write.

        ``work_order.version`` is the version the caller read. The row is
        updated, and its version bumped by one, only if that is still the
        stored version.
        """
        expected = work_order.version
        cursor = self.db.execute("""
            UPDATE work_orders
            SET title = ?, description = ?, state = ?, updated_at = ?,
                version = version + 1
            WHERE id = ? AND version = ?
        """, (
            work_order.title, work_order.description,
            work_order.state.value, work_order.updated_at,
            work_order.id, expected,
        ))
        if cursor.rowcount == 0:
            row = self.db.fetchone(
                "SELECT version FROM work_orders WHERE id = ?", (work_order.id,)
            )
            if row is None:
                raise NotFoundError(work_order.id)
            logger.debug(
                "CAS miss on %s: expected v%d, stored v%d",
                work_order.id, expected, row["version"],
            )
            raise ConcurrencyConflict(work_order.id, expected, row["version"])

        stored = self.get(work_order.id)
        if stored is None:
            raise NotFoundError(work_order.id)
        return stored

    # ─── Reads ───────────────────────────────────────────────────────

    def get(self, work_order_id: str) -> WorkOrder | None:
        row = self.db.fetchone(
            "SELECT * FROM work_orders WHERE id = ?", (work_order_id,)
        )
        if not row:
            return None
        return self._row_to_work_order(row)

    def list_all(self) -> list[WorkOrder]:
        rows = self.db.fetchall(
            "SELECT * FROM work_orders ORDER BY created_at, id"
        )
        return [self._row_to_work_order(r) for r in rows]

    def list_by_state(self, state: WorkOrderState) -> list[WorkOrder]:
        rows = self.db.fetchall(
            "SELECT * FROM work_orders WHERE state = ? ORDER BY created_at, id",
            (state.value,),
        )
        return [self._row_to_work_order(r) for r in rows]

    # ─── Aggregates ──────────────────────────────────────────────────

    def count(self) -> int:
        row = self.db.fetchone("SELECT COUNT(*) AS cnt FROM work_orders")
        return row["cnt"] if row else 0

    def state_summary(self) -> dict[WorkOrderState, tuple[int, float]]:
        """Count and oldest creation time per state, from one statement."""
        rows = self.db.fetchall("""
            SELECT state, COUNT(*) AS cnt, MIN(created_at) AS oldest
            FROM work_orders GROUP BY state
        """)
        return {
            WorkOrderState(r["state"]): (r["cnt"], r["oldest"])
            for r in rows
        }

    def count_by_state(self) -> dict[WorkOrderState, int]:
        return {s: cnt for s, (cnt, _) in self.state_summary().items()}

    def oldest_created_at_by_state(self) -> dict[WorkOrderState, float]:
        return {s: oldest for s, (_, oldest) in self.state_summary().items()}

    def _row_to_work_order(self, row: dict[str, Any]) -> WorkOrder:
        return WorkOrder(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            state=WorkOrderState(row["state"]),
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
