"""
StateLab — Transition Orchestrator

The service layer. Every transition runs the same sequence:

    load → guard → next state → conditional write → audit append

Load and decision happen without holding anything; the conditional
write and the audit append share one database transaction. If the
stored version moved since the load, the write matches no row and the
whole unit rolls back with ConcurrencyConflict. No retries happen here;
the caller re-reads and decides.

Usage:
    service = build_service(load_config())
    wo = service.create("Fix pump", "")
    wo = service.transition(wo.id, "SUBMIT", expected_version=wo.version)
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

from statelab.audit import EventRepository, SQLEventLog, WorkOrderEvent
from statelab.dashboard import DashboardAggregator, DashboardStats
from statelab.db import DatabaseBackend, create_backend
from statelab.exceptions import (
    ConcurrencyConflict,
    InvalidOperationError,
    NotFoundError,
)
from statelab.logging import TransitionLogger
from statelab.state_machine import (
    CREATE_ACTION,
    INITIAL_STATE,
    Action,
    WorkOrderState,
    allowed_actions,
    next_state,
    parse_action,
    parse_state,
    validate_guard,
)
from statelab.store import SQLWorkOrderRepository, WorkOrderRepository
from statelab.types import WorkOrder

logger = logging.getLogger("statelab.service")


class UnitOfWork(Protocol):
    """Anything that can scope several writes into one atomic commit."""

    def transaction(self) -> Any: ...


class WorkOrderService:
    """Core-exposed operations over work orders."""

    def __init__(
        self,
        work_orders: WorkOrderRepository,
        events: EventRepository,
        uow: UnitOfWork,
        clock: Callable[[], float] = time.time,
        tracer: TransitionLogger | None = None,
    ):
        self.work_orders = work_orders
        self.events = events
        self.uow = uow
        self.clock = clock
        self.tracer = tracer or TransitionLogger()
        self.dashboard = DashboardAggregator(work_orders)

    # ─── Commands ────────────────────────────────────────────────────

    def create(self, title: str, description: str | None = None) -> WorkOrder:
        """Create a work order in DRAFT together with its CREATE event."""
        now = self.clock()
        wo = WorkOrder.create(title, description, now=now)
        with self.uow.transaction():
            self.work_orders.add(wo)
            self.events.append(WorkOrderEvent.create(
                wo.id, None, INITIAL_STATE, CREATE_ACTION, "Created", now=now,
            ))
        self.tracer.on_created(wo.id, wo.state.value, wo.version)
        return wo

    def transition(
        self,
        work_order_id: str,
        action: Action | str,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> WorkOrder:
        """
        Apply ``action`` to a work order.

        Raises:
            NotFoundError: no such work order
            InvalidOperationError: guard violation or disallowed transition
            ConcurrencyConflict: ``expected_version`` is stale, or another
                writer committed between our read and our write
        """
        current = self.get_by_id(work_order_id)

        try:
            act = parse_action(action)
        except InvalidOperationError as e:
            self.tracer.on_rejected(work_order_id, current.state.value, str(action), str(e))
            raise

        if expected_version is not None and expected_version != current.version:
            self.tracer.on_conflict(work_order_id, act.value, expected_version, current.version)
            raise ConcurrencyConflict(work_order_id, expected_version, current.version)

        try:
            validate_guard(current, act, notes)
            to_state = next_state(current.state, act)
        except InvalidOperationError as e:
            self.tracer.on_rejected(work_order_id, current.state.value, act.value, str(e))
            raise

        now = self.clock()
        try:
            with self.uow.transaction():
                saved = self.work_orders.save(current.with_state(to_state, now))
                self.events.append(WorkOrderEvent.create(
                    work_order_id, current.state, to_state, act.value, notes, now=now,
                ))
        except ConcurrencyConflict as e:
            self.tracer.on_conflict(work_order_id, act.value, e.expected_version, e.actual_version)
            raise

        self.tracer.on_transition(
            work_order_id, current.state.value, to_state.value, act.value, saved.version,
        )
        return saved

    # ─── Queries ─────────────────────────────────────────────────────

    def get_by_id(self, work_order_id: str) -> WorkOrder:
        wo = self.work_orders.get(work_order_id)
        if wo is None:
            raise NotFoundError(work_order_id)
        return wo

    def list_by_state(self, state: WorkOrderState | str | None = None) -> list[WorkOrder]:
        if state is None:
            return self.work_orders.list_all()
        return self.work_orders.list_by_state(parse_state(state))

    def get_history(self, work_order_id: str) -> list[WorkOrderEvent]:
        """Events for a work order, most recent first."""
        self.get_by_id(work_order_id)
        return self.events.list_by_work_order(work_order_id)

    def allowed_actions(self, work_order_id: str) -> list[Action]:
        return allowed_actions(self.get_by_id(work_order_id).state)

    def verify_history(self, work_order_id: str) -> tuple[bool, str]:
        """Check the audit hash chain for one work order."""
        self.get_by_id(work_order_id)
        verify = getattr(self.events, "verify_chain", None)
        if verify is None:
            return True, "Event store does not keep a hash chain"
        return verify(work_order_id)

    def get_dashboard_stats(self) -> DashboardStats:
        return self.dashboard.stats()


# ─── Wiring ──────────────────────────────────────────────────────────

def build_service(config: Any = None, db: DatabaseBackend | None = None) -> WorkOrderService:
    """
    Wire backend, repositories and tracer from a ConfigLoader.

    ``config`` only needs a ``get(dotted_key, default)`` method.
    """
    if db is None:
        get = config.get if config is not None else (lambda _k, d=None: d)
        db = create_backend(
            backend_type=get("database.backend", "sqlite"),
            path=get("database.path", "statelab.db"),
            dsn=get("database.dsn", "") or "",
        )
    service = WorkOrderService(
        work_orders=SQLWorkOrderRepository(db),
        events=SQLEventLog(db),
        uow=db,
    )
    logger.info("Work order service ready (backend=%s)", db.backend_type)
    return service
