"""
StateLab — Work Order State Machine

The lifecycle is fixed at design time:

    DRAFT ──SUBMIT──► SUBMITTED ──APPROVE──► APPROVED ──COMPLETE──► COMPLETED
      ▲                   │
      │                 REJECT
      │                   ▼
      └─────REVISE──── REJECTED

Pure logic, no I/O. The service layer (service.py) wires it to
persistence (store.py) and the audit log (audit.py).
"""

from __future__ import annotations

import enum
from typing import Any

from statelab.exceptions import GuardViolation, InvalidOperationError, InvalidTransition


class WorkOrderState(str, enum.Enum):
    """Closed set of work order states."""
    DRAFT     = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED  = "APPROVED"
    REJECTED  = "REJECTED"
    COMPLETED = "COMPLETED"


class Action(str, enum.Enum):
    """Closed set of actions a caller may request."""
    SUBMIT   = "SUBMIT"
    APPROVE  = "APPROVE"
    REJECT   = "REJECT"
    COMPLETE = "COMPLETE"
    REVISE   = "REVISE"


INITIAL_STATE = WorkOrderState.DRAFT
INITIAL_VERSION = 1

# Synthetic action recorded on the creation event
CREATE_ACTION = "CREATE"

# (from_state, action) → to_state. Anything missing is an invalid transition.
_TRANSITIONS: dict[tuple[WorkOrderState, Action], WorkOrderState] = {
    (WorkOrderState.DRAFT,     Action.SUBMIT):   WorkOrderState.SUBMITTED,
    (WorkOrderState.SUBMITTED, Action.APPROVE):  WorkOrderState.APPROVED,
    (WorkOrderState.SUBMITTED, Action.REJECT):   WorkOrderState.REJECTED,
    (WorkOrderState.APPROVED,  Action.COMPLETE): WorkOrderState.COMPLETED,
    (WorkOrderState.REJECTED,  Action.REVISE):   WorkOrderState.DRAFT,
}

_ALLOWED_ACTIONS: dict[WorkOrderState, list[Action]] = {
    state: [a for a in Action if (state, a) in _TRANSITIONS]
    for state in WorkOrderState
}


def parse_action(value: Action | str) -> Action:
    """Coerce an action name (case-insensitive) into an Action."""
    if isinstance(value, Action):
        return value
    try:
        return Action(str(value).strip().upper())
    except ValueError:
        raise InvalidOperationError(f"Unknown action: {value}") from None


def parse_state(value: WorkOrderState | str) -> WorkOrderState:
    """Coerce a state name (case-insensitive) into a WorkOrderState."""
    if isinstance(value, WorkOrderState):
        return value
    return WorkOrderState(str(value).strip().upper())


def allowed_actions(state: WorkOrderState) -> list[Action]:
    """Actions the transition table permits from ``state``."""
    return list(_ALLOWED_ACTIONS[state])


def is_terminal(state: WorkOrderState) -> bool:
    return not _ALLOWED_ACTIONS[state]


def next_state(state: WorkOrderState, action: Action) -> WorkOrderState:
    """
    Look up the successor state.

    Raises InvalidTransition for every pair not in the table.
    """
    try:
        return _TRANSITIONS[(state, action)]
    except KeyError:
        raise InvalidTransition(state, action) from None


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def validate_guard(work_order: Any, action: Action, notes: str | None = None) -> None:
    """
    Pre-transition guards, checked independently of the current state.

      SUBMIT: the work order needs a non-blank title
      REJECT: non-blank notes explaining the rejection
    """
    if action == Action.SUBMIT and _is_blank(getattr(work_order, "title", None)):
        raise GuardViolation(action, "Title must be provided to submit")
    if action == Action.REJECT and _is_blank(notes):
        raise GuardViolation(action, "Notes are required when rejecting")
