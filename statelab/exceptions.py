"""
StateLab — Error Taxonomy

Every failure the core can report is a per-request outcome. Nothing here
is retried internally; the caller decides what to do next.

    NotFoundError          — referenced work order does not exist
    InvalidOperationError  — guard violation or disallowed (state, action)
    ConcurrencyConflict    — version changed between read and write
"""

from __future__ import annotations


class StateLabError(Exception):
    """Base class for all core errors."""
    pass


class NotFoundError(StateLabError):
    """Raised when a work order id does not resolve to an entity."""

    def __init__(self, work_order_id: str):
        super().__init__(f"WorkOrder not found: {work_order_id}")
        self.work_order_id = work_order_id


class InvalidOperationError(StateLabError):
    """The requested action cannot be performed right now."""
    pass


class InvalidTransition(InvalidOperationError):
    """Raised when the (state, action) pair is not in the transition table."""

    def __init__(self, state, action):
        super().__init__(
            f"Cannot perform action {getattr(action, 'value', action)} "
            f"on state {getattr(state, 'value', state)}"
        )
        self.state = state
        self.action = action


class GuardViolation(InvalidOperationError):
    """Raised when a pre-transition guard rejects the request."""

    def __init__(self, action, message: str):
        super().__init__(message)
        self.action = action


class ConcurrencyConflict(StateLabError):
    """Raised when the stored version no longer matches the expected one."""

    def __init__(
        self,
        work_order_id: str,
        expected_version: int,
        actual_version: int | None = None,
    ):
        msg = (
            f"WorkOrder {work_order_id} was modified concurrently: "
            f"expected version {expected_version}"
        )
        if actual_version is not None:
            msg += f", found {actual_version}"
        super().__init__(msg)
        self.work_order_id = work_order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
