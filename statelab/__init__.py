"""
StateLab - Work Order Lifecycle Core

State machine, optimistic-concurrency transition service and
append-only audit log for work orders.
"""

from statelab.exceptions import (
    StateLabError, NotFoundError, InvalidOperationError,
    InvalidTransition, GuardViolation, ConcurrencyConflict,
)
from statelab.state_machine import (
    WorkOrderState, Action, INITIAL_STATE, INITIAL_VERSION, CREATE_ACTION,
    allowed_actions, next_state, validate_guard, is_terminal,
)
from statelab.types import WorkOrder
from statelab.audit import WorkOrderEvent
from statelab.service import WorkOrderService, build_service

__version__ = "0.1.0"
