"""
StateLab — Work Order Aggregate

The mutable entity driven through the state machine. Instances are
treated as values: the service derives a new copy for each transition
and hands it to the repository, which performs the conditional write.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass
from typing import Any

from statelab.state_machine import (
    INITIAL_STATE,
    INITIAL_VERSION,
    WorkOrderState,
    allowed_actions,
    is_terminal,
)


@dataclass
class WorkOrder:
    """One trackable unit of work."""
    id: str
    title: str
    description: str
    state: WorkOrderState
    version: int
    created_at: float
    updated_at: float

    @staticmethod
    def create(title: str, description: str | None = None, now: float | None = None) -> WorkOrder:
        now = now if now is not None else time.time()
        return WorkOrder(
            id=str(uuid.uuid4()),
            title=title or "",
            description=description or "",
            state=INITIAL_STATE,
            version=INITIAL_VERSION,
            created_at=now,
            updated_at=now,
        )

    def with_state(self, state: WorkOrderState, now: float) -> WorkOrder:
        """Copy carrying the new state. Version is bumped by the store."""
        return dataclasses.replace(self, state=state, updated_at=now)

    @property
    def allowed_actions(self) -> list[str]:
        return [a.value for a in allowed_actions(self.state)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "state": self.state.value,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "allowed_actions": self.allowed_actions,
            "terminal": is_terminal(self.state),
        }
