"""
StateLab — API Models

Request/response dataclasses for the HTTP layer.
No FastAPI dependency — used by the server, the CLI and tests.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from statelab.state_machine import Action, is_terminal
from statelab.types import WorkOrder


@dataclass
class CreateWorkOrderRequest:
    """POST /api/work-orders request body."""
    title: Any
    description: Any = ""

    def validate(self) -> list[str]:
        """Return list of validation errors (empty = valid)."""
        errors = []
        if not isinstance(self.title, str) or not self.title.strip():
            errors.append("title is required and must be a non-blank string")
        if self.description is not None and not isinstance(self.description, str):
            errors.append("description must be a string")
        return errors


@dataclass
class TransitionRequest:
    """POST /api/work-orders/{id}/transition request body."""
    action: Any
    notes: Any = None

    def validate(self) -> list[str]:
        errors = []
        if not self.action or not isinstance(self.action, str):
            errors.append("action is required and must be a string")
        elif self.action.strip().upper() not in Action.__members__:
            errors.append(
                f"action must be one of {', '.join(Action.__members__)}"
            )
        if self.notes is not None and not isinstance(self.notes, str):
            errors.append("notes must be a string")
        return errors


@dataclass
class WorkOrderResponse:
    """Work order representation returned by every work order endpoint."""
    id: str
    title: str
    description: str
    state: str
    version: int
    created_at: float
    updated_at: float
    allowed_actions: list[str] = field(default_factory=list)
    terminal: bool = False

    @staticmethod
    def from_work_order(wo: WorkOrder) -> WorkOrderResponse:
        return WorkOrderResponse(
            id=wo.id,
            title=wo.title,
            description=wo.description,
            state=wo.state.value,
            version=wo.version,
            created_at=wo.created_at,
            updated_at=wo.updated_at,
            allowed_actions=wo.allowed_actions,
            terminal=is_terminal(wo.state),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def format_etag(version: int) -> str:
    return f'"{version}"'


def parse_etag(value: str) -> int | None:
    """
    Parse an If-Match / If-None-Match value into a version.

    Accepts weak or strong, quoted or bare tags. ``*`` means "any" and
    yields None. Raises ValueError for anything else.
    """
    tag = value.strip()
    if tag == "*":
        return None
    if tag.startswith("W/"):
        tag = tag[2:]
    tag = tag.strip('"')
    if not tag.isdigit():
        raise ValueError(f"Unrecognised entity tag: {value!r}")
    return int(tag)
