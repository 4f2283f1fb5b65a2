"""
StateLab — Dashboard Aggregator

Read-only projection over current work order snapshots. Derived, not
authoritative: it reads outside any transition's unit of work, so it may
lag an in-flight transition by one commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from statelab.state_machine import WorkOrderState
from statelab.store import WorkOrderRepository


@dataclass
class DashboardStats:
    total: int = 0
    counts_by_state: dict[WorkOrderState, int] = field(default_factory=dict)
    # States with no work orders are absent
    oldest_created_at_by_state: dict[WorkOrderState, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "counts_by_state": {s.value: n for s, n in self.counts_by_state.items()},
            "oldest_created_at_by_state": {
                s.value: ts for s, ts in self.oldest_created_at_by_state.items()
            },
        }


class DashboardAggregator:
    """Per-state counts and oldest creation time."""

    def __init__(self, work_orders: WorkOrderRepository):
        self.work_orders = work_orders

    def stats(self) -> DashboardStats:
        # One grouped read, so counts and timestamps come from the same snapshot
        summary = self.work_orders.state_summary()
        ordered = [s for s in WorkOrderState if s in summary]
        return DashboardStats(
            total=sum(cnt for cnt, _ in summary.values()),
            counts_by_state={s: summary[s][0] for s in ordered},
            oldest_created_at_by_state={s: summary[s][1] for s in ordered},
        )
