"""
StateLab — Dashboard Aggregator Tests
"""

import os
import sys
import unittest

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from statelab.audit import SQLEventLog
from statelab.dashboard import DashboardAggregator, DashboardStats
from statelab.db import SQLiteBackend
from statelab.service import WorkOrderService
from statelab.state_machine import Action, WorkOrderState
from statelab.store import SQLWorkOrderRepository

S = WorkOrderState


class TestDashboardStats(unittest.TestCase):

    def setUp(self):
        self.db = SQLiteBackend(path=":memory:")
        self.now = 100.0

        def clock():
            self.now += 1
            return self.now

        self.service = WorkOrderService(
            work_orders=SQLWorkOrderRepository(self.db),
            events=SQLEventLog(self.db),
            uow=self.db,
            clock=clock,
        )

    def tearDown(self):
        self.db.close()

    def test_empty(self):
        stats = self.service.get_dashboard_stats()
        self.assertEqual(stats.total, 0)
        self.assertEqual(stats.counts_by_state, {})
        self.assertEqual(stats.oldest_created_at_by_state, {})

    def test_three_draft_one_completed(self):
        done = self.service.create("first")  # created at 101
        drafts = [self.service.create(f"wo-{i}") for i in range(3)]
        for action in (Action.SUBMIT, Action.APPROVE, Action.COMPLETE):
            self.service.transition(done.id, action)

        stats = self.service.get_dashboard_stats()
        self.assertEqual(stats.total, 4)
        self.assertEqual(stats.counts_by_state, {S.DRAFT: 3, S.COMPLETED: 1})
        self.assertEqual(set(stats.oldest_created_at_by_state), {S.DRAFT, S.COMPLETED})
        self.assertEqual(stats.oldest_created_at_by_state[S.DRAFT], drafts[0].created_at)
        self.assertEqual(stats.oldest_created_at_by_state[S.COMPLETED], done.created_at)

    def test_counts_sum_to_total(self):
        a = self.service.create("a")
        b = self.service.create("b")
        self.service.create("c")
        self.service.transition(a.id, Action.SUBMIT)
        self.service.transition(b.id, Action.SUBMIT)
        self.service.transition(b.id, Action.REJECT, "no")

        stats = self.service.get_dashboard_stats()
        self.assertEqual(sum(stats.counts_by_state.values()), stats.total)
        self.assertEqual(stats.counts_by_state, {S.DRAFT: 1, S.SUBMITTED: 1, S.REJECTED: 1})

    def test_oldest_uses_created_not_updated(self):
        old = self.service.create("old")
        self.service.create("young")
        self.service.transition(old.id, Action.SUBMIT)
        self.service.transition(old.id, Action.REJECT, "no")
        self.service.transition(old.id, Action.REVISE)

        stats = self.service.get_dashboard_stats()
        self.assertEqual(stats.counts_by_state[S.DRAFT], 2)
        self.assertEqual(stats.oldest_created_at_by_state[S.DRAFT], old.created_at)

    def test_states_follow_lifecycle_order(self):
        a = self.service.create("a")
        self.service.create("b")
        self.service.transition(a.id, Action.SUBMIT)
        self.service.transition(a.id, Action.APPROVE)
        stats = self.service.get_dashboard_stats()
        self.assertEqual(list(stats.counts_by_state), [S.DRAFT, S.APPROVED])

    def test_to_dict_uses_state_names(self):
        self.service.create("a")
        d = self.service.get_dashboard_stats().to_dict()
        self.assertEqual(d["total"], 1)
        self.assertEqual(d["counts_by_state"], {"DRAFT": 1})
        self.assertEqual(d["oldest_created_at_by_state"], {"DRAFT": 101.0})


class _FixedSummary:
    def state_summary(self):
        return {S.REJECTED: (2, 5.0), S.DRAFT: (1, 9.0)}


class TestAggregatorDirect(unittest.TestCase):

    def test_over_any_repository(self):
        stats = DashboardAggregator(_FixedSummary()).stats()
        self.assertIsInstance(stats, DashboardStats)
        self.assertEqual(stats.total, 3)
        self.assertEqual(list(stats.counts_by_state), [S.DRAFT, S.REJECTED])
        self.assertEqual(stats.oldest_created_at_by_state, {S.DRAFT: 9.0, S.REJECTED: 5.0})


if __name__ == "__main__":
    unittest.main()
