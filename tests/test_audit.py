"""
StateLab — Work Order Audit Log Tests
"""

import dataclasses
import os
import sys
import unittest

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from statelab.audit import (
    GENESIS_HASH, SQLEventLog, WorkOrderEvent, compute_event_hash,
)
from statelab.db import SQLiteBackend
from statelab.state_machine import WorkOrderState

S = WorkOrderState


class _AuditTestCase(unittest.TestCase):
    """Base class that creates an in-memory event log per test."""

    def setUp(self):
        self.db = SQLiteBackend(path=":memory:")
        self.log = SQLEventLog(self.db)

    def tearDown(self):
        self.db.close()

    def _record_lifecycle(self, wo_id="wo-1"):
        self.log.append(WorkOrderEvent.create(wo_id, None, S.DRAFT, "CREATE", "Created", now=10.0))
        self.log.append(WorkOrderEvent.create(wo_id, S.DRAFT, S.SUBMITTED, "SUBMIT", now=20.0))
        self.log.append(WorkOrderEvent.create(wo_id, S.SUBMITTED, S.REJECTED, "REJECT", "missing parts", now=30.0))


class TestAppendAndQuery(_AuditTestCase):

    def test_history_is_newest_first(self):
        self._record_lifecycle()
        events = self.log.list_by_work_order("wo-1")
        self.assertEqual([e.action for e in events], ["REJECT", "SUBMIT", "CREATE"])
        self.assertEqual([e.occurred_at for e in events], [30.0, 20.0, 10.0])

    def test_round_trips_fields(self):
        self._record_lifecycle()
        newest, _, oldest = self.log.list_by_work_order("wo-1")
        self.assertEqual(newest.from_state, S.SUBMITTED)
        self.assertEqual(newest.to_state, S.REJECTED)
        self.assertEqual(newest.notes, "missing parts")
        self.assertIsNone(oldest.from_state)
        self.assertEqual(oldest.to_state, S.DRAFT)

    def test_same_timestamp_keeps_insertion_order(self):
        self.log.append(WorkOrderEvent.create("wo-1", None, S.DRAFT, "CREATE", now=5.0))
        self.log.append(WorkOrderEvent.create("wo-1", S.DRAFT, S.SUBMITTED, "SUBMIT", now=5.0))
        events = self.log.list_by_work_order("wo-1")
        self.assertEqual([e.action for e in events], ["SUBMIT", "CREATE"])

    def test_events_partitioned_by_work_order(self):
        self._record_lifecycle("wo-1")
        self.log.append(WorkOrderEvent.create("wo-2", None, S.DRAFT, "CREATE", now=11.0))
        self.assertEqual(len(self.log.list_by_work_order("wo-1")), 3)
        self.assertEqual(len(self.log.list_by_work_order("wo-2")), 1)
        self.assertEqual(self.log.list_by_work_order("wo-3"), [])

    def test_events_are_frozen(self):
        event = WorkOrderEvent.create("wo-1", None, S.DRAFT, "CREATE")
        with self.assertRaises(dataclasses.FrozenInstanceError):
            event.notes = "edited"

    def test_no_update_or_delete_exposed(self):
        for name in ("update", "delete", "update_event", "delete_event", "remove"):
            self.assertFalse(hasattr(self.log, name))

    def test_to_dict(self):
        stored = self.log.append(WorkOrderEvent.create("wo-1", None, S.DRAFT, "CREATE", now=1.0))
        d = stored.to_dict()
        self.assertIsNone(d["from_state"])
        self.assertEqual(d["to_state"], "DRAFT")
        self.assertEqual(d["event_hash"], stored.event_hash)


class TestHashChain(_AuditTestCase):

    def test_first_event_anchored_at_genesis(self):
        stored = self.log.append(WorkOrderEvent.create("wo-1", None, S.DRAFT, "CREATE", now=1.0))
        self.assertEqual(stored.previous_hash, GENESIS_HASH)
        self.assertEqual(stored.event_hash, compute_event_hash(GENESIS_HASH, stored))

    def test_chain_links_per_work_order(self):
        a1 = self.log.append(WorkOrderEvent.create("wo-a", None, S.DRAFT, "CREATE", now=1.0))
        b1 = self.log.append(WorkOrderEvent.create("wo-b", None, S.DRAFT, "CREATE", now=2.0))
        a2 = self.log.append(WorkOrderEvent.create("wo-a", S.DRAFT, S.SUBMITTED, "SUBMIT", now=3.0))
        self.assertEqual(b1.previous_hash, GENESIS_HASH)
        self.assertEqual(a2.previous_hash, a1.event_hash)

    def test_verify_intact(self):
        self._record_lifecycle()
        ok, msg = self.log.verify_chain("wo-1")
        self.assertTrue(ok, msg)
        self.assertIn("3 events", msg)

    def test_verify_empty(self):
        ok, _ = self.log.verify_chain("nothing")
        self.assertTrue(ok)

    def test_direct_sql_update_is_detected(self):
        self._record_lifecycle()
        self.db.execute(
            "UPDATE work_order_events SET notes = ? WHERE action = ?",
            ("looked fine to me", "REJECT"),
        )
        ok, msg = self.log.verify_chain("wo-1")
        self.assertFalse(ok)
        self.assertIn("Tampered", msg)

    def test_direct_sql_delete_is_detected(self):
        self._record_lifecycle()
        self.db.execute("DELETE FROM work_order_events WHERE action = ?", ("SUBMIT",))
        ok, msg = self.log.verify_chain("wo-1")
        self.assertFalse(ok)
        self.assertIn("Chain broken", msg)


if __name__ == "__main__":
    unittest.main()
