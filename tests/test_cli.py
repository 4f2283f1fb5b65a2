"""
StateLab — CLI Tests

Drives main() with an injected in-memory service and checks output and
exit codes per error category.
"""

import contextlib
import io
import json
import os
import sys
import tempfile
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from statelab.cli import EXIT_CONFLICT, EXIT_INVALID, EXIT_NOT_FOUND, main
from statelab.db import SQLiteBackend
from statelab.logging import configure_logging
from statelab.service import build_service


class TestCLI(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db = SQLiteBackend(path=":memory:")
        self.service = build_service(db=self.db)

    def tearDown(self):
        self.db.close()
        self._tmp.cleanup()
        configure_logging(level="WARNING", stream=io.StringIO())

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(["--root", self._tmp.name, *argv], service=self.service)
        return code, out.getvalue(), err.getvalue()

    def _create(self, title="Fix pump"):
        code, out, _ = self.run_cli("create", title, "--description", "bay 3")
        self.assertEqual(code, 0)
        return json.loads(out)

    def test_no_command(self):
        with contextlib.redirect_stdout(io.StringIO()):
            self.assertEqual(main([]), 1)

    def test_create_and_show(self):
        wo = self._create()
        self.assertEqual(wo["state"], "DRAFT")
        self.assertEqual(wo["description"], "bay 3")
        code, out, _ = self.run_cli("show", wo["id"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["id"], wo["id"])

    def test_transition(self):
        wo = self._create()
        code, out, _ = self.run_cli("transition", wo["id"], "submit", "--expected-version", "1")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["version"], 2)

    def test_exit_codes(self):
        wo = self._create()
        code, _, err = self.run_cli("show", "missing")
        self.assertEqual(code, EXIT_NOT_FOUND)
        self.assertIn("missing", err)

        code, _, err = self.run_cli("transition", wo["id"], "APPROVE")
        self.assertEqual(code, EXIT_INVALID)
        self.assertIn("Cannot perform action APPROVE on state DRAFT", err)

        code, _, _ = self.run_cli("transition", wo["id"], "ESCALATE")
        self.assertEqual(code, EXIT_INVALID)

        code, _, err = self.run_cli("transition", wo["id"], "SUBMIT", "--expected-version", "7")
        self.assertEqual(code, EXIT_CONFLICT)
        self.assertIn("Conflict", err)

        code, _, _ = self.run_cli("list", "--state", "BOGUS")
        self.assertEqual(code, 1)

    def test_list_history_stats_verify(self):
        wo = self._create()
        self.run_cli("transition", wo["id"], "SUBMIT")
        self.run_cli("transition", wo["id"], "REJECT", "--notes", "missing parts")

        code, out, err = self.run_cli("list", "--state", "REJECTED")
        self.assertEqual(code, 0)
        self.assertIn(wo["id"], out)
        self.assertIn("1 work order(s)", err)

        code, out, _ = self.run_cli("history", wo["id"])
        lines = out.strip().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertIn("REJECT", lines[0])
        self.assertIn("missing parts", lines[0])
        self.assertIn("CREATE", lines[-1])

        code, out, _ = self.run_cli("stats")
        self.assertEqual(json.loads(out)["counts_by_state"], {"REJECTED": 1})

        code, out, _ = self.run_cli("verify", wo["id"])
        self.assertEqual(code, 0)
        self.assertIn("Chain verified: 3 events", out)

    def test_verify_tampered(self):
        wo = self._create()
        self.db.execute("UPDATE work_order_events SET notes = 'edited' WHERE work_order_id = ?", (wo["id"],))
        code, out, _ = self.run_cli("verify", wo["id"])
        self.assertEqual(code, 1)
        self.assertIn("Tampered", out)


if __name__ == "__main__":
    unittest.main()
