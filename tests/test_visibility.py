import unittest

from planning.confirmation import PlanningConfirmation
from planning.errors import Forbidden, InvalidFormat
from planning.planning_store import PlanningStore
from planning.visibility import VisibilityGate

from planning_fixtures import (
    fixed_clock,
    link_supervisor,
    memory_session_factory,
    seed_goal,
    seed_user,
)


class TestVisibilityGate(unittest.TestCase):
    def setUp(self):
        self.sf = memory_session_factory()
        self.clock = fixed_clock()
        store = PlanningStore(self.sf)
        self.confirmation = PlanningConfirmation(self.sf, store, self.clock)
        self.gate = VisibilityGate(store, self.confirmation)

        self.ana = seed_user(self.sf, "ana")
        self.luis = seed_user(self.sf, "luis")
        self.boss = seed_user(self.sf, "boss", role="SUPERVISOR")
        self.stranger = seed_user(self.sf, "eve", role="SUPERVISOR")
        self.admin = seed_user(self.sf, "root", role="ADMIN")
        link_supervisor(self.sf, self.ana, self.boss, company_id="acme")

        seed_goal(self.sf, self.ana, "2026-02", status="CONFIRMED")

    def test_owner_always_sees(self):
        self.assertTrue(self.gate.can_view("USER", self.ana, self.ana, "2026-02"))
        self.assertTrue(self.gate.can_view("USER", self.ana, self.ana, "2026-09"))

    def test_elevated_roles_always_see(self):
        self.assertTrue(self.gate.can_view("ADMIN", self.admin, self.ana, "2026-02"))
        self.assertTrue(self.gate.can_view("superadmin", self.admin, self.ana, "2026-02"))

    def test_plain_user_never_sees_others(self):
        self.confirmation.confirm(self.ana, "2026-02")
        self.assertFalse(self.gate.can_view("USER", self.luis, self.ana, "2026-02"))

    def test_supervisor_needs_confirmation(self):
        self.assertFalse(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-02"))

        self.confirmation.confirm(self.ana, "2026-02")
        self.assertTrue(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-02"))
        # confirmation is per month
        self.assertFalse(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-01"))

        self.confirmation.unconfirm(self.admin, "ADMIN", "2026-02", target_user_id=self.ana)
        self.assertFalse(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-02"))

    def test_supervisor_needs_link(self):
        self.confirmation.confirm(self.ana, "2026-02")
        self.assertFalse(self.gate.can_view("SUPERVISOR", self.stranger, self.ana, "2026-02"))

    def test_link_role_must_be_supervisor(self):
        # a supervisory link alone does not grant access to a USER role
        self.confirmation.confirm(self.ana, "2026-02")
        self.assertFalse(self.gate.can_view("USER", self.boss, self.ana, "2026-02"))

    def test_scope(self):
        self.confirmation.confirm(self.ana, "2026-02")
        self.assertTrue(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-02", scope="acme"))
        self.assertFalse(self.gate.can_view("SUPERVISOR", self.boss, self.ana, "2026-02", scope="other"))

    def test_bad_month(self):
        with self.assertRaises(InvalidFormat):
            self.gate.can_view("ADMIN", self.admin, self.ana, "02-2026")

    def test_require_view(self):
        with self.assertRaises(Forbidden) as ctx:
            self.gate.require_view("SUPERVISOR", self.boss, self.ana, "2026-02")
        self.assertEqual(ctx.exception.to_response()["error"], "forbidden")

        self.confirmation.confirm(self.ana, "2026-02")
        self.gate.require_view("SUPERVISOR", self.boss, self.ana, "2026-02")

    def test_denial_is_logged_preformatted(self):
        with self.assertLogs("planning_backend", level="INFO") as logs:
            with self.assertRaises(Forbidden):
                self.gate.require_view("SUPERVISOR", self.boss, self.ana, "2026-02")

        record = logs.records[0]
        self.assertEqual(record.args, ())
        self.assertEqual(record.msg, "view denied: viewer=boss (SUPERVISOR) owner=ana month=2026-02")

    def test_visible_months(self):
        months = ["2026-01", "2026-02", "2026-02"]
        self.assertEqual(self.gate.visible_months("SUPERVISOR", self.boss, self.ana, months), set())

        self.confirmation.confirm(self.ana, "2026-02")
        self.assertEqual(self.gate.visible_months("SUPERVISOR", self.boss, self.ana, months), {"2026-02"})
        self.assertEqual(self.gate.visible_months("USER", self.ana, self.ana, months), {"2026-01", "2026-02"})

    def test_can_edit(self):
        self.assertTrue(self.gate.can_edit("USER", self.ana, self.ana, "2026-02"))
        self.assertFalse(self.gate.can_edit("USER", self.ana, self.ana, "2026-01"))
        self.assertFalse(self.gate.can_edit("USER", self.ana, self.ana, "2026-03"))
        self.assertTrue(self.gate.can_edit("USER", self.ana, self.ana, "2026-03", ["2026-03"]))
        self.assertTrue(self.gate.can_edit("ADMIN", self.admin, self.ana, "2026-02"))
        self.assertFalse(self.gate.can_edit("SUPERVISOR", self.boss, self.ana, "2026-02"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
