import datetime as dt
import unittest
from unittest import mock

from planning.confirmation import PlanningConfirmation
from planning.entities import OpenMonth
from planning.errors import (
    Forbidden,
    IncompleteConfirmation,
    InvalidFormat,
    NoGoals,
    NotConfirmed,
    NotFound,
)
from planning.month_state import PlanningSlot
from planning.open_month_registry import OpenMonthRegistry

from planning_fixtures import (
    fixed_clock,
    link_supervisor,
    memory_session_factory,
    seed_goal,
    seed_user,
    set_goal_status,
)


class TestPlanningConfirmation(unittest.TestCase):
    def setUp(self):
        self.sf = memory_session_factory()
        self.clock = fixed_clock()
        self.confirmation = PlanningConfirmation(self.sf, clock=self.clock)
        self.registry = OpenMonthRegistry(self.sf, clock=self.clock)
        self.user = seed_user(self.sf, "ana")

    def test_confirm_without_goals(self):
        with self.assertRaises(NoGoals):
            self.confirmation.confirm(self.user, "2026-02")
        self.assertFalse(self.confirmation.is_confirmed(self.user, "2026-02"))

    def test_confirm_with_pending_goal(self):
        done = seed_goal(self.sf, self.user, "2026-02", "Ship", status="CONFIRMED")
        pending = seed_goal(self.sf, self.user, "2026-02", "Hire")

        with self.assertRaises(IncompleteConfirmation) as ctx:
            self.confirmation.confirm(self.user, "2026-02")

        details = ctx.exception.details
        self.assertEqual(details["pending_goal_ids"], [pending])
        self.assertEqual(details["total_goals"], 2)
        self.assertEqual(details["confirmed_goals"], 1)
        self.assertNotIn(done, details["pending_goal_ids"])
        self.assertFalse(self.confirmation.is_confirmed(self.user, "2026-02"))

    def test_confirm_current_month(self):
        seed_goal(self.sf, self.user, "2026-02", status="CONFIRMED")
        result = self.confirmation.confirm(self.user, "2026-02")

        self.assertTrue(result["is_planning_confirmed"])
        self.assertFalse(result["already_confirmed"])
        self.assertIsNotNone(result["confirmed_at"])
        self.assertTrue(self.confirmation.is_confirmed(self.user, "2026-02"))
        self.assertIs(self.registry.slot_state(self.user, "2026-02"), PlanningSlot.CONFIRMED)

    def test_confirm_twice_keeps_first_timestamp(self):
        seed_goal(self.sf, self.user, "2026-02", status="IN_PROGRESS")
        first = self.confirmation.confirm(self.user, "2026-02")
        self.clock.advance(hours=3)
        second = self.confirmation.confirm(self.user, "2026-02")

        self.assertTrue(second["already_confirmed"])
        self.assertEqual(second["confirmed_at"], first["confirmed_at"])

    def test_confirm_locked_future_month(self):
        seed_goal(self.sf, self.user, "2026-04", status="CONFIRMED")
        with self.assertRaises(NotFound):
            self.confirmation.confirm(self.user, "2026-04")

        self.registry.open_month(self.user, "2026-04")
        result = self.confirmation.confirm(self.user, "2026-04")
        self.assertTrue(result["is_planning_confirmed"])
        self.assertEqual(self.registry.opened_months(self.user), {"2026-04"})

    def test_confirm_bad_token(self):
        with self.assertRaises(InvalidFormat):
            self.confirmation.confirm(self.user, "2026-2")

    def test_status_projection(self):
        goal = seed_goal(self.sf, self.user, "2026-02")
        status = self.confirmation.status(self.user, "2026-02")
        self.assertEqual(status["total_goals"], 1)
        self.assertEqual(status["confirmed_goals"], 0)
        self.assertFalse(status["can_confirm"])
        self.assertIsNone(status["confirmed_at"])

        set_goal_status(self.sf, goal, "CONFIRMED")
        self.assertTrue(self.confirmation.status(self.user, "2026-02")["can_confirm"])

        self.confirmation.confirm(self.user, "2026-02")
        status = self.confirmation.status(self.user, "2026-02")
        self.assertTrue(status["is_planning_confirmed"])
        self.assertFalse(status["can_confirm"])

    def test_confirm_checks_goals_in_company(self):
        seed_goal(self.sf, self.user, "2026-02", status="CONFIRMED", company_id="acme")
        pending = seed_goal(self.sf, self.user, "2026-02", company_id="globex")

        with self.assertRaises(IncompleteConfirmation) as ctx:
            self.confirmation.confirm(self.user, "2026-02")
        self.assertEqual(ctx.exception.details["pending_goal_ids"], [pending])

        result = self.confirmation.confirm(self.user, "2026-02", company_id="acme")
        self.assertTrue(result["is_planning_confirmed"])
        self.assertFalse(self.confirmation.status(self.user, "2026-02", "globex")["can_confirm"])

    def test_concurrent_confirm_keeps_single_row(self):
        seed_goal(self.sf, self.user, "2026-02", status="CONFIRMED")
        earlier = dt.datetime(2026, 2, 15, 0, 0, 1)
        list_goals = self.confirmation.store.list_goals

        def confirmed_elsewhere(*args, **kwargs):
            goals = list_goals(*args, **kwargs)
            session = self.sf()
            try:
                session.add(
                    OpenMonth(
                        user_id=self.user,
                        month="2026-02",
                        slot_state=PlanningSlot.CONFIRMED.value,
                        opened_at=earlier,
                        planning_confirmed_at=earlier,
                    )
                )
                session.commit()
            finally:
                session.close()
            return goals

        with mock.patch.object(self.confirmation.store, "list_goals", side_effect=confirmed_elsewhere):
            result = self.confirmation.confirm(self.user, "2026-02")

        self.assertTrue(result["already_confirmed"])
        self.assertEqual(result["confirmed_at"], earlier)
        session = self.sf()
        try:
            rows = session.query(OpenMonth).filter(OpenMonth.user_id == self.user).count()
        finally:
            session.close()
        self.assertEqual(rows, 1)


class TestUnconfirm(unittest.TestCase):
    def setUp(self):
        self.sf = memory_session_factory()
        self.clock = fixed_clock()
        self.confirmation = PlanningConfirmation(self.sf, clock=self.clock)
        self.user = seed_user(self.sf, "ana")
        self.admin = seed_user(self.sf, "root", role="ADMIN")
        self.goal = seed_goal(self.sf, self.user, "2026-02", status="CONFIRMED")
        self.confirmation.confirm(self.user, "2026-02")

    def test_only_elevated_roles(self):
        for role in ("USER", "SUPERVISOR"):
            with self.assertRaises(Forbidden):
                self.confirmation.unconfirm(self.user, role, "2026-02")
        self.assertTrue(self.confirmation.is_confirmed(self.user, "2026-02"))

    def test_admin_reopens_other_users_month(self):
        result = self.confirmation.unconfirm(self.admin, "admin", "2026-02", target_user_id=self.user)

        self.assertEqual(result["user_id"], self.user)
        self.assertFalse(result["is_planning_confirmed"])
        self.assertIsNone(result["confirmed_at"])
        self.assertFalse(self.confirmation.is_confirmed(self.user, "2026-02"))

        status = self.confirmation.status(self.user, "2026-02")
        self.assertIsNone(status["confirmed_at"])
        # goal statuses are left alone
        self.assertEqual(status["confirmed_goals"], 1)

    def test_unconfirm_twice(self):
        self.confirmation.unconfirm(self.admin, "ADMIN", "2026-02", target_user_id=self.user)
        with self.assertRaises(NotConfirmed):
            self.confirmation.unconfirm(self.admin, "ADMIN", "2026-02", target_user_id=self.user)

    def test_unconfirm_missing_record(self):
        with self.assertRaises(NotFound):
            self.confirmation.unconfirm(self.admin, "SUPERADMIN", "2026-01", target_user_id=self.user)

    def test_reconfirm_after_unconfirm(self):
        self.confirmation.unconfirm(self.admin, "ADMIN", "2026-02", target_user_id=self.user)
        result = self.confirmation.confirm(self.user, "2026-02")
        self.assertFalse(result["already_confirmed"])
        self.assertTrue(self.confirmation.is_confirmed(self.user, "2026-02"))


class TestSupervisees(unittest.TestCase):
    def setUp(self):
        self.sf = memory_session_factory()
        self.confirmation = PlanningConfirmation(self.sf, clock=fixed_clock())
        self.boss = seed_user(self.sf, "boss", role="SUPERVISOR")
        self.ana = seed_user(self.sf, "ana")
        self.luis = seed_user(self.sf, "luis")
        link_supervisor(self.sf, self.ana, self.boss)
        link_supervisor(self.sf, self.luis, self.boss, company_id="other")

    def test_lists_status_per_supervisee(self):
        seed_goal(self.sf, self.ana, "2026-02", status="CONFIRMED")
        self.confirmation.confirm(self.ana, "2026-02")

        rows = self.confirmation.supervisees_with_status(self.boss, "SUPERVISOR", "2026-02")
        by_id = {r["id"]: r for r in rows}
        self.assertEqual(set(by_id), {self.ana, self.luis})
        self.assertTrue(by_id[self.ana]["planning_status"]["is_planning_confirmed"])
        self.assertFalse(by_id[self.luis]["planning_status"]["is_planning_confirmed"])

    def test_scope_filters_links(self):
        rows = self.confirmation.supervisees_with_status(self.boss, "SUPERVISOR", "2026-02", scope="acme")
        self.assertEqual([r["id"] for r in rows], [self.ana])

    def test_plain_user_cannot_list(self):
        with self.assertRaises(Forbidden):
            self.confirmation.supervisees_with_status(self.ana, "USER", "2026-02")


if __name__ == "__main__":
    unittest.main(verbosity=2)
