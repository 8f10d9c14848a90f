# planning/confirmation.py
"""
Planning confirmation state machine for one (user, month):

    OPEN/CLOSED --confirm--> CONFIRMED --unconfirm (elevated only)--> OPEN

confirm requires at least one goal and every goal out of its initial status.
unconfirm never looks at goals.
"""
import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from planning import settings
from planning.calendar_math import current_month, is_valid_month
from planning.clock import SYSTEM_CLOCK, Clock
from planning.entities import OpenMonth
from planning.errors import (
    Forbidden,
    IncompleteConfirmation,
    InvalidFormat,
    NoGoals,
    NotConfirmed,
    NotFound,
)
from planning.month_state import MonthState, PlanningSlot, resolve_month_state
from planning.open_month_registry import dialect_insert
from planning.planning_store import PlanningStore

logger = logging.getLogger("planning_backend")


def _require_month(month: str) -> None:
    if not is_valid_month(month):
        raise InvalidFormat(f"Invalid month token: {month!r}. Use YYYY-MM", token=str(month))


class PlanningConfirmation:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: Optional[PlanningStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.SessionFactory = session_factory
        self.store = store or PlanningStore(session_factory)
        self.clock = clock or SYSTEM_CLOCK

    # -----------------------
    # Projection
    # -----------------------

    def status(self, user_id: str, month: str, company_id: Optional[str] = None) -> Dict[str, Any]:
        _require_month(month)

        goals = self.store.list_goals(user_id, month, company_id)
        row = self.store.get_open_month(user_id, month)

        total = len(goals)
        confirmed_goals = sum(1 for g in goals if g["status"] != settings.INITIAL_GOAL_STATUS)
        is_confirmed = bool(row and row["is_planning_confirmed"])

        return {
            "month": month,
            "total_goals": total,
            "confirmed_goals": confirmed_goals,
            "is_planning_confirmed": is_confirmed,
            "confirmed_at": row["planning_confirmed_at"] if row else None,
            "can_confirm": total > 0 and confirmed_goals == total and not is_confirmed,
        }

    def is_confirmed(self, user_id: str, month: str) -> bool:
        _require_month(month)
        row = self.store.get_open_month(user_id, month)
        return bool(row and row["is_planning_confirmed"])

    # -----------------------
    # Transitions
    # -----------------------

    def confirm(self, user_id: str, month: str, company_id: Optional[str] = None) -> Dict[str, Any]:
        """Goals are checked within `company_id` when given, across all companies otherwise."""
        _require_month(month)

        current = current_month(self.clock)
        if month > current:
            opened = {r["month"] for r in self.store.list_open_months(user_id)}
            if resolve_month_state(month, current, opened) is MonthState.FUTURE_LOCKED:
                raise NotFound(f"Month {month} has not been opened for planning", month=month)

        goals = self.store.list_goals(user_id, month, company_id)
        if not goals:
            raise NoGoals(f"There are no goals for {month}", month=month)

        pending = [g["id"] for g in goals if g["status"] == settings.INITIAL_GOAL_STATUS]
        if pending:
            raise IncompleteConfirmation(
                "Every goal must be confirmed before confirming the month planning",
                month=month,
                pending_goal_ids=pending,
                total_goals=len(goals),
                confirmed_goals=len(goals) - len(pending),
            )

        now = self.clock.to_local(self.clock.now())
        session = self.SessionFactory()
        try:
            changed = self._upsert_confirmed(session, str(user_id), month, now)
            session.commit()

            row = (
                session.query(OpenMonth)
                .filter(OpenMonth.user_id == str(user_id), OpenMonth.month == month)
                .one()
            )
            confirmed_at = row.planning_confirmed_at
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if changed:
            logger.info(f"confirm: user={user_id} month={month} planning confirmed")
        else:
            logger.debug(f"confirm: user={user_id} month={month} already confirmed")

        return {
            "month": month,
            "is_planning_confirmed": True,
            "confirmed_at": confirmed_at,
            "already_confirmed": not changed,
        }

    def _upsert_confirmed(self, session: Session, user_id: str, month: str, now) -> bool:
        """Returns False when the row was already CONFIRMED (timestamp untouched)."""
        confirmed = PlanningSlot.CONFIRMED.value
        insert = dialect_insert(session)
        if insert is not None:
            stmt = insert(OpenMonth.__table__).values(
                id=str(uuid4()),
                user_id=user_id,
                month=month,
                slot_state=confirmed,
                opened_at=now,
                planning_confirmed_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "month"],
                set_={"slot_state": confirmed, "planning_confirmed_at": now},
                where=(OpenMonth.__table__.c.slot_state != confirmed),
            )
            result = session.execute(stmt)
            return (result.rowcount or 0) > 0

        row = (
            session.query(OpenMonth)
            .filter(OpenMonth.user_id == user_id, OpenMonth.month == month)
            .with_for_update()
            .one_or_none()
        )
        if row is None:
            session.add(
                OpenMonth(
                    user_id=user_id,
                    month=month,
                    slot_state=confirmed,
                    opened_at=now,
                    planning_confirmed_at=now,
                )
            )
            return True
        if row.slot_state == confirmed:
            return False
        row.slot_state = confirmed
        row.planning_confirmed_at = now
        return True

    def unconfirm(
        self,
        acting_user_id: str,
        acting_role: str,
        month: str,
        target_user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        _require_month(month)

        if not settings.is_elevated(acting_role):
            raise Forbidden("Only administrators can reopen a confirmed planning", role=acting_role)

        user_id = str(target_user_id or acting_user_id)
        session = self.SessionFactory()
        try:
            row = (
                session.query(OpenMonth)
                .filter(OpenMonth.user_id == user_id, OpenMonth.month == month)
                .with_for_update()
                .one_or_none()
            )
            if row is None:
                raise NotFound(f"No planning record for {month}", month=month, user_id=user_id)
            if not row.is_planning_confirmed:
                raise NotConfirmed(f"Planning for {month} is not confirmed", month=month, user_id=user_id)

            row.slot_state = PlanningSlot.OPEN.value
            row.planning_confirmed_at = None
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(f"unconfirm: user={user_id} month={month} reopened by {acting_user_id} ({acting_role})")
        return {
            "month": month,
            "user_id": user_id,
            "is_planning_confirmed": False,
            "confirmed_at": None,
        }

    # -----------------------
    # Supervision
    # -----------------------

    def supervisees_with_status(
        self,
        supervisor_id: str,
        supervisor_role: str,
        month: str,
        scope: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        _require_month(month)
        if not (settings.is_supervisor_role(supervisor_role) or settings.is_elevated(supervisor_role)):
            raise Forbidden("Only supervisors can list supervisees", role=supervisor_role)

        result = []
        for user in self.store.list_supervisees(supervisor_id, scope):
            result.append({**user, "planning_status": self.status(user["id"], month, scope)})
        return result
