# planning/open_month_registry.py
import logging
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from planning.calendar_math import current_month, is_valid_month, month_label
from planning.clock import SYSTEM_CLOCK, Clock
from planning.entities import OpenMonth
from planning.errors import InvalidFormat, NotFuture
from planning.month_state import MonthState, PlanningSlot, resolve_month_state
from planning.planning_store import PlanningStore

logger = logging.getLogger("planning_backend")


def dialect_insert(session: Session):
    """
    INSERT construct with ON CONFLICT support for the bound dialect,
    or None when the dialect has none.
    """
    name = session.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def insert_open_month_if_absent(session: Session, values: Dict[str, Any]) -> bool:
    """
    Create the (user_id, month) row unless it exists. Returns True when a row
    was created. A concurrent insert of the same key resolves to False.
    Caller commits.
    """
    insert = dialect_insert(session)
    if insert is not None:
        stmt = (
            insert(OpenMonth.__table__)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["user_id", "month"])
        )
        result = session.execute(stmt)
        return (result.rowcount or 0) > 0

    exists = (
        session.query(OpenMonth.id)
        .filter(OpenMonth.user_id == values["user_id"], OpenMonth.month == values["month"])
        .first()
    )
    if exists:
        return False
    try:
        with session.begin_nested():
            session.add(OpenMonth(**values))
        return True
    except IntegrityError:
        return False


class OpenMonthRegistry:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: Optional[PlanningStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.SessionFactory = session_factory
        self.store = store or PlanningStore(session_factory)
        self.clock = clock or SYSTEM_CLOCK

    def open_month(self, user_id: str, month: str) -> Dict[str, Any]:
        """
        Unlock one future month for one user. Repeating the call is a no-op success.
        """
        if not is_valid_month(month):
            raise InvalidFormat(f"Invalid month token: {month!r}. Use YYYY-MM", token=str(month))

        current = current_month(self.clock)
        if month <= current:
            raise NotFuture(
                f"Only future months can be opened (current month is {current})",
                month=month,
                current_month=current,
            )

        session = self.SessionFactory()
        try:
            created = insert_open_month_if_absent(
                session,
                {
                    "id": str(uuid4()),
                    "user_id": str(user_id),
                    "month": month,
                    "slot_state": PlanningSlot.OPEN.value,
                    "opened_at": self.clock.to_local(self.clock.now()),
                },
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if created:
            logger.info(f"open_month: user={user_id} month={month} opened")
        else:
            logger.debug(f"open_month: user={user_id} month={month} already open")

        return {
            "month": month,
            "created": created,
            "state": MonthState.FUTURE_OPEN.value,
        }

    def opened_months(self, user_id: str) -> Set[str]:
        return {row["month"] for row in self.store.list_open_months(user_id)}

    def slot_state(self, user_id: str, month: str) -> PlanningSlot:
        if not is_valid_month(month):
            raise InvalidFormat(f"Invalid month token: {month!r}. Use YYYY-MM", token=str(month))
        row = self.store.get_open_month(user_id, month)
        if row is None:
            return PlanningSlot.CLOSED
        return PlanningSlot(row["slot_state"])

    def list_months(self, user_id: str) -> Dict[str, Any]:
        rows = self.store.list_open_months(user_id)
        current = current_month(self.clock)
        opened = {r["month"] for r in rows}

        months: List[Dict[str, Any]] = []
        for r in rows:
            state = resolve_month_state(r["month"], current, opened)
            months.append(
                {
                    "month": r["month"],
                    "label": month_label(r["month"]),
                    "state": state.value,
                    "slot_state": r["slot_state"],
                    "is_read_only": state is MonthState.PAST,
                    "opened_at": r["opened_at"],
                }
            )

        # current month is implicitly open
        if current not in opened:
            months.append(
                {
                    "month": current,
                    "label": month_label(current),
                    "state": MonthState.CURRENT.value,
                    "slot_state": PlanningSlot.CLOSED.value,
                    "is_read_only": False,
                    "opened_at": None,
                }
            )

        months.sort(key=lambda m: m["month"], reverse=True)
        return {"months": months, "current_month": current}
