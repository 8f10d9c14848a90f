# planning/month_state.py
from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from planning.calendar_math import current_month, parse_month
from planning.clock import Clock


class MonthState(str, Enum):
    PAST = "past"
    CURRENT = "current"
    FUTURE_OPEN = "future-open"
    FUTURE_LOCKED = "future-locked"


class PlanningSlot(str, Enum):
    """Explicit per-(user, month) state. CLOSED means no OpenMonth row."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    CONFIRMED = "CONFIRMED"


def resolve_month_state(target: str, current: str, opened_months: Iterable[str]) -> MonthState:
    parse_month(target)
    parse_month(current)
    if target < current:
        return MonthState.PAST
    if target == current:
        return MonthState.CURRENT
    if target in set(opened_months or ()):
        return MonthState.FUTURE_OPEN
    return MonthState.FUTURE_LOCKED


def month_state(target: str, opened_months: Iterable[str] = (), clock: Optional[Clock] = None) -> MonthState:
    return resolve_month_state(target, current_month(clock), opened_months)


def is_month_editable(month: str, opened_months: Iterable[str] = (), clock: Optional[Clock] = None) -> bool:
    return month_state(month, opened_months, clock) in (MonthState.CURRENT, MonthState.FUTURE_OPEN)


def is_month_read_only(month: str, clock: Optional[Clock] = None) -> bool:
    return month_state(month, (), clock) is MonthState.PAST
