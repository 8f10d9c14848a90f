# planning/calendar_aggregator.py
"""
Month / week / day view models for one owner.

Child records (activities, meetings) are bucketed under the calendar date of
their timestamp in the planning timezone. Time-of-day is dropped for the
bucket key and kept for ordering inside a day. Every view carries the
owning month's MonthState so callers can pick read-only or editable
affordances without another call.
"""
import datetime as dt
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from planning.calendar_math import (
    calendar_grid,
    date_label,
    days_of_week,
    format_date,
    month_bounds,
    month_label,
    month_of_date,
    month_of_week,
    parse_date,
    parse_month,
    week_label,
    week_of_date,
)
from planning.clock import SYSTEM_CLOCK, Clock
from planning.month_state import MonthState, month_state
from planning.planning_store import PlanningStore
from planning.view_models import (
    ActivityDetail,
    ActivitySummary,
    DayCell,
    DayView,
    GoalSummary,
    MeetingDetail,
    MeetingSummary,
    MonthSummary,
    MonthView,
    TaskWithActivities,
    WeekActivity,
    WeekView,
)

logger = logging.getLogger("planning_backend")


class CalendarAggregator:
    def __init__(self, store: PlanningStore, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.clock = clock or SYSTEM_CLOCK

    # -----------------------
    # Helpers
    # -----------------------

    def _opened(self, user_id: str) -> List[str]:
        return sorted(r["month"] for r in self.store.list_open_months(user_id))

    def _state(self, month: str, opened: Iterable[str]) -> MonthState:
        return month_state(month, opened, self.clock)

    def _bucket(self, items: List[Dict[str, Any]]) -> Dict[str, List[Tuple[dt.datetime, Dict[str, Any]]]]:
        """date token -> [(local timestamp, item)] ordered by timestamp."""
        buckets: Dict[str, List[Tuple[dt.datetime, Dict[str, Any]]]] = {}
        for item in items:
            local = self.clock.to_local(item["date"])
            buckets.setdefault(format_date(local.date()), []).append((local, item))
        for entries in buckets.values():
            entries.sort(key=lambda e: (e[0], e[1]["id"]))
        return buckets

    def _in_months(self, items: List[Dict[str, Any]], months: Optional[Set[str]]) -> List[Dict[str, Any]]:
        """Drop items whose local date falls outside `months` (None keeps everything)."""
        if months is None:
            return items
        return [i for i in items if month_of_date(self.clock.to_local(i["date"])) in months]

    def _activity_summary(self, local: dt.datetime, a: Dict[str, Any]) -> ActivitySummary:
        return ActivitySummary(
            id=a["id"],
            title=a["title"],
            completed=a["completed"],
            type=a["type"],
            time=local.strftime("%H:%M"),
            task_id=a["task_id"],
            task_description=a["task_description"],
            goal_title=a["goal_title"],
        )

    def _meeting_summary(self, local: dt.datetime, m: Dict[str, Any]) -> MeetingSummary:
        return MeetingSummary(
            id=m["id"],
            title=m["title"],
            completed=m["completed"],
            time=local.strftime("%H:%M"),
            goal_id=m["goal_id"],
            goal_title=m["goal_title"],
        )

    def _day_cells(
        self,
        dates: List[dt.date],
        owning_month: str,
        data: Dict[str, List[Dict[str, Any]]],
    ) -> List[DayCell]:
        activity_map = self._bucket(data["activities"])
        meeting_map = self._bucket(data["meetings"])
        today = self.clock.today()

        cells = []
        for d in dates:
            key = format_date(d)
            cells.append(
                DayCell(
                    date=key,
                    day_of_month=d.day,
                    is_today=(d == today),
                    is_current_month=(month_of_date(d) == owning_month),
                    activities=[self._activity_summary(t, a) for (t, a) in activity_map.get(key, [])],
                    meetings=[self._meeting_summary(t, m) for (t, m) in meeting_map.get(key, [])],
                )
            )
        return cells

    # -----------------------
    # Views
    # -----------------------

    def month_view(self, user_id: str, month: str) -> MonthView:
        parse_month(month)
        opened = self._opened(user_id)

        grid = calendar_grid(month, self.clock)
        dates = [d.date for d in grid]
        # padding days stay empty: they belong to other months
        first, last = month_bounds(month)
        data = self.store.list_by_date_range(user_id, first, last)

        goals = []
        for g in self.store.list_goals(user_id, month):
            total = g["task_count"]
            done = g["completed_task_count"]
            goals.append(
                GoalSummary(
                    id=g["id"],
                    title=g["title"],
                    status=g["status"],
                    task_count=total,
                    completed_task_count=done,
                    completion_ratio=(done / total) if total else 0.0,
                )
            )

        return MonthView(
            month=month,
            label=month_label(month),
            state=self._state(month, opened),
            days=self._day_cells(dates, month, data),
            goals=goals,
            open_months=opened,
        )

    def week_view(self, user_id: str, week: str, visible_months: Optional[Iterable[str]] = None) -> WeekView:
        """
        `visible_months` restricts which days are populated. A week can span
        two months and each is shown only if listed; None shows every day.
        """
        dates = days_of_week(week)
        month = month_of_week(week)
        opened = self._opened(user_id)
        visible = set(visible_months) if visible_months is not None else None

        raw = self.store.list_by_date_range(user_id, dates[0], dates[-1])
        data = {key: self._in_months(items, visible) for key, items in raw.items()}

        # distinct tasks touched this week, in first-touch order
        task_ids: List[str] = []
        for a in data["activities"]:
            if a["task_id"] not in task_ids:
                task_ids.append(a["task_id"])

        tasks = []
        for t in self.store.list_tasks_with_activities(task_ids, dates[0], dates[-1]):
            activities = [
                WeekActivity(
                    id=a["id"],
                    title=a["title"],
                    type=a["type"],
                    date=format_date(self.clock.to_local(a["date"]).date()),
                    completed=a["completed"],
                )
                for a in self._in_months(t["activities"], visible)
            ]
            tasks.append(
                TaskWithActivities(
                    id=t["id"],
                    description=t["description"],
                    status=t["status"],
                    progress=max(0, min(100, t["progress"])),
                    goal_id=t["goal_id"],
                    goal_title=t["goal_title"],
                    activities=activities,
                    total_activities=len(activities),
                    completed_activities=sum(1 for a in activities if a.completed),
                )
            )

        return WeekView(
            week=week,
            month=month,
            label=week_label(week),
            state=self._state(month, opened),
            days=self._day_cells(dates, month, data),
            tasks=tasks,
        )

    def day_view(self, user_id: str, date) -> DayView:
        d = parse_date(date)
        token = format_date(d)
        month = month_of_date(d)
        opened = self._opened(user_id)

        data = self.store.list_by_date_range(user_id, d, d)
        activity_map = self._bucket(data["activities"])
        meeting_map = self._bucket(data["meetings"])

        activities = [
            ActivityDetail(
                id=a["id"],
                title=a["title"],
                description=a.get("description"),
                type=a["type"],
                date=local,
                week=a.get("week"),
                completed=a["completed"],
                notes=a.get("notes"),
                task_id=a["task_id"],
                task_description=a["task_description"],
                goal_id=a["goal_id"],
                goal_title=a["goal_title"],
            )
            for (local, a) in activity_map.get(token, [])
        ]
        meetings = [
            MeetingDetail(
                id=m["id"],
                title=m["title"],
                description=m.get("description"),
                date=local,
                completed=m["completed"],
                outcome=m.get("outcome"),
                goal_id=m["goal_id"],
                goal_title=m["goal_title"],
            )
            for (local, m) in meeting_map.get(token, [])
        ]

        return DayView(
            date=token,
            week=week_of_date(d),
            month=month,
            label=date_label(d),
            state=self._state(month, opened),
            activities=activities,
            meetings=meetings,
        )

    def month_summary(self, user_id: str, month: str) -> MonthSummary:
        parse_month(month)
        opened = self._opened(user_id)
        state = self._state(month, opened)
        goals = self.store.list_goals(user_id, month)

        by_status = Counter(g["status"] for g in goals)
        return MonthSummary(
            month=month,
            label=month_label(month),
            state=state,
            is_read_only=state is MonthState.PAST,
            total_goals=len(goals),
            goals_by_status=dict(by_status),
            total_tasks=sum(g.get("actual_task_count", 0) for g in goals),
            completed_tasks=sum(g["completed_task_count"] for g in goals),
            total_meetings=sum(g.get("meeting_count", 0) for g in goals),
        )
