# planning/planning_store.py
"""
Read-only access to the planning records owned by other parts of the system
(goals, tasks, activities, meetings, users, supervisory links) plus lookups
on the open_month table.

Writes to open_month live in open_month_registry and confirmation.
"""
import datetime as dt
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from planning import settings
from planning.entities import Activity, Goal, KeyMeeting, OpenMonth, Task, User, UserCompany


def _day_range(start: dt.date, end: dt.date) -> tuple[dt.datetime, dt.datetime]:
    """[start 00:00, end+1 00:00) so every timestamp on `end` is included."""
    lo = dt.datetime(start.year, start.month, start.day)
    hi = dt.datetime(end.year, end.month, end.day) + dt.timedelta(days=1)
    return lo, hi


def _open_month_dict(row: OpenMonth) -> Dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "month": row.month,
        "slot_state": row.slot_state,
        "is_planning_confirmed": row.is_planning_confirmed,
        "opened_at": row.opened_at,
        "planning_confirmed_at": row.planning_confirmed_at,
        "ai_score": float(row.ai_score) if row.ai_score is not None else None,
    }


class PlanningStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.SessionFactory = session_factory

    # !##############################################
    # ! Goals
    # !##############################################

    def list_goals(self, user_id: str, month: str, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            query = session.query(Goal).filter(Goal.user_id == str(user_id), Goal.month == month)
            if company_id:
                query = query.filter(Goal.company_id == str(company_id))
            goals = query.order_by(Goal.created_at.asc(), Goal.id.asc()).all()

            result = []
            for goal in goals:
                completed = sum(1 for t in goal.tasks if t.status == settings.COMPLETED_TASK_STATUS)
                result.append(
                    {
                        "id": goal.id,
                        "title": goal.title,
                        "status": goal.status,
                        "task_count": max(goal.num_tasks or 0, len(goal.tasks)),
                        "completed_task_count": completed,
                        "actual_task_count": len(goal.tasks),
                        "meeting_count": len(goal.meetings),
                    }
                )
            return result
        finally:
            session.close()

    # !##############################################
    # ! Activities / meetings
    # !##############################################

    def list_by_date_range(self, user_id: str, start: dt.date, end: dt.date) -> Dict[str, List[Dict[str, Any]]]:
        lo, hi = _day_range(start, end)
        session = self.SessionFactory()
        try:
            activity_rows = (
                session.query(Activity, Task, Goal)
                .join(Task, Task.id == Activity.task_id)
                .join(Goal, Goal.id == Task.goal_id)
                .filter(
                    Goal.user_id == str(user_id),
                    Activity.date >= lo,
                    Activity.date < hi,
                )
                .order_by(Activity.date.asc(), Activity.id.asc())
                .all()
            )
            meeting_rows = (
                session.query(KeyMeeting, Goal)
                .join(Goal, Goal.id == KeyMeeting.goal_id)
                .filter(
                    Goal.user_id == str(user_id),
                    KeyMeeting.date >= lo,
                    KeyMeeting.date < hi,
                )
                .order_by(KeyMeeting.date.asc(), KeyMeeting.id.asc())
                .all()
            )

            activities = [
                {
                    "id": a.id,
                    "title": a.title,
                    "description": a.description,
                    "type": a.type,
                    "date": a.date,
                    "week": a.week,
                    "completed": bool(a.completed),
                    "notes": a.notes,
                    "task_id": t.id,
                    "task_description": t.description,
                    "goal_id": g.id,
                    "goal_title": g.title,
                }
                for (a, t, g) in activity_rows
            ]
            meetings = [
                {
                    "id": m.id,
                    "title": m.title,
                    "description": m.description,
                    "date": m.date,
                    "completed": bool(m.completed),
                    "outcome": m.outcome,
                    "goal_id": g.id,
                    "goal_title": g.title,
                }
                for (m, g) in meeting_rows
            ]
            return {"activities": activities, "meetings": meetings}
        finally:
            session.close()

    def list_tasks_with_activities(
        self,
        task_ids: Iterable[str],
        start: dt.date,
        end: dt.date,
    ) -> List[Dict[str, Any]]:
        ids = sorted({str(t) for t in task_ids})
        if not ids:
            return []

        lo, hi = _day_range(start, end)
        session = self.SessionFactory()
        try:
            rows = (
                session.query(Task, Goal)
                .join(Goal, Goal.id == Task.goal_id)
                .filter(Task.id.in_(ids))
                .order_by(Goal.title.asc(), Task.created_at.asc(), Task.id.asc())
                .all()
            )
            in_week = (
                session.query(Activity)
                .filter(
                    Activity.task_id.in_(ids),
                    Activity.date >= lo,
                    Activity.date < hi,
                )
                .order_by(Activity.date.asc(), Activity.id.asc())
                .all()
            )

            by_task: Dict[str, List[Dict[str, Any]]] = {}
            for a in in_week:
                by_task.setdefault(a.task_id, []).append(
                    {
                        "id": a.id,
                        "title": a.title,
                        "type": a.type,
                        "date": a.date,
                        "completed": bool(a.completed),
                    }
                )

            return [
                {
                    "id": t.id,
                    "description": t.description,
                    "status": t.status,
                    "progress": int(t.progress or 0),
                    "goal_id": g.id,
                    "goal_title": g.title,
                    "activities": by_task.get(t.id, []),
                }
                for (t, g) in rows
            ]
        finally:
            session.close()

    # !##############################################
    # ! Open months (reads)
    # !##############################################

    def list_open_months(self, user_id: str) -> List[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            rows = (
                session.query(OpenMonth)
                .filter(OpenMonth.user_id == str(user_id))
                .order_by(OpenMonth.month.desc())
                .all()
            )
            return [_open_month_dict(r) for r in rows]
        finally:
            session.close()

    def get_open_month(self, user_id: str, month: str) -> Optional[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            row = (
                session.query(OpenMonth)
                .filter(OpenMonth.user_id == str(user_id), OpenMonth.month == month)
                .one_or_none()
            )
            return _open_month_dict(row) if row is not None else None
        finally:
            session.close()

    # !##############################################
    # ! Users / supervision
    # !##############################################

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.id == str(user_id)).one_or_none()
            if user is None:
                return None
            return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}
        finally:
            session.close()

    def is_supervisor_of(self, viewer_id: str, owner_id: str, scope: Optional[str] = None) -> bool:
        session = self.SessionFactory()
        try:
            query = session.query(func.count(UserCompany.id)).filter(
                UserCompany.user_id == str(owner_id),
                UserCompany.supervisor_id == str(viewer_id),
            )
            if scope:
                query = query.filter(UserCompany.company_id == str(scope))
            return (query.scalar() or 0) > 0
        finally:
            session.close()

    def list_supervisees(self, supervisor_id: str, scope: Optional[str] = None) -> List[Dict[str, Any]]:
        session = self.SessionFactory()
        try:
            query = (
                session.query(User)
                .join(UserCompany, UserCompany.user_id == User.id)
                .filter(UserCompany.supervisor_id == str(supervisor_id))
            )
            if scope:
                query = query.filter(UserCompany.company_id == str(scope))
            users = query.distinct().order_by(User.name.asc(), User.id.asc()).all()
            return [{"id": u.id, "name": u.name, "email": u.email} for u in users]
        finally:
            session.close()
