import datetime as dt
from typing import Callable, Optional

from sqlalchemy.orm import Session

from planning.clock import FixedClock
from planning.db_connection import Connection
from planning.entities import Activity, Goal, KeyMeeting, Task, User, UserCompany

# Sunday, mid-February: grid, week and year edges are all close by.
TODAY = "2026-02-15"


def fixed_clock(moment=TODAY, tz=None) -> FixedClock:
    return FixedClock(moment, tz)


def memory_session_factory() -> Callable[[], Session]:
    """Fresh in-memory SQLite database per call."""
    connection = Connection("sqlite://")
    connection.create_all()
    return connection.build_db_session_factory()


def _add(session_factory, obj) -> str:
    session = session_factory()
    try:
        session.add(obj)
        session.commit()
        return obj.id
    finally:
        session.close()


def seed_user(session_factory, name: str, role: str = "USER", user_id: Optional[str] = None) -> str:
    return _add(
        session_factory,
        User(id=user_id or name, name=name, email=f"{name}@example.com", role=role),
    )


def link_supervisor(session_factory, user_id: str, supervisor_id: str, company_id: str = "acme") -> str:
    return _add(
        session_factory,
        UserCompany(user_id=user_id, supervisor_id=supervisor_id, company_id=company_id),
    )


def seed_goal(
    session_factory,
    user_id: str,
    month: str,
    title: str = "Goal",
    status: str = "CREATED",
    num_tasks: int = 0,
    company_id: Optional[str] = None,
) -> str:
    return _add(
        session_factory,
        Goal(
            user_id=user_id,
            company_id=company_id,
            month=month,
            title=title,
            status=status,
            num_tasks=num_tasks,
        ),
    )


def set_goal_status(session_factory, goal_id: str, status: str) -> None:
    session = session_factory()
    try:
        session.query(Goal).filter(Goal.id == goal_id).update({"status": status})
        session.commit()
    finally:
        session.close()


def seed_task(
    session_factory,
    goal_id: str,
    description: str = "Task",
    status: str = "PENDING",
    progress: int = 0,
) -> str:
    return _add(
        session_factory,
        Task(goal_id=goal_id, description=description, status=status, progress=progress),
    )


def seed_activity(
    session_factory,
    task_id: str,
    title: str,
    when: dt.datetime,
    completed: bool = False,
    type: str = "DAILY",
) -> str:
    return _add(
        session_factory,
        Activity(task_id=task_id, title=title, date=when, completed=completed, type=type),
    )


def seed_meeting(session_factory, goal_id: str, title: str, when: dt.datetime, completed: bool = False) -> str:
    return _add(
        session_factory,
        KeyMeeting(goal_id=goal_id, title=title, date=when, completed=completed),
    )
