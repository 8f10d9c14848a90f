# planning/entities.py
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from typing import TypeAlias

from planning.month_state import PlanningSlot

UUID: TypeAlias = str
Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class User(Base, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str | None] = mapped_column(String)
    email: Mapped[str | None] = mapped_column(String, unique=True)

    # USER, SUPERVISOR, ADMIN, SUPERADMIN
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text("'USER'"),
    )


class UserCompany(Base):
    """Membership of a user in an organisational scope, with their supervisor there."""
    __tablename__ = "user_company"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[str] = mapped_column(String(36), nullable=False)
    supervisor_id: Mapped[UUID | None] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_company"),
        Index("ix_user_company_supervisor", "supervisor_id", "company_id"),
    )


class Goal(Base, TimestampMixin):
    """Monthly Big Rock."""
    __tablename__ = "goal"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[str | None] = mapped_column(String(36))
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # CREATED, CONFIRMED, IN_PROGRESS, FINISHED
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text("'CREATED'"),
    )
    num_tasks: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    tasks = relationship("Task", back_populates="goal", cascade="all, delete-orphan")
    meetings = relationship("KeyMeeting", back_populates="goal", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_goal_user_month", "user_id", "month"),
    )


class Task(Base, TimestampMixin):
    """Mid-level task (TAR) under a goal."""
    __tablename__ = "task"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    goal_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("goal.id", ondelete="CASCADE"),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # PENDING, IN_PROGRESS, COMPLETED
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text("'PENDING'"),
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    goal = relationship("Goal", back_populates="tasks")
    activities = relationship("Activity", back_populates="task", cascade="all, delete-orphan")


class Activity(Base, TimestampMixin):
    __tablename__ = "activity"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("task.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(20), nullable=False, server_default=text("'DAILY'"))

    # Wall-clock time in the planning timezone.
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    week: Mapped[str | None] = mapped_column(String(8))
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    notes: Mapped[str | None] = mapped_column(Text)

    task = relationship("Task", back_populates="activities")

    __table_args__ = (
        Index("ix_activity_task_date", "task_id", "date"),
    )


class KeyMeeting(Base, TimestampMixin):
    __tablename__ = "key_meeting"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    goal_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("goal.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    outcome: Mapped[str | None] = mapped_column(Text)

    goal = relationship("Goal", back_populates="meetings")


class OpenMonth(Base):
    """
    Planning slot of one user for one month.

    Row absent -> CLOSED. Row present -> OPEN or CONFIRMED (slot_state).
    Only the registry and the confirmation state machine write here.
    """
    __tablename__ = "open_month"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[UUID] = mapped_column(String(36), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)

    slot_state: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
        default=PlanningSlot.OPEN.value,
    )
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    planning_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False))
    ai_score: Mapped[float | None] = mapped_column(Numeric(5, 2))

    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_open_month_user_month"),
        Index("ix_open_month_user_id", "user_id"),
    )

    @property
    def is_planning_confirmed(self) -> bool:
        return self.slot_state == PlanningSlot.CONFIRMED.value
