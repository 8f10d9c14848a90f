# planning/view_models.py
"""
Calendar view models. Recomputed on every read, never persisted.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from planning.month_state import MonthState


class ActivitySummary(BaseModel):
    id: str
    title: str
    completed: bool
    type: str
    time: str = Field(..., description="HH:MM wall-clock time, kept for within-day ordering")
    task_id: str
    task_description: str
    goal_title: str


class MeetingSummary(BaseModel):
    id: str
    title: str
    completed: bool
    time: str
    goal_id: str
    goal_title: str


class DayCell(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    day_of_month: int = Field(..., ge=1, le=31)
    is_today: bool
    is_current_month: bool
    activities: List[ActivitySummary] = Field(default_factory=list)
    meetings: List[MeetingSummary] = Field(default_factory=list)


class GoalSummary(BaseModel):
    id: str
    title: str
    status: str
    task_count: int
    completed_task_count: int
    completion_ratio: float = Field(..., ge=0.0)


class MonthView(BaseModel):
    month: str
    label: str
    state: MonthState
    days: List[DayCell]
    goals: List[GoalSummary]
    open_months: List[str]


class WeekActivity(BaseModel):
    id: str
    title: str
    type: str
    date: str
    completed: bool


class TaskWithActivities(BaseModel):
    id: str
    description: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    goal_id: str
    goal_title: str
    activities: List[WeekActivity] = Field(default_factory=list)
    total_activities: int
    completed_activities: int


class WeekView(BaseModel):
    week: str
    month: str
    label: str
    state: MonthState
    days: List[DayCell]
    tasks: List[TaskWithActivities]


class ActivityDetail(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    type: str
    date: datetime
    week: Optional[str] = None
    completed: bool
    notes: Optional[str] = None
    task_id: str
    task_description: str
    goal_id: str
    goal_title: str


class MeetingDetail(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    date: datetime
    completed: bool
    outcome: Optional[str] = None
    goal_id: str
    goal_title: str


class DayView(BaseModel):
    date: str
    week: str
    month: str
    label: str
    state: MonthState
    activities: List[ActivityDetail]
    meetings: List[MeetingDetail]


class MonthSummary(BaseModel):
    month: str
    label: str
    state: MonthState
    is_read_only: bool
    total_goals: int
    goals_by_status: Dict[str, int]
    total_tasks: int
    completed_tasks: int
    total_meetings: int
