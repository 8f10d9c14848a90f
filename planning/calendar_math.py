# planning/calendar_math.py
"""
Pure conversions between month tokens (YYYY-MM), ISO week tokens (YYYY-Wnn)
and calendar dates (YYYY-MM-DD).

Nothing here touches the store. "Now" is only read through a Clock, which
defaults to SYSTEM_CLOCK.
"""
from __future__ import annotations

import calendar
import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from planning.clock import SYSTEM_CLOCK, Clock
from planning.errors import InvalidFormat

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

MIN_YEAR = dt.MINYEAR
MAX_YEAR = dt.MAXYEAR


@dataclass(frozen=True)
class DayMeta:
    date: dt.date
    day_of_month: int
    is_current_month: bool
    is_today: bool

    @property
    def token(self) -> str:
        return format_date(self.date)


@dataclass(frozen=True)
class WeekInfo:
    week: str
    start_date: dt.date
    end_date: dt.date
    days: List[dt.date] = field(default_factory=list)


# -----------------------
# Tokens
# -----------------------

def _clock(clock: Optional[Clock]) -> Clock:
    return clock or SYSTEM_CLOCK


def _shift(d: dt.date, days: int, token: str) -> dt.date:
    try:
        return d + dt.timedelta(days=days)
    except OverflowError as ex:
        raise InvalidFormat(f"{token} runs past the supported calendar range", token=token) from ex


def _month_parts(value) -> Optional[Tuple[int, int]]:
    if not isinstance(value, str):
        return None
    m = _MONTH_RE.match(value)
    if not m:
        return None
    year = int(m.group(1))
    # year 0000 has no calendar dates
    if year < 1:
        return None
    return year, int(m.group(2))


def is_valid_month(value) -> bool:
    return _month_parts(value) is not None


def parse_month(value) -> Tuple[int, int]:
    parts = _month_parts(value)
    if parts is None:
        raise InvalidFormat(f"Invalid month token: {value!r}. Use YYYY-MM", token=str(value))
    return parts


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_date(value) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise InvalidFormat(f"Invalid date token: {value!r}. Use YYYY-MM-DD", token=str(value))
    try:
        return dt.date.fromisoformat(value)
    except ValueError as ex:
        raise InvalidFormat(f"Invalid date token: {value!r}", token=value) from ex


def format_date(d: dt.date) -> str:
    return d.isoformat()


def iso_weeks_in_year(year: int) -> int:
    # Dec 28 always falls in the last ISO week of its year.
    return dt.date(year, 12, 28).isocalendar()[1]


def parse_week(value) -> Tuple[int, int]:
    if not isinstance(value, str):
        raise InvalidFormat(f"Invalid week token: {value!r}. Use YYYY-Wnn", token=str(value))
    m = _WEEK_RE.match(value)
    if not m:
        raise InvalidFormat(f"Invalid week token: {value!r}. Use YYYY-Wnn", token=value)
    year, week = int(m.group(1)), int(m.group(2))
    if year < 1 or week < 1 or week > iso_weeks_in_year(year):
        raise InvalidFormat(f"Week {week:02d} does not exist in ISO year {year}", token=value)
    return year, week


def format_week(year: int, week: int) -> str:
    return f"{year:04d}-W{week:02d}"


# -----------------------
# Month arithmetic
# -----------------------

def current_month(clock: Optional[Clock] = None) -> str:
    today = _clock(clock).today()
    return format_month(today.year, today.month)


def next_month(month: Optional[str] = None, clock: Optional[Clock] = None) -> str:
    """Month after `month`, or after the current month when `month` is None."""
    if month is None:
        month = current_month(clock)
    year, num = parse_month(month)
    if num == 12:
        if year == MAX_YEAR:
            raise InvalidFormat(f"No month after {month}", token=month)
        return format_month(year + 1, 1)
    return format_month(year, num + 1)


def previous_month(month: str) -> str:
    year, num = parse_month(month)
    if num == 1:
        if year == MIN_YEAR:
            raise InvalidFormat(f"No month before {month}", token=month)
        return format_month(year - 1, 12)
    return format_month(year, num - 1)


def compare_months(a: str, b: str) -> int:
    # Fixed-width zero-padded tokens: string order == chronological order.
    parse_month(a)
    parse_month(b)
    if a == b:
        return 0
    return -1 if a < b else 1


def month_bounds(month: str) -> Tuple[dt.date, dt.date]:
    year, num = parse_month(month)
    last = calendar.monthrange(year, num)[1]
    return dt.date(year, num, 1), dt.date(year, num, last)


def month_of_date(value) -> str:
    d = parse_date(value)
    return format_month(d.year, d.month)


# -----------------------
# ISO weeks
# -----------------------

def week_of_date(value) -> str:
    d = parse_date(value)
    iso_year, iso_week, _ = d.isocalendar()
    return format_week(iso_year, iso_week)


def week_start(value) -> dt.date:
    """Monday on or before the given date."""
    d = parse_date(value)
    return d - dt.timedelta(days=d.weekday())


def days_of_week(week: str) -> List[dt.date]:
    year, num = parse_week(week)
    monday = dt.date.fromisocalendar(year, num, 1)
    return [_shift(monday, i, week) for i in range(7)]


def month_of_week(week: str) -> str:
    """Month containing the week's Thursday."""
    year, num = parse_week(week)
    thursday = dt.date.fromisocalendar(year, num, 4)
    return format_month(thursday.year, thursday.month)


def current_week(clock: Optional[Clock] = None) -> str:
    return week_of_date(_clock(clock).today())


# -----------------------
# Today
# -----------------------

def today_token(clock: Optional[Clock] = None) -> str:
    return format_date(_clock(clock).today())


def is_today(value, clock: Optional[Clock] = None) -> bool:
    try:
        return parse_date(value) == _clock(clock).today()
    except InvalidFormat:
        return False


# -----------------------
# Grid
# -----------------------

def calendar_grid(month: str, clock: Optional[Clock] = None) -> List[DayMeta]:
    """
    Every date from the Monday on/before the 1st through the Sunday on/after
    the last day of the month. Length is always a multiple of 7.
    """
    first, last = month_bounds(month)
    today = _clock(clock).today()
    start = week_start(first)
    end = _shift(last, 6 - last.weekday(), month)

    days: List[DayMeta] = []
    cursor = start
    while cursor <= end:
        days.append(
            DayMeta(
                date=cursor,
                day_of_month=cursor.day,
                is_current_month=(cursor.month == first.month and cursor.year == first.year),
                is_today=(cursor == today),
            )
        )
        cursor += dt.timedelta(days=1)
    return days


def weeks_in_month(month: str) -> List[WeekInfo]:
    first, last = month_bounds(month)
    weeks: List[WeekInfo] = []
    monday = week_start(first)
    while monday <= last:
        days = [_shift(monday, i, month) for i in range(7)]
        weeks.append(
            WeekInfo(
                week=week_of_date(monday),
                start_date=days[0],
                end_date=days[-1],
                days=days,
            )
        )
        if days[-1] >= last:
            break
        monday = days[-1] + dt.timedelta(days=1)
    return weeks


# -----------------------
# Labels
# -----------------------

def month_label(month: str) -> str:
    year, num = parse_month(month)
    return f"{calendar.month_name[num]} {year}"


def month_label_short(month: str) -> str:
    year, num = parse_month(month)
    return f"{calendar.month_abbr[num]} {year}"


def week_label(week: str) -> str:
    days = days_of_week(week)
    start, end = days[0], days[-1]
    start_s = f"{calendar.month_abbr[start.month]} {start.day}"
    end_s = f"{calendar.month_abbr[end.month]} {end.day}"
    if start.year != end.year:
        return f"{start_s}, {start.year} - {end_s}, {end.year}"
    return f"{start_s} - {end_s}, {end.year}"


def date_label(value) -> str:
    d = parse_date(value)
    return f"{calendar.day_name[d.weekday()]}, {calendar.month_name[d.month]} {d.day}, {d.year}"


def month_options(count: int = 12, start: Optional[str] = None, clock: Optional[Clock] = None) -> List[Dict[str, str]]:
    month = start if start is not None else current_month(clock)
    parse_month(month)
    options = []
    for i in range(max(0, count)):
        if i:
            month = next_month(month)
        options.append({"value": month, "label": month_label(month)})
    return options
