# planning/clock.py
from __future__ import annotations

import datetime as dt
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from typing import Optional

from planning.settings import PLANNING_TZ

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def normalize_tz_name(name: Optional[str]) -> str:
    """Normalize a timezone identifier.

    Supported forms:
      - None/"" -> "UTC"
      - "local" / "system" -> "local" (the machine's timezone)
      - "UTC" / "Z" / "GMT" -> "UTC"
      - IANA names, e.g. "Europe/Madrid"
      - Fixed offsets: "+02:00", "+0200", "-05:00"
    """
    if name is None:
        return "UTC"
    s = str(name).strip()
    if not s:
        return "UTC"

    low = s.lower()
    if low in {"local", "system"}:
        return "local"
    if low in {"utc", "z", "gmt"}:
        return "UTC"
    return s


def resolve_tz(name: Optional[str]) -> dt.tzinfo:
    """Resolve a timezone name into a tzinfo. Raises ValueError for unknown names."""
    tz_name = normalize_tz_name(name)

    if tz_name == "UTC":
        return dt.timezone.utc

    if tz_name == "local":
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc

    m = _OFFSET_RE.match(tz_name)
    if m:
        sign_s, hh_s, mm_s = m.groups()
        hh = int(hh_s)
        mm = int(mm_s)
        if hh > 23 or mm > 59:
            raise ValueError(f"Invalid timezone offset: {tz_name!r}")
        sign = 1 if sign_s == "+" else -1
        return dt.timezone(dt.timedelta(minutes=sign * (hh * 60 + mm)))

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as ex:
        raise ValueError(f"Invalid timezone identifier: {tz_name!r}") from ex


class Clock:
    """Wall clock pinned to the planning timezone."""

    def __init__(self, tz: dt.tzinfo | str | None = None) -> None:
        self.tz = tz if isinstance(tz, dt.tzinfo) else resolve_tz(tz)

    def now(self) -> dt.datetime:
        return dt.datetime.now(tz=self.tz)

    def today(self) -> dt.date:
        return self.now().date()

    def to_local(self, ts: dt.datetime) -> dt.datetime:
        """
        Naive wall-clock datetime in the planning timezone.
        Naive input is assumed to already be planning-local.
        """
        if ts.tzinfo is None:
            return ts
        return ts.astimezone(self.tz).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock frozen at a given moment."""

    def __init__(self, moment: dt.datetime | dt.date | str, tz: dt.tzinfo | str | None = None) -> None:
        super().__init__(tz)
        if isinstance(moment, str):
            moment = dt.datetime.fromisoformat(moment)
        if not isinstance(moment, dt.datetime):
            moment = dt.datetime(moment.year, moment.month, moment.day, 12, 0, 0)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self.tz)
        self.moment = moment

    def now(self) -> dt.datetime:
        return self.moment.astimezone(self.tz)

    def advance(self, **kwargs) -> None:
        self.moment = self.moment + dt.timedelta(**kwargs)


SYSTEM_CLOCK = Clock(PLANNING_TZ)
