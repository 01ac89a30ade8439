# contests/status.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Protocol, TypeVar

from contesso.db.enums import ContestFilter, ContestStatus, Platform


class _Timed(Protocol):
    start_time: datetime
    end_time: datetime


T = TypeVar("T", bound=_Timed)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify(contest: _Timed, now: Optional[datetime] = None) -> ContestStatus:
    """
    Temporal phase of a contest at ``now`` (wall clock if omitted).

    upcoming: now < start; ongoing: start <= now < end; past: now >= end.
    """
    now = now or utcnow()
    if now < contest.start_time:
        return ContestStatus.UPCOMING
    if now < contest.end_time:
        return ContestStatus.ONGOING
    return ContestStatus.PAST


@dataclass(slots=True, frozen=True)
class TimeRemaining:
    days: int
    hours: int
    minutes: int

    @property
    def is_zero(self) -> bool:
        return self.days == 0 and self.hours == 0 and self.minutes == 0

    def __str__(self) -> str:
        if self.days > 0:
            return f"{self.days}d {self.hours}h {self.minutes}m"
        return f"{self.hours}h {self.minutes}m"


def time_remaining(start_time: datetime, now: Optional[datetime] = None) -> TimeRemaining:
    """max(0, start - now) in whole days/hours/minutes, truncated."""
    now = now or utcnow()
    total = max(timedelta(0), start_time - now)
    seconds = int(total.total_seconds())
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    return TimeRemaining(days=days, hours=hours, minutes=rest // 60)


def filter_contests(
    contests: Iterable[T],
    *,
    platforms: Optional[Iterable[Platform]] = None,
    mode: ContestFilter = ContestFilter.ALL,
    now: Optional[datetime] = None,
) -> list[T]:
    now = now or utcnow()
    wanted = set(platforms) if platforms is not None else None
    out: list[T] = []
    for c in contests:
        if wanted is not None and getattr(c, "platform", None) not in wanted:
            continue
        if mode != ContestFilter.ALL and classify(c, now) != ContestStatus(mode.value):
            continue
        out.append(c)
    return out


def contests_on_day(contests: Iterable[T], day: date, tz: tzinfo = timezone.utc) -> list[T]:
    """Contests whose start falls on ``day`` in the given timezone (calendar view)."""
    return [c for c in contests if c.start_time.astimezone(tz).date() == day]


def next_upcoming(contests: Iterable[T], now: Optional[datetime] = None) -> Optional[T]:
    now = now or utcnow()
    upcoming = [c for c in contests if classify(c, now) == ContestStatus.UPCOMING]
    return min(upcoming, key=lambda c: c.start_time, default=None)
