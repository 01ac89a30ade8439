import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from contesso.db.enums import Platform, UserRole
from contesso.db.schemas.contest import ContestUpsert
from contesso.db.schemas.user import UserRead
from contesso.contests.sources.base import RawContest

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

URLS = {
    Platform.CODEFORCES: "https://codeforces.com/contest/{}",
    Platform.CODECHEF: "https://www.codechef.com/{}",
    Platform.LEETCODE: "https://leetcode.com/contest/{}",
}


def make_contest(
    cid: str = "cf:1",
    *,
    name: str = "Codeforces Round 1",
    start: datetime = T0 + timedelta(hours=1),
    end: Optional[datetime] = None,
    solution_link: Optional[str] = None,
) -> ContestUpsert:
    prefix, native = cid.split(":", 1)
    platform = next(p for p in Platform if p.prefix == prefix)
    end = end or start + timedelta(hours=2)
    return ContestUpsert(
        id=cid,
        name=name,
        platform=platform,
        start_time=start,
        end_time=end,
        duration=int((end - start).total_seconds()),
        url=URLS[platform].format(native),
        solution_link=solution_link,
    )


def make_raw(
    platform: Platform = Platform.CODEFORCES,
    native_id: str = "1",
    *,
    name: str = "Codeforces Round 1",
    start: datetime = T0 + timedelta(hours=1),
    hours: float = 2,
) -> RawContest:
    return RawContest(
        platform=platform,
        native_id=native_id,
        name=name,
        start_time=start,
        end_time=start + timedelta(hours=hours),
        url=URLS[platform].format(native_id),
    )


def make_user(role: UserRole = UserRole.USER, tg_id: int = 1001, tg_username: str = "alice") -> UserRead:
    return UserRead(id=uuid.uuid4(), tg_id=tg_id, tg_username=tg_username, full_name="Alice", role=role)
