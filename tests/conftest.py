import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import pytest

from contesso.config import Settings
from contesso.db.enums import Platform
from contesso.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from contesso.db.schemas.contest import ContestRead, ContestUpsert
from contesso.db.schemas.playlist import PlaylistRead
from contesso.db.schemas.user import UserCreate, UserRead, UserUpdate
from contesso.exceptions import StoreUnavailable
from contesso.contests.sources.base import RawContest, SourceAdapter
from contesso.utils.sentinels import MISSING
from contesso.bot.services.audit_log import audit_logger
from contesso.bot.services.user import UserService
from contesso.bot.services.session import SessionService
from contesso.bot.services.bookmark import BookmarkService
from contesso.bot.services.contest import ContestService
from contesso.bot.services.playlist import PlaylistService


class FakeDataBase:
    """In-memory stand-in for the DataBase facade with the same upsert rules."""

    def __init__(self) -> None:
        self.contests: dict[str, ContestRead] = {}
        self.bookmarks: set[tuple[uuid.UUID, str]] = set()
        self.users: dict[uuid.UUID, UserRead] = {}
        self.playlists: dict[tuple[Platform, str], PlaylistRead] = {}
        self.audit: list[AuditLogRead] = []
        self.available = True
        self.audit_available = True
        self.upserts = 0

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("connection refused")

    # ---------- contests ----------
    async def get_contest(self, contest_id: str) -> Optional[ContestRead]:
        self._check()
        return self.contests.get(contest_id)

    async def get_contests_by_ids(self, contest_ids: Iterable[str]) -> dict[str, ContestRead]:
        self._check()
        return {cid: self.contests[cid] for cid in set(contest_ids) if cid in self.contests}

    async def list_contests(self, *, platforms=None) -> list[ContestRead]:
        self._check()
        wanted = set(platforms) if platforms is not None else None
        rows = [c for c in self.contests.values() if wanted is None or c.platform in wanted]
        return sorted(rows, key=lambda c: (c.start_time, c.id))

    async def next_upcoming_contest(self, now: datetime) -> Optional[ContestRead]:
        self._check()
        upcoming = [c for c in self.contests.values() if c.start_time >= now]
        return min(upcoming, key=lambda c: (c.start_time, c.id), default=None)

    async def list_past_contests(self, now, *, platform=None, without_solution=False, limit=None) -> list[ContestRead]:
        self._check()
        rows = [
            c for c in self.contests.values()
            if c.end_time < now
            and (platform is None or c.platform == platform)
            and (not without_solution or c.solution_link is None)
        ]
        rows.sort(key=lambda c: c.id)
        rows.sort(key=lambda c: c.end_time, reverse=True)
        return rows[:limit] if limit is not None else rows

    async def upsert_contests(self, items: Iterable[ContestUpsert], *, fetched_at: datetime) -> int:
        self._check()
        self.upserts += 1
        written = 0
        for c in items:
            current = self.contests.get(c.id)
            if current is None:
                self.contests[c.id] = ContestRead(**c.model_dump(), fetched_at=fetched_at)
                written += 1
                continue
            if current.fetched_at is not None and current.fetched_at > fetched_at:
                continue
            data = c.model_dump()
            data["solution_link"] = current.solution_link
            self.contests[c.id] = ContestRead(**data, fetched_at=fetched_at)
            written += 1
        return written

    async def set_solution_link(self, contest_id: str, link: Optional[str]) -> ContestRead:
        self._check()
        current = self.contests.get(contest_id)
        if current is None:
            raise LookupError("Contest not found.")
        updated = current.model_copy(update={"solution_link": link})
        self.contests[contest_id] = updated
        return updated

    async def set_solution_link_if_missing(self, contest_id: str, link: str) -> Optional[ContestRead]:
        self._check()
        current = self.contests.get(contest_id)
        if current is None or current.solution_link is not None:
            return None
        return await self.set_solution_link(contest_id, link)

    # ---------- bookmarks ----------
    async def add_bookmark(self, user_id: uuid.UUID, contest_id: str) -> bool:
        self._check()
        if (user_id, contest_id) in self.bookmarks:
            return False
        self.bookmarks.add((user_id, contest_id))
        return True

    async def remove_bookmark(self, user_id: uuid.UUID, contest_id: str) -> bool:
        self._check()
        if (user_id, contest_id) not in self.bookmarks:
            return False
        self.bookmarks.discard((user_id, contest_id))
        return True

    async def list_bookmarked_ids(self, user_id: uuid.UUID) -> set[str]:
        self._check()
        return {cid for uid, cid in self.bookmarks if uid == user_id}

    async def list_bookmarked_contests(self, user_id: uuid.UUID) -> list[ContestRead]:
        ids = await self.list_bookmarked_ids(user_id)
        return sorted((self.contests[i] for i in ids if i in self.contests), key=lambda c: (c.start_time, c.id))

    async def count_bookmarks(self, user_id: uuid.UUID) -> int:
        return len(await self.list_bookmarked_ids(user_id))

    # ---------- users ----------
    async def create_user(self, data: UserCreate) -> UserRead:
        self._check()
        user = UserRead(id=uuid.uuid4(), **data.model_dump(exclude={"id"}))
        self.users[user.id] = user
        return user

    async def get_user_by_tg_id(self, tg_id: Optional[int] = None) -> Optional[UserRead]:
        self._check()
        return next((u for u in self.users.values() if u.tg_id == tg_id), None)

    async def update_user(self, data: UserUpdate) -> UserRead:
        self._check()
        current = self.users.get(data.id)
        if current is None:
            raise LookupError("User not found.")
        changes = {
            k: getattr(data, k) for k in data.model_fields_set
            if k != "id" and getattr(data, k) is not MISSING
        }
        if isinstance(changes.get("tg_username"), str):
            changes["tg_username"] = changes["tg_username"].lstrip("@")
        updated = current.model_copy(update=changes)
        self.users[updated.id] = updated
        return updated

    # ---------- playlists ----------
    async def upsert_playlist(self, platform: Platform, playlist_id: str, last_synced_at: datetime) -> PlaylistRead:
        self._check()
        current = self.playlists.get((platform, playlist_id))
        if current is None:
            current = PlaylistRead(id=uuid.uuid4(), platform=platform, playlist_id=playlist_id)
        current = current.model_copy(update={"last_synced_at": last_synced_at})
        self.playlists[(platform, playlist_id)] = current
        return current

    # ---------- audit ----------
    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        if not self.audit_available:
            raise StoreUnavailable("audit table unreachable")
        entry = AuditLogRead(id=uuid.uuid4(), created_at=datetime.now(timezone.utc), **payload.model_dump())
        self.audit.append(entry)
        return entry

    def actions(self) -> list[str]:
        return [a.action for a in self.audit]


class FakeResponse:
    def __init__(self, payload: Any = None, status: int = 200) -> None:
        self.payload = payload
        self.status = status

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


class FakeHttpSession:
    """Routes ``get``/``post`` by URL to a FakeResponse, an exception, or a callable of the request kwargs."""

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._respond("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._respond("POST", url, kwargs)

    def _respond(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        entry = self.routes[url]
        if callable(entry) and not isinstance(entry, FakeResponse):
            entry = entry(kwargs)
        if isinstance(entry, Exception):
            raise entry
        return entry


class StaticAdapter(SourceAdapter):
    """Adapter over in-memory RawContest records; optionally fails, sleeps or waits on a gate."""

    def __init__(
        self,
        platform: Platform,
        records: Optional[list[RawContest]] = None,
        *,
        error: Optional[Exception] = None,
        delay: float = 0,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        super().__init__(f"memory://{platform.prefix}")
        self.platform = platform
        self.records = records or []
        self.error = error
        self.delay = delay
        self.gate = gate

    async def fetch(self, session) -> Any:
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)

    def iter_entries(self, payload: Any):
        yield from payload

    def translate(self, entry: Any) -> RawContest:
        return entry


@pytest.fixture()
def fake_db(monkeypatch) -> FakeDataBase:
    db = FakeDataBase()
    for cls in (UserService, SessionService, BookmarkService, ContestService, PlaylistService):
        monkeypatch.setattr(cls, "_instance", None)
    monkeypatch.setattr(audit_logger, "_database", db)

    UserService(database=db)
    BookmarkService(database=db)
    ContestService(database=db)
    PlaylistService(database=db)
    SessionService()
    return db


@pytest.fixture()
def settings(monkeypatch) -> Settings:
    s = Settings()
    monkeypatch.setattr(s, "admins", {"boss"})
    monkeypatch.setattr(s, "youtube_api_key", "test-key")
    monkeypatch.setattr(s, "source_timeout_seconds", 1.0)
    return s


@pytest.fixture()
def run() -> Callable:
    return asyncio.run
