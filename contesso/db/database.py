# db/database.py
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, ClassVar, Self, Any, Iterable, List

from sqlalchemy import select, func, delete, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from contesso.config import Settings
from contesso.exceptions import StoreUnavailable
from contesso.db.enums import Platform
from contesso.db.models._base import Base
from contesso.db.models.contest import Contest
from contesso.db.models.bookmark import Bookmark
from contesso.db.models.user import User
from contesso.db.models.playlist import YoutubePlaylist
from contesso.db.models.audit_log import AuditLog
from contesso.db.schemas.contest import ContestRead, ContestUpsert
from contesso.db.schemas.user import UserCreate, UserRead, UserUpdate
from contesso.db.schemas.playlist import PlaylistRead
from contesso.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from contesso.utils.sentinels import MISSING

# Errors that mean "the store is not reachable", as opposed to constraint violations.
_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, OSError)


class DataBase():
    """
    Async SQLAlchemy database singleton.
    Usage:
        db = DataBase()  # same instance everywhere
        async with db.session() as s:
            ...
    """
    _instance: ClassVar[Optional["DataBase"]] = None

    def __new__(cls, *args: Any, **kwargs: Any) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)

        return cls._instance

    def __init__(self, echo: bool = False) -> None:
        if getattr(self, "_initialized", False):
            return

        url = Settings().database_url
        self._engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )

        self._initialized = True

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provides an AsyncSession with safe commit/rollback semantics.

        Connection-level failures are re-raised as StoreUnavailable; constraint
        violations (IntegrityError) and LookupError propagate unchanged.
        """
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except _UNAVAILABLE_ERRORS as exc:
            await session.rollback()
            raise StoreUnavailable(str(exc)) from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # --- schema management helpers (optional) ---

    async def create_all(self) -> None:
        """
        Create tables based on Base metadata. Use only in dev/tests; prefer Alembic in prod.
        """
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(str(exc)) from exc

    # ---------- Contests: reads ----------

    async def get_contest(self, contest_id: str) -> Optional[ContestRead]:
        """Fetch a contest by its stable id ("cf:1999")."""
        if not contest_id:
            return None
        async with self.session() as s:
            row = await s.get(Contest, contest_id)
        return ContestRead.model_validate(row) if row is not None else None

    async def get_contests_by_ids(self, contest_ids: Iterable[str]) -> dict[str, ContestRead]:
        """
        Bulk lookup used by the reconciler to build the persisted snapshot.

        Returns:
            dict[str, ContestRead]: only the ids that exist are present.
        """
        ids = list(dict.fromkeys(contest_ids))
        if not ids:
            return {}
        async with self.session() as s:
            stmt = select(Contest).where(Contest.id.in_(ids))
            rows: List[Contest] = (await s.execute(stmt)).scalars().all()
        return {r.id: ContestRead.model_validate(r) for r in rows}

    async def list_contests(self, *, platforms: Optional[Iterable[Platform]] = None) -> list[ContestRead]:
        """All contests ordered by start_time ASC, optionally restricted to some platforms."""
        async with self.session() as s:
            stmt = select(Contest)
            if platforms is not None:
                stmt = stmt.where(Contest.platform.in_(list(platforms)))
            stmt = stmt.order_by(Contest.start_time.asc(), Contest.id.asc())
            rows: List[Contest] = (await s.execute(stmt)).scalars().all()
        return [ContestRead.model_validate(r) for r in rows]

    async def next_upcoming_contest(self, now: datetime) -> Optional[ContestRead]:
        """The earliest contest with start_time >= now, if any."""
        async with self.session() as s:
            stmt = (
                select(Contest)
                .where(Contest.start_time >= now)
                .order_by(Contest.start_time.asc(), Contest.id.asc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
        return ContestRead.model_validate(row) if row is not None else None

    async def list_past_contests(
        self,
        now: datetime,
        *,
        platform: Optional[Platform] = None,
        without_solution: bool = False,
        limit: Optional[int] = None,
    ) -> list[ContestRead]:
        """Contests with end_time < now, newest first."""
        async with self.session() as s:
            stmt = select(Contest).where(Contest.end_time < now)
            if platform is not None:
                stmt = stmt.where(Contest.platform == platform)
            if without_solution:
                stmt = stmt.where(Contest.solution_link.is_(None))
            stmt = stmt.order_by(Contest.end_time.desc(), Contest.id.asc())
            if limit is not None:
                stmt = stmt.limit(max(0, int(limit)))
            rows: List[Contest] = (await s.execute(stmt)).scalars().all()
        return [ContestRead.model_validate(r) for r in rows]

    # ---------- Contests: writes ----------

    async def upsert_contests(self, items: Iterable[ContestUpsert], *, fetched_at: datetime) -> int:
        """
        Insert-or-update contests keyed by id.

        Semantics:
          - solution_link is written on insert only; the update branch never touches it.
          - A row is only overwritten when its fetched_at is not newer than this batch's
            fetched_at, so a late batch that started earlier cannot clobber fresher data.

        Returns:
            int: number of rows inserted or updated.
        """
        rows = [
            {
                "id": c.id,
                "name": c.name,
                "platform": c.platform,
                "start_time": c.start_time,
                "end_time": c.end_time,
                "duration": c.duration,
                "url": c.url,
                "solution_link": c.solution_link,
                "fetched_at": fetched_at,
            }
            for c in items
        ]
        if not rows:
            return 0

        stmt = pg_insert(Contest).values(rows)
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=[Contest.id],
            set_={
                "name": excluded.name,
                "platform": excluded.platform,
                "start_time": excluded.start_time,
                "end_time": excluded.end_time,
                "duration": excluded.duration,
                "url": excluded.url,
                "fetched_at": excluded.fetched_at,
            },
            where=(Contest.fetched_at.is_(None)) | (Contest.fetched_at <= excluded.fetched_at),
        )
        async with self.session() as s:
            result = await s.execute(stmt)
        return int(result.rowcount or 0)

    async def set_solution_link(self, contest_id: str, link: Optional[str]) -> ContestRead:
        """
        Set (or clear with None) the curated solution link of a contest.

        Raises:
            LookupError: if the contest does not exist.
        """
        async with self.session() as s:
            db_contest = await s.get(Contest, contest_id)
            if db_contest is None:
                raise LookupError("Contest not found.")
            db_contest.solution_link = link
            await s.flush()
            await s.refresh(db_contest)
        return ContestRead.model_validate(db_contest)

    async def set_solution_link_if_missing(self, contest_id: str, link: str) -> Optional[ContestRead]:
        """Set the link only while the contest has none; None when nothing was written."""
        async with self.session() as s:
            stmt = (
                update(Contest)
                .where(Contest.id == contest_id, Contest.solution_link.is_(None))
                .values(solution_link=link)
                .returning(Contest)
            )
            db_contest = (await s.execute(stmt)).scalar_one_or_none()
            if db_contest is None:
                return None
            return ContestRead.model_validate(db_contest)

    # ---------- Bookmarks ----------

    async def add_bookmark(self, user_id: uuid.UUID, contest_id: str) -> bool:
        """
        Insert a (user, contest) bookmark; an existing pair is left as is.

        Returns:
            bool: True if a row was inserted, False if it already existed.

        Raises:
            IntegrityError: if the user or the contest does not exist (FK violation).
        """
        stmt = (
            pg_insert(Bookmark)
            .values(id=uuid.uuid4(), user_id=user_id, contest_id=contest_id)
            .on_conflict_do_nothing(index_elements=[Bookmark.user_id, Bookmark.contest_id])
        )
        async with self.session() as s:
            result = await s.execute(stmt)
        return bool(result.rowcount)

    async def remove_bookmark(self, user_id: uuid.UUID, contest_id: str) -> bool:
        """Delete a (user, contest) bookmark. Returns True if a row was deleted."""
        stmt = delete(Bookmark).where(
            Bookmark.user_id == user_id,
            Bookmark.contest_id == contest_id,
        )
        async with self.session() as s:
            result = await s.execute(stmt)
        return bool(result.rowcount)

    async def list_bookmarked_ids(self, user_id: uuid.UUID) -> set[str]:
        async with self.session() as s:
            stmt = select(Bookmark.contest_id).where(Bookmark.user_id == user_id)
            rows = (await s.execute(stmt)).scalars().all()
        return set(rows)

    async def list_bookmarked_contests(self, user_id: uuid.UUID) -> list[ContestRead]:
        """Bookmarked contests of a user, ordered by start_time ASC."""
        async with self.session() as s:
            stmt = (
                select(Contest)
                .join(Bookmark, Bookmark.contest_id == Contest.id)
                .where(Bookmark.user_id == user_id)
                .order_by(Contest.start_time.asc(), Contest.id.asc())
            )
            rows: List[Contest] = (await s.execute(stmt)).scalars().all()
        return [ContestRead.model_validate(r) for r in rows]

    async def count_bookmarks(self, user_id: uuid.UUID) -> int:
        async with self.session() as s:
            stmt = select(func.count(Bookmark.id)).where(Bookmark.user_id == user_id)
            return int((await s.execute(stmt)).scalar_one())

    # ---------- Users ----------

    async def create_user(self, data: UserCreate) -> UserRead:
        """
        Create a user from UserCreate schema and return UserRead object.
        On unique-constraint violation, re-raises IntegrityError for the caller to handle.
        """
        tg_username = None
        if data.tg_username:
            tg_username = data.tg_username[1:] if data.tg_username.startswith("@") else data.tg_username

        user = User(
            tg_id=data.tg_id,
            tg_username=tg_username,
            full_name=data.full_name,
            role=data.role,
        )

        async with self.session() as s:
            s.add(user)
            await s.flush()
            await s.refresh(user)

        return UserRead.model_validate(user)

    async def get_user_by_tg_id(self, tg_id: Optional[int] = None) -> Optional[UserRead]:
        """
        Fetch a user by Telegram numeric ID.

        Args:
            tg_id: Telegram user ID. If None, returns None immediately.
        """
        if tg_id is None:
            return None

        async with self.session() as s:
            stmt = select(User).where(User.tg_id == tg_id)
            user_row = (await s.execute(stmt)).scalar_one_or_none()

        return UserRead.model_validate(user_row) if user_row is not None else None

    async def update_user(self, data: UserUpdate) -> UserRead:
        """
        Partially update a user by id.
        Only fields explicitly provided (i.e., not MISSING) are updated.
        Passing None for a provided field will NULL it in DB.

        Raises:
            LookupError: if the user with given id does not exist.
            IntegrityError: on unique constraint violation (tg_id).
        """
        async with self.session() as s:
            db_user = await s.get(User, data.id)
            if db_user is None:
                raise LookupError("User not found.")

            def provided(v: object) -> bool:
                return v is not MISSING

            if provided(data.tg_id):
                db_user.tg_id = data.tg_id

            if provided(data.tg_username):
                if data.tg_username is None:
                    db_user.tg_username = None
                else:
                    db_user.tg_username = data.tg_username.lstrip("@")

            if provided(data.full_name):
                db_user.full_name = data.full_name

            if provided(data.role):
                db_user.role = data.role

            try:
                await s.flush()
                await s.refresh(db_user)
            except IntegrityError:
                # rollback is handled by the context manager
                raise

        return UserRead.model_validate(db_user)

    # ---------- Playlists ----------

    async def upsert_playlist(self, platform: Platform, playlist_id: str, last_synced_at: datetime) -> PlaylistRead:
        """Insert a (platform, playlist_id) row or bump its last_synced_at."""
        stmt = (
            pg_insert(YoutubePlaylist)
            .values(id=uuid.uuid4(), platform=platform, playlist_id=playlist_id, last_synced_at=last_synced_at)
            .on_conflict_do_update(
                index_elements=[YoutubePlaylist.platform, YoutubePlaylist.playlist_id],
                set_={"last_synced_at": last_synced_at},
            )
            .returning(YoutubePlaylist)
        )
        async with self.session() as s:
            row = (await s.execute(stmt)).scalar_one()
            return PlaylistRead.model_validate(row)

    # ---------- Audit log ----------

    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        entry = AuditLog(actor_id=payload.actor_id, action=payload.action, payload=payload.payload)
        async with self.session() as s:
            s.add(entry)
            await s.flush()
            await s.refresh(entry)
        return AuditLogRead.model_validate(entry)
