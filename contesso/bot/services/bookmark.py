# bot/services/bookmark.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, ClassVar, Optional, Self

from contesso.db.database import DataBase
from contesso.db.enums import SessionEventKind
from contesso.db.schemas.contest import ContestRead
from contesso.db.schemas.user import UserRead
from contesso.exceptions import NotAuthenticated
from contesso.bot.services.audit_log import instrument_service_class
from contesso.bot.services.session import SessionEvent, SessionService

logger = logging.getLogger(__name__)


def _require_user(user: Optional[UserRead]) -> UserRead:
	if user is None or not user.is_signed_in:
		raise NotAuthenticated("Sign in to manage bookmarks.")
	return user


class BookmarkService:
	"""
	Singleton access to the (user, contest) bookmark relation.

	Both mutators are idempotent: adding a present bookmark or removing an
	absent one succeeds and leaves the store unchanged. Reads always go to the
	store; nothing here is cached.
	"""

	_instance: ClassVar[Optional["BookmarkService"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, database: Optional[DataBase] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self._database: DataBase = database or DataBase()
		self._initialized = True

	async def add(self, user: Optional[UserRead], contest_id: str) -> bool:
		"""
		Bookmark a contest. Returns True when a new row was written.

		Raises:
			NotAuthenticated: no signed-in user.
			LookupError: the contest does not exist.
		"""
		user = _require_user(user)
		if await self._database.get_contest(contest_id) is None:
			raise LookupError(f"Contest {contest_id} not found.")
		return await self._database.add_bookmark(user.id, contest_id)

	async def remove(self, user: Optional[UserRead], contest_id: str) -> bool:
		user = _require_user(user)
		return await self._database.remove_bookmark(user.id, contest_id)

	async def list(self, user: Optional[UserRead]) -> set[str]:
		"""Contest ids bookmarked by the user; empty for a signed-out identity."""
		if user is None or not user.is_signed_in:
			return set()
		return await self._database.list_bookmarked_ids(user.id)

	async def list_contests(self, user: Optional[UserRead]) -> list[ContestRead]:
		if user is None or not user.is_signed_in:
			return []
		return await self._database.list_bookmarked_contests(user.id)

	async def count(self, user: Optional[UserRead]) -> int:
		if user is None or not user.is_signed_in:
			return 0
		return await self._database.count_bookmarks(user.id)


instrument_service_class(BookmarkService, prefix="services.bookmarks", include={"add", "remove"})


class BookmarkCoordinator:
	"""
	Client-side bookmark state for one session (one Telegram account).

	``view()`` shows the last persisted set with pending optimistic toggles laid
	over it. After every toggle, and on every sign-in/sign-out event for this
	session, the persisted set is fetched again and replaces local state.
	A coordinator only follows session events while :meth:`attach` is open.
	"""

	def __init__(
		self,
		session_key: int,
		user: Optional[UserRead] = None,
		*,
		service: Optional[BookmarkService] = None,
	) -> None:
		self.session_key = session_key
		self.user = user
		self._service = service or BookmarkService()
		self._persisted: frozenset[str] = frozenset()
		self._pending: dict[str, bool] = {}
		self._loaded = False

	@asynccontextmanager
	async def attach(self, sessions: Optional[SessionService] = None) -> AsyncIterator["BookmarkCoordinator"]:
		"""Follow session events and load the current set; unsubscribe on exit."""
		sessions = sessions or SessionService()
		with sessions.subscription(self.on_session_event):
			await self.refresh()
			yield self

	def view(self) -> frozenset[str]:
		current = set(self._persisted)
		for contest_id, bookmarked in self._pending.items():
			if bookmarked:
				current.add(contest_id)
			else:
				current.discard(contest_id)
		return frozenset(current)

	def is_bookmarked(self, contest_id: str) -> bool:
		return contest_id in self.view()

	async def contests(self) -> list[ContestRead]:
		return await self._service.list_contests(self.user)

	async def _load(self) -> frozenset[str]:
		self._persisted = frozenset(await self._service.list(self.user))
		self._loaded = True
		return self._persisted

	async def refresh(self) -> frozenset[str]:
		"""Replace local state with the store's set, dropping every pending flip."""
		persisted = await self._load()
		self._pending.clear()
		return persisted

	async def toggle(self, contest_id: str, bookmarked: Optional[bool] = None) -> bool:
		"""
		Set the bookmark optimistically, write it, then re-read the store.

		``bookmarked`` is the wanted state; when omitted the current state is
		flipped, loading it from the store first if this coordinator never did.
		Returns the persisted state of the contest after the write.

		Raises:
			NotAuthenticated: no signed-in user; local state is left unchanged.
		"""
		_require_user(self.user)
		if bookmarked is None:
			if not self._loaded:
				await self.refresh()
			bookmarked = not self.is_bookmarked(contest_id)
		self._pending[contest_id] = bookmarked
		try:
			if bookmarked:
				await self._service.add(self.user, contest_id)
			else:
				await self._service.remove(self.user, contest_id)
			persisted = await self._load()
		finally:
			# other toggles of this session may still be in flight
			self._pending.pop(contest_id, None)
		if (contest_id in persisted) != bookmarked:
			logger.warning("Bookmark %s for session %s diverged from the store", contest_id, self.session_key)
		return contest_id in persisted

	async def on_session_event(self, event: SessionEvent) -> None:
		if event.session_key != self.session_key:
			return
		self.user = event.user if event.kind == SessionEventKind.SIGNED_IN else None
		await self.refresh()
