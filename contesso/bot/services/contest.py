# bot/services/contest.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, ClassVar, Dict, Iterable, List, Optional, Sequence

import aiohttp
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from contesso.config import Settings
from contesso.db.database import DataBase
from contesso.db.enums import ContestFilter, ContestStatus, Platform
from contesso.db.schemas.contest import ContestRead, ContestUpsert
from contesso.db.schemas.user import UserRead
from contesso.exceptions import InvalidContestRecord, PermissionDenied, StoreUnavailable
from contesso.contests.aggregator import aggregate
from contesso.contests.reconciler import reconcile
from contesso.contests.sources.base import SourceAdapter
from contesso.contests.sources.registry import default_adapters
from contesso.contests import status
from contesso.bot.services.audit_log import instrument_service_class

logger = logging.getLogger(__name__)

HEADERS = {"User-Agent": "contesso/1.0 (+contest tracker)"}

_http_url = TypeAdapter(AnyHttpUrl)


@dataclass(slots=True)
class RefreshReport:
	started_at: datetime
	sources: int = 0
	inserted: int = 0
	updated: int = 0
	unchanged: int = 0
	failed_sources: list[Platform] = field(default_factory=list)
	dropped: list[InvalidContestRecord] = field(default_factory=list)
	applied: bool = True

	@property
	def partial(self) -> bool:
		return bool(self.failed_sources) and not self.total_failure

	@property
	def total_failure(self) -> bool:
		return self.sources > 0 and len(self.failed_sources) >= self.sources


@dataclass(slots=True, frozen=True)
class ContestView:
	contest: ContestRead
	status: ContestStatus


@dataclass(slots=True)
class ContestListing:
	items: list[ContestView]
	stale: bool = False
	failed_sources: list[Platform] = field(default_factory=list)

	@property
	def contests(self) -> list[ContestRead]:
		return [v.contest for v in self.items]


class ContestService:
	"""
	Singleton service layer for contests: refresh from upstream sources, reads
	with status, and solution-link curation.

	Strict rule: this service does **not** touch SQLAlchemy sessions or models.
	It only calls the DataBase facade and returns DTOs. The last list it read or
	wrote is kept as a snapshot and served (flagged stale) while the store is down.
	"""

	_instance: ClassVar[Optional["ContestService"]] = None

	def __new__(cls, *args, **kwargs) -> "ContestService":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, database: Optional[DataBase] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self._database: DataBase = database or DataBase()
		self._snapshot: Dict[str, ContestRead] = {}
		self._last_applied_started_at: Optional[datetime] = None
		self.last_report: Optional[RefreshReport] = None

		self._initialized = True

	# --------------------
	# Refresh
	# --------------------
	async def refresh(
		self,
		*,
		now: Optional[datetime] = None,
		adapters: Optional[Sequence[SourceAdapter]] = None,
		session: Optional[aiohttp.ClientSession] = None,
	) -> RefreshReport:
		"""
		Fetch every source, reconcile against the store and apply the upsert.

		A refresh that started before the last applied one is discarded when it
		finishes late. StoreUnavailable abandons this cycle's writes and propagates.
		"""
		settings = Settings()
		started_at = now or status.utcnow()
		adapters = default_adapters() if adapters is None else adapters

		async with self._http_session(session) as http:
			batch = await aggregate(
				adapters,
				session=http,
				timeout=settings.source_timeout_seconds,
				history_days=settings.contest_history_days,
				now=started_at,
			)

		report = RefreshReport(
			started_at=started_at,
			sources=len(adapters),
			failed_sources=list(batch.failed_sources),
			dropped=list(batch.dropped),
		)

		persisted = await self._database.get_contests_by_ids(c.id for c in batch.contests)
		plan = reconcile(batch.contests, persisted, failed_sources=batch.failed_sources)

		if self._is_superseded(started_at):
			logger.warning("Discarding refresh started at %s: a newer refresh was already applied", started_at.isoformat())
			report.applied = False
			return report

		if plan.writes:
			await self._database.upsert_contests(plan.writes, fetched_at=started_at)
		self._last_applied_started_at = started_at

		report.inserted = len(plan.inserts)
		report.updated = len(plan.updates)
		report.unchanged = len(plan.unchanged)
		for c in plan.contests:
			self._cache_contest(self._as_read(c, started_at))
		self.last_report = report

		if report.failed_sources:
			logger.warning("Refresh finished without %s", ", ".join(map(str, report.failed_sources)))
		return report

	def _is_superseded(self, started_at: datetime) -> bool:
		return self._last_applied_started_at is not None and started_at < self._last_applied_started_at

	@asynccontextmanager
	async def _http_session(self, session: Optional[aiohttp.ClientSession]) -> AsyncIterator[aiohttp.ClientSession]:
		if session is not None:
			yield session
			return
		async with aiohttp.ClientSession(headers=HEADERS) as own:
			yield own

	# --------------------
	# Reads
	# --------------------
	async def list_contests(
		self,
		*,
		platforms: Optional[Iterable[Platform]] = None,
		mode: ContestFilter = ContestFilter.ALL,
		now: Optional[datetime] = None,
	) -> ContestListing:
		now = now or status.utcnow()
		stale = False
		try:
			contests = await self._database.list_contests()
			self._snapshot = {c.id: c for c in contests}
		except StoreUnavailable:
			logger.warning("Store unavailable; serving %d cached contests", len(self._snapshot))
			contests = sorted(self._snapshot.values(), key=lambda c: (c.start_time, c.id))
			stale = True

		selected = status.filter_contests(contests, platforms=platforms, mode=mode, now=now)
		return ContestListing(
			items=[ContestView(c, status.classify(c, now)) for c in selected],
			stale=stale,
			failed_sources=list(self.last_report.failed_sources) if self.last_report else [],
		)

	async def get_contest(self, contest_id: str) -> Optional[ContestRead]:
		contest = await self._database.get_contest(contest_id)
		if contest is not None:
			self._cache_contest(contest)
		return contest

	async def next_upcoming(self, now: Optional[datetime] = None) -> Optional[ContestRead]:
		now = now or status.utcnow()
		try:
			return await self._database.next_upcoming_contest(now)
		except StoreUnavailable:
			return status.next_upcoming(self._snapshot.values(), now)

	async def list_solutions(self, now: Optional[datetime] = None, limit: int = 20) -> List[ContestRead]:
		"""Past contests, newest first (solution page)."""
		return await self._database.list_past_contests(now or status.utcnow(), limit=limit)

	# --------------------
	# Curation
	# --------------------
	async def set_solution_link(self, actor: Optional[UserRead], contest_id: str, link: str) -> ContestRead:
		"""
		Attach a solution video to a contest.

		Raises:
			PermissionDenied: actor is not an admin.
			ValueError: link is not an http(s) URL.
			LookupError: unknown contest.
		"""
		if actor is None or not actor.is_admin:
			raise PermissionDenied("Only admins can set solution links.")
		try:
			_http_url.validate_python(link)
		except ValidationError as exc:
			raise ValueError(f"Not a valid link: {link}") from exc
		contest = await self._database.set_solution_link(contest_id, link)
		self._cache_contest(contest)
		return contest

	# ---------------
	# Cache helpers
	# ---------------
	def _cache_contest(self, contest: ContestRead) -> None:
		self._snapshot[contest.id] = contest

	def _as_read(self, contest: ContestUpsert, fetched_at: datetime) -> ContestRead:
		return ContestRead.model_validate({**contest.model_dump(), "fetched_at": fetched_at})


instrument_service_class(ContestService, prefix="services.contests", include={"set_solution_link"})
