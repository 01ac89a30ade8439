"""Concurrent fetch of every upstream source into one normalized batch.

Each adapter runs in its own task with its own timeout. The aggregator waits
for every task to settle: a failing source contributes zero records and is
reported in ``failed_sources``; a bad record is dropped and reported in
``dropped``. Nothing a single source does can abort the whole batch.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import aiohttp

from contesso.db.enums import Platform
from contesso.db.schemas.contest import ContestUpsert
from contesso.exceptions import InvalidContestRecord, SourceUnavailable
from contesso.contests.normalizer import normalize
from contesso.contests.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceResult:
	platform: Platform
	contests: list[ContestUpsert] = field(default_factory=list)
	dropped: list[InvalidContestRecord] = field(default_factory=list)
	error: Optional[SourceUnavailable] = None


@dataclass(slots=True)
class AggregatedBatch:
	started_at: datetime
	contests: list[ContestUpsert] = field(default_factory=list)
	failed_sources: list[Platform] = field(default_factory=list)
	dropped: list[InvalidContestRecord] = field(default_factory=list)
	errors: dict[Platform, str] = field(default_factory=dict)

	@property
	def total_failure(self) -> bool:
		return not self.contests and bool(self.failed_sources)


async def collect_source(
	adapter: SourceAdapter,
	session: aiohttp.ClientSession,
	*,
	timeout: float,
	not_before: Optional[datetime] = None,
) -> SourceResult:
	"""Fetch, translate and normalize one source. Never raises SourceUnavailable."""
	result = SourceResult(platform=adapter.platform)
	try:
		payload = await asyncio.wait_for(adapter.fetch(session), timeout=timeout)
		entries = adapter.iter_entries(payload)
		for entry in entries:
			try:
				contest = normalize(adapter.translate(entry))
			except InvalidContestRecord as exc:
				logger.warning("Dropping %s record: %s", adapter.platform, exc)
				result.dropped.append(exc)
				continue
			if not_before is not None and contest.end_time < not_before:
				continue
			result.contests.append(contest)
	except asyncio.TimeoutError:
		result.error = SourceUnavailable(adapter.platform, f"timed out after {timeout}s")
	except SourceUnavailable as exc:
		result.error = exc

	if result.error is not None:
		logger.warning("Source %s unavailable: %s", adapter.platform, result.error.reason)
		result.contests = []
	else:
		logger.info(
			"Source %s: %d contests, %d dropped",
			adapter.platform, len(result.contests), len(result.dropped),
		)
	return result


async def aggregate(
	adapters: Sequence[SourceAdapter],
	*,
	session: aiohttp.ClientSession,
	timeout: float = 10.0,
	history_days: Optional[int] = None,
	now: Optional[datetime] = None,
) -> AggregatedBatch:
	"""
	Run every adapter concurrently and merge their normalized output.

	:param history_days: skip contests that ended more than this many days before ``now``
	:param now: batch start time; defaults to the current UTC time
	"""
	started_at = now or datetime.now(timezone.utc)
	not_before = started_at - timedelta(days=history_days) if history_days is not None else None

	results = await asyncio.gather(
		*(collect_source(a, session, timeout=timeout, not_before=not_before) for a in adapters)
	)

	batch = AggregatedBatch(started_at=started_at)
	for res in results:
		batch.dropped.extend(res.dropped)
		if res.error is not None:
			batch.failed_sources.append(res.platform)
			batch.errors[res.platform] = res.error.reason
			continue
		batch.contests.extend(res.contests)
	return batch
