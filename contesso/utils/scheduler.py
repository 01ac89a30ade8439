# utils/scheduler.py
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from contesso.config import Settings

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "contests.refresh"
PLAYLIST_JOB_ID = "playlists.sync"


def _safe(job: Callable[[], Awaitable[Any]], name: str) -> Callable[[], Awaitable[None]]:
	@functools.wraps(job)
	async def wrapper() -> None:
		try:
			await job()
		except Exception:
			logger.exception("Scheduled job %s failed", name)
	return wrapper


def build_scheduler(
	refresh: Callable[[], Awaitable[Any]],
	sync_playlists: Callable[[], Awaitable[Any]],
	settings: Optional[Settings] = None,
) -> AsyncIOScheduler:
	"""
	Periodic contest refresh and playlist sync on the running event loop.

	Both jobs run at most one instance at a time; missed runs are coalesced.
	The refresh also runs once right after start.
	"""
	settings = settings or Settings()
	scheduler = AsyncIOScheduler(timezone="UTC")
	scheduler.add_job(
		_safe(refresh, REFRESH_JOB_ID),
		IntervalTrigger(seconds=settings.refresh_interval_seconds),
		id=REFRESH_JOB_ID,
		max_instances=1,
		coalesce=True,
		next_run_time=datetime.now(timezone.utc),
	)
	scheduler.add_job(
		_safe(sync_playlists, PLAYLIST_JOB_ID),
		IntervalTrigger(seconds=settings.playlist_sync_interval_seconds),
		id=PLAYLIST_JOB_ID,
		max_instances=1,
		coalesce=True,
	)
	return scheduler


def start(scheduler: AsyncIOScheduler) -> None:
	scheduler.start()
	logger.info("Scheduler started: %s", ", ".join(job.id for job in scheduler.get_jobs()))


def shutdown(scheduler: AsyncIOScheduler) -> None:
	if scheduler.running:
		scheduler.shutdown(wait=False)
		logger.info("Scheduler stopped")
