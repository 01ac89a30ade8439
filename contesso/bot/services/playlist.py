# bot/services/playlist.py
from __future__ import annotations

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, ClassVar, Iterable, Optional

import aiohttp

from contesso.config import Settings
from contesso.db.database import DataBase
from contesso.db.enums import Platform
from contesso.db.schemas.contest import ContestRead
from contesso.db.schemas.user import UserRead
from contesso.exceptions import PermissionDenied, SourceUnavailable
from contesso.contests import status
from contesso.bot.services.audit_log import instrument_service_class

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
PAGE_SIZE = 50

_NON_WORD = re.compile(r"[^0-9a-z]+")


def normalize_title(text: str) -> str:
	"""Lowercase, punctuation folded to single spaces, padded for whole-word containment."""
	return f" {_NON_WORD.sub(' ', text.lower()).strip()} "


def match_video(title: str, contests: Iterable[ContestRead]) -> Optional[ContestRead]:
	"""
	Contest whose normalized name appears in the normalized video title.

	The longest matching name wins so "Div. 1 + Div. 2" rounds are not taken
	by a shorter sibling name.
	"""
	haystack = normalize_title(title)
	best: Optional[ContestRead] = None
	best_len = 0
	for contest in contests:
		needle = normalize_title(contest.name)
		if len(needle) <= 2:
			continue
		if needle in haystack and len(needle) > best_len:
			best, best_len = contest, len(needle)
	return best


@dataclass(slots=True, frozen=True)
class PlaylistVideo:
	video_id: str
	title: str

	@property
	def url(self) -> str:
		return WATCH_URL.format(video_id=self.video_id)


@dataclass(slots=True)
class PlaylistSyncReport:
	platform: Platform
	playlist_id: Optional[str]
	videos: int = 0
	linked: list[str] = field(default_factory=list)
	skipped: bool = False


class PlaylistService:
	"""
	Fills missing solution links from the configured YouTube playlists.

	Only past contests of the playlist's platform without a solution link are
	candidates, so a curated link is never overwritten.
	"""

	_instance: ClassVar[Optional["PlaylistService"]] = None

	def __new__(cls, *args, **kwargs) -> "PlaylistService":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, database: Optional[DataBase] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self._database: DataBase = database or DataBase()
		self._initialized = True

	def playlist_for(self, platform: Platform) -> Optional[str]:
		return Settings().playlists.get(str(platform)) or None

	async def sync(
		self,
		platform: Platform,
		actor: Optional[UserRead] = None,
		*,
		now: Optional[datetime] = None,
		session: Optional[aiohttp.ClientSession] = None,
	) -> PlaylistSyncReport:
		"""
		Match the platform's playlist videos against past contests without a link.

		``actor=None`` is the scheduler; a user actor must be an admin.

		Raises:
			PermissionDenied: the actor is not an admin.
			SourceUnavailable: the YouTube API could not be read.
		"""
		if actor is not None and not actor.is_admin:
			raise PermissionDenied("Only admins can sync playlists.")

		settings = Settings()
		playlist_id = self.playlist_for(platform)
		report = PlaylistSyncReport(platform=platform, playlist_id=playlist_id)
		if not settings.youtube_api_key or not playlist_id:
			logger.warning("Skipping %s playlist sync: YouTube API key or playlist id not configured", platform)
			report.skipped = True
			return report

		now = now or status.utcnow()
		async with self._http_session(session) as http:
			videos = await self.fetch_videos(http, platform, playlist_id)
		report.videos = len(videos)

		candidates = {c.id: c for c in await self._database.list_past_contests(now, platform=platform, without_solution=True)}
		for video in videos:
			if not candidates:
				break
			contest = match_video(video.title, candidates.values())
			if contest is None:
				continue
			del candidates[contest.id]
			# an admin may have curated this contest since the candidates were read
			if await self._database.set_solution_link_if_missing(contest.id, video.url) is None:
				continue
			report.linked.append(contest.id)

		await self._database.upsert_playlist(platform, playlist_id, now)
		logger.info("Synced %s playlist %s: %d videos, %d linked", platform, playlist_id, report.videos, len(report.linked))
		return report

	async def sync_all(self, *, now: Optional[datetime] = None) -> list[PlaylistSyncReport]:
		"""Scheduled job: every platform in turn; one failing playlist does not stop the rest."""
		reports: list[PlaylistSyncReport] = []
		for platform in Platform:
			try:
				reports.append(await self.sync(platform, now=now))
			except SourceUnavailable as exc:
				logger.warning("Playlist sync for %s failed: %s", platform, exc)
		return reports

	async def fetch_videos(
		self,
		session: aiohttp.ClientSession,
		platform: Platform,
		playlist_id: str,
	) -> list[PlaylistVideo]:
		settings = Settings()
		videos: list[PlaylistVideo] = []
		page_token: Optional[str] = None
		while True:
			params = {
				"part": "snippet",
				"playlistId": playlist_id,
				"maxResults": str(PAGE_SIZE),
				"key": settings.youtube_api_key,
			}
			if page_token:
				params["pageToken"] = page_token
			body = await self._get_page(session, platform, settings.youtube_api_url, params, settings.source_timeout_seconds)
			videos.extend(self._parse_items(body.get("items") or []))
			page_token = body.get("nextPageToken")
			if not page_token:
				return videos

	async def _get_page(
		self,
		session: aiohttp.ClientSession,
		platform: Platform,
		url: str,
		params: dict[str, str],
		timeout: float,
	) -> dict[str, Any]:
		try:
			async with asyncio.timeout(timeout):
				async with session.get(url, params=params) as resp:
					if resp.status // 100 != 2:
						raise SourceUnavailable(platform, f"YouTube API returned HTTP {resp.status}")
					body = await resp.json(content_type=None)
		except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
			raise SourceUnavailable(platform, f"YouTube API request failed: {exc!r}") from exc
		if not isinstance(body, dict):
			raise SourceUnavailable(platform, "YouTube API returned a non-object body")
		return body

	@staticmethod
	def _parse_items(items: list[Any]) -> list[PlaylistVideo]:
		videos = []
		for item in items:
			snippet = (item or {}).get("snippet") or {}
			video_id = (snippet.get("resourceId") or {}).get("videoId")
			title = snippet.get("title")
			if video_id and title:
				videos.append(PlaylistVideo(video_id=video_id, title=title))
		return videos

	@asynccontextmanager
	async def _http_session(self, session: Optional[aiohttp.ClientSession]) -> AsyncIterator[aiohttp.ClientSession]:
		if session is not None:
			yield session
			return
		async with aiohttp.ClientSession() as own:
			yield own


instrument_service_class(PlaylistService, prefix="services.playlists", include={"sync"})
