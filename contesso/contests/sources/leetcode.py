# contests/sources/leetcode.py
from typing import Any, Iterator

import aiohttp

from contesso.db.enums import Platform
from contesso.exceptions import SourceUnavailable
from contesso.contests.sources.base import RawContest, SourceAdapter

ALL_CONTESTS_QUERY = "{ allContests { title titleSlug startTime duration } }"


class LeetCodeAdapter(SourceAdapter):
	"""
	LeetCode only exposes contests through GraphQL. The endpoint is configurable
	so a proxy can sit in front of it where the API refuses direct clients.
	"""
	platform = Platform.LEETCODE

	def _request(self, session: aiohttp.ClientSession):
		return session.post(
			self.url,
			json={"query": ALL_CONTESTS_QUERY},
			headers={"Accept": "application/json", "Referer": "https://leetcode.com/contest/"},
		)

	def iter_entries(self, payload: Any) -> Iterator[Any]:
		if not isinstance(payload, dict):
			raise SourceUnavailable(self.platform, "payload is not an object")
		if payload.get("errors"):
			raise SourceUnavailable(self.platform, f"graphql errors: {payload['errors']!r}")
		data = payload.get("data") or {}
		contests = data.get("allContests") if isinstance(data, dict) else None
		if not isinstance(contests, list):
			raise SourceUnavailable(self.platform, "data.allContests is not a list")
		yield from contests

	def translate(self, entry: Any) -> RawContest:
		if not isinstance(entry, dict) or not entry.get("titleSlug"):
			raise self._invalid("entry without titleSlug")
		slug = str(entry["titleSlug"]).strip()
		if entry.get("startTime") is None or entry.get("duration") is None:
			raise self._invalid("no startTime/duration", slug)
		try:
			start = self._from_epoch(entry["startTime"])
			end = self._end_from_duration(start, entry["duration"])
		except (TypeError, ValueError, OverflowError) as exc:
			raise self._invalid(f"bad time fields: {exc}", slug) from exc
		return RawContest(
			platform=self.platform,
			native_id=slug,
			name=str(entry.get("title") or "").strip(),
			start_time=start,
			end_time=end,
			url=f"https://leetcode.com/contest/{slug}",
		)
