# contests/sources/codeforces.py
from typing import Any, Iterator

from contesso.db.enums import Platform
from contesso.exceptions import SourceUnavailable
from contesso.contests.sources.base import RawContest, SourceAdapter


class CodeforcesAdapter(SourceAdapter):
	"""contest.list: {"status": "OK", "result": [{id, name, startTimeSeconds, durationSeconds, ...}]}"""
	platform = Platform.CODEFORCES

	def iter_entries(self, payload: Any) -> Iterator[Any]:
		if not isinstance(payload, dict) or payload.get("status") != "OK":
			comment = payload.get("comment") if isinstance(payload, dict) else None
			raise SourceUnavailable(self.platform, f"unexpected envelope: {comment or 'status is not OK'}")
		result = payload.get("result")
		if not isinstance(result, list):
			raise SourceUnavailable(self.platform, "result is not a list")
		yield from result

	def translate(self, entry: Any) -> RawContest:
		if not isinstance(entry, dict) or entry.get("id") is None:
			raise self._invalid("entry without id")
		native_id = str(entry["id"])
		# Contests announced without a date have no startTimeSeconds yet.
		if entry.get("startTimeSeconds") is None:
			raise self._invalid("no startTimeSeconds", native_id)
		if entry.get("durationSeconds") is None:
			raise self._invalid("no durationSeconds", native_id)
		try:
			start = self._from_epoch(entry["startTimeSeconds"])
			end = self._end_from_duration(start, entry["durationSeconds"])
		except (TypeError, ValueError, OverflowError) as exc:
			raise self._invalid(f"bad time fields: {exc}", native_id) from exc
		return RawContest(
			platform=self.platform,
			native_id=native_id,
			name=str(entry.get("name") or "").strip(),
			start_time=start,
			end_time=end,
			url=f"https://codeforces.com/contest/{native_id}",
		)
