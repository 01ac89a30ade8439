# contests/sources/codechef.py
from datetime import datetime
from typing import Any, Iterator

from contesso.db.enums import Platform
from contesso.exceptions import SourceUnavailable
from contesso.contests.sources.base import RawContest, SourceAdapter

_SECTIONS = ("present_contests", "future_contests", "past_contests")


class CodeChefAdapter(SourceAdapter):
	"""
	/api/list/contests/all returns three sections of entries with ISO-8601 dates
	carrying a +05:30 offset and a duration in minutes (as a string).
	"""
	platform = Platform.CODECHEF

	def iter_entries(self, payload: Any) -> Iterator[Any]:
		if not isinstance(payload, dict) or payload.get("status") != "success":
			raise SourceUnavailable(self.platform, "unexpected envelope: status is not success")
		if not any(isinstance(payload.get(section), list) for section in _SECTIONS):
			raise SourceUnavailable(self.platform, "no contest sections in payload")
		for section in _SECTIONS:
			entries = payload.get(section)
			if isinstance(entries, list):
				yield from entries

	def translate(self, entry: Any) -> RawContest:
		if not isinstance(entry, dict) or not entry.get("contest_code"):
			raise self._invalid("entry without contest_code")
		code = str(entry["contest_code"]).strip()
		start_iso = entry.get("contest_start_date_iso")
		if not start_iso:
			raise self._invalid("no contest_start_date_iso", code)
		try:
			start = datetime.fromisoformat(start_iso)
			end_iso = entry.get("contest_end_date_iso")
			if end_iso:
				end = datetime.fromisoformat(end_iso)
			elif entry.get("contest_duration") is not None:
				end = self._end_from_duration(start, int(entry["contest_duration"]) * 60)
			else:
				raise self._invalid("neither end date nor duration", code)
		except (TypeError, ValueError) as exc:
			raise self._invalid(f"bad time fields: {exc}", code) from exc
		return RawContest(
			platform=self.platform,
			native_id=code,
			name=str(entry.get("contest_name") or "").strip(),
			start_time=start,
			end_time=end,
			url=f"https://www.codechef.com/{code}",
		)
