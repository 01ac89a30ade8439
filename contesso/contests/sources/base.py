"""Common contract for upstream contest-listing adapters.

An adapter knows one platform: where its listing lives, how to unwrap the
response envelope, and how to translate one platform entry into a
:class:`RawContest`. Adapters never share translation code, so one
platform's quirks cannot leak into another's output.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

import aiohttp

from contesso.db.enums import Platform
from contesso.exceptions import InvalidContestRecord, SourceUnavailable

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RawContest:
	"""Platform-neutral intermediate record produced by an adapter."""
	platform: Platform
	native_id: str
	name: str
	start_time: datetime
	end_time: datetime
	url: str


class SourceAdapter(metaclass=ABCMeta):
	platform: Platform

	def __init__(self, url: str) -> None:
		self.url = url

	async def fetch(self, session: aiohttp.ClientSession) -> Any:
		"""
		Download and decode the listing payload.

		Raises:
			SourceUnavailable: on network errors, timeouts, non-2xx responses
				or a body that is not JSON.
		"""
		try:
			async with self._request(session) as resp:
				if resp.status // 100 != 2:
					raise SourceUnavailable(self.platform, f"HTTP {resp.status}")
				return await resp.json(content_type=None)
		except SourceUnavailable:
			raise
		except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
			raise SourceUnavailable(self.platform, f"{type(exc).__name__}: {exc}") from exc

	def _request(self, session: aiohttp.ClientSession):
		return session.get(self.url, headers={"Accept": "application/json"})

	@abstractmethod
	def iter_entries(self, payload: Any) -> Iterator[Any]:
		"""
		Lazily yield raw platform entries from a decoded payload.

		Raises:
			SourceUnavailable: if the envelope itself is malformed.
		"""

	@abstractmethod
	def translate(self, entry: Any) -> RawContest:
		"""
		Convert one platform entry to a RawContest.

		Raises:
			InvalidContestRecord: if the entry lacks usable fields.
		"""

	# -----------------
	# Helper utilities
	# -----------------
	def _invalid(self, reason: str, native_id: Optional[str] = None) -> InvalidContestRecord:
		return InvalidContestRecord(reason, platform=str(self.platform), native_id=native_id)

	@staticmethod
	def _from_epoch(value: Any) -> datetime:
		return datetime.fromtimestamp(int(value), tz=timezone.utc)

	@staticmethod
	def _end_from_duration(start: datetime, seconds: Any) -> datetime:
		return start + timedelta(seconds=int(seconds))
