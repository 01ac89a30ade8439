# contests/sources/registry.py
from typing import Optional

from contesso.config import Settings
from contesso.db.enums import Platform
from contesso.contests.sources.base import SourceAdapter
from contesso.contests.sources.codeforces import CodeforcesAdapter
from contesso.contests.sources.codechef import CodeChefAdapter
from contesso.contests.sources.leetcode import LeetCodeAdapter


def default_adapters(platforms: Optional[set[Platform]] = None) -> list[SourceAdapter]:
	"""One adapter per supported platform, endpoints taken from Settings."""
	s = Settings()
	adapters: list[SourceAdapter] = [
		CodeforcesAdapter(s.codeforces_api_url),
		CodeChefAdapter(s.codechef_api_url),
		LeetCodeAdapter(s.leetcode_api_url),
	]
	if platforms is None:
		return adapters
	return [a for a in adapters if a.platform in platforms]
