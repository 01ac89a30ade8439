from datetime import datetime, timezone

import aiohttp
import pytest

from contesso.db.enums import Platform
from contesso.exceptions import InvalidContestRecord, SourceUnavailable
from contesso.contests.aggregator import collect_source
from contesso.contests.sources.codechef import CodeChefAdapter
from contesso.contests.sources.codeforces import CodeforcesAdapter
from contesso.contests.sources.leetcode import ALL_CONTESTS_QUERY, LeetCodeAdapter
from contesso.contests.sources.registry import default_adapters
from conftest import FakeHttpSession, FakeResponse

CF_URL = "https://cf.test/api/contest.list"
CC_URL = "https://cc.test/api/list/contests/all"
LC_URL = "https://lc.test/graphql"

CF_PAYLOAD = {
    "status": "OK",
    "result": [
        {"id": 1921, "name": "Codeforces Round 921 (Div. 2)", "phase": "BEFORE",
         "startTimeSeconds": 1740830400, "durationSeconds": 7200},
        {"id": 1922, "name": "Unscheduled Round", "phase": "BEFORE", "durationSeconds": 7200},
    ],
}

CC_PAYLOAD = {
    "status": "success",
    "present_contests": [],
    "future_contests": [
        {"contest_code": "START120", "contest_name": "Starters 120",
         "contest_start_date_iso": "2025-03-05T20:00:00+05:30",
         "contest_end_date_iso": "2025-03-05T22:00:00+05:30"},
        {"contest_code": "LTIME1", "contest_name": "Lunchtime",
         "contest_start_date_iso": "2025-03-07T20:00:00+05:30", "contest_duration": "180"},
    ],
    "past_contests": [],
}

LC_PAYLOAD = {
    "data": {
        "allContests": [
            {"title": "Weekly Contest 400", "titleSlug": "weekly-contest-400",
             "startTime": 1740882600, "duration": 5400},
        ]
    }
}


def _collect(run, adapter, response):
    session = FakeHttpSession({adapter.url: response})
    return run(collect_source(adapter, session, timeout=1.0)), session


def test_codeforces_translates_and_drops_unscheduled(run):
    result, session = _collect(run, CodeforcesAdapter(CF_URL), FakeResponse(CF_PAYLOAD))

    assert session.calls[0][0] == "GET"
    assert [c.id for c in result.contests] == ["cf:1921"]
    contest = result.contests[0]
    assert contest.start_time == datetime.fromtimestamp(1740830400, tz=timezone.utc)
    assert contest.duration == 7200
    assert contest.url == "https://codeforces.com/contest/1921"
    assert [d.native_id for d in result.dropped] == ["1922"]


def test_codechef_uses_end_date_or_duration_minutes(run):
    result, _ = _collect(run, CodeChefAdapter(CC_URL), FakeResponse(CC_PAYLOAD))

    by_id = {c.id: c for c in result.contests}
    assert set(by_id) == {"cc:START120", "cc:LTIME1"}
    assert by_id["cc:START120"].start_time == datetime(2025, 3, 5, 14, 30, tzinfo=timezone.utc)
    assert by_id["cc:START120"].duration == 7200
    assert by_id["cc:LTIME1"].duration == 180 * 60


def test_leetcode_posts_graphql_query(run):
    result, session = _collect(run, LeetCodeAdapter(LC_URL), FakeResponse(LC_PAYLOAD))

    method, _, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["json"] == {"query": ALL_CONTESTS_QUERY}
    assert [c.id for c in result.contests] == ["lc:weekly-contest-400"]
    assert result.contests[0].url == "https://leetcode.com/contest/weekly-contest-400"


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({"status": "FAILED", "comment": "Call limit exceeded"}),
        FakeResponse({"status": "OK", "result": None}),
        FakeResponse(None, status=503),
        FakeResponse(ValueError("not json")),
        aiohttp.ClientConnectionError("connection reset"),
    ],
)
def test_source_failures_become_source_unavailable(run, response):
    result, _ = _collect(run, CodeforcesAdapter(CF_URL), response)
    assert isinstance(result.error, SourceUnavailable)
    assert result.error.platform == Platform.CODEFORCES
    assert result.contests == []


def test_translate_reports_missing_fields():
    with pytest.raises(InvalidContestRecord):
        LeetCodeAdapter(LC_URL).translate({"title": "No slug"})
    with pytest.raises(InvalidContestRecord):
        CodeChefAdapter(CC_URL).translate({"contest_code": "X", "contest_start_date_iso": "2025-03-05T20:00:00"})


def test_default_adapters_cover_every_platform():
    assert {a.platform for a in default_adapters()} == set(Platform)
    assert [a.platform for a in default_adapters({Platform.LEETCODE})] == [Platform.LEETCODE]
