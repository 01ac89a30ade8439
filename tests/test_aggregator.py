from datetime import timedelta

from contesso.db.enums import Platform
from contesso.exceptions import SourceUnavailable
from contesso.contests.aggregator import aggregate
from conftest import StaticAdapter
from factories import T0, make_raw


def _adapters(codechef_error=None, codechef_delay=0.0):
    return [
        StaticAdapter(Platform.CODEFORCES, [make_raw(Platform.CODEFORCES, "1")]),
        StaticAdapter(
            Platform.CODECHEF,
            [make_raw(Platform.CODECHEF, "START1", name="Starters 1")],
            error=codechef_error,
            delay=codechef_delay,
        ),
        StaticAdapter(Platform.LEETCODE, [make_raw(Platform.LEETCODE, "weekly-1", name="Weekly 1")]),
    ]


def test_failing_source_does_not_abort_the_batch(run):
    adapters = _adapters(codechef_error=SourceUnavailable(Platform.CODECHEF, "HTTP 502"))
    batch = run(aggregate(adapters, session=None, timeout=1.0, now=T0))

    assert {c.platform for c in batch.contests} == {Platform.CODEFORCES, Platform.LEETCODE}
    assert batch.failed_sources == [Platform.CODECHEF]
    assert batch.errors[Platform.CODECHEF] == "HTTP 502"
    assert not batch.total_failure


def test_slow_source_times_out(run):
    batch = run(aggregate(_adapters(codechef_delay=1.0), session=None, timeout=0.05, now=T0))
    assert batch.failed_sources == [Platform.CODECHEF]
    assert len(batch.contests) == 2


def test_every_source_failing_is_total_failure(run):
    adapters = [StaticAdapter(p, error=SourceUnavailable(p, "down")) for p in Platform]
    batch = run(aggregate(adapters, session=None, timeout=1.0, now=T0))
    assert batch.contests == []
    assert batch.total_failure


def test_invalid_records_are_dropped_individually(run):
    broken = make_raw(Platform.CODEFORCES, "2", name="  ")
    adapters = [StaticAdapter(Platform.CODEFORCES, [make_raw(Platform.CODEFORCES, "1"), broken])]
    batch = run(aggregate(adapters, session=None, timeout=1.0, now=T0))
    assert [c.id for c in batch.contests] == ["cf:1"]
    assert len(batch.dropped) == 1


def test_history_window_skips_old_contests(run):
    old = make_raw(Platform.CODEFORCES, "7", start=T0 - timedelta(days=60))
    adapters = [StaticAdapter(Platform.CODEFORCES, [old, make_raw(Platform.CODEFORCES, "8")])]
    batch = run(aggregate(adapters, session=None, timeout=1.0, history_days=30, now=T0))
    assert [c.id for c in batch.contests] == ["cf:8"]
