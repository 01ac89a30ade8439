from datetime import timedelta

import pytest

from contesso.db.enums import Platform, UserRole
from contesso.db.schemas.contest import ContestRead
from contesso.exceptions import PermissionDenied, SourceUnavailable
from contesso.bot.services.playlist import PlaylistService, match_video
from conftest import FakeHttpSession, FakeResponse
from factories import T0, make_contest, make_user

NOW = T0 + timedelta(days=3)
CURATED = "https://www.youtube.com/watch?v=curated"


def _item(video_id, title):
    return {"snippet": {"title": title, "resourceId": {"kind": "youtube#video", "videoId": video_id}}}


def _pages(params):
    if params["params"].get("pageToken") == "p2":
        return FakeResponse({"items": [_item("v3", "Codeforces Round 3 (Div. 2) | Solutions")]})
    return FakeResponse({
        "items": [
            _item("v1", "Codeforces Round 1 Div 2 | Video Solutions A to E"),
            _item("v2", "Codeforces Round 2 Solutions"),
            {"snippet": {"title": "Private video"}},
        ],
        "nextPageToken": "p2",
    })


def _seed(run, db):
    contests = [
        make_contest("cf:1", name="Codeforces Round 1 (Div. 2)", start=T0),
        make_contest("cf:2", name="Codeforces Round 2", start=T0, solution_link=CURATED),
        make_contest("cf:3", name="Codeforces Round 3 (Div. 2)", start=T0 + timedelta(days=5)),
    ]
    run(db.upsert_contests(contests, fetched_at=T0))
    run(db.set_solution_link("cf:2", CURATED))


def _session(settings):
    return FakeHttpSession({settings.youtube_api_url: _pages})


def test_sync_links_past_contests_without_solutions(run, fake_db, settings):
    _seed(run, fake_db)
    http = _session(settings)
    report = run(PlaylistService().sync(Platform.CODEFORCES, now=NOW, session=http))

    assert report.videos == 3
    assert report.linked == ["cf:1"]
    assert fake_db.contests["cf:1"].solution_link == "https://www.youtube.com/watch?v=v1"
    assert fake_db.contests["cf:2"].solution_link == CURATED
    # cf:3 has not finished yet
    assert fake_db.contests["cf:3"].solution_link is None

    params = http.calls[0][2]["params"]
    assert params["playlistId"] == settings.playlists["Codeforces"]
    assert params["key"] == "test-key"
    assert params["maxResults"] == "50"
    assert http.calls[1][2]["params"]["pageToken"] == "p2"
    assert fake_db.playlists[(Platform.CODEFORCES, settings.playlists["Codeforces"])].last_synced_at == NOW


def test_sync_without_api_key_is_skipped(run, fake_db, settings, monkeypatch):
    monkeypatch.setattr(settings, "youtube_api_key", None)
    report = run(PlaylistService().sync(Platform.CODEFORCES, now=NOW, session=_session(settings)))
    assert report.skipped
    assert fake_db.playlists == {}


def test_non_admin_cannot_sync(run, fake_db, settings):
    with pytest.raises(PermissionDenied):
        run(PlaylistService().sync(Platform.LEETCODE, make_user(role=UserRole.USER), session=_session(settings)))


def test_youtube_errors_become_source_unavailable(run, fake_db, settings):
    http = FakeHttpSession({settings.youtube_api_url: FakeResponse({"error": {"code": 403}}, status=403)})
    with pytest.raises(SourceUnavailable):
        run(PlaylistService().sync(Platform.CODEFORCES, make_user(role=UserRole.ADMIN), now=NOW, session=http))


def test_match_video_prefers_the_longest_name():
    div1 = ContestRead(**make_contest("cf:10", name="Codeforces Round 10").model_dump())
    div2 = ContestRead(**make_contest("cf:11", name="Codeforces Round 10 (Div. 2)").model_dump())
    assert match_video("Codeforces Round 10 (Div. 2) editorial", [div1, div2]) == div2
    assert match_video("Codeforces Round 10 editorial", [div1, div2]) == div1
    assert match_video("Codeforces Round 100", [div1]) is None


def test_sync_keeps_a_link_curated_after_candidates_were_read(run, fake_db, settings, monkeypatch):
    _seed(run, fake_db)
    read_past = fake_db.list_past_contests

    async def read_then_curate(now, **kwargs):
        rows = await read_past(now, **kwargs)
        await fake_db.set_solution_link("cf:1", CURATED)
        return rows

    monkeypatch.setattr(fake_db, "list_past_contests", read_then_curate)
    report = run(PlaylistService().sync(Platform.CODEFORCES, now=NOW, session=_session(settings)))

    assert report.linked == []
    assert fake_db.contests["cf:1"].solution_link == CURATED
