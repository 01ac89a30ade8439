# contests/normalizer.py
from datetime import datetime, timezone

from contesso.exceptions import InvalidContestRecord
from contesso.contests.sources.base import RawContest
from contesso.db.schemas.contest import ContestUpsert


def contest_id(platform, native_id: str) -> str:
    """Stable contest id: "<platform prefix>:<platform-native id>"."""
    return f"{platform.prefix}:{native_id}"


def to_utc(value: datetime) -> datetime:
    # naive instants coming from upstream are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize(raw: RawContest) -> ContestUpsert:
    """
    Turn an adapter's intermediate record into the canonical contest.

    Pure and deterministic: the same RawContest always yields the same id and
    fields. solution_link is always None here; it is only ever set by curation.

    Raises:
        InvalidContestRecord: empty native id or name, or end_time < start_time.
    """
    platform = str(raw.platform)
    native_id = (raw.native_id or "").strip()
    if not native_id:
        raise InvalidContestRecord("empty native id", platform=platform)

    name = (raw.name or "").strip()
    if not name:
        raise InvalidContestRecord("empty name", platform=platform, native_id=native_id)

    start = to_utc(raw.start_time)
    end = to_utc(raw.end_time)
    if end < start:
        raise InvalidContestRecord(
            f"end_time {end.isoformat()} precedes start_time {start.isoformat()}",
            platform=platform,
            native_id=native_id,
        )

    return ContestUpsert(
        id=contest_id(raw.platform, native_id),
        name=name,
        platform=raw.platform,
        start_time=start,
        end_time=end,
        duration=int((end - start).total_seconds()),
        url=raw.url,
        solution_link=None,
    )
