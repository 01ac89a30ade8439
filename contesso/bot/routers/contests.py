# bot/routers/contests.py
from html import escape
from typing import List, Optional

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from contesso.i18n import Localizer
from contesso.db.enums import ContestFilter, Platform
from contesso.db.schemas.user import UserRead
from contesso.exceptions import StoreUnavailable
from contesso.contests import status
from contesso.bot.services.contest import ContestListing, ContestService
from contesso.bot.services.bookmark import BookmarkCoordinator, BookmarkService
from contesso.bot.routers.utils import (
    bookmark_keyboard,
    error_text,
    format_contest,
    get_localizer,
    parse_platform,
)

router = Router(name="contests")
MAX_ITEMS = 10

# ---------- helpers ----------
def parse_listing_args(args: Optional[str]) -> tuple[ContestFilter, Optional[List[Platform]]]:
    """``[upcoming|ongoing|past|all] [platform...]``; unknown tokens are ignored."""
    mode = ContestFilter.UPCOMING
    platforms: List[Platform] = []
    for token in (args or "").split():
        lowered = token.lower()
        if lowered in {m.value for m in ContestFilter}:
            mode = ContestFilter(lowered)
            continue
        platform = parse_platform(lowered)
        if platform is not None and platform not in platforms:
            platforms.append(platform)
    return mode, (platforms or None)

def _notices(lz: Localizer, listing: ContestListing) -> List[str]:
    notices = []
    if listing.stale:
        notices.append(lz.get("contests.notice.stale"))
    if listing.failed_sources:
        names = ", ".join(p.value for p in listing.failed_sources)
        notices.append(lz.get("contests.notice.partial", platforms=names))
    return notices

async def _bookmarked(current_user: UserRead) -> frozenset[str]:
    if not current_user.is_signed_in:
        return frozenset()
    try:
        async with BookmarkCoordinator(current_user.tg_id, current_user).attach() as coordinator:
            return coordinator.view()
    except StoreUnavailable:
        return frozenset()

async def _bookmark_count(lz: Localizer, current_user: UserRead) -> Optional[str]:
    """Dashboard line under /next; None for guests or when the store is down."""
    if not current_user.is_signed_in:
        return None
    try:
        count = await BookmarkService().count(current_user)
    except StoreUnavailable:
        return None
    return lz.get("bookmarks.count", count=count)

# ---------- handlers ----------
@router.message(Command("contests"))
async def list_contests(message: Message, current_user: UserRead, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    mode, platforms = parse_listing_args(command.args)
    now = status.utcnow()

    listing = await ContestService().list_contests(platforms=platforms, mode=mode, now=now)
    for notice in _notices(lz, listing):
        await message.answer(notice)

    contests = listing.contests
    if mode == ContestFilter.PAST:
        contests = list(reversed(contests))
    contests = contests[:MAX_ITEMS]
    if not contests:
        await message.answer(lz.get("contests.empty", mode=lz.get(f"contests.modes.{mode.value}")))
        return

    bookmarked = await _bookmarked(current_user)
    text = "\n\n".join(format_contest(lz, c, now, c.id in bookmarked) for c in contests)
    keyboard = bookmark_keyboard(lz, contests, bookmarked) if current_user.is_signed_in else None
    await message.answer(
        lz.get("contests.header", mode=lz.get(f"contests.modes.{mode.value}")) + "\n\n" + text,
        reply_markup=keyboard,
        disable_web_page_preview=True,
    )

@router.message(Command("next"))
async def next_contest(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    now = status.utcnow()
    contest = await ContestService().next_upcoming(now)
    count_line = await _bookmark_count(lz, current_user)
    if contest is None:
        text = lz.get("contests.no_upcoming")
        await message.answer(text + "\n\n" + count_line if count_line else text)
        return

    bookmarked = await _bookmarked(current_user)
    keyboard = bookmark_keyboard(lz, [contest], bookmarked) if current_user.is_signed_in else None
    text = lz.get("contests.next") + "\n\n" + format_contest(lz, contest, now, contest.id in bookmarked)
    if count_line:
        text += "\n\n" + count_line
    await message.answer(
        text,
        reply_markup=keyboard,
        disable_web_page_preview=True,
    )

@router.message(Command("today"))
async def today(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    now = status.utcnow()
    listing = await ContestService().list_contests(now=now)
    contests = status.contests_on_day(listing.contests, now.date())
    if not contests:
        await message.answer(lz.get("contests.nothing_today"))
        return

    text = "\n\n".join(format_contest(lz, c, now) for c in contests[:MAX_ITEMS])
    await message.answer(lz.get("contests.today") + "\n\n" + text, disable_web_page_preview=True)

@router.message(Command("solutions"))
async def solutions(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    now = status.utcnow()
    try:
        contests = await ContestService().list_solutions(now, limit=MAX_ITEMS)
    except StoreUnavailable as exc:
        await message.answer(error_text(lz, exc))
        return

    if not contests:
        await message.answer(lz.get("contests.no_solutions"))
        return

    lines = []
    for c in contests:
        key = "contests.solution_line" if c.solution_link else "contests.solution_missing"
        lines.append(lz.get(key, name=escape(c.name), platform=c.platform.value, url=escape(c.solution_link or "")))
    await message.answer(lz.get("contests.solutions") + "\n\n" + "\n".join(lines), disable_web_page_preview=True)
