# bot/routers/utils.py
from datetime import datetime
from html import escape
from typing import Iterable, List, Optional

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, User as TgUser

from contesso.i18n import Localizer, lang_code2language
from contesso.db.enums import ContestStatus, Platform
from contesso.db.schemas.contest import ContestRead
from contesso.exceptions import NotAuthenticated, PermissionDenied, StoreUnavailable
from contesso.contests import status

BOOKMARK_PREFIX = "bm:"
BOOKMARK_ADD = "add"
BOOKMARK_REMOVE = "del"
# Telegram rejects callback_data longer than 64 bytes.
CALLBACK_LIMIT = 64

PLATFORM_ALIASES: dict[str, Platform] = {
    **{p.prefix: p for p in Platform},
    **{p.value.lower(): p for p in Platform},
}


def get_localizer(tg_user: Optional[TgUser]) -> Localizer:
    lang_code = tg_user.language_code if tg_user is not None else None
    return Localizer(lang_code2language(lang_code))


def parse_platform(token: str) -> Optional[Platform]:
    return PLATFORM_ALIASES.get(token.strip().lower())


def bookmark_callback(contest_id: str, bookmarked: bool = False) -> Optional[str]:
    """``bm:add:<id>`` on an unmarked contest, ``bm:del:<id>`` on a marked one."""
    intent = BOOKMARK_REMOVE if bookmarked else BOOKMARK_ADD
    data = f"{BOOKMARK_PREFIX}{intent}:{contest_id}"
    return data if len(data.encode()) <= CALLBACK_LIMIT else None


def parse_bookmark_callback(data: Optional[str]) -> Optional[tuple[str, bool]]:
    """Contest id and the wanted bookmark state, or None for foreign data."""
    if not data or not data.startswith(BOOKMARK_PREFIX):
        return None
    intent, _, contest_id = data[len(BOOKMARK_PREFIX):].partition(":")
    if intent not in (BOOKMARK_ADD, BOOKMARK_REMOVE) or not contest_id:
        return None
    return contest_id, intent == BOOKMARK_ADD


def format_contest(lz: Localizer, contest: ContestRead, now: datetime, bookmarked: bool = False) -> str:
    phase = status.classify(contest, now)
    lines = [
        lz.get(
            "contests.item.title",
            mark=lz.get("bookmarks.mark") if bookmarked else "",
            name=escape(contest.name),
            platform=contest.platform.value,
        ),
        lz.get(
            "contests.item.time",
            start=contest.start_time.strftime("%Y-%m-%d %H:%M UTC"),
            hours=contest.duration // 3600,
            minutes=(contest.duration % 3600) // 60,
        ),
    ]
    if phase == ContestStatus.UPCOMING:
        lines.append(lz.get("contests.item.starts_in", left=str(status.time_remaining(contest.start_time, now))))
    else:
        lines.append(lz.get(f"contests.status.{phase.value}"))
    lines.append(lz.get("contests.item.link", url=escape(contest.url)))
    if contest.solution_link:
        lines.append(lz.get("contests.item.solution", url=escape(contest.solution_link)))
    return "\n".join(lines)


def bookmark_keyboard(lz: Localizer, contests: Iterable[ContestRead], bookmarked: Iterable[str]) -> Optional[InlineKeyboardMarkup]:
    marked = set(bookmarked)
    rows: List[List[InlineKeyboardButton]] = []
    for c in contests:
        data = bookmark_callback(c.id, c.id in marked)
        if data is None:
            continue
        key = "bookmarks.button.remove" if c.id in marked else "bookmarks.button.add"
        rows.append([InlineKeyboardButton(text=lz.get(key, name=c.name[:40]), callback_data=data)])
    return InlineKeyboardMarkup(inline_keyboard=rows) if rows else None


def error_text(lz: Localizer, exc: Exception) -> str:
    """Localized message for the domain errors the routers surface to users."""
    if isinstance(exc, NotAuthenticated):
        return lz.get("errors.not_authenticated")
    if isinstance(exc, PermissionDenied):
        return lz.get("errors.permission_denied")
    if isinstance(exc, StoreUnavailable):
        return lz.get("errors.store_unavailable")
    if isinstance(exc, LookupError):
        return lz.get("errors.not_found")
    if isinstance(exc, ValueError):
        return lz.get("errors.invalid_value", reason=escape(str(exc)))
    return lz.get("errors.unexpected")
