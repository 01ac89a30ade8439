# bot/routers/bookmarks.py
from aiogram import Router, F
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery

from contesso.db.schemas.user import UserRead
from contesso.exceptions import NotAuthenticated, StoreUnavailable
from contesso.contests import status
from contesso.bot.services.bookmark import BookmarkCoordinator
from contesso.bot.services.contest import ContestService
from contesso.bot.routers.utils import (
    BOOKMARK_PREFIX,
    bookmark_keyboard,
    error_text,
    format_contest,
    get_localizer,
    parse_bookmark_callback,
)

router = Router(name="bookmarks")

@router.callback_query(F.data.startswith(BOOKMARK_PREFIX))
async def on_toggle(cq: CallbackQuery, current_user: UserRead) -> None:
    lz = get_localizer(cq.from_user)
    parsed = parse_bookmark_callback(cq.data)
    if parsed is None:
        # buttons sent before the intent was encoded
        await cq.answer(lz.get("bookmarks.outdated"), show_alert=True)
        return

    contest_id, wanted = parsed
    try:
        async with BookmarkCoordinator(current_user.tg_id, current_user).attach() as coordinator:
            bookmarked = await coordinator.toggle(contest_id, wanted)
            marked = coordinator.view()
    except (NotAuthenticated, LookupError, StoreUnavailable) as exc:
        await cq.answer(error_text(lz, exc), show_alert=True)
        return

    await cq.answer(lz.get("bookmarks.added" if bookmarked else "bookmarks.removed"))
    if cq.message is None or cq.message.reply_markup is None:
        return

    # redraw the buttons of the message the toggle came from
    contests = []
    for row in cq.message.reply_markup.inline_keyboard:
        target = parse_bookmark_callback(row[0].callback_data) if row else None
        if target is None:
            continue
        contest = await ContestService().get_contest(target[0])
        if contest is not None:
            contests.append(contest)
    await cq.message.edit_reply_markup(reply_markup=bookmark_keyboard(lz, contests, marked))

@router.message(Command("bookmarks"))
async def list_bookmarks(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    if not current_user.is_signed_in:
        await message.answer(error_text(lz, NotAuthenticated()))
        return

    try:
        async with BookmarkCoordinator(current_user.tg_id, current_user).attach() as coordinator:
            contests = await coordinator.contests()
            marked = coordinator.view()
    except StoreUnavailable as exc:
        await message.answer(error_text(lz, exc))
        return

    if not contests:
        await message.answer(lz.get("bookmarks.empty"))
        return

    now = status.utcnow()
    text = "\n\n".join(format_contest(lz, c, now, True) for c in contests)
    await message.answer(
        lz.get("bookmarks.header", count=len(contests)) + "\n\n" + text,
        reply_markup=bookmark_keyboard(lz, contests, marked),
        disable_web_page_preview=True,
    )
