# bot/routers/admin.py
from html import escape

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from contesso.db.enums import Platform
from contesso.db.schemas.user import UserRead
from contesso.exceptions import PermissionDenied, SourceUnavailable, StoreUnavailable
from contesso.bot.services.contest import ContestService
from contesso.bot.services.playlist import PlaylistService
from contesso.bot.routers.utils import error_text, get_localizer, parse_platform

router = Router(name="admin")

@router.message(Command("refresh"))
async def refresh(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    if not current_user.is_admin:
        await message.answer(error_text(lz, PermissionDenied()))
        return

    try:
        report = await ContestService().refresh()
    except StoreUnavailable as exc:
        await message.answer(error_text(lz, exc))
        return

    if not report.applied:
        await message.answer(lz.get("admin.refresh.superseded"))
        return
    text = lz.get(
        "admin.refresh.done",
        inserted=report.inserted,
        updated=report.updated,
        unchanged=report.unchanged,
        dropped=len(report.dropped),
    )
    if report.failed_sources:
        text += "\n" + lz.get("contests.notice.partial", platforms=", ".join(p.value for p in report.failed_sources))
    await message.answer(text)

@router.message(Command("solution"))
async def set_solution(message: Message, current_user: UserRead, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    args = (command.args or "").split()
    if len(args) != 2:
        await message.answer(lz.get("admin.solution.usage"))
        return

    contest_id, link = args
    try:
        contest = await ContestService().set_solution_link(current_user, contest_id, link)
    except (PermissionDenied, LookupError, ValueError, StoreUnavailable) as exc:
        await message.answer(error_text(lz, exc))
        return

    await message.answer(lz.get("admin.solution.done", name=escape(contest.name), url=escape(link)), disable_web_page_preview=True)

@router.message(Command("sync_playlists"))
async def sync_playlists(message: Message, current_user: UserRead, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    if not current_user.is_admin:
        await message.answer(error_text(lz, PermissionDenied()))
        return

    platforms = [p for p in (parse_platform(t) for t in (command.args or "").split()) if p is not None] or list(Platform)
    svc = PlaylistService()
    lines = []
    for platform in platforms:
        try:
            report = await svc.sync(platform, current_user)
        except SourceUnavailable:
            lines.append(lz.get("admin.playlists.failed", platform=platform.value))
            continue
        except StoreUnavailable as exc:
            await message.answer(error_text(lz, exc))
            return
        if report.skipped:
            lines.append(lz.get("admin.playlists.skipped", platform=platform.value))
        else:
            lines.append(lz.get("admin.playlists.done", platform=platform.value, videos=report.videos, linked=len(report.linked)))
    await message.answer("\n".join(lines))
