# bot/routers/core.py
from aiogram import Router
from aiogram.filters import CommandStart, Command
from aiogram.types import Message
from contesso.db.schemas.user import UserRead
from contesso.bot.services.session import SessionService
from contesso.bot.routers.utils import get_localizer

router = Router(name="core")

@router.message(CommandStart())
async def start(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    name = current_user.full_name or current_user.tg_username or ""
    await message.answer(lz.get("core.start", name=name))
    await message.answer(lz.get("core.help"))

@router.message(Command("help"))
async def show_help(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    text = lz.get("core.help")
    if current_user.is_admin:
        text += "\n\n" + lz.get("admin.help")
    await message.answer(text)

@router.message(Command("signin"))
async def sign_in(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    if current_user.is_signed_in:
        await message.answer(lz.get("core.already_signed_in"))
        return

    user = await SessionService().sign_in(current_user)
    key = "core.signed_in_admin" if user.is_admin else "core.signed_in"
    await message.answer(lz.get(key))

@router.message(Command("signout"))
async def sign_out(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    if not current_user.is_signed_in:
        await message.answer(lz.get("core.already_signed_out"))
        return

    await SessionService().sign_out(current_user)
    await message.answer(lz.get("core.signed_out"))
