"""Sign-in state of bot users, published as an explicit event stream.

A user is signed in while their role is anything but ``unregistered``. Every
transition is published to the subscribers registered with
:meth:`SessionService.subscribe`; subscribers release themselves through the
returned unsubscribe callable (or the :meth:`SessionService.subscription`
context manager) instead of staying attached forever.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, ClassVar, Iterator, Optional

from contesso.config import Settings
from contesso.db.enums import SessionEventKind, UserRole
from contesso.db.schemas.user import UserRead
from contesso.bot.services.user import UserService
from contesso.bot.services.audit_log import instrument_service_class

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SessionEvent:
	kind: SessionEventKind
	# Identifies the client (the Telegram account); stable across sign-in/out.
	session_key: int
	user: Optional[UserRead]


SessionHandler = Callable[[SessionEvent], Awaitable[None]]


class SessionService:
	_instance: ClassVar[Optional["SessionService"]] = None

	def __new__(cls, *args, **kwargs) -> "SessionService":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, user_service: Optional[UserService] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self._users = user_service or UserService()
		self._handlers: list[SessionHandler] = []
		self._initialized = True

	async def sign_in(self, user: UserRead) -> UserRead:
		"""Give the user a signed-in role (admin for configured usernames) and publish it."""
		role = UserRole.ADMIN if (user.tg_username or "") in Settings().admins else UserRole.USER
		user = await self._users.change_role(user, role)
		await self._publish(SessionEvent(SessionEventKind.SIGNED_IN, user.tg_id, user))
		return user

	async def sign_out(self, user: UserRead) -> UserRead:
		user = await self._users.change_role(user, UserRole.UNREGISTERED)
		await self._publish(SessionEvent(SessionEventKind.SIGNED_OUT, user.tg_id, None))
		return user

	def subscribe(self, handler: SessionHandler) -> Callable[[], None]:
		self._handlers.append(handler)

		def unsubscribe() -> None:
			if handler in self._handlers:
				self._handlers.remove(handler)

		return unsubscribe

	@contextmanager
	def subscription(self, handler: SessionHandler) -> Iterator[None]:
		unsubscribe = self.subscribe(handler)
		try:
			yield
		finally:
			unsubscribe()

	def close(self) -> int:
		"""Drop subscribers still attached at shutdown; returns how many there were."""
		leftover = len(self._handlers)
		if leftover:
			logger.warning("Dropping %d session subscriber(s) on shutdown", leftover)
		self._handlers.clear()
		return leftover

	async def _publish(self, event: SessionEvent) -> None:
		for handler in list(self._handlers):
			try:
				await handler(event)
			except Exception:
				logger.exception("Session handler failed for %s of %s", event.kind, event.session_key)


instrument_service_class(SessionService, prefix="services.session", include={"sign_in", "sign_out"})
