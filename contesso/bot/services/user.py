# bot/services/user.py
from typing import Self, ClassVar, Optional
from contesso.db.schemas.user import UserRead, UserCreate, UserUpdate
from contesso.db.enums import UserRole
from contesso.db.database import DataBase

class UserService:
    _instance: ClassVar[Optional["UserService"]] = None

    def __new__(cls, *args, **kwargs) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, database: Optional[DataBase] = None) -> None:
        if getattr(self, "_initialized", False):
            return

        self.database = database or DataBase()
        self.users: dict[int, UserRead] = dict()
        self._initialized = True

    async def update_user(self, user: UserUpdate) -> UserRead:
        new_user = await self.database.update_user(user)
        if isinstance(new_user.tg_id, int):
            self.users[new_user.tg_id] = new_user
        return new_user

    async def change_role(self, user: UserRead, role: UserRole) -> UserRead:
        if user.role == role:
            return user
        return await self.update_user(UserUpdate(id=user.id, role=role))

    async def get_user(
        self,
        tg_id: int,
        tg_username: Optional[str] = None,
        full_name: Optional[str] = None,
        autocreate: bool = False,
    ) -> Optional[UserRead]:
        """
        Resolve a Telegram account to a stored user, warming the tg_id cache.

        With ``autocreate`` an unknown account is stored as an unregistered
        (signed-out) user; a changed username is written back.
        """
        user = self.users.get(tg_id)
        if user is None:
            user = await self.database.get_user_by_tg_id(tg_id)
            if user is None and autocreate:
                user = await self.database.create_user(
                    UserCreate(tg_id=tg_id, tg_username=tg_username, full_name=full_name)
                )
            if user is None:
                return None
            self.users[tg_id] = user

        if tg_username is not None and user.tg_username != tg_username.lstrip("@"):
            user = await self.update_user(UserUpdate(id=user.id, tg_username=tg_username))

        return user
