# db/schemas/user.py
import uuid
from typing import Optional
from contesso.db.schemas._base import OrmModel
from contesso.db.enums import UserRole
from contesso.utils.sentinels import Missing

class UserBase(OrmModel):
    tg_id: Optional[int] = None
    tg_username: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.UNREGISTERED

class UserCreate(UserBase): ...

class UserUpdate(OrmModel):
    id: uuid.UUID
    tg_id: int | Missing | None = Missing()
    tg_username: str | Missing | None = Missing()
    full_name: str | Missing | None = Missing()
    role: UserRole | Missing = Missing()

class UserRead(UserBase):
    id: uuid.UUID

    @property
    def is_signed_in(self) -> bool:
        return self.role != UserRole.UNREGISTERED

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
