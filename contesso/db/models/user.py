# db/models/user.py
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import BigInteger, DateTime, Enum as SAEnum, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contesso.db.models._base import Base
from contesso.db.enums import UserRole

class User(Base):
    __tablename__ = "user"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tg_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, unique=True)
    tg_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), nullable=False, default=UserRole.UNREGISTERED)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    bookmarks: Mapped[List["Bookmark"]] = relationship(back_populates="user", passive_deletes=True)
    audit_logs: Mapped[List["AuditLog"]] = relationship(back_populates="actor", passive_deletes=True)
