# db/models/contest.py
from datetime import datetime
from typing import List, Optional
from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contesso.db.models._base import Base
from contesso.db.enums import Platform

class Contest(Base):
    __tablename__ = "contest"
    __table_args__ = (
        CheckConstraint("end_time >= start_time", name="contest_end_after_start"),
    )

    # "<platform prefix>:<platform-native id>", e.g. "cf:1999"
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    platform: Mapped[Platform] = mapped_column(SAEnum(Platform, name="platform"), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    solution_link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    fetched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    bookmarks: Mapped[List["Bookmark"]] = relationship(back_populates="contest", cascade="all, delete-orphan", passive_deletes=True)
