# db/models/playlist.py
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, Enum as SAEnum, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from contesso.db.models._base import Base
from contesso.db.enums import Platform

class YoutubePlaylist(Base):
    __tablename__ = "youtube_playlist"
    __table_args__ = (
        UniqueConstraint("platform", "playlist_id", name="youtube_playlist_platform_playlist_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    platform: Mapped[Platform] = mapped_column(SAEnum(Platform, name="platform"), nullable=False)
    playlist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )
