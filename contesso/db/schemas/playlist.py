# db/schemas/playlist.py
import uuid
from datetime import datetime
from typing import Optional
from contesso.db.schemas._base import OrmModel
from contesso.db.enums import Platform

class PlaylistBase(OrmModel):
    platform: Platform
    playlist_id: str
    last_synced_at: Optional[datetime] = None

class PlaylistRead(PlaylistBase):
    id: uuid.UUID
