# db/schemas/contest.py
from datetime import datetime
from typing import Optional
from pydantic import Field
from contesso.db.schemas._base import OrmModel
from contesso.db.enums import Platform

class ContestBase(OrmModel):
    name: str = Field(min_length=1)
    platform: Platform
    start_time: datetime
    end_time: datetime
    duration: int = Field(ge=0)  # seconds, always end_time - start_time
    url: str

class ContestUpsert(ContestBase):
    """Canonical contest as produced by the normalizer."""
    id: str
    solution_link: Optional[str] = None

class ContestRead(ContestBase):
    id: str
    solution_link: Optional[str] = None
    fetched_at: Optional[datetime] = None
