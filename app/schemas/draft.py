"""
schemas/draft.py
----------------
Content draft models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DraftCreate(BaseModel):
    tone_profile_id: str
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(default="", max_length=100_000)


class DraftUpdate(BaseModel):
    tone_profile_id: Optional[str] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content: Optional[str] = Field(default=None, max_length=100_000)


class DraftRead(BaseModel):
    id: str
    school_id: str
    tone_profile_id: str
    user_id: str
    title: str
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
