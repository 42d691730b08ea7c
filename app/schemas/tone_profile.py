"""
schemas/tone_profile.py
-----------------------
Tone profile models. Dimensions arrive from the tone-analysis collaborator
as an ordered list; scores are bounded to 0–100.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ToneDimension(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Formality"])
    score: float = Field(..., ge=0, le=100)
    explanation: str = ""


class ToneProfileCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    dimensions: list[ToneDimension] = Field(default_factory=list)
    is_active: bool = True


class ToneProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    dimensions: Optional[list[ToneDimension]] = None
    is_active: Optional[bool] = None


class ToneProfileRead(BaseModel):
    id: str
    school_id: str
    name: str
    dimensions: list[ToneDimension]
    created_by: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
