"""
schemas/school.py
-----------------
Pydantic request/response models for School.

Naming convention:
  SchoolCreate  → inbound request body
  SchoolRead    → outbound response body
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.models.membership import MemberRole


class SchoolCreate(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=255,
        examples=["Riverside Elementary"],
    )
    website: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class SchoolUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    website: Optional[str] = Field(default=None, max_length=2048)


class SchoolRead(BaseModel):
    id: str
    name: str
    website: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserSchoolRead(BaseModel):
    school_id: str
    school_name: str
    role: MemberRole
