"""
models/tone_profile.py
----------------------
Tone profile owned by a school. `dimensions` is an ordered JSON list of
{"name": str, "score": 0-100, "explanation": str} produced by the external
tone-analysis collaborator.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class ToneProfile(Base, TimestampMixin):
    __tablename__ = "tone_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    school_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dimensions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    school: Mapped["School"] = relationship("School", back_populates="tone_profiles")  # noqa: F821

    def __repr__(self) -> str:
        return f"<ToneProfile id={self.id} school_id={self.school_id} name={self.name}>"
