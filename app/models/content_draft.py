"""
models/content_draft.py
-----------------------
Content written against a tone profile. Readable by every member of the
school; only the author (user_id) may change or delete it.
"""

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, generate_uuid


class ContentDraft(Base, TimestampMixin):
    __tablename__ = "content_drafts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    school_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tone_profile_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tone_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    school: Mapped["School"] = relationship("School", back_populates="drafts")  # noqa: F821
    tone_profile: Mapped["ToneProfile"] = relationship("ToneProfile")  # noqa: F821

    def __repr__(self) -> str:
        return f"<ContentDraft id={self.id} user_id={self.user_id}>"
