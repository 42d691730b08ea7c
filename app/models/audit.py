"""
models/audit.py
---------------
Append-only log of privileged super-admin operations. Rows are inserted by
the query facade and never updated or deleted.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, generate_uuid, utcnow


class AuditAction(Base):
    __tablename__ = "super_admin_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    # Plain columns, no FKs: the log must outlive the users and schools it names
    admin_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    affected_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    affected_school_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<AuditAction id={self.id} action_type={self.action_type}>"
