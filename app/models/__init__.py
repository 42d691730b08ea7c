"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and Alembic's env.py) can import
Base and discover all tables via a single import:

    from app.models import Base
"""

from app.db.base import Base
from app.models.user import User
from app.models.school import School
from app.models.membership import Membership, MemberRole
from app.models.invitation import Invitation
from app.models.tone_profile import ToneProfile
from app.models.content_draft import ContentDraft
from app.models.audit import AuditAction

__all__ = [
    "Base",
    "User",
    "School",
    "Membership",
    "MemberRole",
    "Invitation",
    "ToneProfile",
    "ContentDraft",
    "AuditAction",
]
