"""
services/school_service.py
--------------------------
School registration and settings.

create_school_with_admin is one transaction: the school row and the
caller's bootstrap membership commit together or not at all. If the
membership step fails the transaction is rolled back, which removes the
school row; a failed rollback is logged as a compensation failure because
it may leave an orphaned, member-less school behind.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError
from app.core.logging import get_logger
from app.models.membership import MemberRole
from app.models.school import School
from app.policies.context import Action, CallerIdentity
from app.policies.engine import AuthorizationEngine
from app.schemas.school import SchoolCreate, SchoolUpdate
from app.services.membership_service import MembershipService

logger = get_logger(__name__)


class SchoolService:

    @staticmethod
    async def create_school_with_admin(
        db: AsyncSession, caller: CallerIdentity, data: SchoolCreate
    ) -> School:
        engine = AuthorizationEngine(db, caller)
        school = School(name=data.name, website=data.website)
        await engine.authorize(Action.INSERT, school)

        db.add(school)
        await db.flush()
        school_id = school.id

        try:
            await MembershipService.add_member(
                db, caller, school_id, caller.user_id, MemberRole.admin
            )
        except AppError as exc:
            logger.warning(
                "First-admin bootstrap failed, discarding school",
                school_id=school_id,
                user_id=caller.user_id,
                error=exc.message,
            )
            try:
                await db.rollback()
            except Exception:
                logger.error(
                    "Compensation failed: school may be left without members",
                    school_id=school_id,
                    exc_info=True,
                )
            raise

        logger.info("School created", school_id=school.id, name=school.name, admin_id=caller.user_id)
        return school

    @staticmethod
    async def get_school(db: AsyncSession, caller: CallerIdentity, school_id: str) -> School:
        return await AuthorizationEngine(db, caller).require_school_visible(school_id)

    @staticmethod
    async def update_school(
        db: AsyncSession, caller: CallerIdentity, school_id: str, data: SchoolUpdate
    ) -> School:
        engine = AuthorizationEngine(db, caller)
        school = await engine.require_school_visible(school_id, for_update=True)
        await engine.authorize(Action.UPDATE, school)

        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is not None:
            school.name = changes["name"].strip()
        if "website" in changes:
            school.website = changes["website"]
        await db.flush()
        logger.info("School updated", school_id=school.id, fields=sorted(changes))
        return school
