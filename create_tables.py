"""
create_tables.py
----------------
One-shot script to create all database tables, optionally seeding the
first platform super-admin (there is no API path to become one otherwise).

Usage:
    python create_tables.py
    python create_tables.py --super-admin ops@schoolvoice.org --password '...'
"""

import argparse
import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.logging import configure_logging, get_logger
from app.models import Base  # Imports all models so metadata is populated
from app.services.identity_service import LocalIdentityProvider

logger = get_logger(__name__)


async def create_all_tables(
    super_admin_email: Optional[str] = None,
    super_admin_password: Optional[str] = None,
) -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("All tables created", database=engine.url.render_as_string(hide_password=True))

    if super_admin_email and super_admin_password:
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            user = await LocalIdentityProvider(session).register(
                email=super_admin_email,
                password=super_admin_password,
                is_super_admin=True,
            )
            await session.commit()
        logger.info("Super admin seeded", user_id=user.id)

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create School Voice tables")
    parser.add_argument("--super-admin", dest="email", default=None)
    parser.add_argument("--password", default=None)
    args = parser.parse_args()

    configure_logging()
    asyncio.run(create_all_tables(args.email, args.password))


if __name__ == "__main__":
    main()
