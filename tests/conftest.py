"""Pytest configuration and fixtures for the test suite."""

import os

# Settings are read once at import time, so the environment must be in
# place BEFORE any app module is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import session as session_module
from app.models import Base, Membership, MemberRole, School
from app.services.identity_service import LocalIdentityProvider, caller_for

from helpers import DEFAULT_PASSWORD


@pytest_asyncio.fixture
async def engine():
    """One in-memory database per test; StaticPool keeps it on one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch):
    """
    HTTP client over the ASGI app. The real get_db dependency runs, bound to
    the test database.
    """
    from main import app

    monkeypatch.setattr(session_module, "AsyncSessionLocal", session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
def make_user(db):
    """
    Factory: create an identity and return (user, caller).

    Usage:
        user, caller = await make_user("alice@school.org")
    """
    async def _make(email: str, super_admin: bool = False, full_name: str | None = None):
        user = await LocalIdentityProvider(db).register(
            email=email,
            password=DEFAULT_PASSWORD,
            full_name=full_name,
            is_super_admin=super_admin,
        )
        await db.commit()
        return user, caller_for(user)

    return _make


@pytest.fixture
def make_school(db):
    """
    Factory: insert a school with the given (user_id, role) memberships
    directly, bypassing the lifecycle manager. Returns the school id.
    """
    async def _make(name: str = "Riverside Elementary", members=()):
        school = School(name=name)
        db.add(school)
        await db.flush()
        for index, (user_id, role) in enumerate(members):
            db.add(
                Membership(
                    school_id=school.id,
                    user_id=user_id,
                    role=MemberRole(role).value,
                    founding_school_id=school.id if index == 0 else None,
                )
            )
        await db.commit()
        return school.id

    return _make

