"""
services/identity_service.py
----------------------------
Identity provider: registration, password login, bearer-token resolution
and token refresh.

The rest of the system only sees CallerIdentity. resolve() re-reads the
user row on every call, so a deleted user or a revoked super-admin flag
takes effect on the next request instead of when the token expires.

resolve() and refresh() are the calls wrapped in retry_async at the
dependency layer; a remote provider signals throttling by raising
IdentityRateLimited.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Conflict, Unauthenticated
from app.core.logging import get_logger
from app.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.policies.context import CallerIdentity

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # seconds


class IdentityProvider(Protocol):
    async def resolve(self, token: str) -> CallerIdentity: ...

    async def refresh(self, refresh_token: str) -> TokenPair: ...


class LocalIdentityProvider:
    """Identity provider backed by the users table and self-signed JWTs."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def register(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        is_super_admin: bool = False,
    ) -> User:
        """
        Create an identity. Email is stored lower-cased.
        Raises Conflict on duplicate email.
        """
        user = User(
            email=email.strip().lower(),
            hashed_password=hash_password(password),
            full_name=full_name,
            is_super_admin=is_super_admin,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict(f"Email '{email}' is already registered")
        logger.info("User registered", user_id=user.id)
        return user

    async def authenticate(self, email: str, password: str) -> User | None:
        """
        Verify credentials and return the User if valid, else None.
        Email lookup is case-insensitive.
        """
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user(self, user_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    def issue_tokens(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=create_access_token(subject=user.id, email=user.email),
            refresh_token=create_refresh_token(subject=user.id, email=user.email),
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    async def _user_from_token(self, token: str, expected_type: str) -> User:
        try:
            payload = decode_token(token)
        except JWTError as exc:
            logger.warning("JWT decode failed", error=str(exc))
            raise Unauthenticated()

        user_id = payload.get("sub")
        if not user_id or payload.get("typ") != expected_type:
            raise Unauthenticated()

        user = await self.get_user(user_id)
        if user is None:
            logger.warning("User from valid JWT not found", user_id=user_id)
            raise Unauthenticated()
        return user

    async def resolve(self, token: str) -> CallerIdentity:
        user = await self._user_from_token(token, ACCESS_TOKEN_TYPE)
        return CallerIdentity(
            user_id=user.id,
            email=user.email,
            is_platform_super_admin=user.is_super_admin,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Renew the credential pair, or raise Unauthenticated if the session is gone."""
        user = await self._user_from_token(refresh_token, REFRESH_TOKEN_TYPE)
        logger.info("Session refreshed", user_id=user.id)
        return self.issue_tokens(user)


def caller_for(user: User) -> CallerIdentity:
    return CallerIdentity(
        user_id=user.id,
        email=user.email,
        is_platform_super_admin=user.is_super_admin,
    )
