"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication and request
context.

Flow:
  1. OAuth2PasswordBearer extracts the Bearer token from the Authorization header.
  2. get_caller asks the identity provider to resolve it into a
     CallerIdentity, retrying with exponential backoff only when the
     provider reports a rate limit.
  3. get_request_context adds the school the client is operating against,
     taken from the X-School-ID header. The selection is explicit per
     request; nothing about it is remembered between requests.

Authorization itself is NOT done here: services ask the AuthorizationEngine
per row, and facade operations run their own single check.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Unauthenticated
from app.core.logging import bind_request_context
from app.core.retry import BackoffPolicy, is_rate_limited, retry_async
from app.db.session import get_db
from app.policies.context import CallerIdentity
from app.services.identity_service import IdentityProvider, LocalIdentityProvider

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login", auto_error=False)


def identity_backoff_policy() -> BackoffPolicy:
    return BackoffPolicy(
        max_attempts=settings.IDENTITY_RETRY_ATTEMPTS,
        base_delay=settings.IDENTITY_RETRY_BASE_DELAY_SECONDS,
    )


def get_identity_provider(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> IdentityProvider:
    return LocalIdentityProvider(db)


async def get_caller(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> CallerIdentity:
    """
    Resolve the bearer credential into the caller identity.
    Raises Unauthenticated (401) if it is missing, invalid or expired.
    """
    if not token:
        raise Unauthenticated()

    caller = await retry_async(
        lambda: provider.resolve(token),
        policy=identity_backoff_policy(),
        retryable=is_rate_limited,
    )
    bind_request_context(caller_id=caller.user_id)
    return caller


@dataclass(frozen=True)
class RequestContext:
    caller: CallerIdentity
    current_school_id: Optional[str] = None


async def get_request_context(
    caller: Annotated[CallerIdentity, Depends(get_caller)],
    x_school_id: Annotated[Optional[str], Header()] = None,
) -> RequestContext:
    return RequestContext(caller=caller, current_school_id=x_school_id or None)
