"""
api/routes/auth.py
------------------
Authentication endpoints.

POST /register  — Create an identity (no school yet; see POST /schools).
POST /login     — Exchange credentials for an access + refresh token pair.
                  Accepts OAuth2 form data (Swagger UI).
POST /refresh   — Renew the token pair from a refresh token.
GET  /me        — The caller, their schools, and the school selected with
                  the X-School-ID header.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Unauthenticated
from app.core.retry import is_rate_limited, retry_async
from app.db.session import get_db
from app.dependencies import (
    RequestContext,
    get_identity_provider,
    get_request_context,
    identity_backoff_policy,
)
from app.schemas.user import (
    LoginResponse,
    MeResponse,
    RefreshRequest,
    TokenResponse,
    UserRead,
    UserRegister,
)
from app.services.facade_service import QueryFacade
from app.services.identity_service import IdentityProvider, LocalIdentityProvider

router = APIRouter(tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
)
async def register(
    body: UserRegister,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserRead:
    """
    Create a new identity. The account belongs to no school until it
    registers one (becoming its first admin) or accepts an invitation.
    """
    user = await LocalIdentityProvider(db).register(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
    )
    return UserRead.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login and receive JWT access and refresh tokens",
)
async def login(
    # The "username" field of the OAuth2 form carries the email address
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoginResponse:
    """
    Via curl/Postman send form data (not JSON):
        -d "username=you@school.org&password=yourpassword"
    """
    provider = LocalIdentityProvider(db)
    user = await provider.authenticate(form_data.username, form_data.password)
    if user is None:
        raise Unauthenticated("Invalid email or password")

    tokens = provider.issue_tokens(user)
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user=UserRead.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Renew the access token",
)
async def refresh(
    body: RefreshRequest,
    provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> TokenResponse:
    tokens = await retry_async(
        lambda: provider.refresh(body.refresh_token),
        policy=identity_backoff_policy(),
        retryable=is_rate_limited,
    )
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get the currently authenticated user",
)
async def get_me(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MeResponse:
    user = await LocalIdentityProvider(db).get_user(ctx.caller.user_id)
    if user is None:
        raise Unauthenticated()

    schools = await QueryFacade.list_schools_for_caller(db, ctx.caller, ctx.caller.user_id)
    # A selection the caller does not belong to is ignored, never honoured
    current = next((s for s in schools if s.school_id == ctx.current_school_id), None)
    return MeResponse(
        user=UserRead.model_validate(user),
        schools=schools,
        current_school=current,
    )
