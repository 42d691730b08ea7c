"""
core/security.py
----------------
Password hashing, JWT and invitation token utilities.

Design decisions:
  - bcrypt work factor from BCRYPT_ROUNDS, 12 by default (good balance of
    security vs latency)
  - Access tokens carry only sub (user_id), email and typ. The super-admin
    flag is NOT trusted from the token: the identity provider re-reads it
    from the users table on every request so revocation is immediate.
  - Refresh tokens are JWTs with typ="refresh" and a longer lifetime.
  - Invitation tokens are opaque, unguessable URL-safe strings.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from app.core.config import settings

# bcrypt context, rounds=12 is the OWASP recommended minimum
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


# ── JWT Utilities ─────────────────────────────────────────────────────────────

def _encode(subject: str, email: str, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "email": email,
        "typ": token_type,
        "exp": now + expires_delta,
        "iat": now,
        # Unique per token so two tokens minted in the same second differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    subject: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a JWT access token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        email: Authenticated email, used for invitation matching.
        expires_delta: Optional custom expiry; defaults to settings value.
    """
    return _encode(
        subject,
        email,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(subject: str, email: str) -> str:
    return _encode(
        subject,
        email,
        REFRESH_TOKEN_TYPE,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ── Invitation tokens ─────────────────────────────────────────────────────────

def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)
