"""Password hashing and bearer tokens.

Tokens identify a user by primary key (``sub``) and carry the role the user
had when the token was issued.  The role claim is informational only:
``get_current_user`` re-reads the account on every request, so a demoted or
deactivated user loses import rights immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from sitetracker.config import get_settings

logger = logging.getLogger(__name__)

_ENCODING = "utf-8"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    role: str
    expires_at: datetime


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(_ENCODING), bcrypt.gensalt()).decode(_ENCODING)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(_ENCODING), hashed.encode(_ENCODING))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


def create_access_token(user_id: int, username: str, role: str) -> str:
    """Sign a token for ``user_id`` valid for ``JWT_EXPIRATION_MINUTES``."""
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    """Verify signature and expiry of *token* and return its claims.

    Raises:
        ValueError: Bad signature, expired token, or missing/garbled claims.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise ValueError("Invalid or expired token") from exc

    try:
        return TokenClaims(
            user_id=int(payload["sub"]),
            username=str(payload.get("username", "")),
            role=str(payload.get("role", "")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError("Token is missing required claims") from exc
