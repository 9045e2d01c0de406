"""Who is calling, and may they run imports.

Import endpoints depend on ``require_role(*IMPORT_ROLES)``; everything else
authenticated depends on ``get_current_user``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sitetracker.config import Settings
from sitetracker.database import get_db
from sitetracker.models.user import User
from sitetracker.utils.security import decode_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _active_user(db: Session, **criteria) -> User | None:
    return db.query(User).filter_by(is_active=True, **criteria).first()


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    """Check a username/password pair; ``None`` on any mismatch.

    A successful login stamps ``last_login``.  Failing to write the stamp
    does not fail the login.
    """
    user = _active_user(db, username=username)
    if user is None or not verify_password(password, user.password_hash):
        logger.debug("Credentials rejected for '%s'", username)
        return None

    user.last_login = datetime.now(timezone.utc)
    try:
        db.commit()
    except SQLAlchemyError:  # pragma: no cover
        db.rollback()
        logger.warning("last_login not recorded for '%s'", username)
    return user


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """Resolve the bearer token to an active account, or answer 401."""
    try:
        claims = decode_access_token(token)
    except ValueError as exc:
        raise _unauthorized() from exc

    user = _active_user(db, id=claims.user_id)
    if user is None:
        logger.info("Token for user id %s no longer maps to an active account", claims.user_id)
        raise _unauthorized()
    return user


def require_role(*roles: str):
    """Dependency factory: the caller must hold one of *roles*, else 403.

    Usage::

        Uploader = Annotated[User, Depends(require_role(*IMPORT_ROLES))]
    """
    allowed = frozenset(roles)

    def _check_role(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in allowed:
            logger.info("User '%s' (%s) denied", current_user.username, current_user.role)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Requires one of the roles: {sorted(allowed)}",
            )
        return current_user

    return _check_role


def ensure_admin_user(db: Session, settings: Settings) -> User:
    """Create the configured admin account on first start; idempotent."""
    existing = db.query(User).filter_by(username=settings.ADMIN_USERNAME).first()
    if existing is not None:
        return existing

    admin = User(
        username=settings.ADMIN_USERNAME,
        email=settings.ADMIN_EMAIL,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        full_name="System Administrator",
        role="Admin",
        is_active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Created admin account '%s'", admin.username)
    return admin
