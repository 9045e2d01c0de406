"""Token issuance for API clients, mounted under ``/api/auth``."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from sitetracker.config import Settings, get_settings
from sitetracker.database import get_db
from sitetracker.models.user import User
from sitetracker.schemas.auth import TokenResponse, UserResponse
from sitetracker.services.auth_service import authenticate_user, get_current_user
from sitetracker.utils.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Obtain a bearer token",
    responses={401: {"description": "Unknown user, wrong password or inactive account."}},
)
def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenResponse:
    user = authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        logger.warning("Rejected login for '%s'", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials or inactive account",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info("User '%s' (%s) logged in", user.username, user.role)
    return TokenResponse(
        access_token=create_access_token(user.id, user.username, user.role),
        expires_in=settings.JWT_EXPIRATION_MINUTES * 60,
        role=user.role,
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Profile of the token holder",
    responses={401: {"description": "Missing, invalid or expired token."}},
)
def read_current_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    return UserResponse.model_validate(current_user)
