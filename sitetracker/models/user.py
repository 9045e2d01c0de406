"""User model: application user with role-based access control."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from sitetracker.database import Base


class User(Base):
    """System user with a role that controls what they may change.

    Roles:
        - Admin: Full system access including user management.
        - Manager: Manages projects and imports.
        - Editor: Creates and edits project sites, runs CSV imports.
        - Viewer: Read-only access.

    Attributes:
        id: Primary key.
        username: Unique login username.
        email: Unique email address.
        password_hash: Bcrypt-hashed password (never store plain text).
        full_name: Display name.
        role: Role identifier controlling permissions.
        is_active: Whether the account is active.
        last_login: Timestamp of the last successful login.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(20), default="Viewer", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
