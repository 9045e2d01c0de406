"""Notification model: in-app message addressed to one user."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from sitetracker.database import Base


class Notification(Base):
    """Stored notification shown in the user's inbox.

    Attributes:
        id: Primary key.
        user_id: Recipient.
        type: Category, e.g. ``"import"``.
        title: Short headline.
        message: Full message text.
        data_json: JSON-serialised payload for the client (ids, counts).
        is_read: Whether the user has opened it.
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data_json = Column(Text, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
