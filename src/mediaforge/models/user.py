"""User entity - account holder with a credit balance."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from mediaforge.core.timezone import utcnow


class User(SQLModel, table=True):
    """User owns a non-negative integer credit balance.

    The balance is only mutated through the credit ledger's conditional
    UPDATE statements, never by assigning ``credits`` on a loaded row.
    """

    __tablename__ = "users"  # type: ignore[assignment]
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: Optional[str] = Field(default=None, max_length=255, unique=True)
    credits: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
