"""ApiCredential entity - outbound provider key selected by the rotator."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from mediaforge.core.timezone import utcnow


class ApiCredential(SQLModel, table=True):
    """ApiCredential is one provider secret with usage accounting.

    ``name`` is the logical identity (e.g. KIE_API_KEY_3); registering the same
    name twice is a no-op.
    """

    __tablename__ = "api_credentials"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider: str = Field(max_length=50, index=True)
    name: str = Field(max_length=100, unique=True, index=True)
    secret: str
    is_active: bool = Field(default=True, index=True)
    usage_count: int = Field(default=0, ge=0)
    last_used_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
