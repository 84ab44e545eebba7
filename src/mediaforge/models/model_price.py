"""ModelPrice entity - credit cost per generation model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from mediaforge.core.timezone import utcnow


class ModelPrice(SQLModel, table=True):
    """ModelPrice maps a model identifier to its credit cost."""

    __tablename__ = "model_prices"  # type: ignore[assignment]

    model: str = Field(primary_key=True, max_length=100)
    kind: str = Field(max_length=50)
    credit_cost: int = Field(ge=0)
    description: str = Field(default="")
    updated_at: datetime = Field(default_factory=utcnow)
