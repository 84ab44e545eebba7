"""ModelPrice repository for mediaforge.

Provides data access methods for the per-model credit price table.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mediaforge.core.timezone import utcnow
from mediaforge.models.model_price import ModelPrice


class ModelPriceRepository:
    """Repository for ModelPrice entities.

    Model identifiers are matched lower-cased and trimmed.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, model: str) -> ModelPrice | None:
        result = await self.session.execute(
            select(ModelPrice).where(ModelPrice.model == _normalize(model))  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_cost(self, model: str) -> int | None:
        """Return the configured credit cost for a model, None if unpriced."""
        result = await self.session.execute(
            select(ModelPrice.credit_cost).where(ModelPrice.model == _normalize(model))  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[ModelPrice]:
        result = await self.session.execute(select(ModelPrice).order_by(ModelPrice.model))  # type: ignore[arg-type]
        return list(result.scalars().all())

    async def seed(self, model: str, kind: str, credit_cost: int, description: str = "") -> bool:
        """Insert a default price unless the model is already priced.

        Existing rows are left untouched so operator changes survive restarts.

        Returns:
            True if a row was inserted
        """
        if await self.get(model) is not None:
            return False
        self.session.add(
            ModelPrice(
                model=_normalize(model),
                kind=kind,
                credit_cost=credit_cost,
                description=description,
            )
        )
        await self.session.flush()
        return True

    async def set_cost(self, model: str, kind: str, credit_cost: int) -> ModelPrice:
        """Create or update the price of a model."""
        price = await self.get(model)
        if price is None:
            price = ModelPrice(model=_normalize(model), kind=kind, credit_cost=credit_cost)
        else:
            price.credit_cost = credit_cost
            price.updated_at = utcnow()
        self.session.add(price)
        await self.session.flush()
        return price


def _normalize(model: str) -> str:
    return model.strip().lower()
