"""Credit pricing for generation models."""

import structlog

from mediaforge.services.catalog import MODEL_CATALOG
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()


async def lookup_cost(uow: UnitOfWork, model: str, default_cost: int) -> int:
    """Resolve the credit cost of one job of ``model``.

    Lookup order: price table, then the catalog default, then ``default_cost``.
    Unknown models are priced, never rejected here.
    """
    cost = await uow.model_prices.get_cost(model)
    if cost is not None:
        return cost

    spec = MODEL_CATALOG.get(model.strip().lower())
    if spec is not None:
        return spec.default_cost

    logger.warning("pricing.default_cost_used", model=model, cost=default_cost)
    return default_cost


async def seed_prices(uow: UnitOfWork) -> int:
    """Insert catalog default prices for models missing from the price table.

    Returns:
        Number of rows inserted
    """
    inserted = 0
    for spec in MODEL_CATALOG.values():
        if await uow.model_prices.seed(
            spec.name, spec.kind.value, spec.default_cost, spec.description
        ):
            inserted += 1

    if inserted:
        logger.info("pricing.seeded", inserted=inserted, total=len(MODEL_CATALOG))
    return inserted
