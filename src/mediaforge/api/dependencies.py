"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Caller identity (X-User-Id header set by the upstream gateway)
- Operator authorization for /admin routes
- Access to services built in the application lifespan
"""

import hmac
from typing import Annotated, Callable
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from mediaforge.core.config import Settings
from mediaforge.services.container import AppServices
from mediaforge.services.generation.dispatcher import GenerationDispatcher
from mediaforge.services.generation.fanout import MediaFanout
from mediaforge.services.generation.reconciler import CompletionReconciler
from mediaforge.services.ratelimit import RateLimiter
from mediaforge.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance the application was started with."""
    return request.app.state.settings


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.post("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.users.get_by_id(user_id)
    """
    return request.app.state.uow_factory


def get_dispatcher(services: AppServices = Depends(get_services)) -> GenerationDispatcher:
    return services.dispatcher


def get_reconciler(services: AppServices = Depends(get_services)) -> CompletionReconciler:
    return services.reconciler


def get_fanout(services: AppServices = Depends(get_services)) -> MediaFanout:
    return services.fanout


def get_rate_limiter(services: AppServices = Depends(get_services)) -> RateLimiter:
    return services.rate_limiter


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Resolve the calling user from the X-User-Id header.

    Authentication happens upstream; this service trusts the gateway.

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header"
        )


async def require_admin(
    x_admin_token: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Allow the request only with the operator token.

    Uses constant-time comparison. With no ADMIN_TOKEN configured every
    admin request is rejected.

    Raises:
        HTTPException: 401 Unauthorized if the token is missing or wrong
    """
    if not x_admin_token or not settings.admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Admin-Token header"
        )
    if not hmac.compare_digest(x_admin_token.encode(), settings.admin_token.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
