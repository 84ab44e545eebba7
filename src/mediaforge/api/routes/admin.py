"""Operator endpoints, protected by the X-Admin-Token header.

This module implements:
- GET/POST /admin/api-credentials, PATCH /admin/api-credentials/{id}
- POST /admin/users, POST /admin/users/{id}/credits
- GET /admin/model-prices, PUT /admin/model-prices/{model}
- POST /admin/generations/{id}/reconcile

Credential secrets are write-only: no response includes them.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from mediaforge.api.dependencies import get_services, get_uow_factory, require_admin
from mediaforge.models.api_credential import ApiCredential
from mediaforge.models.generation_job import JobKind, JobOutcome
from mediaforge.models.user import User
from mediaforge.services.catalog import KIE, REPLICATE
from mediaforge.services.container import AppServices
from mediaforge.services.exceptions import GenerationServiceError, UserNotFoundError
from mediaforge.services.generation.status_sync import poll_job
from mediaforge.services.key_rotator import ApiKeyRotator
from mediaforge.services.ledger import CreditLedger

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

MANUAL_FAILURE_MESSAGE = "Marked as failed by an operator"


# Request/Response Models


class ApiCredentialDTO(BaseModel):
    id: UUID
    provider: str
    name: str
    is_active: bool
    usage_count: int
    last_used_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_credential(cls, credential: ApiCredential) -> "ApiCredentialDTO":
        return cls(
            id=credential.id,
            provider=credential.provider,
            name=credential.name,
            is_active=credential.is_active,
            usage_count=credential.usage_count,
            last_used_at=credential.last_used_at,
            created_at=credential.created_at,
        )


class RegisterCredentialRequest(BaseModel):
    provider: str = Field(..., pattern=f"^({KIE}|{REPLICATE})$")
    name: str = Field(..., min_length=1, max_length=100)
    secret: str = Field(..., min_length=1)
    is_active: bool = True


class UpdateCredentialRequest(BaseModel):
    is_active: bool


class CreateUserRequest(BaseModel):
    email: str | None = Field(default=None, max_length=255)
    credits: int = Field(default=0, ge=0)


class UserDTO(BaseModel):
    id: UUID
    email: str | None = None
    credits: int


class GrantCreditsRequest(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field(default="admin_grant", max_length=100)


class BalanceResponse(BaseModel):
    user_id: UUID
    credits: int


class ModelPriceDTO(BaseModel):
    model: str
    kind: str
    credit_cost: int
    description: str = ""


class SetModelPriceRequest(BaseModel):
    kind: JobKind
    credit_cost: int = Field(..., ge=0)


class ReconcileAction(str, Enum):
    FAIL = "fail"
    POLL = "poll"


class ReconcileRequest(BaseModel):
    action: ReconcileAction
    error_message: str | None = Field(default=None, max_length=1000)


class ReconcileResponse(BaseModel):
    id: UUID
    status: str
    error_message: str | None = None
    result_urls: list[str] = Field(default_factory=list)


# API Endpoints


@router.get("/api-credentials", response_model=list[ApiCredentialDTO])
async def list_api_credentials(
    provider: str | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
) -> list[ApiCredentialDTO]:
    async with await uow_factory() as uow:
        credentials = await uow.api_credentials.list_all(provider)
    return [ApiCredentialDTO.from_credential(c) for c in credentials]


@router.post("/api-credentials", response_model=ApiCredentialDTO)
async def register_api_credential(
    request: RegisterCredentialRequest,
    response: Response,
    uow_factory=Depends(get_uow_factory),
) -> ApiCredentialDTO:
    """Register a provider credential.

    Returns 201 when created, 200 when a credential with that name exists.
    """
    async with await uow_factory() as uow:
        credential, created = await ApiKeyRotator(uow).register(
            request.provider, request.name, request.secret, is_active=request.is_active
        )

    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ApiCredentialDTO.from_credential(credential)


@router.patch("/api-credentials/{credential_id}", response_model=ApiCredentialDTO)
async def update_api_credential(
    credential_id: UUID,
    request: UpdateCredentialRequest,
    uow_factory=Depends(get_uow_factory),
) -> ApiCredentialDTO:
    async with await uow_factory() as uow:
        credential = await ApiKeyRotator(uow).set_active(credential_id, request.is_active)

    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"API credential not found: {credential_id}",
        )
    return ApiCredentialDTO.from_credential(credential)


@router.post("/users", response_model=UserDTO, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    uow_factory=Depends(get_uow_factory),
) -> UserDTO:
    async with await uow_factory() as uow:
        user = await uow.users.add(User(email=request.email, credits=request.credits))

    logger.info("admin.user_created", user_id=str(user.id), credits=user.credits)
    return UserDTO(id=user.id, email=user.email, credits=user.credits)


@router.post("/users/{user_id}/credits", response_model=BalanceResponse)
async def grant_credits(
    user_id: UUID,
    request: GrantCreditsRequest,
    uow_factory=Depends(get_uow_factory),
) -> BalanceResponse:
    try:
        async with await uow_factory() as uow:
            balance = await CreditLedger(uow).grant(user_id, request.amount, request.reason)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return BalanceResponse(user_id=user_id, credits=balance)


@router.get("/model-prices", response_model=list[ModelPriceDTO])
async def list_model_prices(uow_factory=Depends(get_uow_factory)) -> list[ModelPriceDTO]:
    async with await uow_factory() as uow:
        prices = await uow.model_prices.list_all()
    return [
        ModelPriceDTO(
            model=p.model, kind=p.kind, credit_cost=p.credit_cost, description=p.description
        )
        for p in prices
    ]


@router.put("/model-prices/{model}", response_model=ModelPriceDTO)
async def set_model_price(
    model: str,
    request: SetModelPriceRequest,
    uow_factory=Depends(get_uow_factory),
) -> ModelPriceDTO:
    async with await uow_factory() as uow:
        price = await uow.model_prices.set_cost(model, request.kind.value, request.credit_cost)

    logger.info("admin.price_updated", model=price.model, credit_cost=price.credit_cost)
    return ModelPriceDTO(
        model=price.model,
        kind=price.kind,
        credit_cost=price.credit_cost,
        description=price.description,
    )


@router.post("/generations/{job_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_generation(
    job_id: UUID,
    request: ReconcileRequest,
    services: AppServices = Depends(get_services),
) -> ReconcileResponse:
    """Resolve a stuck job.

    - ``fail``: finalize as failed (refunds the reservation)
    - ``poll``: ask the provider for the task state now

    A job that is already terminal is returned unchanged.
    """
    async with await services.uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Generation not found: {job_id}"
        )

    if not job.is_terminal:
        if request.action == ReconcileAction.FAIL:
            job = await services.reconciler.finalize(
                job_id,
                JobOutcome.FAILURE,
                error_message=request.error_message or MANUAL_FAILURE_MESSAGE,
            )
        else:
            try:
                polled = await poll_job(services, job)
            except GenerationServiceError as e:
                raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
            if polled is None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Job has no provider task that can be polled",
                )
            async with await services.uow_factory() as uow:
                job = await uow.generation_jobs.get_by_id(job_id)

    logger.info(
        "admin.generation_reconciled",
        job_id=str(job_id),
        action=request.action.value,
        status=job.status.value,
    )
    return ReconcileResponse(
        id=job.id,
        status=job.status.value,
        error_message=job.error_message,
        result_urls=list(job.result_urls or []),
    )
