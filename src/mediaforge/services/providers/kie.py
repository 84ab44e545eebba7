"""Kie.ai client: callback-based submission and task status polling."""

from typing import Any

import httpx
import structlog

from mediaforge.models.api_credential import ApiCredential
from mediaforge.services.callbacks import NormalizedCallback, normalize_callback
from mediaforge.services.catalog import KIE, resolve
from mediaforge.services.exceptions import (
    PermanentProviderError,
    ProviderSubmissionError,
    TransientProviderError,
)
from mediaforge.services.providers.base import SubmitRequest, SubmitResult

logger = structlog.get_logger()

KIE_OK = 200
RECORD_INFO_PATH = "/api/v1/jobs/recordInfo"


def extract_task_id(body: Any) -> str | None:
    """Find the task id in a Kie.ai submission response.

    Model families return it as ``data.taskId``, ``data.task_id``,
    ``data.task.taskId`` or ``data.tasks[0].taskId``.
    """
    if not isinstance(body, dict):
        return None
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    task = data.get("task") if isinstance(data.get("task"), dict) else {}
    tasks = data.get("tasks") if isinstance(data.get("tasks"), list) else []
    first_task = tasks[0] if tasks and isinstance(tasks[0], dict) else {}

    for value in (
        data.get("taskId"),
        data.get("task_id"),
        task.get("taskId"),
        first_task.get("taskId"),
        body.get("taskId"),
    ):
        if isinstance(value, str) and value:
            return value
    return None


class KieClient:
    """Kie.ai API client.

    Every request authenticates with the credential picked by the rotator
    (``Authorization: Bearer <secret>``). Errors are classified into
    TransientProviderError / PermanentProviderError.
    """

    name = KIE

    def __init__(
        self,
        base_url: str = "https://api.kie.ai",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Kie.ai client.

        Args:
            base_url: API root (from KIE_API_BASE_URL)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def submit(self, request: SubmitRequest, credential: ApiCredential) -> SubmitResult:
        """Submit a generation task; the result arrives on the callback URL.

        Raises:
            ProviderSubmissionError: On HTTP, transport or body-level failure
        """
        spec = resolve(request.model, request.kind)
        payload = spec.build_request(request)

        body = await self._request("POST", spec.endpoint, credential, json=payload)
        task_id = extract_task_id(body)
        if task_id is None:
            raise PermanentProviderError(
                "AI service did not return a task id",
                details={"body": body, "endpoint": spec.endpoint},
            )

        logger.info(
            "kie.submitted",
            job_id=str(request.job_id),
            model=request.model,
            endpoint=spec.endpoint,
            task_id=task_id,
            credential=credential.name,
        )
        return SubmitResult(external_task_id=task_id)

    async def fetch_status(self, task_id: str, credential: ApiCredential) -> NormalizedCallback:
        """Poll the task record of a submitted task.

        Raises:
            ProviderSubmissionError: If the record cannot be fetched
            ProviderCallbackError: If the record has an unrecognized shape
        """
        body = await self._request(
            "GET", RECORD_INFO_PATH, credential, params={"taskId": task_id}
        )
        return normalize_callback(body)

    async def _request(
        self,
        method: str,
        endpoint: str,
        credential: ApiCredential,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {credential.secret}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    method, endpoint, headers=headers, json=json, params=params
                )
        except httpx.TimeoutException as e:
            raise TransientProviderError(
                f"AI service request timed out after {self.timeout:g}s",
                details={"endpoint": endpoint, "error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            raise TransientProviderError(
                f"Failed to communicate with AI service: {e}",
                details={"endpoint": endpoint},
            ) from e

        body = _decode(response)
        if response.status_code >= 400:
            logger.warning(
                "kie.request_failed",
                endpoint=endpoint,
                status=response.status_code,
                credential=credential.name,
            )
            raise ProviderSubmissionError.from_status(response.status_code, body, endpoint)

        if not isinstance(body, dict):
            raise PermanentProviderError(
                "AI service returned an unexpected response",
                response.status_code,
                {"body": body, "endpoint": endpoint},
            )

        code = body.get("code")
        if isinstance(code, int) and code != KIE_OK:
            logger.warning(
                "kie.request_rejected", endpoint=endpoint, code=code, msg=body.get("msg")
            )
            raise ProviderSubmissionError.from_body_code(code, body, endpoint)

        return body


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
