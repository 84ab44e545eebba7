"""Provider adapter contract shared by all generation backends."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from mediaforge.models.api_credential import ApiCredential
from mediaforge.models.generation_job import JobKind

if TYPE_CHECKING:
    from mediaforge.services.callbacks import NormalizedCallback


@dataclass
class SubmitRequest:
    """Everything an adapter needs to submit one job."""

    job_id: UUID
    kind: JobKind
    model: str
    prompt: str
    reference_inputs: list[str] = field(default_factory=list)
    parameters: dict = field(default_factory=dict)
    callback_url: str = ""


@dataclass
class SubmitResult:
    """Provider acknowledgement of a submission.

    Callback-based providers return only ``external_task_id``. Providers that
    finish synchronously also return ``immediate_result_urls``.
    """

    external_task_id: str | None = None
    immediate_result_urls: list[str] = field(default_factory=list)

    @property
    def is_immediate(self) -> bool:
        return bool(self.immediate_result_urls)


class ProviderAdapter(Protocol):
    """Submission interface implemented by each provider client.

    ``submit`` raises ProviderSubmissionError (or a subclass) on any failure.
    """

    name: str

    async def submit(self, request: SubmitRequest, credential: ApiCredential) -> SubmitResult: ...


class StatusPollingAdapter(ProviderAdapter, Protocol):
    """Provider that can be asked for the state of a submitted task."""

    async def fetch_status(
        self, task_id: str, credential: ApiCredential
    ) -> "NormalizedCallback": ...
