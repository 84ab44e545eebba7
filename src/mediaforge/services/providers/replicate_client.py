"""Replicate client for synchronous image generation with error classification."""

import asyncio
from collections.abc import Callable
from typing import Any

import replicate
import structlog
from replicate.exceptions import ReplicateError as ReplicateAPIError

from mediaforge.models.api_credential import ApiCredential
from mediaforge.services.catalog import REPLICATE, resolve
from mediaforge.services.exceptions import (
    PermanentProviderError,
    ProviderSubmissionError,
    TransientProviderError,
)
from mediaforge.services.providers.base import SubmitRequest, SubmitResult

logger = structlog.get_logger()

Runner = Callable[[str, str, dict], Any]


def classify_error(exception: Exception) -> ProviderSubmissionError:
    """Classify exception into retry category.

    Args:
        exception: Original exception from Replicate SDK or network layer

    Returns:
        Classified ProviderSubmissionError subclass instance

    Classification rules:
        - Timeout errors → TransientProviderError
        - 429 (rate limit) → TransientProviderError
        - 503 (service unavailable) → TransientProviderError
        - 401/403 (authentication) → PermanentProviderError
        - Content policy violations → PermanentProviderError
        - Connection errors → TransientProviderError
        - Anything else → PermanentProviderError
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower or isinstance(exception, TimeoutError):
        return TransientProviderError(f"Network timeout: {error_message}")

    if "429" in error_message or "rate limit" in error_message_lower:
        return TransientProviderError(
            "AI service rate limit exceeded. Please try again later.", 429
        )

    if "503" in error_message or "service unavailable" in error_message_lower:
        return TransientProviderError(
            "AI service is temporarily unavailable. Please try again later.", 503
        )

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return PermanentProviderError(
            "AI service authentication failed. Please check API key configuration."
        )

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
        or "inappropriate" in error_message_lower
    ):
        return PermanentProviderError(f"Content policy violation: {error_message}")

    if isinstance(exception, (ConnectionError, OSError)):
        return TransientProviderError(f"Connection error: {error_message}")

    return PermanentProviderError(f"Generation failed: {error_message}")


def _run_with_sdk(api_token: str, model_ref: str, model_input: dict) -> Any:
    client = replicate.Client(api_token=api_token)
    return client.run(model_ref, input=model_input)


def _output_urls(output: Any) -> list[str]:
    """Extract result URLs from Replicate output (format varies by model)."""
    items = output if isinstance(output, list) else [output]
    urls = []
    for item in items:
        url = item if isinstance(item, str) else getattr(item, "url", None) or str(item)
        if isinstance(url, str) and url.startswith(("http://", "https://")):
            urls.append(url)
    return urls


class ReplicateClient:
    """Replicate adapter. Predictions run to completion inside ``submit``.

    The SDK is synchronous, so calls run in a worker thread.
    """

    name = REPLICATE

    def __init__(self, runner: Runner | None = None):
        """Initialize Replicate client.

        Args:
            runner: Callable (api_token, model_ref, input) -> output; defaults to the SDK
        """
        self.runner = runner or _run_with_sdk

    async def submit(self, request: SubmitRequest, credential: ApiCredential) -> SubmitResult:
        """Run a prediction and return its output URLs as an immediate result.

        Raises:
            TransientProviderError: Temporary failure
            PermanentProviderError: Permanent failure or unexpected output
        """
        spec = resolve(request.model, request.kind)
        model_input = spec.build_request(request)

        try:
            output = await asyncio.to_thread(
                self.runner, credential.secret, spec.endpoint, model_input
            )
        except ReplicateAPIError as e:
            raise classify_error(e) from e
        except (ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e
        except Exception as e:
            # Unexpected errors - treat as permanent
            raise PermanentProviderError(f"Unexpected error: {e}") from e

        urls = _output_urls(output)
        if not urls:
            raise PermanentProviderError(
                f"Unexpected output format from Replicate: {type(output).__name__}"
            )

        logger.info(
            "replicate.completed",
            job_id=str(request.job_id),
            model=request.model,
            outputs=len(urls),
            credential=credential.name,
        )
        return SubmitResult(external_task_id=None, immediate_result_urls=urls)
