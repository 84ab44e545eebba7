"""Service error hierarchy for the generation job lifecycle.

This module defines the exception hierarchy for service-level errors:
- GenerationServiceError: Base for all service errors
- Request errors (raised before any credit is reserved): InsufficientCredits,
  InvalidParameters, UnsupportedModel, NoCredentialAvailable
- Provider errors (raised after reservation, always routed through the
  completion reconciler): ProviderSubmissionError and its transient/permanent
  flavours
- ProviderCallbackError: callback payload that cannot be interpreted
- Lookup errors: UserNotFoundError, JobNotFoundError, PostNotFoundError
"""


class GenerationServiceError(Exception):
    """Base exception for all service errors."""

    pass


class InsufficientCredits(GenerationServiceError):
    """User balance is lower than the cost of the requested work."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")


class InvalidParameters(GenerationServiceError):
    """Model/parameter combination rejected before reservation."""

    pass


class UnsupportedModel(GenerationServiceError):
    """Model identifier is not routable to any provider adapter."""

    def __init__(self, model: str, kind: str | None = None, supported: list[str] | None = None):
        self.model = model
        self.kind = kind
        self.supported = supported or []
        message = f"Unsupported {kind + ' ' if kind else ''}model: {model}"
        if self.supported:
            message += f". Supported models: {', '.join(self.supported)}"
        super().__init__(message)


class NoCredentialAvailable(GenerationServiceError):
    """No active API credential exists for a provider.

    Configuration error: never retried automatically.
    """

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"No active API keys available for provider '{provider}'. "
            "Configure at least one API key."
        )


class ProviderSubmissionError(GenerationServiceError):
    """Provider rejected the submission or was unreachable.

    ``message`` is already normalized to a human-readable cause.
    """

    retryable: bool = False

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    @classmethod
    def from_status(
        cls,
        status_code: int,
        body: object = None,
        endpoint: str = "",
    ) -> "ProviderSubmissionError":
        """Classify an HTTP error response from a provider.

        Status classes are checked before the provider's own message so the
        user sees a useful cause even when the provider body is unhelpful.
        """
        details = {"status": status_code, "body": body, "endpoint": endpoint}

        if status_code == 404:
            return PermanentProviderError(
                f"AI service endpoint not found ({endpoint}). "
                "This feature may not be available yet.",
                status_code,
                details,
            )
        if status_code in (401, 403):
            return PermanentProviderError(
                "AI service authentication failed. Please check API key configuration.",
                status_code,
                details,
            )
        if status_code == 429:
            return TransientProviderError(
                "AI service rate limit exceeded. Please try again later.",
                status_code,
                details,
            )
        if status_code >= 500:
            return TransientProviderError(
                "AI service is temporarily unavailable. Please try again later.",
                status_code,
                details,
            )

        message = _message_from_body(body) or f"AI service error ({status_code})"
        return PermanentProviderError(message, status_code, details)

    @classmethod
    def from_body_code(
        cls, code: int, body: object, endpoint: str = ""
    ) -> "ProviderSubmissionError":
        """Classify a provider body that reports failure inside an HTTP 200 response.

        The provider's own message is used; the code only decides whether the
        failure is transient.
        """
        details = {"status": code, "body": body, "endpoint": endpoint}
        message = _message_from_body(body) or f"AI service error ({code})"
        if code == 429 or code >= 500:
            return TransientProviderError(message, code, details)
        return PermanentProviderError(message, code, details)


class TransientProviderError(ProviderSubmissionError):
    """Provider failure that may succeed if the user tries again.

    Examples: network timeouts, rate limit exceeded (429), service unavailable (5xx).
    """

    retryable = True


class PermanentProviderError(ProviderSubmissionError):
    """Provider failure that will not succeed on retry.

    Examples: authentication failures (401, 403), bad request (400), missing endpoint (404).
    """

    retryable = False


class ProviderCallbackError(GenerationServiceError):
    """Callback payload has no recognizable shape or status."""

    pass


class UserNotFoundError(GenerationServiceError):
    """User does not exist."""

    pass


class JobNotFoundError(GenerationServiceError):
    """Generation job does not exist."""

    pass


class PostNotFoundError(GenerationServiceError):
    """Scheduled post does not exist."""

    pass


def _message_from_body(body: object) -> str | None:
    """Pick the most useful message field out of a provider error body."""
    if isinstance(body, str):
        return body.strip() or None
    if not isinstance(body, dict):
        return None
    for key in ("message", "msg", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value and value != "No message available":
            return value
    return None
