"""Provider adapters (Kie.ai, Replicate)."""

from mediaforge.core.config import Settings
from mediaforge.services.providers.base import (
    ProviderAdapter,
    StatusPollingAdapter,
    SubmitRequest,
    SubmitResult,
)
from mediaforge.services.providers.kie import KieClient
from mediaforge.services.providers.replicate_client import ReplicateClient


def build_adapters(settings: Settings) -> dict[str, ProviderAdapter]:
    """Create one adapter per provider, keyed by provider name."""
    kie = KieClient(settings.kie_api_base_url, settings.provider_submit_timeout_seconds)
    replicate = ReplicateClient()
    return {kie.name: kie, replicate.name: replicate}


__all__ = [
    "KieClient",
    "ProviderAdapter",
    "ReplicateClient",
    "StatusPollingAdapter",
    "SubmitRequest",
    "SubmitResult",
    "build_adapters",
]
