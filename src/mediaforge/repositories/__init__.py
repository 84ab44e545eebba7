"""Repository layer for mediaforge.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from mediaforge.repositories.api_credential import ApiCredentialRepository
from mediaforge.repositories.generation_job import GenerationJobRepository
from mediaforge.repositories.model_price import ModelPriceRepository
from mediaforge.repositories.scheduled_post import ScheduledPostRepository
from mediaforge.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "GenerationJobRepository",
    "ApiCredentialRepository",
    "ScheduledPostRepository",
    "ModelPriceRepository",
]
