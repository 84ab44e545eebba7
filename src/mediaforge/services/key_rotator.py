"""API key rotator: spreads provider calls across configured credentials."""

from uuid import UUID

import structlog

from mediaforge.core.config import Settings
from mediaforge.models.api_credential import ApiCredential
from mediaforge.services.catalog import KIE, REPLICATE
from mediaforge.services.exceptions import NoCredentialAvailable
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()

# Attempts to claim a credential before giving up when every read is raced
MAX_SELECTION_ATTEMPTS = 5


class ApiKeyRotator:
    """Select, register and toggle provider credentials.

    Selection picks the active credential with the lowest usage count (ties by
    least recently used, never-used first) and counts the use in the same
    transaction. Call ``next`` in a short UnitOfWork of its own so the row lock
    is released before the provider call.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def next(self, provider: str) -> ApiCredential:
        """Select the credential for one provider call and count the use.

        Raises:
            NoCredentialAvailable: If the provider has no active credential
        """
        skip_locked = True
        for _ in range(MAX_SELECTION_ATTEMPTS):
            credential = await self.uow.api_credentials.get_least_used_for_update(
                provider, skip_locked=skip_locked
            )
            if credential is None:
                if await self.uow.api_credentials.count_active(provider) == 0:
                    raise NoCredentialAvailable(provider)
                # Every active row is locked by concurrent selectors; wait for one
                skip_locked = False
                continue

            if await self.uow.api_credentials.increment_usage(
                credential.id, credential.usage_count
            ):
                await self.uow.session.refresh(credential)
                logger.debug(
                    "rotator.selected",
                    provider=provider,
                    credential=credential.name,
                    usage_count=credential.usage_count,
                )
                return credential

        raise NoCredentialAvailable(provider)

    async def ensure_available(self, provider: str) -> None:
        """Raise NoCredentialAvailable unless ``provider`` has an active credential."""
        if await self.uow.api_credentials.count_active(provider) == 0:
            logger.error("rotator.no_credentials", provider=provider)
            raise NoCredentialAvailable(provider)

    async def register(
        self, provider: str, name: str, secret: str, is_active: bool = True
    ) -> tuple[ApiCredential, bool]:
        """Register a credential; registering an existing name is a no-op.

        Returns:
            Tuple of (credential, True if newly created)
        """
        credential, created = await self.uow.api_credentials.add_if_absent(
            ApiCredential(provider=provider, name=name, secret=secret, is_active=is_active)
        )
        if created:
            logger.info("rotator.registered", provider=provider, credential=name)
        return credential, created

    async def provision_from_settings(self, settings: Settings) -> int:
        """Register every credential present in configuration.

        Returns:
            Number of newly registered credentials
        """
        created_count = 0
        configured = [(KIE, name, secret) for name, secret in settings.kie_api_keys().items()]
        if settings.replicate_api_token:
            configured.append((REPLICATE, "REPLICATE_API_TOKEN", settings.replicate_api_token))

        for provider, name, secret in configured:
            _, created = await self.register(provider, name, secret)
            if created:
                created_count += 1

        logger.info(
            "rotator.provisioned",
            configured=len(configured),
            created=created_count,
        )
        return created_count

    async def set_active(self, credential_ref: UUID | str, active: bool) -> ApiCredential | None:
        """Enable or disable a credential by id or name.

        Returns:
            Updated credential, or None if it does not exist
        """
        if isinstance(credential_ref, UUID):
            credential = await self.uow.api_credentials.get_by_id(credential_ref)
        else:
            credential = await self.uow.api_credentials.get_by_name(credential_ref)
        if credential is None:
            return None

        await self.uow.api_credentials.set_active(credential, active)
        logger.info("rotator.toggled", credential=credential.name, is_active=active)
        return credential
