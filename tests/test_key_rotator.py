"""API key rotator tests.

Tests focus on fair selection and credential management:
- Least-used active credential is selected and its use counted
- Inactive credentials are never selected
- Missing credentials are reported explicitly
"""

import pytest

from mediaforge.services.exceptions import NoCredentialAvailable
from mediaforge.services.key_rotator import ApiKeyRotator


async def next_credential(uow_factory, provider="kie"):
    async with await uow_factory() as uow:
        return await ApiKeyRotator(uow).next(provider)


@pytest.mark.asyncio
async def test_rotation_spreads_usage_evenly(uow_factory, add_credential):
    """Three credentials used 5 times each: three calls pick each once."""
    for i in range(1, 4):
        await add_credential(name=f"KIE_API_KEY_{i}", usage_count=5)

    picked = [(await next_credential(uow_factory)).name for _ in range(3)]

    assert sorted(picked) == ["KIE_API_KEY_1", "KIE_API_KEY_2", "KIE_API_KEY_3"]
    async with await uow_factory() as uow:
        credentials = await uow.api_credentials.list_all("kie")
    assert [c.usage_count for c in credentials] == [6, 6, 6]
    assert all(c.last_used_at is not None for c in credentials)


@pytest.mark.asyncio
async def test_least_used_credential_wins(uow_factory, add_credential):
    await add_credential(name="KIE_API_KEY_1", usage_count=10)
    await add_credential(name="KIE_API_KEY_2", usage_count=2)

    credential = await next_credential(uow_factory)

    assert credential.name == "KIE_API_KEY_2"
    assert credential.usage_count == 3


@pytest.mark.asyncio
async def test_inactive_credentials_are_skipped(uow_factory, add_credential):
    await add_credential(name="KIE_API_KEY_1", usage_count=0, is_active=False)
    await add_credential(name="KIE_API_KEY_2", usage_count=50)

    assert (await next_credential(uow_factory)).name == "KIE_API_KEY_2"


@pytest.mark.asyncio
async def test_no_active_credential_raises(uow_factory, add_credential):
    await add_credential(name="KIE_API_KEY_1", is_active=False)

    with pytest.raises(NoCredentialAvailable, match="kie"):
        await next_credential(uow_factory)

    async with await uow_factory() as uow:
        with pytest.raises(NoCredentialAvailable):
            await ApiKeyRotator(uow).ensure_available("replicate")


@pytest.mark.asyncio
async def test_providers_are_isolated(uow_factory, add_credential):
    await add_credential(provider="replicate", name="REPLICATE_API_TOKEN")

    with pytest.raises(NoCredentialAvailable):
        await next_credential(uow_factory, "kie")
    assert (await next_credential(uow_factory, "replicate")).name == "REPLICATE_API_TOKEN"


@pytest.mark.asyncio
async def test_register_is_idempotent(uow_factory):
    async with await uow_factory() as uow:
        _, created = await ApiKeyRotator(uow).register("kie", "KIE_API_KEY_7", "secret")
    async with await uow_factory() as uow:
        credential, created_again = await ApiKeyRotator(uow).register(
            "kie", "KIE_API_KEY_7", "other-secret"
        )

    assert created is True
    assert created_again is False
    assert credential.secret == "secret"


@pytest.mark.asyncio
async def test_provision_from_settings(uow_factory, settings, monkeypatch):
    monkeypatch.setenv("KIE_API_KEY_1", "k1")
    monkeypatch.setenv("KIE_API_KEY_3", "k3")
    settings.replicate_api_token = "r8_token"

    async with await uow_factory() as uow:
        created = await ApiKeyRotator(uow).provision_from_settings(settings)
    async with await uow_factory() as uow:
        created_again = await ApiKeyRotator(uow).provision_from_settings(settings)
        names = {(c.provider, c.name) for c in await uow.api_credentials.list_all()}

    assert created == 3
    assert created_again == 0
    assert names == {
        ("kie", "KIE_API_KEY_1"),
        ("kie", "KIE_API_KEY_3"),
        ("replicate", "REPLICATE_API_TOKEN"),
    }


@pytest.mark.asyncio
async def test_toggle_by_name_and_id(uow_factory, add_credential):
    credential = await add_credential(name="KIE_API_KEY_1")

    async with await uow_factory() as uow:
        disabled = await ApiKeyRotator(uow).set_active("KIE_API_KEY_1", False)
    assert disabled.is_active is False

    async with await uow_factory() as uow:
        enabled = await ApiKeyRotator(uow).set_active(credential.id, True)
        missing = await ApiKeyRotator(uow).set_active("KIE_API_KEY_99", True)
    assert enabled.is_active is True
    assert missing is None
