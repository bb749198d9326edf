import dataclasses

import pytest

from storagelib.cloud.errors import AuthenticationError, NameUnavailableError, NotFoundError, RemoteServiceError
from storagelib.cloud.memory import InMemoryResourceClient
from storagelib.cloud.models import ResourceGroupDescriptor, StorageAccountDescriptor, Token
from storagelib.cloud.ports import ResourceClient


@pytest.fixture
def account():
    return StorageAccountDescriptor(
        name="storagesample1a2b3c4d", location="westus", sku="Standard_GRS", kind="StorageV2",
        tags={"key1": "value1", "key2": "value2"},
    )


@pytest.fixture
def seeded(memory_client, account):
    memory_client.upsert_group(ResourceGroupDescriptor("TestResourceGroup", "westus"))
    memory_client.upsert_account("TestResourceGroup", account)
    return memory_client


def test_satisfies_resource_client_protocol(memory_client):
    assert isinstance(memory_client, ResourceClient)


def test_factory_rejects_empty_token(memory_client):
    with pytest.raises(AuthenticationError):
        memory_client.factory()(Token(value=""))
    assert memory_client.factory()(Token(value="jwt")) is memory_client


def test_group_upsert_is_idempotent(memory_client):
    for _ in range(2):
        memory_client.upsert_group(ResourceGroupDescriptor("TestResourceGroup", "westus"))

    assert memory_client.group_names() == ["TestResourceGroup"]


def test_account_needs_its_group(memory_client, account):
    with pytest.raises(NotFoundError):
        memory_client.upsert_account("NoSuchGroup", account)


def test_get_returns_submitted_shape(seeded, account):
    stored = seeded.get_account("TestResourceGroup", account.name)

    assert stored.same_shape(account)
    assert stored.provisioning_state == "Succeeded"
    assert stored.id.endswith(f"/storageAccounts/{account.name}")


def test_names_are_global(seeded, registry, account):
    other = InMemoryResourceClient(registry=registry)
    other.upsert_group(ResourceGroupDescriptor("Elsewhere", "eastus"))

    assert not other.check_name_availability(account.name).available
    with pytest.raises(NameUnavailableError):
        other.upsert_account("Elsewhere", account)


def test_reupsert_keeps_keys(seeded, account):
    before = seeded.list_keys("TestResourceGroup", account.name)
    seeded.upsert_account("TestResourceGroup", account)

    assert seeded.list_keys("TestResourceGroup", account.name) == before


def test_listing_is_lazy(seeded):
    listing = seeded.list_accounts("TestResourceGroup")
    assert "list_accounts" not in seeded.calls

    assert [a.name for a in listing] == ["storagesample1a2b3c4d"]
    assert seeded.calls[-1] == "list_accounts"


def test_listing_reissues_the_query_on_every_call(seeded, account):
    first = [a.name for a in seeded.list_accounts("TestResourceGroup")]
    seeded.upsert_account("TestResourceGroup", dataclasses.replace(account, name="storagesample5e6f7a8b"))
    second = [a.name for a in seeded.list_accounts("TestResourceGroup")]

    assert first == ["storagesample1a2b3c4d"]
    assert second == ["storagesample1a2b3c4d", "storagesample5e6f7a8b"]
    assert seeded.calls.count("list_accounts") == 2


def test_update_replaces_wholesale(seeded, account):
    seeded.update_account("TestResourceGroup", dataclasses.replace(account, sku="Standard_LRS", tags={}))

    stored = seeded.get_account("TestResourceGroup", account.name)
    assert stored.sku == "Standard_LRS"
    assert stored.tags == {}


def test_delete_releases_the_name(seeded, registry, account):
    seeded.delete_account("TestResourceGroup", account.name)

    assert account.name not in registry
    with pytest.raises(NotFoundError):
        seeded.get_account("TestResourceGroup", account.name)


def test_regenerate_unknown_key(seeded, account):
    with pytest.raises(RemoteServiceError) as info:
        seeded.regenerate_key("TestResourceGroup", account.name, "key3")
    assert info.value.error_code == "InvalidKeyName"


def test_injected_faults_fire_once(memory_client):
    memory_client.inject_fault("upsert_group", RemoteServiceError("boom"))

    with pytest.raises(RemoteServiceError):
        memory_client.upsert_group(ResourceGroupDescriptor("G", "westus"))
    assert memory_client.upsert_group(ResourceGroupDescriptor("G", "westus")).name == "G"
