import os

import pytest

from storagelib.cloud.memory import InMemoryCredentialProvider, InMemoryResourceClient, NameRegistry
from storagelib.context.config import CredentialSettings, RunConfig
from storagelib.context.envloader import EnvLoader
from storagelib.context.logger import Logger
from storagelib.orchestrator import LifecycleOrchestrator

SUBSCRIPTION = "11111111-2222-3333-4444-555555555555"


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch, tmp_path):
    """
    Runs every test from an empty temp directory with no Azure or storagelib
    variables in the environment, and resets the static env cache and logger.
    """
    for var in ("AZURE_SUBSCRIPTION_ID", "AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET"):
        monkeypatch.delenv(var, raising=False)
    for var in [k for k in os.environ if k.startswith("STORAGELIB_")]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    EnvLoader.clear()
    Logger.reset()
    yield
    EnvLoader.clear()
    Logger.reset()


@pytest.fixture
def registry():
    """
    Returns a fresh global account-name namespace.

    Example:
        def test_collision(registry):
            other = InMemoryResourceClient(registry=registry)
    """
    return NameRegistry()


@pytest.fixture
def memory_client(registry):
    """
    Returns an InMemoryResourceClient bound to the `registry` fixture.
    """
    return InMemoryResourceClient(SUBSCRIPTION, registry=registry)


@pytest.fixture
def credentials():
    return InMemoryCredentialProvider()


@pytest.fixture
def run_config():
    """
    Returns the sample configuration: TestResourceGroup / westus / Standard_GRS / StorageV2
    with a fixed account name and placeholder-free credentials.

    Example:
        def test_name(run_config):
            assert run_config.account_name == "storagesample1a2b3c4d"
    """
    return RunConfig(
        subscription_id=SUBSCRIPTION,
        resource_group="TestResourceGroup",
        account_name="storagesample1a2b3c4d",
        location="westus",
        sku="Standard_GRS",
        kind="StorageV2",
        credential=CredentialSettings(tenant_id="tenant", client_id="app", client_secret="secret"),
    )


@pytest.fixture
def orchestrator(credentials, memory_client):
    """
    Returns a LifecycleOrchestrator wired to the in-memory cloud, collecting
    progress lines on `orchestrator.lines`.
    """
    lines = []
    orch = LifecycleOrchestrator(credentials, memory_client.factory(), reporter=lines.append)
    orch.lines = lines
    return orch


@pytest.fixture
def sample_tuple():
    """
    Returns a generic tuple with mixed types.

    Example:
        def test_unpack(sample_tuple):
            a, b, c = sample_tuple
            assert isinstance(b, str)
    """
    return (1, "two", 3.0)


@pytest.fixture
def missing_file_path(tmp_path):
    """
    Returns a path to a non-existent file in a temp directory.
    """
    return tmp_path / "nonexistent_file.json"


@pytest.fixture
def non_string_keys():
    """
    Returns a list of common non-string values for type validation.
    """
    return [123, None, True, 3.14, ("tuple",), object()]
