import pytest
from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError

import storagelib.cloud.credentials as credentials_module
from storagelib.cloud.credentials import (
    IdentityCredentialProvider,
    MsalCredentialProvider,
    StaticTokenCredential,
    build_credential_provider,
)
from storagelib.cloud.errors import AuthenticationError, ConfigError, OperationCancelledError
from storagelib.cloud.models import CancellationToken, Identity, Token
from storagelib.context.config import CredentialSettings

IDENTITY = Identity(tenant_id="tenant", client_id="app", client_secret="secret")


class FakeMsalApp:
    """Records construction arguments and returns a canned acquire_token_for_client payload."""
    payload = {"access_token": "jwt", "expires_in": 3600}
    created = []

    def __init__(self, client_id, authority, client_credential):
        FakeMsalApp.created.append((client_id, authority, client_credential))

    def acquire_token_for_client(self, scopes):
        self.scopes = scopes
        return FakeMsalApp.payload


@pytest.fixture
def fake_msal(monkeypatch):
    FakeMsalApp.created = []
    FakeMsalApp.payload = {"access_token": "jwt", "expires_in": 3600}
    monkeypatch.setattr(credentials_module.msal, "ConfidentialClientApplication", FakeMsalApp)
    return FakeMsalApp


def test_msal_provider_returns_token(fake_msal):
    token = MsalCredentialProvider(IDENTITY).acquire()

    assert token.value == "jwt"
    assert token.expires_on > 0
    assert fake_msal.created == [("app", "https://login.microsoftonline.com/tenant", "secret")]


def test_msal_provider_surfaces_error_payload(fake_msal):
    fake_msal.payload = {"error": "invalid_client", "error_description": "bad secret"}

    with pytest.raises(AuthenticationError) as info:
        MsalCredentialProvider(IDENTITY).acquire()
    assert "invalid_client" in str(info.value)


def test_msal_provider_rejects_empty_token(fake_msal):
    fake_msal.payload = {"access_token": ""}

    with pytest.raises(AuthenticationError):
        MsalCredentialProvider(IDENTITY).acquire()


def test_msal_provider_checks_cancellation_first(fake_msal):
    cancel = CancellationToken()
    cancel.cancel()

    with pytest.raises(OperationCancelledError):
        MsalCredentialProvider(IDENTITY).acquire(cancel=cancel)
    assert fake_msal.created == []


class FakeCredential:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def get_token(self, *scopes, **kwargs):
        if self.error:
            raise self.error
        return self.result


def test_identity_provider_wraps_access_token():
    provider = IdentityCredentialProvider(credential=FakeCredential(AccessToken("jwt", 123)))

    assert provider.acquire() == Token(value="jwt", expires_on=123)


def test_identity_provider_maps_auth_failure():
    provider = IdentityCredentialProvider(credential=FakeCredential(error=ClientAuthenticationError(message="no")))

    with pytest.raises(AuthenticationError):
        provider.acquire()


def test_static_token_credential():
    with StaticTokenCredential(Token(value="jwt", expires_on=99)) as credential:
        access = credential.get_token("https://management.azure.com/.default")
    assert (access.token, access.expires_on) == ("jwt", 99)

    with pytest.raises(AuthenticationError, match="Token provider cannot be null"):
        StaticTokenCredential(Token(value=""))


def test_build_credential_provider_modes(fake_msal):
    settings = CredentialSettings(mode="msal", tenant_id="t", client_id="c", client_secret="s")
    assert isinstance(build_credential_provider(settings), MsalCredentialProvider)

    with pytest.raises(ConfigError):
        build_credential_provider(CredentialSettings(mode="msal", tenant_id="<tenantId>", client_id="c",
                                                     client_secret="s"))
    with pytest.raises(ConfigError):
        build_credential_provider(CredentialSettings(mode="kerberos"))
