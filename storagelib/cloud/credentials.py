import logging
import time
from typing import Optional

import msal
from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential, DefaultAzureCredential

import storagelib.context._globals as _globals
from storagelib.cloud.errors import AuthenticationError, ConfigError
from storagelib.cloud.models import CancellationToken, Identity, Token
from storagelib.context.config import CredentialSettings

logger = logging.getLogger(__name__)


def _checked(token: Optional[Token], source: str) -> Token:
    if token is None or not token:
        raise AuthenticationError(f"[{source}] Failed to obtain the JWT token")
    return token


class MsalCredentialProvider:
    """
    Client-credentials flow against Azure AD via msal.ConfidentialClientApplication.

    The application is built lazily on first use, so constructing the provider never
    touches the network.
    """

    def __init__(self, identity: Identity, *, authority_host: str = _globals.AUTHORITY_HOST,
                 scope: str = _globals.MANAGEMENT_SCOPE):
        self.identity = identity
        self.authority = f"{authority_host.rstrip('/')}/{identity.tenant_id}"
        self.scope = scope
        self._app = None

    def _application(self) -> msal.ConfidentialClientApplication:
        if self._app is None:
            try:
                self._app = msal.ConfidentialClientApplication(
                    client_id=self.identity.client_id,
                    authority=self.authority,
                    client_credential=self.identity.client_secret,
                )
            except ValueError as e:
                raise AuthenticationError(f"[MsalCredentialProvider] Invalid authority {self.authority}: {e}",
                                          cause=e) from e
        return self._app

    def acquire(self, *, cancel: Optional[CancellationToken] = None) -> Token:
        """
        Returns:
            Token: Bearer token for the management endpoint.

        Raises:
            AuthenticationError: If msal returns an error payload or no access_token.
        """
        if cancel is not None:
            cancel.raise_if_cancelled("MsalCredentialProvider.acquire")

        logger.info(f"[MsalCredentialProvider] Acquiring token for client {self.identity.client_id} "
                    f"from {self.authority}")
        result = self._application().acquire_token_for_client(scopes=[self.scope])

        if not isinstance(result, dict) or "access_token" not in result:
            result = result if isinstance(result, dict) else {}
            error = result.get("error", "no_token")
            description = result.get("error_description", "identity service returned no access token")
            raise AuthenticationError(f"[MsalCredentialProvider] {error}: {description}")

        expires_on = int(time.time()) + int(result.get("expires_in", 0) or 0)
        return _checked(Token(value=result["access_token"], expires_on=expires_on), "MsalCredentialProvider")


class IdentityCredentialProvider:
    """
    Token acquisition through azure.identity.

    Uses ClientSecretCredential when an Identity is given, otherwise
    DefaultAzureCredential (environment, managed identity, Azure CLI login, ...).
    """

    def __init__(self, identity: Optional[Identity] = None, *, authority_host: str = _globals.AUTHORITY_HOST,
                 scope: str = _globals.MANAGEMENT_SCOPE, credential=None):
        self.identity = identity
        self.scope = scope
        if credential is not None:
            self.credential = credential
        elif identity is not None:
            self.credential = ClientSecretCredential(
                tenant_id=identity.tenant_id,
                client_id=identity.client_id,
                client_secret=identity.client_secret,
                authority=authority_host,
            )
        else:
            self.credential = DefaultAzureCredential()

    def acquire(self, *, cancel: Optional[CancellationToken] = None) -> Token:
        if cancel is not None:
            cancel.raise_if_cancelled("IdentityCredentialProvider.acquire")

        logger.info(f"[IdentityCredentialProvider] Acquiring token via {type(self.credential).__name__}")
        try:
            access = self.credential.get_token(self.scope)
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"[IdentityCredentialProvider] {e.message or e}", cause=e) from e

        if access is None:
            raise AuthenticationError("[IdentityCredentialProvider] Credential returned no token")
        return _checked(Token(value=access.token, expires_on=int(access.expires_on)), "IdentityCredentialProvider")


class StaticTokenCredential:
    """
    azure.core TokenCredential that hands out one previously acquired Token.

    Lets the management clients reuse the token obtained in the authenticate step
    instead of running their own credential chain.
    """

    def __init__(self, token: Token):
        if token is None or not token:
            raise AuthenticationError("[StaticTokenCredential] Token provider cannot be null")
        self._token = token

    def get_token(self, *scopes: str, claims: Optional[str] = None, tenant_id: Optional[str] = None,
                  **kwargs) -> AccessToken:
        return AccessToken(self._token.value, self._token.expires_on)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()


def build_credential_provider(settings: CredentialSettings):
    """
    Pick a credential provider for `settings.mode`.

    Raises:
        ConfigError: On an unknown mode or missing credential values.
    """
    if settings.mode == "msal":
        return MsalCredentialProvider(settings.identity(), authority_host=settings.authority_host)
    if settings.mode == "identity":
        return IdentityCredentialProvider(settings.identity(), authority_host=settings.authority_host)
    if settings.mode == "default":
        return IdentityCredentialProvider(None)
    raise ConfigError(f"[build_credential_provider] Unknown credential mode: {settings.mode!r}")
