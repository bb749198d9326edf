import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import toml

import storagelib.context._globals as _globals
from storagelib.cloud.errors import ConfigError
from storagelib.cloud.models import Identity, ResourceGroupDescriptor, StorageAccountDescriptor
from storagelib.context.envloader import EnvLoader
from storagelib.util.error_handling import check_types
from storagelib.util.fileio import FileIO
from storagelib.util.sanitization import Sanitization

logger = logging.getLogger(__name__)

CREDENTIAL_MODES = ("msal", "identity", "default")


@dataclass(frozen=True)
class CredentialSettings:
    """
    How to obtain a management-plane token.

    mode:
        "msal"      client-credentials flow through msal.ConfidentialClientApplication
        "identity"  azure.identity.ClientSecretCredential
        "default"   azure.identity.DefaultAzureCredential (no secret needed)
    """

    mode: str = "msal"
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    authority_host: str = _globals.AUTHORITY_HOST

    def identity(self) -> Identity:
        missing = [k for k in ("tenant_id", "client_id", "client_secret") if _is_unset(getattr(self, k))]
        if missing:
            raise ConfigError(f"[CredentialSettings.identity] Missing credential values: {', '.join(missing)}")
        return Identity(tenant_id=self.tenant_id, client_id=self.client_id, client_secret=self.client_secret)


@dataclass(frozen=True)
class RunConfig:
    """
    Everything one lifecycle run needs. Passed explicitly to the orchestrator;
    nothing here is read from module-level state at run time.
    """

    subscription_id: str
    resource_group: str = _globals.DEFAULT_RESOURCE_GROUP
    account_name: Optional[str] = None
    account_prefix: str = _globals.DEFAULT_ACCOUNT_PREFIX
    location: str = _globals.DEFAULT_LOCATION
    sku: str = _globals.DEFAULT_SKU
    kind: str = _globals.DEFAULT_KIND
    tags: Dict[str, str] = field(default_factory=lambda: dict(_globals.DEFAULT_TAGS))
    credential: CredentialSettings = field(default_factory=CredentialSettings)
    register_provider: bool = True
    provider_namespace: str = _globals.STORAGE_PROVIDER_NAMESPACE
    check_name_availability: bool = True
    updated_sku: str = _globals.DEFAULT_UPDATED_SKU
    key_name: str = _globals.DEFAULT_KEY_NAME
    tolerate_missing_on_delete: bool = True
    retries: int = 1
    backoff_base: Optional[float] = None
    poll_interval: float = 5.0

    def resolve(self) -> "RunConfig":
        """Return a copy with a concrete account name, generating one from the prefix if unset."""
        if self.account_name:
            return self
        name = Sanitization.generate_account_name(self.account_prefix)
        logger.info(f"[RunConfig.resolve] Generated storage account name: {name}")
        return dataclasses.replace(self, account_name=name)

    def group_descriptor(self) -> ResourceGroupDescriptor:
        return ResourceGroupDescriptor(name=self.resource_group, location=self.location)

    def account_descriptor(self) -> StorageAccountDescriptor:
        if not self.account_name:
            raise ConfigError("[RunConfig.account_descriptor] account_name is unset; call resolve() first")
        return StorageAccountDescriptor(
            name=self.account_name,
            location=self.location,
            sku=self.sku,
            kind=self.kind,
            tags=dict(self.tags),
        )


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in _globals.DENY_LIST)


_RUN_FIELDS = {f.name for f in dataclasses.fields(RunConfig)}
_CREDENTIAL_FIELDS = {f.name for f in dataclasses.fields(CredentialSettings)}
_STRING_FIELDS = (
    "subscription_id", "resource_group", "account_name", "account_prefix", "location", "sku", "kind",
    "provider_namespace", "updated_sku", "key_name",
)
# Tag values are rendered with str(); nested tables and arrays are rejected
_TAG_VALUE_TYPES = (str, int, float, bool)

_ENV_MAP = {
    "AZURE_SUBSCRIPTION_ID": ("subscription_id", None),
    "AZURE_TENANT_ID": ("credential", "tenant_id"),
    "AZURE_CLIENT_ID": ("credential", "client_id"),
    "AZURE_CLIENT_SECRET": ("credential", "client_secret"),
    f"{_globals.ENV_PREFIX}CREDENTIAL_MODE": ("credential", "mode"),
    f"{_globals.ENV_PREFIX}RESOURCE_GROUP": ("resource_group", None),
    f"{_globals.ENV_PREFIX}ACCOUNT_NAME": ("account_name", None),
    f"{_globals.ENV_PREFIX}LOCATION": ("location", None),
    f"{_globals.ENV_PREFIX}SKU": ("sku", None),
    f"{_globals.ENV_PREFIX}KIND": ("kind", None),
}


class Config:
    """
    Loads a RunConfig from a settings file, the environment, and explicit overrides.

    Precedence, lowest to highest: built-in defaults, settings file (TOML/JSON/YAML,
    auto-detected by extension), .env file, process environment, overrides.
    """

    @staticmethod
    def fetch(path: Optional[Path] = None) -> dict:
        """
        Read the settings file and return the `[storagelib]` section (or the whole
        document when it has no such section). A missing file yields {}.
        """
        path = Path(path) if path is not None else _globals.global_cfg_file()
        if not path.exists():
            logger.debug(f"[Config.fetch] No settings file at {path}; using defaults")
            return {}
        try:
            data = FileIO.read(path)
        except (ValueError, OSError) as e:
            raise ConfigError(f"[Config.fetch] Failed to parse settings at {path}: {e}", cause=e) from e
        section = data.get(_globals.CFG_SECTION, data)
        if not isinstance(section, dict):
            raise ConfigError(f"[Config.fetch] Section '{_globals.CFG_SECTION}' is not a table in {path}")
        return section

    @staticmethod
    def environment_overrides() -> dict:
        """Collect recognised variables from the process environment and .env file."""
        data: Dict[str, Any] = {}
        for var, (key, sub) in _ENV_MAP.items():
            value = EnvLoader.get(var)
            if value is None or value == "":
                continue
            if sub is None:
                data[key] = value
            else:
                data.setdefault(key, {})[sub] = value
        return data

    @staticmethod
    def deep_merge(target: dict, updates: Mapping) -> dict:
        for k, v in updates.items():
            if isinstance(v, Mapping) and isinstance(target.get(k), dict):
                Config.deep_merge(target[k], v)
            else:
                target[k] = dict(v) if isinstance(v, Mapping) else v
        return target

    @staticmethod
    def from_mapping(data: Mapping[str, Any]) -> RunConfig:
        """
        Build a RunConfig from a plain mapping.

        Raises:
            ConfigError: On unknown keys or values of the wrong shape.
        """
        data = dict(data)
        unknown = set(data) - _RUN_FIELDS
        if unknown:
            raise ConfigError(f"[Config.from_mapping] Unknown setting(s): {', '.join(sorted(unknown))}")

        cred = data.pop("credential", None) or {}
        if not isinstance(cred, Mapping):
            raise ConfigError("[Config.from_mapping] 'credential' must be a table")
        unknown = set(cred) - _CREDENTIAL_FIELDS
        if unknown:
            raise ConfigError(f"[Config.from_mapping] Unknown credential setting(s): {', '.join(sorted(unknown))}")

        tags = data.get("tags")
        if tags is not None and not isinstance(tags, Mapping):
            raise ConfigError("[Config.from_mapping] 'tags' must be a table of strings")

        try:
            for key in _STRING_FIELDS:
                if data.get(key) is not None:
                    check_types([data[key]], str, label=f"Config.from_mapping:{key}")
            if tags is not None:
                check_types(list(tags.values()), _TAG_VALUE_TYPES, label="Config.from_mapping:tags")
        except TypeError as e:
            raise ConfigError(str(e), cause=e) from e
        if tags is not None:
            data["tags"] = {str(k): str(v) for k, v in tags.items()}

        try:
            if "retries" in data:
                data["retries"] = int(data["retries"])
            if data.get("backoff_base") is not None:
                data["backoff_base"] = float(data["backoff_base"])
            if "poll_interval" in data:
                data["poll_interval"] = float(data["poll_interval"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"[Config.from_mapping] Invalid numeric setting: {e}", cause=e) from e

        if "subscription_id" not in data:
            data["subscription_id"] = ""

        return RunConfig(credential=CredentialSettings(**dict(cred)), **data)

    @staticmethod
    def load(
            path: Optional[Path] = None,
            *,
            env_file: Optional[Path] = None,
            overrides: Optional[Mapping[str, Any]] = None,
    ) -> RunConfig:
        """
        Resolve the effective configuration.

        Args:
            path (Path): Settings file; defaults to <cwd>/storagelib_settings.toml.
            env_file (Path): .env file; defaults to <cwd>/.env.
            overrides (Mapping): Highest-precedence values (e.g. CLI options). None values are ignored.

        Returns:
            RunConfig: The merged, unvalidated configuration.
        """
        EnvLoader.load_env(env_file)
        merged: Dict[str, Any] = {}
        Config.deep_merge(merged, Config.fetch(path))
        Config.deep_merge(merged, Config.environment_overrides())
        if overrides:
            Config.deep_merge(merged, _drop_none(overrides))
        return Config.from_mapping(merged)

    @staticmethod
    def validate(cfg: RunConfig, *, require_credentials: bool = True) -> bool:
        """
        Validates that required values are present and are not sample placeholders.

        Raises:
            ConfigError: On the first missing or invalid value.
        """
        for key in _globals.CFG_ENSURE_LIST:
            if _is_unset(getattr(cfg, key)):
                raise ConfigError(f"[Config.validate] Missing required setting: {key}")

        if cfg.account_name is not None and not Sanitization.is_storage_account(cfg.account_name):
            raise ConfigError(
                f"[Config.validate] Invalid storage account name {cfg.account_name!r}: "
                "use 3-24 lowercase letters and digits"
            )
        if cfg.retries < 1:
            raise ConfigError("[Config.validate] retries must be at least 1")
        if cfg.backoff_base is not None and cfg.backoff_base < 0:
            raise ConfigError("[Config.validate] backoff_base must be non-negative")
        if _is_unset(cfg.updated_sku) or _is_unset(cfg.key_name):
            raise ConfigError("[Config.validate] updated_sku and key_name must be set")

        if cfg.credential.mode not in CREDENTIAL_MODES:
            raise ConfigError(
                f"[Config.validate] Unknown credential mode {cfg.credential.mode!r}; "
                f"expected one of {', '.join(CREDENTIAL_MODES)}"
            )
        if require_credentials and cfg.credential.mode != "default":
            cfg.credential.identity()
        return True

    @staticmethod
    def to_dict(cfg: RunConfig, *, mask_secrets: bool = True) -> dict:
        data = dataclasses.asdict(cfg)
        if mask_secrets and data["credential"].get("client_secret"):
            data["credential"]["client_secret"] = "****"
        return {_globals.CFG_SECTION: _drop_none(data)}

    @staticmethod
    def dump(cfg: RunConfig, *, mask_secrets: bool = True) -> str:
        """Render the configuration as TOML."""
        return toml.dumps(Config.to_dict(cfg, mask_secrets=mask_secrets))

    @staticmethod
    def build(path: Optional[Path] = None) -> Path:
        """Write a default settings file (with sample placeholders) if none exists."""
        path = Path(path) if path is not None else _globals.global_cfg_file()
        if path.exists():
            return path
        logger.info(f"[Config.build] Writing default settings to {path}")
        return FileIO.write(path, _globals.PROJECT_CFG_DEFAULT)


def _drop_none(data: Mapping[str, Any]) -> dict:
    out = {}
    for k, v in data.items():
        if v is None:
            continue
        out[k] = _drop_none(v) if isinstance(v, Mapping) else v
    return out


cfg = Config
