from pathlib import Path

# ─── Root Directory ──────────────────────────────────────────────
# Paths hang off the working directory at call time, not import time.
CFG_FILE_NAME = "storagelib_settings.toml"
LOG_DIR_NAME = "logs"
ENV_FILE_NAME = ".env"


def global_root() -> Path:
    return Path.cwd().resolve()


def global_cfg_file() -> Path:
    return global_root() / CFG_FILE_NAME


def global_log_dir() -> Path:
    return global_root() / LOG_DIR_NAME


def env_file() -> Path:
    return global_root() / ENV_FILE_NAME


CFG_SECTION = "storagelib"
ENV_PREFIX = "STORAGELIB_"

# ─── Azure Endpoints ─────────────────────────────────────────────
AUTHORITY_HOST = "https://login.microsoftonline.com"
MANAGEMENT_SCOPE = "https://management.azure.com/.default"
STORAGE_PROVIDER_NAMESPACE = "Microsoft.Storage"

# ─── Run Defaults ────────────────────────────────────────────────
DEFAULT_RESOURCE_GROUP = "TestResourceGroup"
DEFAULT_LOCATION = "westus"
DEFAULT_SKU = "Standard_GRS"
DEFAULT_UPDATED_SKU = "Standard_LRS"
DEFAULT_KIND = "StorageV2"
DEFAULT_KEY_NAME = "key1"
DEFAULT_ACCOUNT_PREFIX = "storagesample"
DEFAULT_TAGS = {
    "key1": "value1",
    "key2": "value2",
}

PROJECT_CFG_DEFAULT = {
    CFG_SECTION: {
        "subscription_id": "<subscriptionid>",
        "resource_group": DEFAULT_RESOURCE_GROUP,
        "location": DEFAULT_LOCATION,
        "sku": DEFAULT_SKU,
        "kind": DEFAULT_KIND,
        "tags": dict(DEFAULT_TAGS),
        "credential": {
            "mode": "msal",
            "tenant_id": "<tenantId>",
            "client_id": "<applicationId>",
            "client_secret": "<password>",
        },
    }
}

# ─── Validation ──────────────────────────────────────────────────
CFG_ENSURE_LIST = ["subscription_id", "resource_group", "location", "sku", "kind"]
DENY_LIST = [
    "",
    "<subscriptionid>",
    "<subscriptionId>",
    "<applicationId>",
    "<password>",
    "<tenantId>",
]
