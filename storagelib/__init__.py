from storagelib.cloud import errors, models
from storagelib.cloud.aio import ThreadedCredentialProvider, ThreadedResourceClient
from storagelib.cloud.memory import InMemoryCredentialProvider, InMemoryResourceClient, NameRegistry
from storagelib.context import config as _config
from storagelib.context import envloader as _envloader
from storagelib.context import logger as _logger
from storagelib.context.decorator import traced
from storagelib.orchestrator import LifecycleOrchestrator, build_orchestrator
from storagelib.util import error_handling as _error_handling
from storagelib.util import sanitization as _sanitization

__version__ = "0.1.0"

RunConfig = _config.RunConfig
CredentialSettings = _config.CredentialSettings
Config = _config.Config
cfg = _config.cfg
env = _envloader.env
Logger = _logger.Logger
log_func = _logger.log_func
attempt = _error_handling.attempt
attempt_async = _error_handling.attempt_async
check_types = _error_handling.check_types
generate_account_name = _sanitization.generate_account_name
is_storage_account = _sanitization.is_storage_account

StorageLibError = errors.StorageLibError
CancellationToken = models.CancellationToken
RunResult = models.RunResult
RunState = models.RunState
Step = models.Step
