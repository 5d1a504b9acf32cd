"""PySNSync - sync ServiceNow scripts with local files."""

from .api import ServiceNowClient
from .exceptions import (
    InvalidDirectionError,
    InvalidScriptTypeError,
    SNAPIError,
    SNAuthenticationError,
    SNConfigError,
    SNError,
    SNInvalidResponseError,
    SNNetworkError,
    SNNotFoundError,
    SNPermissionError,
    SNRateLimitError,
)
from .sync import (
    SCRIPT_TYPES,
    BulkSyncReport,
    ScriptWatcher,
    SyncDirection,
    SyncEngine,
    SyncRequest,
    SyncResult,
    WatchSettings,
    generate_file_name,
    parse_file_name,
    sync_all_scripts,
    sync_script,
    watch_scripts,
)

__all__ = [
    "ServiceNowClient",
    "SNError",
    "SNAPIError",
    "SNAuthenticationError",
    "SNConfigError",
    "SNInvalidResponseError",
    "SNNetworkError",
    "SNNotFoundError",
    "SNPermissionError",
    "SNRateLimitError",
    "InvalidDirectionError",
    "InvalidScriptTypeError",
    "SCRIPT_TYPES",
    "SyncEngine",
    "SyncDirection",
    "SyncRequest",
    "SyncResult",
    "BulkSyncReport",
    "ScriptWatcher",
    "WatchSettings",
    "generate_file_name",
    "parse_file_name",
    "sync_script",
    "sync_all_scripts",
    "watch_scripts",
]
