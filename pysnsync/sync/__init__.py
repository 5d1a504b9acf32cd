"""Sync engine for pysnsync - push, pull, bulk and watch operations."""

from .bulk import BulkSyncReport, sync_all_scripts
from .engine import (
    RecordStore,
    SyncDirection,
    SyncEngine,
    SyncRequest,
    SyncResult,
    sync_script,
)
from .header import build_metadata_header, strip_metadata_header
from .naming import (
    FileNameToken,
    generate_file_name,
    parse_file_name,
    sanitize_script_name,
)
from .operations import FileSystem, LocalFileSystem
from .script_types import SCRIPT_TYPES, ScriptType, get_script_type
from .watcher import ScriptWatcher, WatchSettings, watch_scripts

__all__ = [
    "SyncEngine",
    "SyncDirection",
    "SyncRequest",
    "SyncResult",
    "RecordStore",
    "sync_script",
    "BulkSyncReport",
    "sync_all_scripts",
    "ScriptWatcher",
    "WatchSettings",
    "watch_scripts",
    "FileNameToken",
    "parse_file_name",
    "generate_file_name",
    "sanitize_script_name",
    "build_metadata_header",
    "strip_metadata_header",
    "FileSystem",
    "LocalFileSystem",
    "SCRIPT_TYPES",
    "ScriptType",
    "get_script_type",
]
