"""Core sync engine for pushing and pulling single scripts."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol, Union

from ..exceptions import (
    InvalidDirectionError,
    SNInvalidResponseError,
    SNNotFoundError,
)
from .header import build_metadata_header, compose_file_content, strip_metadata_header
from .operations import FileSystem, LocalFileSystem
from .script_types import ScriptType, get_script_type

logger = logging.getLogger(__name__)


class SyncDirection(str, Enum):
    """Direction of a sync operation."""

    PUSH = "push"
    """Copy the local file to the instance"""

    PULL = "pull"
    """Copy the instance record to the local file"""


class RecordStore(Protocol):
    """Remote record operations the sync engine relies on."""

    def get_records(
        self,
        table: str,
        query: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        fields: Optional[list[str]] = None,
    ) -> list[dict[str, Any]]: ...

    def update_record(
        self, table: str, sys_id: str, data: dict[str, Any]
    ) -> dict[str, Any]: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _coerce_direction(
    direction: Union[SyncDirection, str, None],
) -> Optional[SyncDirection]:
    if direction is None or isinstance(direction, SyncDirection):
        return direction
    try:
        return SyncDirection(direction)
    except ValueError:
        raise InvalidDirectionError(
            f"Invalid direction: {direction}. Must be 'push' or 'pull'."
        ) from None


@dataclass
class SyncRequest:
    """A request to sync one file with one script record.

    Construction validates the script type and direction, so malformed
    requests fail before any I/O happens.
    """

    script_name: str
    """Name of the record on the instance"""

    script_type: str
    """Registered script type identifier"""

    file_path: Path
    """Local file path"""

    direction: Optional[SyncDirection] = None
    """Push or pull; inferred from the local file when None"""

    instance: Optional[str] = None
    """Name of the configured instance the client talks to"""

    def __post_init__(self) -> None:
        self.file_path = Path(self.file_path)
        self.direction = _coerce_direction(self.direction)
        get_script_type(self.script_type)


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a single sync."""

    script_name: str
    script_type: str
    file_path: Path
    direction: Optional[SyncDirection]
    success: bool
    sys_id: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
    instance: Optional[str] = None
    timestamp: str = field(default_factory=_utc_now)

    @classmethod
    def failure(
        cls,
        request: SyncRequest,
        error: Union[str, BaseException],
        direction: Optional[SyncDirection] = None,
    ) -> "SyncResult":
        """Build a failed result for a request."""
        error_text = str(error)
        return cls(
            script_name=request.script_name,
            script_type=request.script_type,
            file_path=request.file_path,
            direction=direction or request.direction,
            success=False,
            message=f"Sync failed: {error_text}",
            error=error_text,
            instance=request.instance,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert result to a dictionary for JSON output."""
        return {
            "script_name": self.script_name,
            "script_type": self.script_type,
            "file_path": str(self.file_path),
            "direction": self.direction.value if self.direction else None,
            "success": self.success,
            "sys_id": self.sys_id,
            "message": self.message,
            "error": self.error,
            "instance": self.instance,
            "timestamp": self.timestamp,
        }


class SyncEngine:
    """Pushes and pulls scripts between local files and the instance.

    ``sync`` never raises once a request has been validated: remote errors,
    missing records and filesystem errors all come back as failed
    SyncResult objects.
    """

    def __init__(self, client: RecordStore, fs: Optional[FileSystem] = None):
        """Initialize sync engine.

        Args:
            client: Remote record store, usually a ServiceNowClient
            fs: Filesystem operations (defaults to the local disk)
        """
        self.client = client
        self.fs = fs or LocalFileSystem()

    def sync(self, request: SyncRequest) -> SyncResult:
        """Sync one script.

        Args:
            request: What to sync and in which direction

        Returns:
            SyncResult describing the outcome

        Raises:
            InvalidScriptTypeError: If the request names an unknown type
            InvalidDirectionError: If the request has an invalid direction

        Examples:
            >>> engine = SyncEngine(client)
            >>> request = SyncRequest(
            ...     "Util", "sys_script_include", "Util.sys_script_include.js"
            ... )
            >>> result = engine.sync(request)
            >>> result.direction
            <SyncDirection.PUSH: 'push'>
        """
        script_type = get_script_type(request.script_type)
        direction = _coerce_direction(request.direction)

        try:
            if direction is None:
                direction = self._infer_direction(request.file_path)
            logger.debug(
                "Syncing %s (%s) %s %s",
                request.script_name,
                request.script_type,
                direction.value,
                request.file_path,
            )
            if direction is SyncDirection.PULL:
                result = self._pull(request, script_type)
            else:
                result = self._push(request, script_type)
        except Exception as e:
            logger.debug("Sync of %s failed: %s", request.file_path, e)
            return SyncResult.failure(request, e, direction)

        logger.debug(result.message)
        return result

    def _infer_direction(self, file_path: Path) -> SyncDirection:
        """Push when the local file exists, pull otherwise."""
        try:
            exists = self.fs.exists(file_path)
        except OSError:
            exists = False
        return SyncDirection.PUSH if exists else SyncDirection.PULL

    def _find_record(
        self, request: SyncRequest, script_type: ScriptType, fields: list[str]
    ) -> Optional[dict[str, Any]]:
        """Return the first record whose name matches, or None."""
        records = self.client.get_records(
            script_type.table,
            query={script_type.name_field: request.script_name},
            limit=1,
            fields=fields,
        )
        if not records:
            return None
        return records[0]

    def _pull(self, request: SyncRequest, script_type: ScriptType) -> SyncResult:
        record = self._find_record(
            request,
            script_type,
            ["sys_id", script_type.name_field, script_type.script_field],
        )
        if record is None:
            raise SNNotFoundError(
                f"Script not found in ServiceNow: {request.script_name}"
            )

        synced_at = _utc_now()
        script = record.get(script_type.script_field) or ""
        header = build_metadata_header(script_type, record, synced_at)

        self.fs.make_dirs(request.file_path.parent)
        self.fs.write_text(request.file_path, compose_file_content(header, script))

        return SyncResult(
            script_name=request.script_name,
            script_type=request.script_type,
            file_path=request.file_path,
            direction=SyncDirection.PULL,
            success=True,
            sys_id=record.get("sys_id"),
            message=(
                f"Successfully pulled script from ServiceNow to {request.file_path}"
            ),
            instance=request.instance,
            timestamp=synced_at,
        )

    def _push(self, request: SyncRequest, script_type: ScriptType) -> SyncResult:
        try:
            content = self.fs.read_text(request.file_path)
        except OSError as e:
            raise OSError(f"Failed to read file: {e}") from e

        script = strip_metadata_header(content)

        record = self._find_record(
            request, script_type, ["sys_id", script_type.name_field]
        )
        if record is None:
            raise SNNotFoundError(
                f"Script not found in ServiceNow: {request.script_name}. "
                "Create it first, then sync."
            )

        sys_id = record.get("sys_id")
        if not sys_id:
            raise SNInvalidResponseError(
                f"Record for {request.script_name} in {script_type.table} "
                "has no sys_id"
            )
        self.client.update_record(
            script_type.table, sys_id, {script_type.script_field: script}
        )

        return SyncResult(
            script_name=request.script_name,
            script_type=request.script_type,
            file_path=request.file_path,
            direction=SyncDirection.PUSH,
            success=True,
            sys_id=sys_id,
            message=(
                f"Successfully pushed script from {request.file_path} to ServiceNow"
            ),
            instance=request.instance,
        )


def sync_script(
    client: RecordStore, request: SyncRequest, fs: Optional[FileSystem] = None
) -> SyncResult:
    """Sync one script with a throwaway engine."""
    return SyncEngine(client, fs).sync(request)
