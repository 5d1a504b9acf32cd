"""Bulk push of every script file in a directory."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .engine import SyncDirection, SyncEngine, SyncRequest, SyncResult
from .naming import FileNameToken, parse_file_name
from .script_types import SCRIPT_TYPES

logger = logging.getLogger(__name__)


@dataclass
class BulkSyncReport:
    """Aggregated outcome of a directory-wide sync.

    ``synced + failed == total_files`` once the report is complete. Files
    whose names do not follow the naming convention are not counted.
    """

    directory: Path
    script_types: list[str]
    total_files: int = 0
    synced: int = 0
    failed: int = 0
    results: list[SyncResult] = field(default_factory=list)
    error: Optional[str] = None
    """Top-level failure (directory could not be created or listed)"""

    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def add(self, result: SyncResult) -> None:
        """Record one file's result."""
        self.results.append(result)
        if result.success:
            self.synced += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert report to a dictionary for JSON output."""
        return {
            "directory": str(self.directory),
            "script_types": self.script_types,
            "total_files": self.total_files,
            "synced": self.synced,
            "failed": self.failed,
            "scripts": [r.to_dict() for r in self.results],
            "error": self.error,
            "timestamp": self.timestamp,
        }


def _select_files(
    names: list[str], script_types: Optional[set[str]]
) -> list[tuple[str, FileNameToken]]:
    selected = []
    for name in names:
        token = parse_file_name(name)
        if not token.is_valid:
            continue
        if script_types is not None and token.script_type not in script_types:
            continue
        selected.append((name, token))
    return selected


def sync_all_scripts(
    engine: SyncEngine,
    directory: Union[str, Path],
    script_types: Optional[Iterable[str]] = None,
    instance: Optional[str] = None,
) -> BulkSyncReport:
    """Push every validly named script file in a directory.

    Files are processed one at a time in listing order. A failure on one
    file never stops the batch, and problems with the directory itself are
    reported in ``report.error`` instead of being raised.

    Args:
        engine: Sync engine to push with
        directory: Directory containing script files (created if missing)
        script_types: Only sync these type identifiers (default: all)
        instance: Name of the instance, recorded on each result

    Returns:
        BulkSyncReport with per-file results

    Examples:
        >>> report = sync_all_scripts(engine, "scripts", ["sys_script_include"])
        >>> print(f"{report.synced}/{report.total_files} pushed")
    """
    directory = Path(directory)
    type_filter = set(script_types) if script_types is not None else None
    report = BulkSyncReport(
        directory=directory,
        script_types=(
            sorted(type_filter) if type_filter is not None else list(SCRIPT_TYPES)
        ),
    )

    try:
        engine.fs.make_dirs(directory)
        names = engine.fs.list_dir(directory)
    except OSError as e:
        logger.warning("Cannot read script directory %s: %s", directory, e)
        report.error = str(e)
        return report

    selected = _select_files(names, type_filter)
    report.total_files = len(selected)
    logger.debug("Found %d script file(s) in %s", len(selected), directory)

    for name, token in selected:
        file_path = directory / name
        request = SyncRequest(
            script_name=token.script_name,
            script_type=token.script_type,
            file_path=file_path,
            direction=SyncDirection.PUSH,
            instance=instance,
        )
        try:
            result = engine.sync(request)
        except Exception as e:
            logger.warning("Unexpected error syncing %s: %s", file_path, e)
            result = SyncResult.failure(request, e, SyncDirection.PUSH)
        report.add(result)

    return report
