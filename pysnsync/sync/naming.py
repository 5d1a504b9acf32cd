"""File naming convention linking local files to script records.

A synced file is named ``<script_name>.<script_type><extension>``, e.g.
``com.example.Util.sys_script_include.js``. Script names may contain dots;
only the last two segments carry the type and extension.
"""

import re
from dataclasses import dataclass

from .script_types import SCRIPT_TYPES, get_script_type

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class FileNameToken:
    """Decoded form of a file name."""

    script_name: str = ""
    script_type: str = ""
    is_valid: bool = False


_INVALID = FileNameToken()


def parse_file_name(file_name: str) -> FileNameToken:
    """Decode a file name into script name and type.

    Args:
        file_name: Base name of the file (no directory part)

    Returns:
        FileNameToken, with is_valid False when the name does not follow
        the convention

    Examples:
        >>> parse_file_name("com.example.Util.sys_script.js")
        FileNameToken(script_name='com.example.Util', script_type='sys_script', ...)
        >>> parse_file_name("notes.txt").is_valid
        False
    """
    parts = file_name.split(".")
    if len(parts) < 3:
        return _INVALID

    extension = parts.pop()
    script_type = parts.pop()
    script_name = ".".join(parts)

    descriptor = SCRIPT_TYPES.get(script_type)
    if descriptor is None or f".{extension}" != descriptor.extension:
        return _INVALID

    return FileNameToken(
        script_name=script_name,
        script_type=script_type,
        is_valid=True,
    )


def sanitize_script_name(script_name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return _UNSAFE_CHARS.sub("_", script_name)


def generate_file_name(script_name: str, script_type: str) -> str:
    """Build the file name for a script record.

    Args:
        script_name: Name of the record on the instance
        script_type: Registered script type identifier

    Returns:
        File name following the naming convention

    Raises:
        InvalidScriptTypeError: If script_type is not registered
    """
    descriptor = get_script_type(script_type)
    return f"{sanitize_script_name(script_name)}.{script_type}{descriptor.extension}"
