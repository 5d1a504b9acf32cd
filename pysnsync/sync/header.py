"""Metadata header written at the top of pulled script files.

Pulled files start with a block comment describing the source record. The
header is removed again before pushing, so repeated pull/push cycles never
nest headers inside the script body.
"""

from typing import Any

from .script_types import ScriptType

COMMENT_OPEN = "/*"
COMMENT_CLOSE = "*/"


def build_metadata_header(
    script_type: ScriptType, record: dict[str, Any], synced_at: str
) -> str:
    """Build the block comment describing a pulled record.

    Args:
        script_type: Descriptor of the record's type
        record: Record as returned by the instance
        synced_at: ISO timestamp of the pull

    Returns:
        Header text, without a trailing newline
    """
    lines = [
        "/**",
        f" * ServiceNow Script: {record.get(script_type.name_field, '')}",
        f" * Type: {script_type.label}",
        f" * Table: {script_type.table}",
        f" * sys_id: {record.get('sys_id', '')}",
        " *",
        f" * Last synced: {synced_at}",
        " *",
        " * This file is managed by pysnsync.",
        " * Changes will be pushed to ServiceNow on save.",
        " */",
    ]
    return "\n".join(lines)


def compose_file_content(header: str, script: str) -> str:
    """Join header and script body with a blank line."""
    return f"{header}\n\n{script}"


def strip_metadata_header(text: str) -> str:
    """Remove a single leading block comment from file content.

    Only a comment that starts at the very first character is recognised.
    The comment and the line breaks following it are dropped; the rest is
    returned verbatim. Content without a leading comment, or with one that
    never closes, is returned unchanged.

    Args:
        text: File content

    Returns:
        Script body to push
    """
    if not text.startswith(COMMENT_OPEN):
        return text

    close = text.find(COMMENT_CLOSE, len(COMMENT_OPEN))
    if close == -1:
        return text

    return text[close + len(COMMENT_CLOSE) :].lstrip("\r\n")
