"""Registry of ServiceNow script record types that can be synced."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ..exceptions import InvalidScriptTypeError


@dataclass(frozen=True)
class ScriptType:
    """Describes one category of script record on the instance."""

    table: str
    """Table holding the records"""

    label: str
    """Human readable name of the record type"""

    name_field: str
    """Field used to look a record up by name"""

    script_field: str
    """Field holding the script body"""

    extension: str
    """Local file extension, including the leading dot"""


def _js_type(table: str, label: str) -> ScriptType:
    return ScriptType(
        table=table,
        label=label,
        name_field="name",
        script_field="script",
        extension=".js",
    )


SCRIPT_TYPES: Mapping[str, ScriptType] = MappingProxyType(
    {
        "sys_script_include": _js_type("sys_script_include", "Script Include"),
        "sys_script": _js_type("sys_script", "Business Rule"),
        "sys_ui_script": _js_type("sys_ui_script", "UI Script"),
        "sys_ui_action": _js_type("sys_ui_action", "UI Action"),
        "sys_script_client": _js_type("sys_script_client", "Client Script"),
    }
)


def get_script_type(script_type: str) -> ScriptType:
    """Look up a registered script type.

    Args:
        script_type: Type identifier, e.g. "sys_script_include"

    Returns:
        The matching ScriptType

    Raises:
        InvalidScriptTypeError: If the identifier is not registered
    """
    try:
        return SCRIPT_TYPES[script_type]
    except (KeyError, TypeError):
        raise InvalidScriptTypeError(
            f"Invalid script type: {script_type}. "
            f"Supported types: {', '.join(SCRIPT_TYPES)}"
        ) from None
