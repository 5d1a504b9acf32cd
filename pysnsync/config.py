"""Configuration management for pysnsync.

Instances are read from a JSON file (``~/.config/pysnsync/instances.json`` or
``$PYSNSYNC_INSTANCES_FILE``)::

    {
      "instances": [
        {"name": "dev", "url": "https://dev123.service-now.com",
         "username": "admin", "password": "...", "default": true}
      ]
    }

Without that file a single instance is built from the
``SERVICENOW_INSTANCE_URL``, ``SERVICENOW_USERNAME`` and
``SERVICENOW_PASSWORD`` environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .exceptions import SNConfigError
from .sync.watcher import WatchSettings

logger = logging.getLogger(__name__)

REQUIRED_INSTANCE_FIELDS = ("name", "url", "username", "password")


@dataclass
class InstanceConfig:
    """Connection details for one ServiceNow instance."""

    name: str
    url: str
    username: str
    password: str
    default: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstanceConfig":
        """Create InstanceConfig from dictionary, validating required fields."""
        for field_name in REQUIRED_INSTANCE_FIELDS:
            if not data.get(field_name):
                raise SNConfigError(
                    f"Instance configuration missing required field: {field_name}"
                )
        return cls(
            name=data["name"],
            url=data["url"],
            username=data["username"],
            password=data["password"],
            default=bool(data.get("default", False)),
            description=data.get("description", ""),
        )

    def to_summary(self) -> dict[str, Any]:
        """Public description of the instance (no credentials)."""
        return {
            "name": self.name,
            "url": self.url,
            "default": self.default,
            "description": self.description,
        }


class Config:
    """Loads instance definitions and runtime settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding instances.json. Defaults to
                ~/.config/pysnsync/
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pysnsync"
        self.config_dir = config_dir
        self._instances: Optional[list[InstanceConfig]] = None

    @property
    def instances_path(self) -> Path:
        """Path of the instances file."""
        env_path = os.environ.get("PYSNSYNC_INSTANCES_FILE")
        if env_path:
            return Path(env_path).expanduser()
        return self.config_dir / "instances.json"

    def reload(self) -> None:
        """Forget cached instances so the next access reads them again."""
        self._instances = None

    def load_instances(self) -> list[InstanceConfig]:
        """Load instances from the instances file, or the environment.

        Raises:
            SNConfigError: If the file is invalid or no instance is configured
        """
        if self._instances is not None:
            return self._instances

        path = self.instances_path
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"{path} not found, falling back to environment")
            self._instances = self._load_from_env()
            return self._instances
        except (OSError, json.JSONDecodeError) as e:
            raise SNConfigError(
                f"Failed to load ServiceNow instances config: {e}"
            ) from e

        entries = data.get("instances") if isinstance(data, dict) else None
        if not entries:
            raise SNConfigError(f"No instances defined in {path}")

        self._instances = [InstanceConfig.from_dict(entry) for entry in entries]
        return self._instances

    def _load_from_env(self) -> list[InstanceConfig]:
        url = os.environ.get("SERVICENOW_INSTANCE_URL")
        username = os.environ.get("SERVICENOW_USERNAME")
        password = os.environ.get("SERVICENOW_PASSWORD")
        if not (url and username and password):
            raise SNConfigError(
                "Missing ServiceNow credentials. Create "
                f"{self.instances_path} or set SERVICENOW_INSTANCE_URL, "
                "SERVICENOW_USERNAME and SERVICENOW_PASSWORD."
            )
        return [
            InstanceConfig(
                name="default",
                url=url,
                username=username,
                password=password,
                default=True,
                description="Loaded from environment",
            )
        ]

    def is_configured(self) -> bool:
        """Return True if at least one instance can be loaded."""
        try:
            return bool(self.load_instances())
        except SNConfigError:
            return False

    def get_instance(self, name: str) -> InstanceConfig:
        """Get an instance by name.

        Raises:
            SNConfigError: If no instance has that name
        """
        instances = self.load_instances()
        for instance in instances:
            if instance.name == name:
                return instance
        available = ", ".join(i.name for i in instances)
        raise SNConfigError(
            f"Instance '{name}' not found. Available instances: {available}"
        )

    def get_default_instance(self) -> InstanceConfig:
        """Get the instance flagged as default, else the first one."""
        instances = self.load_instances()
        for instance in instances:
            if instance.default:
                return instance
        return instances[0]

    def get_instance_or_default(self, name: Optional[str] = None) -> InstanceConfig:
        """Resolve an instance by name, $SERVICENOW_INSTANCE, or the default."""
        if name:
            return self.get_instance(name)
        env_instance = os.environ.get("SERVICENOW_INSTANCE")
        if env_instance:
            return self.get_instance(env_instance)
        return self.get_default_instance()

    def list_instances(self) -> list[dict[str, Any]]:
        """Describe all configured instances without their credentials."""
        return [instance.to_summary() for instance in self.load_instances()]

    def watch_settings(self) -> WatchSettings:
        """Watcher timings, overridable through the environment.

        Reads PYSNSYNC_STABILITY_WINDOW, PYSNSYNC_POLL_INTERVAL,
        PYSNSYNC_COOLDOWN (seconds) and PYSNSYNC_WATCH_WORKERS.

        Raises:
            SNConfigError: If a variable is not a positive number
        """
        overrides: dict[str, Any] = {}
        env_names = {
            "stability_window": ("PYSNSYNC_STABILITY_WINDOW", float),
            "poll_interval": ("PYSNSYNC_POLL_INTERVAL", float),
            "cooldown": ("PYSNSYNC_COOLDOWN", float),
            "max_workers": ("PYSNSYNC_WATCH_WORKERS", int),
        }
        for attr, (env_name, convert) in env_names.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                value = convert(raw)
            except ValueError:
                raise SNConfigError(
                    f"{env_name} must be a number, got {raw!r}"
                ) from None
            if value <= 0:
                raise SNConfigError(f"{env_name} must be positive, got {raw!r}")
            overrides[attr] = value
        return WatchSettings(**overrides)


config = Config()
