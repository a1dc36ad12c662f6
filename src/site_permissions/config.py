"""Service configuration with Pydantic v2 validation.

Loads a ``site-permissions.yaml`` style file into a typed
:class:`PermissionServiceConfig`.  Every field has a default, and a missing
``logging_mode`` always means ``"off"``.

Example
-------
::

    config = ConfigLoader().load_string("logging_mode: baseline\\n")
    service = PermissionService.from_config(config, sink=my_sink)
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class PermissionServiceConfig(BaseModel):
    """Runtime configuration for :class:`~site_permissions.engine.PermissionService`."""

    model_config = {"extra": "allow"}

    logging_mode: Literal["off", "baseline", "debug"] = Field(default="off")
    enable_caching: bool = Field(default=True)
    default_cache_ttl_seconds: float = Field(default=3600.0, ge=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)

    @field_validator("logging_mode", mode="before")
    @classmethod
    def default_logging_mode(cls, value: object) -> object:
        # An explicit null in YAML must not enable logging.
        if value is None or value == "":
            return "off"
        return str(value).lower()


class ConfigLoader:
    """Loads and validates service configuration from YAML."""

    def load(self, config_path: Path) -> PermissionServiceConfig:
        """Load and validate a YAML configuration file.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        ValueError:
            When the content fails Pydantic validation.
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Permission service config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return PermissionServiceConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> PermissionServiceConfig:
        """Load and validate a YAML string directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return PermissionServiceConfig.model_validate(raw)

    def defaults(self) -> PermissionServiceConfig:
        """Return a configuration with every default applied."""
        return PermissionServiceConfig()
