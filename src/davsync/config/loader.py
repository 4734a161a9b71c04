"""Load and store the WebDAV connection config as JSON or YAML."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from .schema import WebDavConfig
from ..errors import ConfigurationError
from ..utils.logging import get_logger


class ConfigLoader:
    """Reads and writes ``WebDavConfig`` files."""

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path)
        self.logger = get_logger(self.__class__.__name__)

    def exists(self) -> bool:
        return self.file_path.exists()

    def load(self) -> WebDavConfig:
        """Load the stored config.

        A missing file yields the default (disabled) config.

        Raises:
            ConfigurationError: If the file cannot be parsed or validated
        """
        if not self.file_path.exists():
            self.logger.info("No stored WebDAV config, using defaults", file_path=str(self.file_path))
            return WebDavConfig()

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                if self._is_yaml():
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}", operation="load_config", path=str(self.file_path)) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}", operation="load_config", path=str(self.file_path)) from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config: {e}", operation="load_config", path=str(self.file_path)) from e

        config = self.load_from_dict(data)
        self.logger.info(
            "WebDAV config loaded",
            file_path=str(self.file_path),
            enabled=config.enabled,
            auto_sync=config.auto_sync_enabled
        )
        return config

    def load_from_dict(self, data: Dict[str, Any]) -> WebDavConfig:
        if not isinstance(data, dict):
            raise ConfigurationError("Config must be a mapping", operation="load_config", path=str(self.file_path))
        try:
            return WebDavConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid WebDAV config: {e}", operation="load_config", path=str(self.file_path)) from e

    def save(self, config: WebDavConfig) -> None:
        """Write the config, replacing the old file atomically."""
        data = config.model_dump()
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.file_path.parent, prefix=".webdav-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                if self._is_yaml():
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                else:
                    json.dump(data, f, indent=2)
            os.replace(tmp_name, self.file_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise ConfigurationError(f"Cannot write config: {e}", operation="save_config", path=str(self.file_path)) from e

        self.logger.info("WebDAV config saved", file_path=str(self.file_path), enabled=config.enabled)

    def _is_yaml(self) -> bool:
        return self.file_path.suffix.lower() in ('.yaml', '.yml')
