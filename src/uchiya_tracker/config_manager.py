"""
Configuration management for loading and saving application configuration.

Supports YAML, TOML and JSON formats.
"""

import json
import yaml
import toml
from pathlib import Path
from typing import Optional, Union
from datetime import datetime
from enum import Enum

from .config import AppConfig, MarkerConfig


class ConfigManager:
    """Manages loading and saving of application configuration."""

    DEFAULT_CONFIG_NAME = "uchiya_tracker_config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default.
        """
        if config_path is None:
            config_path = Path("config") / self.DEFAULT_CONFIG_NAME

        self.config_path = Path(config_path)
        self.config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file format is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        suffix = self.config_path.suffix.lower()

        with open(self.config_path, 'r') as f:
            if suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif suffix == '.toml':
                data = toml.load(f)
            elif suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        data = self._deserialize_datetimes(data or {})

        self.config = AppConfig(**data)
        return self.config

    def save(self, config: Optional[AppConfig] = None) -> None:
        """
        Save configuration to file.

        Args:
            config: AppConfig object to save. If None, uses current config.
        """
        if config is None:
            config = self.config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = config.model_dump(mode='python')
        data = self._serialize_for_storage(data)

        suffix = self.config_path.suffix.lower()

        with open(self.config_path, 'w') as f:
            if suffix in ['.yaml', '.yml']:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            elif suffix == '.toml':
                toml.dump(data, f)
            elif suffix == '.json':
                json.dump(data, f, indent=2)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        self.config = config

    def create_default(self, data_directory: Optional[Path] = None) -> AppConfig:
        """
        Create a default configuration with no markers.

        Args:
            data_directory: Base directory for data files. Defaults to ./data

        Returns:
            AppConfig object with default settings
        """
        config = AppConfig(
            markers={},
            data_directory=Path(data_directory) if data_directory else Path("data")
        )

        self.config = config
        return config

    def _serialize_for_storage(self, data):
        """
        Recursively convert Path, Enum and datetime objects for storage.

        Args:
            data: Value to serialize

        Returns:
            Serialized value
        """
        if isinstance(data, dict):
            return {k: self._serialize_for_storage(v) for k, v in data.items() if v is not None}
        elif isinstance(data, list):
            return [self._serialize_for_storage(item) for item in data]
        elif isinstance(data, Path):
            return str(data)
        elif isinstance(data, datetime):
            return data.isoformat()
        elif isinstance(data, Enum):
            return data.value
        else:
            return data

    def _deserialize_datetimes(self, data):
        """
        Recursively convert ISO datetime strings back to datetime objects.

        Args:
            data: Value to deserialize

        Returns:
            Deserialized value
        """
        if isinstance(data, dict):
            result = {}
            for k, v in data.items():
                # Known datetime fields
                if k == 'registered_at':
                    if isinstance(v, str):
                        try:
                            result[k] = datetime.fromisoformat(v)
                        except (ValueError, TypeError):
                            result[k] = v
                    else:
                        result[k] = v
                else:
                    result[k] = self._deserialize_datetimes(v)
            return result
        elif isinstance(data, list):
            return [self._deserialize_datetimes(item) for item in data]
        else:
            return data

    @classmethod
    def initialize_project(cls, project_dir: Path) -> 'ConfigManager':
        """
        Initialize a new project with default configuration and directory structure.

        Args:
            project_dir: Root directory for the project

        Returns:
            ConfigManager instance with default configuration
        """
        project_dir = Path(project_dir)

        (project_dir / "config").mkdir(parents=True, exist_ok=True)
        (project_dir / "data" / "markers").mkdir(parents=True, exist_ok=True)
        (project_dir / "data" / "images").mkdir(parents=True, exist_ok=True)

        config_path = project_dir / "config" / cls.DEFAULT_CONFIG_NAME
        manager = cls(config_path)

        config = manager.create_default(project_dir / "data")
        manager.save(config)

        return manager

    def add_marker(
        self,
        name: str,
        points_path: Union[str, Path],
        num_points: Optional[int] = None
    ) -> MarkerConfig:
        """
        Add a new marker to the configuration.

        Args:
            name: Name of the marker
            points_path: File containing the marker's dots
            num_points: Number of dots in the marker

        Returns:
            The created MarkerConfig
        """
        if self.config is None:
            raise ValueError("No configuration loaded")

        marker = MarkerConfig(
            name=name,
            points_path=Path(points_path),
            num_points=num_points
        )

        self.config.add_marker(marker)
        return marker
