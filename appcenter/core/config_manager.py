"""
Settings for the App Center uploader.

Settings are two levels deep: the sections below, each a flat mapping of
keys consumed by AppCenterEnvironmentDetector. The packaged default.yaml
provides every key; a user file overrides individual keys and is validated
against SETTINGS_SCHEMA before use.
"""
import importlib.resources as importlib_resources
import os
from typing import Any, Dict, List, Optional

import yaml

import appcenter.config
from appcenter.upload.exceptions import ConfigurationError

USER_CONFIG_FILE = "appcenter.config.yaml"

# section -> key -> accepted type
SETTINGS_SCHEMA: Dict[str, Dict[str, type]] = {
    "appcenter": {"base_url": str, "request_timeout": int, "max_concurrent_chunks": int},
    "retry": {"max_attempts": int, "initial_delay": float, "max_delay": float},
    "polling": {"interval": float, "max_wait": float, "max_attempts_per_poll": int},
    "proxy": {"host": str, "port": int, "username": str, "password": str},
}

# Keys that must be > 0; every other numeric key must be >= 0
POSITIVE_KEYS = {
    ("appcenter", "request_timeout"),
    ("appcenter", "max_concurrent_chunks"),
    ("retry", "max_attempts"),
    ("polling", "max_wait"),
    ("polling", "max_attempts_per_poll"),
    ("proxy", "port"),
}

# Sections whose keys may be left null
NULLABLE_SECTIONS = {"proxy"}

Settings = Dict[str, Dict[str, Any]]


class ConfigManager:
    """Locates, merges and validates uploader settings."""

    def load_settings(self, config_path: Optional[str] = None) -> Settings:
        """Packaged defaults overlaid with the user settings file, if any.

        config_path must exist when given; otherwise appcenter.config.yaml in
        the working directory is used when present.
        """
        settings = self.load_package_defaults()

        path = self.find_settings_file(config_path)
        if path is None:
            return settings

        overrides = self.read_settings_file(path)
        errors = self.validate_settings(overrides)
        if errors:
            raise ConfigurationError(f"Invalid settings in {path}", errors=errors)
        return self.merge_settings(settings, overrides)

    def find_settings_file(self, config_path: Optional[str]) -> Optional[str]:
        if config_path:
            if not os.path.exists(config_path):
                raise FileNotFoundError(f"Config file not found: {config_path}")
            return config_path
        if os.path.exists(USER_CONFIG_FILE):
            return USER_CONFIG_FILE
        return None

    def load_package_defaults(self) -> Settings:
        resource = importlib_resources.files(appcenter.config) / "default.yaml"
        with resource.open("r") as f:
            return yaml.safe_load(f)

    def read_settings_file(self, path: str) -> Settings:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping of settings sections")
        return data

    def merge_settings(self, base: Settings, overrides: Settings) -> Settings:
        """Per-key overlay; sections missing from overrides are kept as-is"""
        merged = {section: dict(values or {}) for section, values in base.items()}
        for section, values in overrides.items():
            merged.setdefault(section, {}).update(values or {})
        return merged

    def validate_settings(self, settings: Settings) -> List[str]:
        """Validate a settings mapping.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        for section, values in settings.items():
            schema = SETTINGS_SCHEMA.get(section)
            if schema is None:
                errors.append(f"Unknown settings section '{section}'")
                continue
            if values is None:
                continue
            if not isinstance(values, dict):
                errors.append(f"Section '{section}' must be a mapping")
                continue

            for key, value in values.items():
                if key not in schema:
                    errors.append(f"Unknown setting '{section}.{key}'")
                    continue
                error = self._validate_value(section, key, value, schema[key])
                if error:
                    errors.append(error)
        return errors

    def _validate_value(self, section: str, key: str, value: Any, expected: type) -> Optional[str]:
        name = f"{section}.{key}"
        if value is None:
            return None if section in NULLABLE_SECTIONS else f"'{name}' must not be empty"

        if expected is str:
            return None if isinstance(value, str) else f"'{name}' must be a string"

        # bool is an int subclass; YAML true/false is never a valid number here
        numeric = (int,) if expected is int else (int, float)
        if isinstance(value, bool) or not isinstance(value, numeric):
            return f"'{name}' must be {'an integer' if expected is int else 'a number'}"

        if (section, key) in POSITIVE_KEYS:
            return None if value > 0 else f"'{name}' must be greater than 0"
        return None if value >= 0 else f"'{name}' must not be negative"
