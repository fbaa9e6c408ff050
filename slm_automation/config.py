"""Configuration loading utilities for the SLM deployment helpers."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import shutil

import yaml


DEFAULT_CONFIG_PATH = Path("config/settings.yaml")
DEFAULT_TEMPLATE_PATH = Path("config/settings.example.yaml")
ENV_CONFIG_PATH = "SLM_AUTOMATION_CONFIG"
ENV_PREFIX = "SLM_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass
class LDAPConfig:
    """Settings required to connect to Active Directory via LDAP."""

    server_uri: str
    user_dn: str
    password: str
    base_dn: str
    use_ssl: bool = True
    mock_data_file: Optional[Path] = None
    group_search_base: Optional[str] = None


@dataclass
class AssetServiceConfig:
    """Snow License Manager web endpoint used for application images."""

    base_uri: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    image_root_folder: Path = Path("data")

    @property
    def credentials(self) -> Optional[tuple[str, str]]:
        if not self.username:
            return None
        return (self.username, self.password or "")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[Path] = None


@dataclass
class AppConfig:
    """Aggregate configuration for the application."""

    ldap: LDAPConfig
    asset_service: AssetServiceConfig = field(default_factory=AssetServiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigurationError(RuntimeError):
    """Raised when the configuration file or environment variables are invalid."""


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Configuration file '{path}' does not exist. "
            "Create it from 'config/settings.example.yaml' or set environment variables."
        )
    with path.open("r", encoding="utf-8") as file:
        try:
            return yaml.safe_load(file) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{path}' is not valid YAML: {exc}") from exc


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Override configuration values with environment variables."""

    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == ENV_CONFIG_PATH:
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)
    return config_dict


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            result[key] = _deep_merge(base[key], value)
        else:
            result[key] = value
    return result


def _resolve_config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def ensure_default_config(
    path: Optional[Path] = None, template_path: Optional[Path] = None
) -> Path:
    """Ensure a configuration file exists, copying from the example if needed."""

    target_path = _resolve_config_path(path)
    if target_path.exists():
        return target_path

    template = Path(template_path) if template_path is not None else DEFAULT_TEMPLATE_PATH
    if not template.exists():
        raise ConfigurationError(
            "Default configuration template not found. "
            "Ensure 'config/settings.example.yaml' is present or specify a template."
        )

    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy(template, target_path)
    return target_path


def _load_config_dict(path: Optional[Path] = None) -> Dict[str, Any]:
    resolved_path = _resolve_config_path(path)
    if resolved_path == DEFAULT_CONFIG_PATH:
        ensure_default_config(resolved_path)

    config_dict = _load_from_file(resolved_path)
    return _apply_environment_overrides(config_dict)


def _get_required(config_dict: Dict[str, Any], key: str) -> Dict[str, Any]:
    try:
        section = config_dict[key]
    except KeyError as exc:
        raise ConfigurationError(f"Missing required configuration section: '{key}'.") from exc
    if not isinstance(section, dict):
        raise ConfigurationError(f"Configuration section '{key}' must be a mapping.")
    return section


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _optional_path(raw: Any) -> Optional[Path]:
    """Convert a raw config value to ``Path`` if set, otherwise ``None``."""

    if raw is None:
        return None
    if isinstance(raw, Path):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return None
        return Path(stripped)
    return Path(raw)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from disk and environment variables."""

    config_dict = _load_config_dict(path)
    ldap_section = _get_required(config_dict, "ldap")

    try:
        ldap_config = LDAPConfig(
            server_uri=str(ldap_section["server_uri"]),
            user_dn=str(ldap_section.get("user_dn") or ""),
            password=str(ldap_section.get("password") or ""),
            base_dn=str(ldap_section["base_dn"]),
            use_ssl=_to_bool(ldap_section.get("use_ssl", True)),
            mock_data_file=_optional_path(ldap_section.get("mock_data_file")),
            group_search_base=(ldap_section.get("group_search_base") or None),
        )
    except KeyError as exc:
        raise ConfigurationError(f"Missing LDAP configuration key: {exc}.") from exc

    if not ldap_config.server_uri.startswith("mock://") and not ldap_config.user_dn:
        raise ConfigurationError("Missing LDAP configuration key: 'user_dn'.")

    asset_section = config_dict.get("asset_service") or {}
    default_asset = AssetServiceConfig()
    asset_config = AssetServiceConfig(
        base_uri=_optional_str(asset_section.get("base_uri")),
        username=_optional_str(asset_section.get("username")),
        password=_optional_str(asset_section.get("password")),
        image_root_folder=(
            _optional_path(asset_section.get("image_root_folder"))
            or default_asset.image_root_folder
        ),
    )

    logging_section = config_dict.get("logging") or {}
    level = str(logging_section.get("level", "INFO")).strip().upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError(f"Unknown logging level '{level}'.")
    logging_config = LoggingConfig(
        level=level,
        file=_optional_path(logging_section.get("file")),
    )

    return AppConfig(ldap=ldap_config, asset_service=asset_config, logging=logging_config)


def configure_logging(settings: LoggingConfig) -> None:
    """Apply the logging section to the root logger."""

    root = logging.getLogger()
    root.setLevel(settings.level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    if settings.file:
        target = str(settings.file.resolve())
        already = any(
            isinstance(handler, logging.FileHandler) and handler.baseFilename == target
            for handler in root.handlers
        )
        if not already:
            settings.file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)


__all__ = [
    "AppConfig",
    "AssetServiceConfig",
    "ConfigurationError",
    "LDAPConfig",
    "LoggingConfig",
    "configure_logging",
    "ensure_default_config",
    "load_config",
]
