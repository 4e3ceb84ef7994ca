"""
Configuration management for pagerelay.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "pagerelay"
    version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = True
    # Empty string disables the file handler (stderr only)
    logs_dir: str = ""


class ServerConfig(BaseModel):
    """HTTP surface configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    relay_path: str = "/proxy"
    cors_allow_origin: str = "*"


class EngineConfig(BaseModel):
    """Browser engine configuration.

    One Chromium instance is shared by the whole process; every request gets
    its own isolated context created from it.
    """

    model_config = ConfigDict(extra="forbid")

    headless: bool = True
    launch_args: list[str] = Field(default_factory=lambda: ["--no-sandbox"])
    eager_start: bool = True
    bypass_csp: bool = True
    ignore_https_errors: bool = True
    navigation_timeout_seconds: float = 10.0
    header_capture_timeout_seconds: float = 15.0
    wait_until: str = "domcontentloaded"
    pdf_format: str = "A4"


class UpstreamConfig(BaseModel):
    """Non-engine upstream HTTP configuration (probe + passthrough)."""

    timeout_seconds: float = 30.0
    # Targets are arbitrary and often self-signed
    verify_tls: bool = False
    follow_redirects: bool = True
    chunk_size: int = 64 * 1024


class RewriteConfig(BaseModel):
    """Link rewriting configuration."""

    # False keeps origin-root resolution for relative references
    resolve_relative_to_document: bool = False
    skip_relayed: bool = True


class ScreenshotConfig(BaseModel):
    """Screenshot viewport configuration."""

    default_width: int = 1280
    default_height: int = 800
    presets: dict[str, tuple[int, int]] = Field(
        default_factory=lambda: {
            "iphone": (375, 812),
            "iphone-se": (375, 667),
            "android": (412, 915),
            "ipad": (768, 1024),
            "laptop": (1366, 768),
            "desktop": (1920, 1080),
        }
    )


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    rewrite: RewriteConfig = Field(default_factory=RewriteConfig)
    screenshot: ScreenshotConfig = Field(default_factory=ScreenshotConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml and apply the `settings` section of local.yaml.

    Example local.yaml:
        settings:
          server:
            port: 8080

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _read_yaml(config_dir / "settings.yaml")
    local_overrides = _read_yaml(config_dir / "local.yaml")
    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])
    return config


def _coerce_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with PAGERELAY_ and use
    double underscores for nested keys.

    Example:
        PAGERELAY_SERVER__PORT=8080

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "PAGERELAY_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "PAGERELAY_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")
        if len(key_path) < 2:
            continue

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[key_path[-1]] = _coerce_env_value(value)

    return config


def get_config_dir() -> Path:
    """Configuration directory (PAGERELAY_CONFIG_DIR or <project root>/config)."""
    raw = os.environ.get("PAGERELAY_CONFIG_DIR")
    if raw:
        return Path(raw)
    return get_project_root() / "config"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config = _load_yaml_config(get_config_dir())
    config = _apply_env_overrides(config)
    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # This file lives at pagerelay/utils/config.py
    return Path(__file__).parent.parent.parent
