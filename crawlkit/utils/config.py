"""
Configuration management for crawlkit.
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

    project_name: str = "crawlkit"
    version: str = "0.1.0"
    log_level: str = "INFO"
    log_json: bool = True
    logs_dir: str = "logs"
    log_to_file: bool = False


class CacheConfig(BaseModel):
    """Acquisition result cache configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_size: int = 500
    ttl_seconds: float = 1800.0


class HTTPConfig(BaseModel):
    """Plain and pooled request backends."""

    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    impersonate: str = "chrome"
    follow_redirects: bool = True
    pool_max_connections: int = 10
    pool_keepalive_connections: int = 6  # stands in for pipelining depth
    pool_keepalive_expiry: float = 30.0
    inflight_stale_seconds: float = 30.0


class BrowserConfig(BaseModel):
    """Headless browser backend configuration."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    default_wait_until: str = "networkidle"
    script_settle_seconds: float = 0.5
    launch_args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"]
    )


class RemoteDebugConfig(BaseModel):
    """Attach-to-running-browser configuration."""

    host: str = "127.0.0.1"
    port: int = 9222
    connect_timeout: float = 10.0
    poll_interval: float = 0.1
    sweep_interval: float = 30.0
    stale_after: float = 30.0

    @property
    def http_endpoint(self) -> str:
        return f"http://{self.host}:{self.port}"


class SessionConfig(BaseModel):
    """Persistent browser session configuration."""

    profiles_dir: str = "data/profiles"
    idle_timeout_seconds: float = 1800.0
    cleanup_interval_seconds: float = 300.0
    attach_viewport_width: int = 1280
    attach_viewport_height: int = 800


class BatchConfig(BaseModel):
    """Windowed batch acquisition defaults."""

    concurrency: int = 3
    retries: int = 2
    retry_delay: float = 1.0
    window_delay_min: float = 0.5
    window_delay_max: float = 1.5


class SearchConfig(BaseModel):
    """Search configuration."""

    default_engine: str = "duckduckgo"
    max_results: int = 10
    browser_engines: list[str] = Field(default_factory=lambda: ["google", "bing"])
    concurrency: int = 2
    retries: int = 1
    retry_delay: float = 1.0
    window_delay_min: float = 1.0
    window_delay_max: float = 2.0


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    remote_debug: RemoteDebugConfig = Field(default_factory=RemoteDebugConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


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
          cache:
            max_size: 2000

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _read_yaml(config_dir / "settings.yaml")
    local = _read_yaml(config_dir / "local.yaml")
    if isinstance(local.get("settings"), dict):
        config = _deep_merge(config, local["settings"])
    return config


def _coerce_env_value(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables are prefixed with CRAWLKIT_ and use double
    underscores for nested keys.

    Example:
        CRAWLKIT_CACHE__MAX_SIZE=1000

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "CRAWLKIT_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "CRAWLKIT_CONFIG_DIR":
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


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. config/settings.yaml, then the `settings` section of config/local.yaml
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("CRAWLKIT_CONFIG_DIR", "config"))
    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)
    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # crawlkit/utils/config.py
    return Path(__file__).parent.parent.parent


def ensure_directories() -> None:
    """Create the log and browser-profile directories if missing."""
    settings = get_settings()
    root = get_project_root()

    for name in (settings.general.logs_dir, settings.session.profiles_dir):
        path = Path(name)
        (path if path.is_absolute() else root / path).mkdir(parents=True, exist_ok=True)
