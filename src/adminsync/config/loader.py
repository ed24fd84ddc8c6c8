from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("adminsync.config.yaml")

DEFAULT_STORE_KEY = "@DTHERAPIST:AUTH"

BASE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "api": {
        "timeout_seconds": 30,
        "user_agent": "adminsync/0.3",
    },
    "auth": {
        "store_path": None,
        "store_key": DEFAULT_STORE_KEY,
    },
    "cache": {
        "stale_time_seconds": 120,
        "retry": 2,
        "max_entries": 256,
    },
    "lists": {
        "page_size": 10,
    },
}


class ApiSettings(BaseModel):
    base_url: str
    timeout_seconds: float = Field(30, gt=0)
    user_agent: str = "adminsync/0.3"


class AuthSettings(BaseModel):
    store_path: Optional[str] = None
    store_key: str = DEFAULT_STORE_KEY


class CacheSettings(BaseModel):
    stale_time_seconds: float = Field(120, ge=0)
    retry: int = Field(2, ge=0, le=5)
    max_entries: int = Field(256, ge=1)


class ListSettings(BaseModel):
    page_size: int = Field(10, ge=1)


class ResourceOverride(BaseModel):
    path: Optional[str] = None
    page_size: Optional[int] = Field(None, ge=1)


class Settings(BaseModel):
    """Validated runtime settings."""

    api: ApiSettings
    auth: AuthSettings = AuthSettings()
    cache: CacheSettings = CacheSettings()
    lists: ListSettings = ListSettings()
    resources: Dict[str, ResourceOverride] = {}


def _merge_section_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay user sections on the built-in defaults, one level deep."""
    merged = deepcopy(config)
    for section, defaults in BASE_DEFAULTS.items():
        user_section = config.get(section) or {}
        if not isinstance(user_section, dict):
            raise ValueError(f"Config section '{section}' must be a dictionary")
        merged[section] = {**defaults, **user_section}
    return merged


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load the adminsync configuration from YAML.

    Args:
        path: Optional path to the config file. Defaults to adminsync.config.yaml

    Returns:
        Dictionary with every known section present and defaults applied

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config structure is invalid
    """
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError("Config must be a dictionary")
    api = config.get("api")
    if not isinstance(api, dict) or not api.get("base_url"):
        raise ValueError("Config must have 'api.base_url'")

    resources = config.get("resources")
    if resources is not None and not isinstance(resources, dict):
        raise ValueError("Config 'resources' must be a dictionary if provided")

    return _merge_section_defaults(config)


def get_settings(config: Dict[str, Any] | None = None) -> Settings:
    """
    Build validated Settings from a config dict.

    Args:
        config: Optional config dict. If None, loads from default path.

    Returns:
        Settings instance
    """
    if config is None:
        config = load_config()
    else:
        config = _merge_section_defaults(config)
    return Settings(**config)
