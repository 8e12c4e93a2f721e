"""
Unified configuration loader for the HDS consent engine.

Loads config.yaml and provides the defaults used to build an engine.

Precedence (lowest to highest):
    1. Hardcoded Python fallbacks (always present)
    2. config.yaml sections
    3. Environment variables HDS_* (container-level overrides)
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.utils import resolve_env_vars


# Search order for config file
_CONFIG_SEARCH_PATHS = [
    os.environ.get("HDS_CONSENT_CONFIG", ""),
    "config/config.yaml",
    str(Path(__file__).parent / "config.yaml"),
]

_cached_config: Optional[Dict] = None


def _find_config_file() -> Optional[Path]:
    """Find config.yaml from search paths."""
    for path_str in _CONFIG_SEARCH_PATHS:
        if not path_str:
            continue
        p = Path(path_str)
        if p.is_file():
            return p
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and cache the full config.yaml.

    Args:
        config_path: Optional explicit path. If None, uses search order.

    Returns:
        Full parsed YAML dict with ``${VAR}`` values resolved.
        Returns empty dict if no config found.
    """
    global _cached_config

    if _cached_config is not None and config_path is None:
        return _cached_config

    if config_path:
        p = Path(config_path)
    else:
        p = _find_config_file()

    if p is None or not p.is_file():
        _cached_config = {}
        return _cached_config

    with open(p, "r", encoding="utf-8") as f:
        _cached_config = resolve_env_vars(yaml.safe_load(f) or {})

    return _cached_config


def reload_config():
    """Force reload of config (clears cache)."""
    global _cached_config
    _cached_config = None


def _apply_env(defaults: Dict[str, Any], env_mapping: Dict[str, tuple]) -> Dict[str, Any]:
    for env_var, (key, converter) in env_mapping.items():
        val = os.environ.get(env_var)
        if val is not None:
            try:
                defaults[key] = converter(val)
            except (ValueError, TypeError):
                pass
    return defaults


def _apply_yaml(defaults: Dict[str, Any], section: Dict[str, Any]) -> Dict[str, Any]:
    for key in defaults:
        value = section.get(key)
        if value is not None:
            defaults[key] = value
    return defaults


def get_authorization_defaults(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Return the authority and tunables.

    Args:
        config: Parsed config dict (uses load_config() if None).

    Returns:
        Dict with authority, null_identity, max_consents,
        access_limit_per_cycle, cycle_duration, cycle_start_height.
    """
    cfg = load_config() if config is None else config

    defaults = {
        "authority": None,
        "null_identity": "SP000000000000000000002Q6VF78",
        "max_consents": 10000,
        "access_limit_per_cycle": 10,
        "cycle_duration": 1000,
        "cycle_start_height": 0,
    }
    _apply_yaml(defaults, cfg.get("authorization", {}) or {})

    return _apply_env(defaults, {
        "HDS_AUTHORITY": ("authority", str),
        "HDS_MAX_CONSENTS": ("max_consents", int),
        "HDS_ACCESS_LIMIT_PER_CYCLE": ("access_limit_per_cycle", int),
        "HDS_CYCLE_DURATION": ("cycle_duration", int),
    })


def get_storage_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Ledger database and event journal settings."""
    cfg = load_config() if config is None else config

    storage = _apply_yaml({"db_path": ":memory:"}, cfg.get("storage", {}) or {})
    journal = _apply_yaml(
        {"storage_path": None, "log_format": "json", "buffer_size": 100, "history_size": 10000},
        cfg.get("journal", {}) or {},
    )
    result = {
        "db_path": storage["db_path"],
        "journal_path": journal["storage_path"],
        "journal_format": journal["log_format"],
        "journal_buffer_size": journal["buffer_size"],
        "journal_history_size": journal["history_size"],
    }
    return _apply_env(result, {
        "HDS_DB_PATH": ("db_path", str),
        "HDS_JOURNAL_PATH": ("journal_path", str),
    })


def get_data_registry_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Data registry collaborator settings."""
    cfg = load_config() if config is None else config

    defaults = {
        "backend": "memory",
        "base_url": None,
        "auth_token": None,
        "timeout": 5.0,
    }
    _apply_yaml(defaults, cfg.get("data_registry", {}) or {})
    _apply_env(defaults, {"HDS_REGISTRY_URL": ("base_url", str)})
    if os.environ.get("HDS_REGISTRY_URL"):
        defaults["backend"] = "http"
    return defaults


def get_clock_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Height source settings."""
    cfg = load_config() if config is None else config
    return _apply_yaml(
        {"backend": "manual", "block_interval": 600.0},
        cfg.get("clock", {}) or {},
    )


def get_logging_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Logging settings (level, format, file)."""
    cfg = load_config() if config is None else config
    defaults = _apply_yaml(
        {"level": "INFO", "format": "json", "file": None},
        cfg.get("logging", {}) or {},
    )
    return _apply_env(defaults, {"HDS_LOG_LEVEL": ("level", str)})
