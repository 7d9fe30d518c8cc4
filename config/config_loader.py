"""
Unified configuration loader for Consent Guard.

Loads config.yaml and provides defaults for the access engine, the audit
sink, the policy tables and logging.

Precedence (lowest to highest):
    1. Hardcoded Python fallbacks (always present)
    2. config.yaml sections (project-level settings)
    3. Environment variables CONSENT_GUARD_* (container-level overrides)
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
import structlog

from core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


# Search order for config file
_CONFIG_SEARCH_PATHS = [
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
        Full parsed YAML dict. Returns empty dict if no config found.
    """
    global _cached_config

    if _cached_config is not None and config_path is None:
        return _cached_config

    if config_path:
        p = Path(config_path)
    else:
        env_path = os.environ.get("CONSENT_GUARD_CONFIG")
        p = Path(env_path) if env_path and Path(env_path).is_file() else _find_config_file()

    if p is None or not p.is_file():
        _cached_config = {}
        return _cached_config

    try:
        with open(p, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {p}: {e}")

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Configuration root in {p} must be a mapping")

    _cached_config = loaded
    return _cached_config


def _to_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def _to_optional_float(value: str) -> Optional[float]:
    if value.strip().lower() in ("", "none", "null", "off"):
        return None
    return float(value)


def _apply_env(defaults: Dict[str, Any], env_mapping: Dict[str, Tuple[str, Callable]]) -> None:
    for env_var, (key, converter) in env_mapping.items():
        val = os.environ.get(env_var)
        if val is not None:
            try:
                defaults[key] = converter(val)
            except (ValueError, TypeError):
                logger.warning("Ignoring invalid environment override", variable=env_var, value=val)


def get_engine_defaults(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Return engine settings: cache TTL and collaborator/evaluation timeouts.

    A timeout of None disables it.
    """
    cfg = load_config() if cfg is None else cfg
    engine = cfg.get("engine", {}) or {}

    defaults: Dict[str, Any] = {
        "cache_ttl_seconds": 120.0,
        "collaborator_timeout_seconds": None,
        "evaluation_timeout_seconds": None,
    }
    for key in defaults:
        if engine.get(key) is not None:
            defaults[key] = engine[key]

    _apply_env(defaults, {
        "CONSENT_GUARD_CACHE_TTL": ("cache_ttl_seconds", float),
        "CONSENT_GUARD_COLLABORATOR_TIMEOUT": ("collaborator_timeout_seconds", _to_optional_float),
        "CONSENT_GUARD_EVALUATION_TIMEOUT": ("evaluation_timeout_seconds", _to_optional_float),
    })

    if defaults["cache_ttl_seconds"] <= 0:
        raise ConfigurationError(
            "cache_ttl_seconds must be positive", config_key="engine.cache_ttl_seconds"
        )
    return defaults


def get_audit_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return audit sink settings."""
    cfg = load_config() if cfg is None else cfg
    audit = cfg.get("audit", {}) or {}

    defaults: Dict[str, Any] = {
        "backend": "structured_file",
        "storage_path": "logs/audit",
        "db_path": "data/access_audit.db",
        "encrypt": False,
        "encryption_key": None,
        "max_retries": 3,
        "retry_delay": 0.1,
        "alert_threshold": 3,
    }
    for key in defaults:
        if audit.get(key) is not None:
            defaults[key] = audit[key]

    _apply_env(defaults, {
        "CONSENT_GUARD_AUDIT_BACKEND": ("backend", str),
        "CONSENT_GUARD_AUDIT_PATH": ("storage_path", str),
        "CONSENT_GUARD_AUDIT_DB": ("db_path", str),
        "CONSENT_GUARD_AUDIT_ENCRYPT": ("encrypt", _to_bool),
        "CONSENT_GUARD_AUDIT_MAX_RETRIES": ("max_retries", int),
    })
    return defaults


def get_policy_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the policy tables section (empty keys fall back to built-in tables)."""
    cfg = load_config() if cfg is None else cfg
    return dict(cfg.get("policy", {}) or {})


def get_consent_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return reference consent registry settings."""
    cfg = load_config() if cfg is None else cfg
    consent = cfg.get("consent", {}) or {}
    return {
        "audit_category_threshold": consent.get("audit_category_threshold", 5),
    }


def get_logging_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return logging settings for core.utils.setup_logging."""
    cfg = load_config() if cfg is None else cfg
    log = cfg.get("logging", {}) or {}

    defaults: Dict[str, Any] = {
        "level": "INFO",
        "log_format": "json",
        "log_file": None,
    }
    if log.get("level"):
        defaults["level"] = log["level"]
    if log.get("format"):
        defaults["log_format"] = log["format"]
    if log.get("file"):
        defaults["log_file"] = log["file"]

    _apply_env(defaults, {
        "CONSENT_GUARD_LOG_LEVEL": ("level", str),
        "CONSENT_GUARD_LOG_FORMAT": ("log_format", str),
    })
    return defaults


def get_full_config() -> Dict[str, Any]:
    """
    Return the complete parsed config.yaml as a nested dict.

    Returns:
        Full YAML configuration dict.
    """
    return load_config()


def reload_config():
    """Force reload of config (clears cache)."""
    global _cached_config
    _cached_config = None
