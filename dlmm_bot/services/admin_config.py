"""Process-wide admin configuration.

Loaded at startup and replaced by update_admin_config in-process, or by
reload_admin_config_if_changed when another process (the CLI) rewrites the
JSON document.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dlmm_bot.config import settings
from dlmm_bot.schemas.admin_config import AdminConfig

logger = logging.getLogger(__name__)

_config: AdminConfig | None = None
_loaded_mtime_ns: int | None = None


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


def load_admin_config(path: str | Path | None = None) -> AdminConfig:
    """Read the JSON document, falling back to defaults when it does not exist."""
    global _config, _loaded_mtime_ns
    config_path = Path(path or settings.admin_config_path)
    _loaded_mtime_ns = _mtime_ns(config_path)
    if config_path.exists():
        data = json.loads(config_path.read_text())
        _config = AdminConfig.model_validate(data)
        logger.info(f"Admin config loaded from {config_path}")
    else:
        _config = AdminConfig()
        logger.info(f"No admin config at {config_path}, using defaults")
    return _config


def get_admin_config() -> AdminConfig:
    if _config is None:
        return load_admin_config()
    return _config


def save_admin_config(config: AdminConfig, path: str | Path | None = None) -> Path:
    global _loaded_mtime_ns
    config_path = Path(path or settings.admin_config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config.model_dump_json(indent=2))
    _loaded_mtime_ns = _mtime_ns(config_path)
    return config_path


def _deep_merge(base: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def update_admin_config(changes: dict[str, Any], path: str | Path | None = None) -> AdminConfig:
    """Validate `changes` merged over the current config, persist and install it.

    Raises pydantic.ValidationError and leaves the current config untouched
    when the merged document is invalid.
    """
    global _config
    current = get_admin_config()
    updated = AdminConfig.model_validate(_deep_merge(current.model_dump(), changes))
    save_admin_config(updated, path)
    _config = updated
    logger.info(f"Admin config updated: {sorted(changes)}")
    return updated


def reload_admin_config_if_changed(path: str | Path | None = None) -> AdminConfig | None:
    """Re-read the document if it changed on disk since it was last loaded or saved.

    Returns the new config, or None when nothing changed. An invalid document
    is logged and skipped until it changes again; the current config stays.
    """
    global _config, _loaded_mtime_ns
    config_path = Path(path or settings.admin_config_path)
    mtime_ns = _mtime_ns(config_path)
    if mtime_ns is None or mtime_ns == _loaded_mtime_ns:
        return None
    _loaded_mtime_ns = mtime_ns
    try:
        config = AdminConfig.model_validate(json.loads(config_path.read_text()))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Admin config at {config_path} changed but is invalid, keeping current: {e}")
        return None
    _config = config
    logger.info(f"Admin config reloaded from {config_path}")
    return config
