"""Mailbox settings (``<home>/settings.yaml``).

Dirty values fall back to defaults per key; a broken file never stops the daemon.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..contracts.v1 import MailboxSettings
from ..paths import ensure_home
from ..util.conv import coerce_bool

logger = logging.getLogger("ccmail.settings")

SETTINGS_FILENAME = "settings.yaml"


def settings_path(home: Optional[Path] = None) -> Path:
    return (home or ensure_home()) / SETTINGS_FILENAME


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.warning("ignoring unreadable settings file %s: %s", path, e)
        return {}
    return raw if isinstance(raw, dict) else {}


def _normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
    defaults = MailboxSettings()
    out: Dict[str, Any] = {}

    def _float(key: str, default: float, *, positive: bool) -> float:
        try:
            v = float(raw.get(key, default))
        except Exception:
            return default
        if v != v or (positive and v <= 0) or v < 0:
            return default
        return v

    out["poll_interval_seconds"] = _float("poll_interval_seconds", defaults.poll_interval_seconds, positive=True)
    out["busy_timeout_seconds"] = _float("busy_timeout_seconds", defaults.busy_timeout_seconds, positive=False)

    name = str(raw.get("db_filename") or "").strip()
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        name = defaults.db_filename
    out["db_filename"] = name

    level = str(raw.get("log_level") or "").strip().upper()
    out["log_level"] = level if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL") else defaults.log_level
    out["developer_mode"] = coerce_bool(raw.get("developer_mode"), default=defaults.developer_mode)
    return out


def load_settings(home: Optional[Path] = None) -> MailboxSettings:
    raw = _read_yaml(settings_path(home))
    return MailboxSettings.model_validate(_normalize(raw))


def effective_log_level(settings: MailboxSettings) -> str:
    level = settings.log_level
    if settings.developer_mode and level == "INFO":
        level = "DEBUG"
    return level
