from __future__ import annotations

import os
from pathlib import Path


def ccmail_home() -> Path:
    raw = str(os.environ.get("CCMAIL_HOME") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".ccmail"


def ensure_home() -> Path:
    home = ccmail_home()
    home.mkdir(parents=True, exist_ok=True)
    return home
