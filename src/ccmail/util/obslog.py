"""Root logger setup: one JSON object per line on stderr."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from .time import ms_to_iso

_HANDLER_ATTR = "_ccmail_json_handler"


class JsonLineFormatter(logging.Formatter):
    def __init__(self, component: str) -> None:
        super().__init__()
        self._component = component

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": ms_to_iso(int(record.created * 1000)),
            "level": record.levelname,
            "logger": record.name,
            "component": self._component,
            "msg": record.getMessage(),
        }
        op = getattr(record, "op", None)
        if op:
            doc["op"] = op
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False)


def setup_root_json_logging(*, component: str, level: str = "INFO", force: bool = False) -> None:
    root = logging.getLogger()
    existing = [h for h in root.handlers if getattr(h, _HANDLER_ATTR, False)]
    if existing and not force:
        return
    for h in existing:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter(component))
    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)

    lvl = getattr(logging, str(level or "INFO").strip().upper(), None)
    root.setLevel(lvl if isinstance(lvl, int) else logging.INFO)
