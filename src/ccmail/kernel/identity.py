from __future__ import annotations

from typing import Any


def normalize_identity(name: Any) -> str:
    """Canonical form of a recipient/sender label (case-insensitive)."""
    return str(name or "").strip().lower()
