from __future__ import annotations

import os
from typing import Any, Dict, Optional

from ...daemon.server import call_daemon


class MCPError(Exception):
    """MCP tool call error"""

    def __init__(
        self, code: str, message: str, details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


def _env_str(name: str) -> str:
    value = os.environ.get(name)
    return str(value).strip() if value is not None else ""


def _require_str(arguments: Dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MCPError(code=f"missing_{key.replace('-', '_')}", message=f"missing {key}")
    return value


def _resolve_session_id(arguments: Dict[str, Any]) -> str:
    """Resolve the calling session id from env or tool arguments (env wins)."""
    env_sid = _env_str("CCMAIL_SESSION_ID")
    arg_sid = str(arguments.get("session_id") or "").strip()
    sid = env_sid or arg_sid
    if not sid:
        raise MCPError(
            code="missing_session_id",
            message="missing session_id (set CCMAIL_SESSION_ID env or pass session_id)",
        )
    if env_sid and arg_sid and arg_sid != env_sid:
        raise MCPError(
            code="session_id_mismatch",
            message="session_id mismatch (tool args must match CCMAIL_SESSION_ID)",
            details={"env": env_sid, "arg": arg_sid},
        )
    return sid


def _call_daemon_or_raise(req: Dict[str, Any]) -> Dict[str, Any]:
    """Call daemon, raise MCPError on failure."""
    resp = call_daemon(req)
    if not resp.get("ok"):
        err = resp.get("error") or {}
        if isinstance(err, dict):
            raise MCPError(
                code=str(err.get("code") or "daemon_error"),
                message=str(err.get("message") or "daemon error"),
                details=(
                    err.get("details") if isinstance(err.get("details"), dict) else {}
                ),
            )
        raise MCPError(code="daemon_error", message=str(err))
    return resp.get("result") if isinstance(resp.get("result"), dict) else {}
