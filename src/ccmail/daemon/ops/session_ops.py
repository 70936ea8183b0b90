"""Consumer session lifecycle handlers for daemon."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...contracts.v1 import DaemonError, DaemonResponse
from ..service import MailboxService


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> DaemonResponse:
    return DaemonResponse(ok=False, error=DaemonError(code=code, message=message, details=(details or {})))


def handle_session_end(args: Dict[str, Any], *, service: MailboxService) -> DaemonResponse:
    session_id = str(args.get("session_id") or "").strip()
    if not session_id:
        return _error("missing_session_id", "missing session_id")
    return DaemonResponse(ok=True, result={"stopped": service.session_end(session_id)})


def try_handle_session_op(op: str, args: Dict[str, Any], *, service: MailboxService) -> Optional[DaemonResponse]:
    if op == "session_end":
        return handle_session_end(args, service=service)
    return None
