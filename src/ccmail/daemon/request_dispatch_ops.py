"""Daemon request dispatch orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

from ..contracts.v1 import DaemonError, DaemonRequest, DaemonResponse
from .ops.daemon_core_ops import try_handle_daemon_core_op
from .ops.mail_ops import try_handle_mail_op
from .ops.session_ops import try_handle_session_op
from .service import MailboxService


@dataclass(frozen=True)
class RequestDispatchDeps:
    version: str
    pid_provider: Callable[[], int]
    now_iso: Callable[[], str]
    service: MailboxService


def dispatch_request(req: DaemonRequest, *, deps: RequestDispatchDeps) -> Tuple[DaemonResponse, bool]:
    op = str(req.op or "").strip()
    args = req.args or {}

    core = try_handle_daemon_core_op(
        op,
        args,
        version=deps.version,
        pid_provider=deps.pid_provider,
        now_iso=deps.now_iso,
        watched_recipients=deps.service.registry.watched_recipients,
    )
    if core is not None:
        return core

    for handler in (try_handle_mail_op, try_handle_session_op):
        resp = handler(op, args, service=deps.service)
        if resp is not None:
            return resp, False

    return DaemonResponse(ok=False, error=DaemonError(code="unknown_op", message=f"unknown op: {op}")), False
