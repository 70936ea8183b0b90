"""Core daemon operation handlers (ping/shutdown)."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from ...contracts.v1 import DaemonResponse


def try_handle_daemon_core_op(
    op: str,
    args: Dict[str, Any],
    *,
    version: str,
    pid_provider: Callable[[], int],
    now_iso: Callable[[], str],
    watched_recipients: Callable[[], list[str]],
) -> Optional[Tuple[DaemonResponse, bool]]:
    if op == "ping":
        return (
            DaemonResponse(
                ok=True,
                result={
                    "version": version,
                    "pid": pid_provider(),
                    "ts": now_iso(),
                    "ipc_v": 1,
                    "watching": watched_recipients(),
                },
            ),
            False,
        )

    if op == "shutdown":
        return DaemonResponse(ok=True, result={"message": "shutting down"}), True

    return None
