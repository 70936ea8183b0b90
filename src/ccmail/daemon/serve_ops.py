from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Any, Callable, Dict

logger = logging.getLogger("ccmail.daemon.serve")


def bind_server_socket(
    *,
    transport: str,
    sock_path: Path,
    daemon_tcp_bind_host: Callable[[], str],
    daemon_tcp_port: Callable[[], int],
) -> tuple[socket.socket, Dict[str, Any]]:
    tr = str(transport or "").strip().lower()
    if tr == "unix":
        af_unix = getattr(socket, "AF_UNIX", None)
        assert af_unix is not None
        s = socket.socket(af_unix, socket.SOCK_STREAM)
        s.bind(str(sock_path))
        return s, {"transport": "unix", "path": str(sock_path)}

    host = daemon_tcp_bind_host()
    port = daemon_tcp_port()
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind((host, port))
    endpoint: Dict[str, Any] = {"transport": "tcp", "host": host, "port": port}
    try:
        bound_host, bound_port = s.getsockname()[:2]
        endpoint["host"] = str(bound_host)
        endpoint["port"] = int(bound_port)
    except Exception:
        pass
    return s, endpoint


def write_daemon_addr(
    *,
    atomic_write_json: Callable[..., Any],
    addr_path: Path,
    endpoint: Dict[str, Any],
    pid: int,
    version: str,
    now_iso: str,
) -> None:
    try:
        atomic_write_json(
            addr_path,
            {
                "v": 1,
                "transport": str(endpoint.get("transport") or ""),
                "path": str(endpoint.get("path") or ""),
                "host": str(endpoint.get("host") or ""),
                "port": int(endpoint.get("port") or 0),
                "pid": int(pid),
                "version": str(version),
                "ts": str(now_iso or ""),
            },
        )
    except Exception as e:
        logger.warning("failed to write daemon endpoint %s: %s", addr_path, e)


def cleanup_after_stop(
    *,
    close_service: Callable[[], Any],
    sock_path: Path,
    addr_path: Path,
    pid_path: Path,
) -> None:
    try:
        close_service()
    except Exception:
        logger.exception("error while closing mailbox service")
    for p in (sock_path, addr_path, pid_path):
        try:
            p.unlink(missing_ok=True)
        except Exception:
            pass
