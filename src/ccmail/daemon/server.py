from __future__ import annotations

import logging
import os
import signal
import socket
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .. import __version__
from ..contracts.v1 import DaemonError, DaemonRequest, DaemonResponse
from ..kernel.settings import effective_log_level, load_settings
from ..paths import ensure_home
from ..util.fs import atomic_write_json, atomic_write_text, read_json
from ..util.obslog import setup_root_json_logging
from ..util.time import utc_now_iso
from .ops.socket_accept_ops import handle_incoming_connection
from .request_dispatch_ops import RequestDispatchDeps, dispatch_request
from .serve_ops import bind_server_socket, cleanup_after_stop, write_daemon_addr
from .service import MailboxService
from .wire import error as _error
from .wire import recv_request, response_payload, send_daemon_request, send_response

logger = logging.getLogger("ccmail.daemon.server")


@dataclass
class DaemonPaths:
    home: Path

    @property
    def daemon_dir(self) -> Path:
        return self.home / "daemon"

    @property
    def sock_path(self) -> Path:
        return self.daemon_dir / "ccmaild.sock"

    @property
    def addr_path(self) -> Path:
        # Cross-platform daemon endpoint descriptor (TCP fallback on Windows).
        return self.daemon_dir / "ccmaild.addr.json"

    @property
    def pid_path(self) -> Path:
        return self.daemon_dir / "ccmaild.pid"


def default_paths() -> DaemonPaths:
    return DaemonPaths(home=ensure_home())


def _desired_daemon_transport() -> str:
    override = str(os.environ.get("CCMAIL_DAEMON_TRANSPORT") or "").strip().lower()
    if override in ("unix", "tcp"):
        return override
    return "tcp" if os.name == "nt" else "unix"


def _daemon_tcp_bind_host() -> str:
    host = str(os.environ.get("CCMAIL_DAEMON_HOST") or "").strip()
    if not host or host == "localhost" or host == "127.0.0.1":
        return "127.0.0.1"
    # The daemon IPC has no authentication.
    logger.warning("Refusing to bind daemon to non-loopback host %s. Using 127.0.0.1.", host)
    return "127.0.0.1"


def _daemon_tcp_port() -> int:
    raw = str(os.environ.get("CCMAIL_DAEMON_PORT") or "").strip()
    try:
        port = int(raw) if raw else 0
    except ValueError:
        return 0
    return port if 0 <= port <= 65535 else 0


def get_daemon_endpoint(paths: Optional[DaemonPaths] = None) -> Dict[str, Any]:
    """Best-effort: load the daemon endpoint descriptor."""
    p = paths or default_paths()
    doc = read_json(p.addr_path)
    if isinstance(doc, dict):
        transport = str(doc.get("transport") or "").strip().lower()
        if transport == "tcp":
            try:
                port = int(doc.get("port") or 0)
            except Exception:
                port = 0
            if port > 0:
                return {"transport": "tcp", "host": "127.0.0.1", "port": port}
        if transport == "unix":
            path = str(doc.get("path") or "").strip()
            if path:
                return {"transport": "unix", "path": path}
    if getattr(socket, "AF_UNIX", None) is not None:
        return {"transport": "unix", "path": str(p.sock_path)}
    return {}


def _is_daemon_alive(paths: DaemonPaths) -> bool:
    return bool(call_daemon({"op": "ping"}, paths=paths, timeout_s=0.2).get("ok"))


def handle_request(req: DaemonRequest, *, service: MailboxService) -> Tuple[DaemonResponse, bool]:
    deps = RequestDispatchDeps(
        version=__version__,
        pid_provider=os.getpid,
        now_iso=utc_now_iso,
        service=service,
    )
    return dispatch_request(req, deps=deps)


def serve_forever(paths: Optional[DaemonPaths] = None, *, service: Optional[MailboxService] = None) -> int:
    p = paths or default_paths()
    p.daemon_dir.mkdir(parents=True, exist_ok=True)

    settings = load_settings(p.home)
    setup_root_json_logging(component="daemon", level=effective_log_level(settings), force=True)

    if _is_daemon_alive(p):
        logger.info("daemon already running; not starting another")
        return 0
    for stale in (p.addr_path, p.sock_path):
        try:
            stale.unlink(missing_ok=True)
        except Exception:
            pass

    svc = service or MailboxService.from_home(p.home, settings=settings)
    stop_event = threading.Event()

    def _signal_handler(signum: int, frame: Any) -> None:
        stop_event.set()

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    transport = _desired_daemon_transport()
    if transport == "unix" and getattr(socket, "AF_UNIX", None) is None:
        transport = "tcp"
    s, endpoint = bind_server_socket(
        transport=transport,
        sock_path=p.sock_path,
        daemon_tcp_bind_host=_daemon_tcp_bind_host,
        daemon_tcp_port=_daemon_tcp_port,
    )

    with s:
        s.listen(50)
        s.settimeout(1.0)  # Allow periodic check of stop_event
        atomic_write_text(p.pid_path, str(os.getpid()) + "\n")
        write_daemon_addr(
            atomic_write_json=atomic_write_json,
            addr_path=p.addr_path,
            endpoint=endpoint,
            pid=os.getpid(),
            version=__version__,
            now_iso=utc_now_iso(),
        )
        logger.info("daemon listening on %s", endpoint)

        while not stop_event.is_set():
            try:
                conn, _ = s.accept()
            except socket.timeout:
                continue
            except OSError:
                continue
            should_exit = handle_incoming_connection(
                conn,
                recv_json_line=recv_request,
                parse_request=DaemonRequest.model_validate,
                make_invalid_request_error=lambda err: _error(
                    "invalid_request",
                    "invalid request",
                    details={"error": err},
                ),
                send_json=send_response,
                dump_response=response_payload,
                handle_request=lambda req: handle_request(req, service=svc),
                logger=logger,
            )
            if should_exit:
                stop_event.set()

    cleanup_after_stop(
        close_service=svc.close,
        sock_path=p.sock_path,
        addr_path=p.addr_path,
        pid_path=p.pid_path,
    )
    logger.info("daemon stopped")
    return 0


def call_daemon(req: Dict[str, Any], *, paths: Optional[DaemonPaths] = None, timeout_s: float = 60.0) -> Dict[str, Any]:
    p = paths or default_paths()
    try:
        request = DaemonRequest.model_validate(req)
    except Exception as e:
        return DaemonResponse(
            ok=False,
            error=DaemonError(code="invalid_request", message="invalid request", details={"error": str(e)}),
        ).model_dump()
    try:
        ep = get_daemon_endpoint(p)
        obj = send_daemon_request(
            ep,
            request.model_dump(),
            timeout_s=timeout_s,
            sock_path_default=p.sock_path,
        )
        return DaemonResponse.model_validate(obj).model_dump()
    except Exception:
        return DaemonResponse(ok=False, error=DaemonError(code="daemon_unavailable", message="daemon unavailable")).model_dump()


def read_pid(paths: Optional[DaemonPaths] = None) -> int:
    p = paths or default_paths()
    try:
        txt = p.pid_path.read_text(encoding="utf-8").strip()
        return int(txt) if txt.isdigit() else 0
    except Exception:
        return 0
