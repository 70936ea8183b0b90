"""Mailbox IPC wire format.

Each connection carries one request line and one response line, both a UTF-8 JSON
object terminated by ``\\n``. The daemon closes the connection after replying.
"""

from __future__ import annotations

import json
import socket
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..contracts.v1 import DaemonError, DaemonResponse

MAX_REQUEST_BYTES = 1_000_000
MAX_RESPONSE_BYTES = 1_000_000
_RECV_CHUNK = 65536


class WireError(RuntimeError):
    """The peer sent something other than a single JSON object line."""


def encode_line(obj: Dict[str, Any]) -> bytes:
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")


def decode_line(raw: bytes) -> Dict[str, Any]:
    line = raw.split(b"\n", 1)[0].strip()
    if not line:
        raise WireError("empty line")
    try:
        obj = json.loads(line.decode("utf-8"))
    except ValueError as e:
        raise WireError(f"invalid json: {e}") from e
    if not isinstance(obj, dict):
        raise WireError(f"expected a json object, got {type(obj).__name__}")
    return obj


def error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> DaemonResponse:
    return DaemonResponse(ok=False, error=DaemonError(code=code, message=message, details=(details or {})))


# ============================================================
# Daemon side
# ============================================================


def recv_request(conn: socket.socket) -> Dict[str, Any]:
    """Read one request line. Unreadable input yields ``{}``, which fails validation."""
    buf = b""
    while b"\n" not in buf and len(buf) <= MAX_REQUEST_BYTES:
        chunk = conn.recv(_RECV_CHUNK)
        if not chunk:
            break
        buf += chunk
    try:
        return decode_line(buf)
    except WireError:
        return {}


def send_response(conn: socket.socket, payload: Dict[str, Any]) -> None:
    conn.sendall(encode_line(payload))


def response_payload(resp: Any) -> Dict[str, Any]:
    if isinstance(resp, DaemonResponse):
        return resp.model_dump()
    if isinstance(resp, dict):
        return resp
    return error("internal_error", f"invalid daemon response type: {type(resp).__name__}").model_dump()


# ============================================================
# Client side
# ============================================================


def client_address(endpoint: Dict[str, Any], *, sock_path_default: Path) -> Tuple[int, Any]:
    """Socket family and address for a daemon endpoint descriptor."""
    transport = str(endpoint.get("transport") or "").strip().lower()
    if transport == "tcp":
        host = str(endpoint.get("host") or "").strip() or "127.0.0.1"
        try:
            port = int(endpoint.get("port") or 0)
        except (TypeError, ValueError):
            port = 0
        if port <= 0:
            raise RuntimeError("invalid tcp daemon endpoint")
        return socket.AF_INET, (host, port)
    af_unix = getattr(socket, "AF_UNIX", None)
    if af_unix is None:
        raise RuntimeError("AF_UNIX not supported")
    return af_unix, str(endpoint.get("path") or sock_path_default)


def send_daemon_request(
    endpoint: Dict[str, Any],
    request_payload: Dict[str, Any],
    *,
    timeout_s: float,
    sock_path_default: Path,
) -> Dict[str, Any]:
    family, address = client_address(endpoint, sock_path_default=sock_path_default)
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout_s)
        sock.connect(address)
        sock.sendall(encode_line(request_payload))
        with sock.makefile("rb") as f:
            raw = f.readline(MAX_RESPONSE_BYTES)
    return decode_line(raw)
