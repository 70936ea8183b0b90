"""
ccmail MCP Server - mailbox tools for agent sessions

Tools:
- send_mail: Store a message for a recipient name
- watch_unread_mail: Auto-inject unread mail for a name into this session
- stop_watching_mail: Drop every watch held by this session
- check_mailbox_watch_status: Report reference/session counts of a watch

All operations go through daemon IPC; the daemon owns the store and the watches.
The calling session is identified by CCMAIL_SESSION_ID (or a session_id argument).
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from ... import __version__
from .common import (
    MCPError,
    _call_daemon_or_raise,
    _require_str,
    _resolve_session_id,
)
from .toolspecs import MCP_TOOLS

logger = logging.getLogger("ccmail.mcp")

PROTOCOL_VERSION = "2024-11-05"


def send_mail(*, to: str, sender: str, message: str) -> Dict[str, Any]:
    return _call_daemon_or_raise({
        "op": "send_mail",
        "args": {"to": to, "from": sender, "message": message},
    })


def watch_unread_mail(*, name: str, instructions: str, session_id: str) -> Dict[str, Any]:
    return _call_daemon_or_raise({
        "op": "watch_unread_mail",
        "args": {"name": name, "instructions": instructions, "session_id": session_id},
    })


def stop_watching_mail(*, session_id: str) -> Dict[str, Any]:
    return _call_daemon_or_raise({"op": "stop_watching_mail", "args": {"session_id": session_id}})


def check_watch_status(*, name: str) -> Dict[str, Any]:
    return _call_daemon_or_raise({"op": "watch_status", "args": {"name": name}})


def handle_tool_call(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Handle MCP tool call."""
    if name == "send_mail":
        return send_mail(
            to=_require_str(arguments, "to"),
            sender=_require_str(arguments, "from"),
            message=_require_str(arguments, "message"),
        )

    if name == "watch_unread_mail":
        instructions = arguments.get("what-to-do-with-it")
        if instructions is None:
            instructions = arguments.get("instructions")
        return watch_unread_mail(
            name=_require_str(arguments, "name"),
            instructions=_require_str({"instructions": instructions}, "instructions"),
            session_id=_resolve_session_id(arguments),
        )

    if name == "stop_watching_mail":
        return stop_watching_mail(session_id=_resolve_session_id(arguments))

    if name == "check_mailbox_watch_status":
        return check_watch_status(name=_require_str(arguments, "name"))

    raise MCPError(code="unknown_tool", message=f"unknown tool: {name}")


def _tool_result(out: Dict[str, Any]) -> Dict[str, Any]:
    text = out.get("message") if isinstance(out.get("message"), str) else json.dumps(out, ensure_ascii=False)
    return {"content": [{"type": "text", "text": text}], "structuredContent": out, "isError": False}


def _tool_error(e: MCPError) -> Dict[str, Any]:
    payload = {"code": e.code, "message": e.message, "details": e.details}
    return {
        "content": [{"type": "text", "text": json.dumps({"error": payload}, ensure_ascii=False)}],
        "isError": True,
    }


def handle_jsonrpc(msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Handle one JSON-RPC message; returns None for notifications."""
    method = str(msg.get("method") or "")
    msg_id = msg.get("id")
    params = msg.get("params") if isinstance(msg.get("params"), dict) else {}
    if msg_id is None:
        return None

    if method == "initialize":
        result: Dict[str, Any] = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "ccmail", "version": __version__},
        }
    elif method == "ping":
        result = {}
    elif method == "tools/list":
        result = {"tools": MCP_TOOLS}
    elif method == "tools/call":
        name = str(params.get("name") or "")
        arguments = params.get("arguments") if isinstance(params.get("arguments"), dict) else {}
        try:
            result = _tool_result(handle_tool_call(name, arguments))
        except MCPError as e:
            result = _tool_error(e)
        except Exception as e:
            logger.exception("tool %s failed", name)
            result = _tool_error(MCPError(code="internal_error", message=f"{type(e).__name__}: {e}"))
    else:
        return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": -32601, "message": f"method not found: {method}"}}
    return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def _write(stdout: TextIO, obj: Any) -> None:
    stdout.write(json.dumps(obj, ensure_ascii=False) + "\n")
    stdout.flush()


def serve_stdio(stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> int:
    """Serve newline-delimited JSON-RPC on stdio until EOF."""
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except ValueError:
            _write(stdout, {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "parse error"}})
            continue
        if isinstance(msg, list):
            replies = [r for r in (handle_jsonrpc(m) for m in msg if isinstance(m, dict)) if r is not None]
            if replies:
                _write(stdout, replies)
        elif isinstance(msg, dict):
            reply = handle_jsonrpc(msg)
            if reply is not None:
                _write(stdout, reply)
    return 0
