"""Mail operation handlers for daemon."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...contracts.v1 import DaemonError, DaemonResponse, WatchStatus
from ...kernel.store import StoreUnavailableError
from ...util.time import ms_to_iso
from ..service import MailboxService


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> DaemonResponse:
    return DaemonResponse(ok=False, error=DaemonError(code=code, message=message, details=(details or {})))


def describe_watch_status(name: str, status: WatchStatus) -> str:
    if not status.watched:
        return f'No active watch found for "{name}"'
    return (
        f'"{name}" is being watched by {status.ref_count} session reference(s) '
        f"({status.unique_subscriber_count} unique session(s)) with instructions: {status.instructions}"
    )


def handle_send_mail(args: Dict[str, Any], *, service: MailboxService) -> DaemonResponse:
    to = str(args.get("to") or "").strip()
    sender = str(args.get("from") or "").strip()
    message = args.get("message")
    if not to:
        return _error("missing_to", "missing to")
    if not sender:
        return _error("missing_from", "missing from")
    if not isinstance(message, str) or not message.strip():
        return _error("missing_message", "missing message")
    try:
        sent = service.send_mail(to, sender, message)
    except StoreUnavailableError as e:
        return _error("store_unavailable", f"mailbox store unavailable: {e}")
    return DaemonResponse(
        ok=True,
        result={
            "message": f'Mail sent to "{to}" from "{sender}" at {ms_to_iso(sent.timestamp)}',
            "id": sent.id,
            "timestamp": sent.timestamp,
        },
    )


def handle_watch_unread_mail(args: Dict[str, Any], *, service: MailboxService) -> DaemonResponse:
    name = str(args.get("name") or "").strip()
    instructions = args.get("instructions")
    session_id = str(args.get("session_id") or "").strip()
    if not name:
        return _error("missing_name", "missing name")
    if not isinstance(instructions, str) or not instructions.strip():
        return _error("missing_instructions", "missing instructions")
    if not session_id:
        return _error("missing_session_id", "missing session_id")
    status = service.watch(name, instructions, context_id=session_id)
    return DaemonResponse(
        ok=True,
        result={
            "message": (
                f'Watch created for "{name}". New messages will be auto-injected into this session '
                f"with instructions: {instructions}"
            ),
            "status": status.model_dump(),
        },
    )


def handle_stop_watching_mail(args: Dict[str, Any], *, service: MailboxService) -> DaemonResponse:
    session_id = str(args.get("session_id") or "").strip()
    if not session_id:
        return _error("missing_session_id", "missing session_id")
    stopped = service.stop_watching(context_id=session_id)
    if not stopped:
        text = "No active mail watches found for this session."
    else:
        text = f"Stopped watching mail for: {', '.join(stopped)}"
    return DaemonResponse(ok=True, result={"message": text, "stopped": stopped})


def handle_watch_status(args: Dict[str, Any], *, service: MailboxService) -> DaemonResponse:
    name = str(args.get("name") or "").strip()
    if not name:
        return _error("missing_name", "missing name")
    status = service.status(name)
    return DaemonResponse(
        ok=True,
        result={"message": describe_watch_status(name, status), "status": status.model_dump()},
    )


def try_handle_mail_op(op: str, args: Dict[str, Any], *, service: MailboxService) -> Optional[DaemonResponse]:
    if op == "send_mail":
        return handle_send_mail(args, service=service)
    if op == "watch_unread_mail":
        return handle_watch_unread_mail(args, service=service)
    if op == "stop_watching_mail":
        return handle_stop_watching_mail(args, service=service)
    if op == "watch_status":
        return handle_watch_status(args, service=service)
    return None
