from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .daemon.server import call_daemon, serve_forever


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _call_and_print(req: Dict[str, Any]) -> int:
    resp = call_daemon(req)
    if resp.get("ok"):
        result = resp.get("result") if isinstance(resp.get("result"), dict) else {}
        message = result.get("message")
        if isinstance(message, str) and message:
            print(message)
        else:
            _print_json(result)
        return 0
    _print_json(resp)
    return 1


def cmd_daemon(args: argparse.Namespace) -> int:
    return serve_forever()


def cmd_stop(args: argparse.Namespace) -> int:
    return _call_and_print({"op": "shutdown"})


def cmd_ping(args: argparse.Namespace) -> int:
    return _call_and_print({"op": "ping"})


def cmd_send(args: argparse.Namespace) -> int:
    return _call_and_print(
        {"op": "send_mail", "args": {"to": args.to, "from": args.sender, "message": args.message}}
    )


def cmd_status(args: argparse.Namespace) -> int:
    return _call_and_print({"op": "watch_status", "args": {"name": args.name}})


def cmd_session_end(args: argparse.Namespace) -> int:
    return _call_and_print({"op": "session_end", "args": {"session_id": args.session_id}})


def cmd_mcp(args: argparse.Namespace) -> int:
    from .ports.mcp.server import serve_stdio

    return serve_stdio()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ccmail", description="Mailbox daemon for agent sessions")
    parser.add_argument("--version", action="version", version=f"ccmail {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("daemon", help="Run the mailbox daemon in the foreground")
    p.set_defaults(func=cmd_daemon)

    p = sub.add_parser("stop", help="Ask the running daemon to shut down")
    p.set_defaults(func=cmd_stop)

    p = sub.add_parser("ping", help="Check whether the daemon is running")
    p.set_defaults(func=cmd_ping)

    p = sub.add_parser("send", help="Send mail to a recipient name")
    p.add_argument("--to", required=True, help="Recipient name")
    p.add_argument("--from", dest="sender", required=True, help="Sender name")
    p.add_argument("message", help="Message text")
    p.set_defaults(func=cmd_send)

    p = sub.add_parser("status", help="Show watch status for a recipient name")
    p.add_argument("name")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("session-end", help="Release every watch held by a session")
    p.add_argument("session_id")
    p.set_defaults(func=cmd_session_end)

    p = sub.add_parser("mcp", help="Serve the MCP tools on stdio")
    p.set_defaults(func=cmd_mcp)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args) or 0)


if __name__ == "__main__":
    sys.exit(main())
