"""MCP tool schemas for ccmail."""

from __future__ import annotations

_NAME_NOTE = "Note: this does NOT have to be an email. It can just be a name (e.g. 'samus')."

MCP_TOOLS = [
    {
        "name": "send_mail",
        "description": (
            "Send a message to a recipient's mailbox. Note: The parameters 'to' and 'from' do NOT have "
            "to be an email. It can just be a name that the recipient watches for (e.g. 'samus')."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "to": {"type": "string", "description": f"Recipient name. {_NAME_NOTE}"},
                "from": {"type": "string", "description": f"Sender name the recipient will see. {_NAME_NOTE}"},
                "message": {"type": "string", "description": "Message content to send"},
            },
            "required": ["to", "from", "message"],
        },
    },
    {
        "name": "watch_unread_mail",
        "description": (
            "Create a hook that auto-injects messages into this session when they are received for a "
            "specific name, and say what should be done with them. Polls about every 5 seconds."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": f"Name of the recipient to watch. {_NAME_NOTE}"},
                "what-to-do-with-it": {
                    "type": "string",
                    "description": "Instructions on how to process received messages",
                },
                "session_id": {
                    "type": "string",
                    "description": "Your session ID (optional if CCMAIL_SESSION_ID is set)",
                },
            },
            "required": ["name", "what-to-do-with-it"],
        },
    },
    {
        "name": "stop_watching_mail",
        "description": "Stop all mail watching for this session",
        "inputSchema": {
            "type": "object",
            "properties": {
                "session_id": {
                    "type": "string",
                    "description": "Your session ID (optional if CCMAIL_SESSION_ID is set)",
                },
            },
            "required": [],
        },
    },
    {
        "name": "check_mailbox_watch_status",
        "description": (
            "Check the watch status for a specific name (recipient). Returns whether it is being watched "
            "and how many sessions are watching it."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": f"Name of the recipient to check. {_NAME_NOTE}"},
            },
            "required": ["name"],
        },
    },
]
