"""Mail delivery into consumer sessions.

Delivery order per tick: fetch unread -> flag read -> inject -> wake.

The read flag is persisted before anything is handed to a session, so a failure
while injecting can lose a batch but never repeat one. Only messages whose flag was
flipped by this call are delivered; a concurrent poller that raced on the same rows
gets nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from ..contracts.v1 import MailMessage
from ..kernel.store import MessageStore, StoreUnavailableError
from ..util.time import ms_to_iso
from .session_adapter import SessionAdapter

logger = logging.getLogger("ccmail.daemon.delivery")

REPLY_PROTOCOL_TEXT = (
    "IMPORTANT: remember in order for a sender to see your response, you must send them a mail back. "
    "Respond using markdown. Your markdown front-matter can contain a property \"choices\" which is an "
    "array of choices for the mail sender to choose from.  These choices are optional and shouldn't "
    "alter your authentic personality in your responses."
)


def render_delivery_text(recipient: str, messages: Sequence[MailMessage], instructions: str) -> str:
    """Build the single payload injected for one batch."""
    parts = [f"[MAIL BATCH] You have {len(messages)} new message(s) for {recipient}\n\n"]
    for m in messages:
        parts.append(
            f"---\nFrom: {m.sender}\nTo: {recipient}\nTime: {ms_to_iso(m.created_at)}\n\n{m.body}\n\n"
        )
    parts.append(f"---\n[Instructions: {instructions}]\n\n{REPLY_PROTOCOL_TEXT}")
    return "".join(parts)


@dataclass
class DeliveryResult:
    recipient: str
    message_ids: List[int] = field(default_factory=list)
    injected: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    woken: List[str] = field(default_factory=list)


class DeliveryNotifier:
    def __init__(self, store: MessageStore, adapter: SessionAdapter) -> None:
        self._store = store
        self._adapter = adapter

    @property
    def adapter(self) -> SessionAdapter:
        return self._adapter

    def deliver(self, recipient: str, *, instructions: str, context_ids: Iterable[str]) -> DeliveryResult:
        """Deliver all unread mail for ``recipient`` to every context in ``context_ids``.

        Never raises for store, injection or wake failures; they are logged.
        """
        result = DeliveryResult(recipient=recipient)
        try:
            unread = self._store.unread_for(recipient)
            if not unread:
                return result
            claimed = set(self._store.mark_read(recipient, [m.id for m in unread]))
        except StoreUnavailableError as e:
            logger.warning("delivery for %s skipped: store unavailable (%s)", recipient, e)
            return result

        batch = [m for m in unread if m.id in claimed]
        if not batch:
            return result
        result.message_ids = [m.id for m in batch]

        text = render_delivery_text(recipient, batch, instructions)
        for context_id in context_ids:
            try:
                self._adapter.inject_passive(context_id, text)
            except Exception:
                logger.exception(
                    "failed to inject %d message(s) for %s into session %s",
                    len(batch),
                    recipient,
                    context_id,
                )
                result.failed.append(context_id)
                continue
            result.injected.append(context_id)
            try:
                self._adapter.wake(context_id)
                result.woken.append(context_id)
            except Exception as e:
                logger.warning(
                    "failed to wake session %s (%s) after mail for %s: %s",
                    context_id,
                    self._adapter.wake_mode.value,
                    recipient,
                    e,
                )

        logger.info(
            "delivered %d message(s) for %s to %d session(s)",
            len(batch),
            recipient,
            len(result.injected),
        )
        return result
