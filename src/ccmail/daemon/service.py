"""Mailbox service: the single owner of store, notifier and watch registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..contracts.v1 import MailboxSettings, WatchStatus
from ..kernel.identity import normalize_identity
from ..kernel.settings import load_settings
from ..kernel.store import MessageStore
from ..paths import ensure_home
from ..util.time import now_ms
from .delivery import DeliveryNotifier
from .session_adapter import JsonlSessionAdapter, SessionAdapter
from .watch_registry import RepeatingTask, TaskFactory, WatchRegistry

logger = logging.getLogger("ccmail.daemon.service")


@dataclass(frozen=True)
class SentMail:
    id: int
    recipient: str
    sender: str
    timestamp: int


class MailboxService:
    def __init__(
        self,
        *,
        store: MessageStore,
        adapter: SessionAdapter,
        poll_interval_s: float = 5.0,
        task_factory: TaskFactory = RepeatingTask,
    ) -> None:
        self.store = store
        self.notifier = DeliveryNotifier(store, adapter)
        self.registry = WatchRegistry(self.notifier, poll_interval_s=poll_interval_s, task_factory=task_factory)

    @classmethod
    def from_home(
        cls,
        home: Optional[Path] = None,
        *,
        settings: Optional[MailboxSettings] = None,
        adapter: Optional[SessionAdapter] = None,
        task_factory: TaskFactory = RepeatingTask,
    ) -> "MailboxService":
        """Build a service rooted at ``home`` (defaults to ``$CCMAIL_HOME``)."""
        base = home or ensure_home()
        cfg = settings or load_settings(base)

        def _db_path() -> Path:
            base.mkdir(parents=True, exist_ok=True)
            return base / cfg.db_filename

        store = MessageStore(_db_path, busy_timeout_s=cfg.busy_timeout_seconds)
        return cls(
            store=store,
            adapter=adapter or JsonlSessionAdapter(base / "sessions"),
            poll_interval_s=cfg.poll_interval_seconds,
            task_factory=task_factory,
        )

    def send_mail(self, to: str, sender: str, message: str) -> SentMail:
        rcpt = normalize_identity(to)
        snd = normalize_identity(sender)
        if not rcpt:
            raise ValueError("missing to")
        if not snd:
            raise ValueError("missing from")
        if not str(message or "").strip():
            raise ValueError("missing message")
        ts = now_ms()
        mid = self.store.append(rcpt, snd, message, ts)
        logger.debug("stored message %s for %s from %s", mid, rcpt, snd)
        return SentMail(id=mid, recipient=rcpt, sender=snd, timestamp=ts)

    def watch(self, name: str, instructions: str, *, context_id: str) -> WatchStatus:
        return self.registry.subscribe(name, context_id, instructions)

    def unwatch(self, name: str, *, context_id: str) -> bool:
        return self.registry.unsubscribe(name, context_id)

    def stop_watching(self, *, context_id: str) -> List[str]:
        return self.registry.unsubscribe_all(context_id)

    def session_end(self, context_id: str) -> List[str]:
        stopped = self.registry.unsubscribe_all(context_id)
        if stopped:
            logger.info("session %s ended; released watches: %s", context_id, ", ".join(stopped))
        return stopped

    def status(self, name: str) -> WatchStatus:
        return self.registry.status(name)

    def close(self) -> None:
        self.registry.shutdown()
        self.store.close()
