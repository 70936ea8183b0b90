"""Reference-counted mail watches.

One entry per watched recipient; each entry owns exactly one repeating poll task.
``_entries`` and ``_by_session`` are only mutated under ``_lock``. Poll ticks run on
the task threads and only read a snapshot of the entry under the lock; delivery
itself happens outside it.

Cancelling a task stops future ticks. A tick already in flight is allowed to finish.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Set

from ..contracts.v1 import WatchStatus
from ..kernel.identity import normalize_identity
from .delivery import DeliveryNotifier, DeliveryResult

logger = logging.getLogger("ccmail.daemon.watch")

POLL_INTERVAL_SECONDS = 5.0


class PollTask(Protocol):
    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


TaskFactory = Callable[[Callable[[], None], float, str], PollTask]


class RepeatingTask:
    """Calls ``fn`` every ``interval_s`` seconds on a daemon thread until cancelled."""

    def __init__(self, fn: Callable[[], None], interval_s: float, name: str) -> None:
        self._fn = fn
        self._interval_s = float(interval_s)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _loop(self) -> None:
        while not self._stop.wait(self._interval_s):
            try:
                self._fn()
            except Exception:
                logger.exception("poll tick failed in %s", self._thread.name)


@dataclass(eq=False)
class WatchEntry:
    recipient: str
    instructions: str
    ref_count: int = 0
    subscribers: Set[str] = field(default_factory=set)
    task: Optional[PollTask] = None


class WatchRegistry:
    def __init__(
        self,
        notifier: DeliveryNotifier,
        *,
        poll_interval_s: float = POLL_INTERVAL_SECONDS,
        task_factory: TaskFactory = RepeatingTask,
    ) -> None:
        self._notifier = notifier
        self._poll_interval_s = float(poll_interval_s)
        self._task_factory = task_factory
        self._lock = threading.Lock()
        self._entries: Dict[str, WatchEntry] = {}
        self._by_session: Dict[str, Set[str]] = {}

    # ============================================================
    # Mutations
    # ============================================================

    def subscribe(self, recipient: str, context_id: str, instructions: str) -> WatchStatus:
        rcpt = normalize_identity(recipient)
        cid = str(context_id or "").strip()
        if not rcpt:
            raise ValueError("missing recipient")
        if not cid:
            raise ValueError("missing context_id")

        with self._lock:
            entry = self._entries.get(rcpt)
            if entry is None:
                entry = WatchEntry(recipient=rcpt, instructions=str(instructions or ""))
                entry.task = self._task_factory(
                    lambda e=entry: self._tick_entry(e),
                    self._poll_interval_s,
                    f"ccmail-watch-{rcpt[:32]}",
                )
                entry.task.start()
                self._entries[rcpt] = entry
                logger.info("watch started for %s (session %s)", rcpt, cid)
            if cid not in entry.subscribers:
                entry.subscribers.add(cid)
                entry.ref_count += 1
                self._by_session.setdefault(cid, set()).add(rcpt)
            return self._status_locked(rcpt)

    def unsubscribe(self, recipient: str, context_id: str) -> bool:
        """Drop one session's interest in ``recipient``. Returns False if it had none."""
        rcpt = normalize_identity(recipient)
        cid = str(context_id or "").strip()
        with self._lock:
            watched = self._by_session.get(cid)
            if not watched or rcpt not in watched:
                return False
            watched.discard(rcpt)
            if not watched:
                self._by_session.pop(cid, None)
            self._release_locked(rcpt, cid)
            return True

    def unsubscribe_all(self, context_id: str) -> List[str]:
        """Drop every watch held by ``context_id``; safe for unknown sessions."""
        cid = str(context_id or "").strip()
        with self._lock:
            recipients = sorted(self._by_session.pop(cid, set()))
            for rcpt in recipients:
                self._release_locked(rcpt, cid)
        return recipients

    def shutdown(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self._by_session.clear()
        for entry in entries:
            if entry.task is not None:
                entry.task.cancel()

    def _release_locked(self, rcpt: str, cid: str) -> None:
        entry = self._entries.get(rcpt)
        if entry is None or cid not in entry.subscribers:
            return
        entry.subscribers.discard(cid)
        entry.ref_count -= 1
        if entry.ref_count <= 0:
            if entry.task is not None:
                entry.task.cancel()
            del self._entries[rcpt]
            logger.info("watch stopped for %s", rcpt)

    # ============================================================
    # Polling
    # ============================================================

    def _tick_entry(self, entry: WatchEntry) -> Optional[DeliveryResult]:
        with self._lock:
            if self._entries.get(entry.recipient) is not entry:
                return None
            instructions = entry.instructions
            context_ids = sorted(entry.subscribers)
        return self._notifier.deliver(entry.recipient, instructions=instructions, context_ids=context_ids)

    def tick(self, recipient: str) -> Optional[DeliveryResult]:
        """Run one poll tick for ``recipient`` now (no-op when unwatched)."""
        with self._lock:
            entry = self._entries.get(normalize_identity(recipient))
        if entry is None:
            return None
        return self._tick_entry(entry)

    # ============================================================
    # Queries
    # ============================================================

    def _status_locked(self, rcpt: str) -> WatchStatus:
        entry = self._entries.get(rcpt)
        if entry is None:
            return WatchStatus(recipient=rcpt)
        unique = sum(1 for recipients in self._by_session.values() if rcpt in recipients)
        return WatchStatus(
            recipient=rcpt,
            watched=True,
            ref_count=entry.ref_count,
            unique_subscriber_count=unique,
            instructions=entry.instructions,
        )

    def status(self, recipient: str) -> WatchStatus:
        with self._lock:
            return self._status_locked(normalize_identity(recipient))

    def watched_recipients(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def subscriptions_for(self, context_id: str) -> List[str]:
        with self._lock:
            return sorted(self._by_session.get(str(context_id or "").strip(), set()))
