"""Durable message store (SQLite).

One process-wide connection, opened lazily. Errors that mean the database file is
missing, corrupt, locked or otherwise unusable are classified as "medium" errors:
the handle is torn down (including the cached file path) and rebuilt on next use.
Watch state lives elsewhere and is never touched by a rebuild.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from ..contracts.v1 import MailMessage
from .identity import normalize_identity

logger = logging.getLogger("ccmail.store")

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient TEXT NOT NULL,
    sender TEXT NOT NULL,
    message TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    read INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient);
CREATE INDEX IF NOT EXISTS idx_messages_read ON messages(recipient, read);
"""

_MEDIUM_ERROR_MARKERS = (
    "database disk image is malformed",
    "file is not a database",
    "no such table",
    "unable to open database file",
    "database is locked",
    "disk i/o error",
    "attempt to write a readonly database",
    "no more rows available",
    "unable to close",
    "bad parameter or other api misuse",
    "cannot operate on a closed database",
)

_CORRUPT_MARKERS = (
    "database disk image is malformed",
    "file is not a database",
)


class StoreUnavailableError(RuntimeError):
    """The backing database is missing, corrupt, locked or inaccessible."""


def is_medium_error(exc: BaseException) -> bool:
    if isinstance(exc, StoreUnavailableError):
        return True
    if isinstance(exc, OSError):
        return True
    if not isinstance(exc, sqlite3.DatabaseError):
        return False
    msg = str(exc).lower()
    return any(marker in msg for marker in _MEDIUM_ERROR_MARKERS)


def _is_corrupt_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in _CORRUPT_MARKERS)


def _quarantine(path: Path) -> Path:
    """Move a corrupt database (and its WAL/SHM companions) out of the way."""
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    target = path.with_name(f"{path.name}.corrupt-{stamp}")
    for suffix in ("", "-wal", "-shm"):
        src = Path(str(path) + suffix)
        if not src.exists():
            continue
        try:
            src.replace(Path(str(target) + suffix))
        except OSError as e:
            logger.error("could not move %s aside (%s); leaving it in place", src, e)
    return target


def _file_identity(path: Path) -> Optional[Tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return (st.st_dev, st.st_ino)


class MessageStore:
    def __init__(self, path_resolver: Callable[[], Path], *, busy_timeout_s: float = 5.0) -> None:
        self._resolve_path = path_resolver
        self._busy_timeout_s = float(busy_timeout_s)
        self._lock = threading.RLock()
        self._path: Optional[Path] = None
        self._ident: Optional[Tuple[int, int]] = None
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def path(self) -> Optional[Path]:
        """Cached database path of the live handle (None until first use / after reset)."""
        return self._path

    # ------------------------------------------------------------------
    # Handle lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Tear down the handle; the next operation re-resolves the path and reopens."""
        with self._lock:
            conn = self._conn
            self._conn = None
            self._path = None
            self._ident = None
            if conn is not None:
                try:
                    conn.close()
                except Exception:
                    pass

    close = reset

    def _connect(self, path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(str(path), timeout=self._busy_timeout_s, check_same_thread=False)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
        except Exception:
            conn.close()
            raise
        return conn

    def _open(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return self._connect(path)
        except sqlite3.DatabaseError as e:
            if not _is_corrupt_error(e):
                raise
            moved = _quarantine(path)
            logger.error("mailbox database %s is corrupt (%s); moved aside to %s", path, e, moved)
            return self._connect(path)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is not None and self._path is not None:
            current = _file_identity(self._path)
            if current is None:
                logger.warning("mailbox database %s disappeared; rebuilding store handle", self._path)
                self.reset()
            elif current != self._ident:
                logger.warning("mailbox database %s was replaced; rebuilding store handle", self._path)
                self.reset()
        if self._conn is None:
            path = self._resolve_path()
            self._conn = self._open(path)
            self._path = path
            self._ident = _file_identity(path)
            logger.debug("opened mailbox database %s", path)
        return self._conn

    def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self._lock:
            try:
                return fn(self._connection())
            except (sqlite3.DatabaseError, OSError) as e:
                if not is_medium_error(e):
                    raise
                logger.warning("mailbox store unavailable (%s); resetting handle", e)
                self.reset()
                raise StoreUnavailableError(str(e)) from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def append(self, recipient: str, sender: str, body: str, timestamp: int) -> int:
        """Store a new unread message and return its id.

        A medium error resets the handle and the insert is retried once.
        """
        rcpt = normalize_identity(recipient)
        snd = normalize_identity(sender)

        def _insert(conn: sqlite3.Connection) -> int:
            with conn:
                cur = conn.execute(
                    "INSERT INTO messages (recipient, sender, message, timestamp, read) VALUES (?, ?, ?, ?, 0)",
                    (rcpt, snd, str(body), int(timestamp)),
                )
            return int(cur.lastrowid or 0)

        try:
            return self._run(_insert)
        except StoreUnavailableError:
            logger.info("retrying append for %s after store reset", rcpt)
            return self._run(_insert)

    def unread_for(self, recipient: str) -> List[MailMessage]:
        rcpt = normalize_identity(recipient)

        def _select(conn: sqlite3.Connection) -> List[MailMessage]:
            rows = conn.execute(
                "SELECT id, recipient, sender, message, timestamp, read FROM messages "
                "WHERE recipient = ? AND read = 0 ORDER BY timestamp ASC, id ASC",
                (rcpt,),
            ).fetchall()
            return [
                MailMessage(
                    id=int(r["id"]),
                    recipient=str(r["recipient"]),
                    sender=str(r["sender"]),
                    body=str(r["message"]),
                    created_at=int(r["timestamp"]),
                    read=bool(r["read"]),
                )
                for r in rows
            ]

        return self._run(_select)

    def mark_read(self, recipient: str, message_ids: Iterable[int]) -> List[int]:
        """Flag messages read; returns the ids that were unread before this call."""
        rcpt = normalize_identity(recipient)
        ids = [int(i) for i in message_ids]
        if not ids:
            return []

        def _update(conn: sqlite3.Connection) -> List[int]:
            marked: List[int] = []
            with conn:
                for mid in ids:
                    cur = conn.execute(
                        "UPDATE messages SET read = 1 WHERE id = ? AND recipient = ? AND read = 0",
                        (mid, rcpt),
                    )
                    if cur.rowcount > 0:
                        marked.append(mid)
            return marked

        return self._run(_update)
