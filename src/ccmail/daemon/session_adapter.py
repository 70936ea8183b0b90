"""Consumer session adapters.

An adapter puts text into a live consumer context. ``inject_passive`` adds to the
context's history without triggering a reply; ``wake`` makes the context start
processing. How a context is woken is fixed when the adapter is constructed:

- ResumeCapableAdapter: the host exposes a real resume primitive.
- PromptOnlyAdapter: waking means injecting a short prompt that does trigger a reply.
"""

from __future__ import annotations

import hashlib
import re
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..util.fs import append_jsonl
from ..util.time import utc_now_iso

WAKE_PROMPT_TEXT = "You have new mail. Please review the injected message above and respond accordingly."

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")


class WakeMode(str, Enum):
    RESUME = "resume"
    PROMPT = "prompt"


class SessionAdapter(ABC):
    wake_mode: WakeMode

    @abstractmethod
    def inject_passive(self, context_id: str, text: str) -> None:
        ...

    @abstractmethod
    def wake(self, context_id: str) -> None:
        ...


class ResumeCapableAdapter(SessionAdapter):
    wake_mode = WakeMode.RESUME

    @abstractmethod
    def resume(self, context_id: str) -> None:
        ...

    def wake(self, context_id: str) -> None:
        self.resume(context_id)


class PromptOnlyAdapter(SessionAdapter):
    wake_mode = WakeMode.PROMPT

    @abstractmethod
    def prompt(self, context_id: str, text: str) -> None:
        """Inject ``text`` so that it triggers a reply."""

    def wake(self, context_id: str) -> None:
        self.prompt(context_id, WAKE_PROMPT_TEXT)


class _CallbackResumeAdapter(ResumeCapableAdapter):
    def __init__(self, inject_passive: Callable[[str, str], None], resume: Callable[[str], None]) -> None:
        self._inject = inject_passive
        self._resume = resume

    def inject_passive(self, context_id: str, text: str) -> None:
        self._inject(context_id, text)

    def resume(self, context_id: str) -> None:
        self._resume(context_id)


class _CallbackPromptAdapter(PromptOnlyAdapter):
    def __init__(self, inject_passive: Callable[[str, str], None], prompt: Callable[[str, str], None]) -> None:
        self._inject = inject_passive
        self._prompt = prompt

    def inject_passive(self, context_id: str, text: str) -> None:
        self._inject(context_id, text)

    def prompt(self, context_id: str, text: str) -> None:
        self._prompt(context_id, text)


def make_session_adapter(
    inject_passive: Callable[[str, str], None],
    *,
    resume: Optional[Callable[[str], None]] = None,
    prompt: Optional[Callable[[str, str], None]] = None,
) -> SessionAdapter:
    """Build an adapter from host callables, preferring ``resume`` when given."""
    if resume is not None:
        return _CallbackResumeAdapter(inject_passive, resume)
    if prompt is not None:
        return _CallbackPromptAdapter(inject_passive, prompt)
    raise ValueError("either resume or prompt is required")


def session_file_name(context_id: str) -> str:
    """Readable prefix plus a digest of the full context id."""
    cid = str(context_id or "").strip()
    if not cid:
        raise ValueError("missing context_id")
    digest = hashlib.sha256(cid.encode("utf-8")).hexdigest()[:16]
    return f"{_UNSAFE_NAME_RE.sub('_', cid)[:96]}-{digest}.jsonl"


class JsonlSessionAdapter(PromptOnlyAdapter):
    """Appends injection records to ``<sessions_dir>/<context>.jsonl``.

    The host runtime tails the file: ``mail.inject`` records go into history as-is,
    ``mail.prompt`` records are submitted as a turn that expects a reply.
    """

    def __init__(self, sessions_dir: Path) -> None:
        self.sessions_dir = sessions_dir

    def path_for(self, context_id: str) -> Path:
        return self.sessions_dir / session_file_name(context_id)

    def _append(self, context_id: str, kind: str, text: str, *, reply: bool) -> None:
        append_jsonl(
            self.path_for(context_id),
            {
                "kind": kind,
                "context_id": context_id,
                "ts": utc_now_iso(),
                "reply": reply,
                "text": text,
            },
        )

    def inject_passive(self, context_id: str, text: str) -> None:
        self._append(context_id, "mail.inject", text, reply=False)

    def prompt(self, context_id: str, text: str) -> None:
        self._append(context_id, "mail.prompt", text, reply=True)
