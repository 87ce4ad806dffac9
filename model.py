"""
model.py

Internal data shapes used by the program.

This file defines: Store, Session, Message.
It does NOT load JSON and it does NOT write output files.

Everything here is frozen: a Store is built once by the loader and the
renderers only read it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

# Top-level key used by ChatGPT-Next-Web backups.
STORE_KEY = "chat-next-web-store"
SESSIONS_KEY = "sessions"


@dataclass(frozen=True)
class Message:
    """
    A single message in a session.

    - role: "user", "assistant", "system", etc.
    - content: message text (non-text content is kept as JSON text)
    - index: 0-based position inside the owning session
    - id: message id from the export, if any
    - date: export date string, passed through untouched
    - metadata: any other message fields (streaming flag, model, ...)
    """

    role: str
    content: str
    index: int
    id: str = ""
    date: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Session:
    """
    One conversation.

    - id/title: session id and its "topic"
    - messages: ordered messages, source order
    - memory_prompt: the client's running summary of the session
    - model: model name from the session mask, if present
    - last_update: opaque timestamp from the export
    - metadata: every other session field (stat, mask, ...)
    """

    id: str
    title: str
    messages: Tuple[Message, ...] = ()
    memory_prompt: str = ""
    model: str = ""
    last_update: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Store:
    """
    The parsed backup.

    - sessions: ordered sessions, export order
    - extra: other keys of the store object (currentSessionIndex, ...)
    """

    sessions: Tuple[Session, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return sum(len(s.messages) for s in self.sessions)
