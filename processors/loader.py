"""
loader.py

Stage: JSON BYTES -> Store

Parses a (valid or repaired) ChatGPT-Next-Web backup into the model.
Shape problems raise ExportError(MALFORMED_SCHEMA) naming the offending
session; nothing is guessed.

Raw session shape:
  {"id": "...", "topic": "...", "memoryPrompt": "...", "lastUpdate": 1700000000000,
   "mask": {"modelConfig": {"model": "gpt-4"}, ...},
   "messages": [{"id": "...", "role": "user", "content": "...", "date": "..."}]}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Set

from model import SESSIONS_KEY, STORE_KEY, Message, Session, Store
from .errors import ErrorKind, ExportError

logger = logging.getLogger(__name__)

_SESSION_FIELDS = {"id", "topic", "messages", "memoryPrompt", "lastUpdate"}
_MESSAGE_FIELDS = {"id", "role", "content", "date"}


def safe_str(value: Any) -> str:
    return "" if value is None else str(value)


def _schema_error(message: str) -> ExportError:
    return ExportError(ErrorKind.MALFORMED_SCHEMA, message)


def content_to_text(content: Any) -> str:
    """
    Message content is usually a string. Newer clients store multimodal
    content as a list of parts; that is kept verbatim as compact JSON.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, separators=(",", ":"))


def _model_name(raw: Dict[str, Any]) -> str:
    mask = raw.get("mask")
    if not isinstance(mask, dict):
        return ""
    config = mask.get("modelConfig")
    if not isinstance(config, dict):
        return ""
    return safe_str(config.get("model"))


def parse_message(raw: Any, index: int, session_pos: int) -> Message:
    if not isinstance(raw, dict):
        raise _schema_error(f"session #{session_pos}: message #{index} is not an object")

    return Message(
        role=safe_str(raw.get("role") or "unknown"),
        content=content_to_text(raw.get("content")),
        index=index,
        id=safe_str(raw.get("id")),
        date=safe_str(raw.get("date")),
        metadata={k: v for k, v in raw.items() if k not in _MESSAGE_FIELDS},
    )


def parse_session(raw: Any, pos: int) -> Session:
    if not isinstance(raw, dict):
        raise _schema_error(f"session #{pos} is not an object")

    sid = raw.get("id")
    if sid is None or isinstance(sid, (dict, list)) or safe_str(sid) == "":
        raise _schema_error(f"session #{pos} has no usable id")

    raw_messages = raw.get("messages")
    if raw_messages is None:
        raw_messages = []
    if not isinstance(raw_messages, list):
        raise _schema_error(f"session #{pos} ({sid}): 'messages' is not a list")

    messages = tuple(parse_message(m, i, pos) for i, m in enumerate(raw_messages))

    return Session(
        id=safe_str(sid),
        title=safe_str(raw.get("topic") or "Untitled"),
        messages=messages,
        memory_prompt=safe_str(raw.get("memoryPrompt")),
        model=_model_name(raw),
        last_update=raw.get("lastUpdate"),
        metadata={k: v for k, v in raw.items() if k not in _SESSION_FIELDS},
    )


def parse_store(doc: Any) -> Store:
    """Build a Store from an already-decoded JSON document."""
    if not isinstance(doc, dict):
        raise _schema_error("expected the top-level JSON to be an object")

    store = doc.get(STORE_KEY)
    if not isinstance(store, dict):
        raise _schema_error(f"missing {STORE_KEY!r} object")

    raw_sessions = store.get(SESSIONS_KEY)
    if not isinstance(raw_sessions, list):
        raise _schema_error(f"{STORE_KEY}.{SESSIONS_KEY} is missing or not a list")

    sessions: List[Session] = []
    seen: Set[str] = set()
    for pos, raw in enumerate(raw_sessions):
        session = parse_session(raw, pos)
        if session.id in seen:
            raise _schema_error(f"duplicate session id {session.id!r} at session #{pos}")
        seen.add(session.id)
        sessions.append(session)

    extra = {k: v for k, v in store.items() if k != SESSIONS_KEY}
    return Store(sessions=tuple(sessions), extra=extra)


def load_store(data: bytes) -> Store:
    """
    Parse JSON bytes into a Store.

    Invalid JSON and valid JSON of the wrong shape both raise
    ExportError(MALFORMED_SCHEMA).
    """
    try:
        doc = json.loads(data.decode("utf-8-sig"))
    except UnicodeDecodeError as exc:
        raise _schema_error(f"input is not valid UTF-8 (byte {exc.start})") from exc
    except json.JSONDecodeError as exc:
        raise _schema_error(
            f"not valid JSON (line {exc.lineno}, column {exc.colno}: {exc.msg}); try --repair"
        ) from exc
    except RecursionError as exc:
        raise _schema_error("JSON is nested too deeply to be a chat store") from exc

    store = parse_store(doc)
    logger.debug("loaded %d sessions, %d messages", len(store.sessions), store.message_count)
    return store
