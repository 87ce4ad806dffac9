"""
CSV renderer.

Four layouts, picked by the caller:

1) INLINE          one row per session, all messages in one cell ("role: content" lines)
2) PER_LINE        one row per message
3) SEPARATE_FILES  a sessions CSV plus a messages CSV joined on session_id
4) JSON_IN_CSV     one row per session, messages cell holds a JSON array

Quoting is left to the csv module (QUOTE_MINIMAL): fields with the delimiter,
a quote or a line break are quoted and inner quotes doubled.

Output is built in memory and returned as bytes only when every row is done,
so a cancelled render leaves nothing behind.
"""

from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from model import Message, Session
from processors.cancel import CancelToken, check


class CsvLayout(Enum):
    INLINE = 1
    PER_LINE = 2
    SEPARATE_FILES = 3
    JSON_IN_CSV = 4


@dataclass(frozen=True)
class CsvConfig:
    # Field delimiter.
    delimiter: str = ","

    # Row terminator. RFC 4180 says CRLF; "\n" for Unix-minded tools.
    line_terminator: str = "\r\n"

    # Separator between role and content in INLINE cells.
    role_separator: str = ": "

    # Separator between messages in INLINE cells.
    message_separator: str = "\n"

    encoding: str = "utf-8"


INLINE_HEADER = ["session_id", "title", "memory_prompt", "messages"]
PER_LINE_HEADER = ["session_id", "session_title", "role", "message_index", "content"]
SESSIONS_HEADER = ["session_id", "title", "memory_prompt", "model", "last_update", "message_count"]
MESSAGES_HEADER = ["session_id", "role", "message_index", "content"]
JSON_IN_CSV_HEADER = ["session_id", "title", "messages"]

_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def encode_text(text: str, encoding: str = "utf-8") -> bytes:
    """Encode output text, turning lone UTF-16 surrogates (an emoji cut in half) into U+FFFD."""
    return _LONE_SURROGATE.sub("\ufffd", text).encode(encoding)


class _Sheet:
    # One CSV stream being built.

    def __init__(self, header: Sequence[str], cfg: CsvConfig):
        self.cfg = cfg
        self.buf = io.StringIO()
        self.writer = csv.writer(
            self.buf,
            delimiter=cfg.delimiter,
            lineterminator=cfg.line_terminator,
            quoting=csv.QUOTE_MINIMAL,
        )
        self.rows = 0
        self.writer.writerow(header)

    def row(self, values: Iterable[object]) -> None:
        self.writer.writerow(["" if v is None else v for v in values])
        self.rows += 1

    def to_bytes(self) -> bytes:
        return encode_text(self.buf.getvalue(), self.cfg.encoding)


def format_inline_messages(messages: Sequence[Message], cfg: CsvConfig) -> str:
    return cfg.message_separator.join(f"{m.role}{cfg.role_separator}{m.content}" for m in messages)


def format_json_messages(messages: Sequence[Message]) -> str:
    return json.dumps(
        [{"role": m.role, "content": m.content, "date": m.date} for m in messages],
        ensure_ascii=False,
    )


def render_inline(sessions: Sequence[Session], cancel: Optional[CancelToken] = None,
                  cfg: CsvConfig = CsvConfig()) -> bytes:
    sheet = _Sheet(INLINE_HEADER, cfg)
    for s in sessions:
        check(cancel)
        sheet.row([s.id, s.title, s.memory_prompt, format_inline_messages(s.messages, cfg)])
    return sheet.to_bytes()


def render_per_line(sessions: Sequence[Session], cancel: Optional[CancelToken] = None,
                    cfg: CsvConfig = CsvConfig()) -> bytes:
    sheet = _Sheet(PER_LINE_HEADER, cfg)
    for s in sessions:
        for m in s.messages:
            check(cancel)
            sheet.row([s.id, s.title, m.role, m.index, m.content])
    check(cancel)
    return sheet.to_bytes()


def render_separate(sessions: Sequence[Session], cancel: Optional[CancelToken] = None,
                    cfg: CsvConfig = CsvConfig()) -> List[bytes]:
    """Returns [sessions_csv, messages_csv]."""
    sessions_sheet = _Sheet(SESSIONS_HEADER, cfg)
    messages_sheet = _Sheet(MESSAGES_HEADER, cfg)
    for s in sessions:
        check(cancel)
        sessions_sheet.row([s.id, s.title, s.memory_prompt, s.model, s.last_update, len(s.messages)])
        for m in s.messages:
            check(cancel)
            messages_sheet.row([s.id, m.role, m.index, m.content])
    return [sessions_sheet.to_bytes(), messages_sheet.to_bytes()]


def render_json_in_csv(sessions: Sequence[Session], cancel: Optional[CancelToken] = None,
                       cfg: CsvConfig = CsvConfig()) -> bytes:
    sheet = _Sheet(JSON_IN_CSV_HEADER, cfg)
    for s in sessions:
        check(cancel)
        sheet.row([s.id, s.title, format_json_messages(s.messages)])
    return sheet.to_bytes()


def render_csv(
    sessions: Sequence[Session],
    layout: CsvLayout,
    cancel: Optional[CancelToken] = None,
    cfg: CsvConfig = CsvConfig(),
) -> List[bytes]:
    """
    Render sessions in the given layout.

    Returns one CSV stream, or two for SEPARATE_FILES (sessions first).
    Raises ExportError(CANCELED) if the token fires before the render ends.
    """
    if layout is CsvLayout.INLINE:
        return [render_inline(sessions, cancel, cfg)]
    if layout is CsvLayout.PER_LINE:
        return [render_per_line(sessions, cancel, cfg)]
    if layout is CsvLayout.SEPARATE_FILES:
        return render_separate(sessions, cancel, cfg)
    if layout is CsvLayout.JSON_IN_CSV:
        return [render_json_in_csv(sessions, cancel, cfg)]
    raise ValueError(f"unknown CSV layout: {layout!r}")
