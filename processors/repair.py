"""
repair.py

Stage: BROKEN EXPORT BYTES -> PARSEABLE EXPORT BYTES

Exports from the web client get damaged in a handful of ways: the tail is cut
off, a trailing comma is left before a closer, raw newlines end up inside
string values, a quote inside a message is not escaped. This module fixes
those with a single left-to-right scan instead of a tolerant parser.

Scanner state:
- in_string / escape_pending: where we are inside a string literal
- stack: the closers we still owe, one per open container (its length is the depth)
- checkpoints: (entries, chars, stack) recorded wherever the output so far is a
  run of complete values; used to roll back an incomplete tail

Fix codes (see FIX_DESCRIPTIONS) name every pattern handled here.

This module does NOT read or write files.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from model import SESSIONS_KEY, STORE_KEY
from .errors import ErrorKind, ExportError

logger = logging.getLogger(__name__)

_CLOSER_FOR = {"{": "}", "[": "]"}
_VALID_ESCAPES = set('"\\/bfnrt')
_HEX_DIGITS = set("0123456789abcdefABCDEF")
_WHITESPACE = " \t\r\n"
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}
_VALUE_STARTS = set('"{[]}-0123456789')
_LITERALS = ("true", "false", "null")

# Containers nested deeper than this fail the repair.
MAX_DEPTH = 512

FIX_DESCRIPTIONS = {
    "bom": "stripped byte order mark",
    "invalid_utf8": "replaced invalid UTF-8 bytes",
    "trailing_comma": "dropped trailing comma before closer",
    "extra_comma": "dropped doubled or leading comma",
    "control_char": "escaped raw control character in string",
    "stray_control_char": "dropped control character outside string",
    "bad_escape": "escaped invalid backslash sequence",
    "inner_quote": "escaped unescaped quote inside string",
    "unterminated_string": "closed unterminated string",
    "unclosed_container": "closed container left open at end of input",
    "mismatched_closer": "fixed mismatched closing bracket",
    "missing_comma": "inserted missing comma between values",
    "trailing_garbage": "discarded text after the top-level object",
    "rolled_back_tail": "discarded incomplete trailing value",
}


@dataclass
class RepairResult:
    text: str
    fixes: Dict[str, int] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.fixes)

    def describe(self) -> List[str]:
        return [f"{FIX_DESCRIPTIONS.get(code, code)} (x{count})" for code, count in self.fixes.items()]


def _fail(message: str) -> ExportError:
    return ExportError(ErrorKind.REPAIR_FAILED, message)


class _Scanner:
    def __init__(self, source: str, fixes: Counter):
        self.src = source
        self.n = len(source)
        self.pos = 0
        self.fixes = fixes

        self.out: List[str] = []
        self.size = 0
        self.stack: List[str] = []
        self.in_string = False
        self.escape_pending = False
        self.closed_top_level = False
        self.checkpoints: List[Tuple[int, int, Tuple[str, ...]]] = []

    # ------------------------------------------------------------------ output

    def _emit(self, s: str) -> None:
        self.out.append(s)
        self.size += len(s)

    def _checkpoint(self) -> None:
        self.checkpoints.append((len(self.out), self.size, tuple(self.stack)))

    def _last_significant(self) -> Tuple[int, Optional[str]]:
        i = len(self.out) - 1
        while i >= 0 and self.out[i] in _WHITESPACE:
            i -= 1
        if i < 0:
            return -1, None
        return i, self.out[i][-1]

    def _skip_ws(self, j: int) -> int:
        while j < self.n and self.src[j] in _WHITESPACE:
            j += 1
        return j

    # ------------------------------------------------------------------ scan

    def run(self) -> None:
        while self.pos < self.n and not self.closed_top_level:
            ch = self.src[self.pos]
            if self.in_string:
                self._string_char(ch)
            else:
                self._structural_char(ch)
            self.pos += 1

        if self.closed_top_level and self._skip_ws(self.pos) < self.n:
            self.fixes["trailing_garbage"] += 1

    def _string_char(self, ch: str) -> None:
        if self.escape_pending:
            self.escape_pending = False
            if ch in _VALID_ESCAPES:
                self._emit(ch)
                return
            hex_digits = self.src[self.pos + 1 : self.pos + 5]
            if ch == "u" and len(hex_digits) == 4 and all(c in _HEX_DIGITS for c in hex_digits):
                self._emit(ch)
                return
            # The backslash already emitted becomes a literal backslash.
            self._emit("\\")
            self.fixes["bad_escape"] += 1
            # fall through: ch is an ordinary string character now

        if ch == "\\":
            self.escape_pending = True
            self._emit(ch)
        elif ch == '"':
            if self._quote_closes_string():
                self.in_string = False
                self._emit(ch)
            else:
                self._emit('\\"')
                self.fixes["inner_quote"] += 1
        elif ord(ch) < 0x20:
            self._emit(_CONTROL_ESCAPES.get(ch, "\\u%04x" % ord(ch)))
            self.fixes["control_char"] += 1
        else:
            self._emit(ch)

    def _quote_closes_string(self) -> bool:
        """
        A quote ends the string only if what follows can follow a string:
        end of input, ':', a closer, or a comma followed by the start of
        another value.
        """
        j = self._skip_ws(self.pos + 1)
        if j >= self.n:
            return True
        nxt = self.src[j]
        if nxt in ":}]":
            return True
        if nxt != ",":
            return False
        k = self._skip_ws(j + 1)
        if k >= self.n:
            return True
        return self.src[k] in _VALUE_STARTS or self.src.startswith(_LITERALS, k)

    def _structural_char(self, ch: str) -> None:
        if ch in _WHITESPACE:
            self._emit(ch)
        elif ch == '"':
            self._insert_missing_comma()
            self.in_string = True
            self._emit(ch)
        elif ch in _CLOSER_FOR:
            self._insert_missing_comma()
            if len(self.stack) >= MAX_DEPTH:
                raise _fail(f"input is nested more than {MAX_DEPTH} levels deep")
            self.stack.append(_CLOSER_FOR[ch])
            self._emit(ch)
            self._checkpoint()
        elif ch in "}]":
            self._closer(ch)
        elif ch == ",":
            _, prev = self._last_significant()
            if prev in (None, ",", "{", "["):
                self.fixes["extra_comma"] += 1
                return
            self._checkpoint()
            self._emit(ch)
        elif ord(ch) < 0x20:
            self.fixes["stray_control_char"] += 1
        else:
            self._emit(ch)

    def _insert_missing_comma(self) -> None:
        if not self.stack:
            return
        _, prev = self._last_significant()
        if prev in ("}", "]"):
            self._checkpoint()
            self._emit(",")
            self.fixes["missing_comma"] += 1

    def _closer(self, ch: str) -> None:
        if ch == self.stack[-1]:
            self._close()
            return
        if ch not in self.stack:
            self.fixes["mismatched_closer"] += 1
            return
        while self.stack[-1] != ch:
            self._close()
            self.fixes["mismatched_closer"] += 1
        self._close()

    def _close(self) -> None:
        i, prev = self._last_significant()
        if prev == ",":
            del self.out[i]
            self.size -= 1
            self.fixes["trailing_comma"] += 1
        self._emit(self.stack.pop())
        self._checkpoint()
        if not self.stack:
            self.closed_top_level = True

    # ------------------------------------------------------------------ finish

    def finish_string(self) -> None:
        if not self.in_string:
            return
        if self.escape_pending:
            self.out.pop()
            self.size -= 1
            self.escape_pending = False
        self._emit('"')
        self.in_string = False
        self.fixes["unterminated_string"] += 1

    def closed_text(self, entries: int, stack: Tuple[str, ...]) -> str:
        prefix = "".join(self.out[:entries]).rstrip()
        if prefix.endswith(","):
            prefix = prefix[:-1].rstrip()
        return prefix + "".join(reversed(stack))


def _try_parse(text: str) -> Optional[json.JSONDecodeError]:
    try:
        json.loads(text)
    except json.JSONDecodeError as exc:
        return exc
    except RecursionError as exc:
        raise _fail("input is nested too deeply to parse") from exc
    return None


def _decode(data: bytes, fixes: Counter) -> str:
    if data.startswith(b"\xef\xbb\xbf"):
        data = data[3:]
        fixes["bom"] += 1
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        fixes["invalid_utf8"] += 1
        return data.decode("utf-8", errors="replace")


def _check_store_markers(text: str) -> None:
    try:
        doc = json.loads(text)
    except RecursionError as exc:
        raise _fail("input is nested too deeply to parse") from exc
    if not isinstance(doc, dict):
        raise _fail("top-level JSON value is not an object")
    store = doc.get(STORE_KEY)
    if not isinstance(store, dict):
        raise _fail(f"could not recover the {STORE_KEY!r} object")
    if not isinstance(store.get(SESSIONS_KEY), list):
        raise _fail(f"could not recover the {SESSIONS_KEY!r} array")


def repair_json_text(text: str, fixes: Optional[Counter] = None) -> RepairResult:
    """
    Repair one JSON document given as text.

    Returns the text unchanged if it already parses. Raises ExportError
    (REPAIR_FAILED) if nothing parseable with the store markers can be
    recovered.
    """
    fixes = fixes if fixes is not None else Counter()

    if _try_parse(text) is None:
        _check_store_markers(text)
        return RepairResult(text=text, fixes=dict(fixes))

    body = text.lstrip()
    if not body:
        raise _fail("input is empty")
    if body[0] != "{":
        raise _fail("input does not look like a JSON object")

    scanner = _Scanner(body, fixes)
    scanner.run()
    scanner.finish_string()
    if scanner.stack:
        fixes["unclosed_container"] += len(scanner.stack)

    candidate = scanner.closed_text(len(scanner.out), tuple(scanner.stack))
    err = _try_parse(candidate)

    # Walk back to the newest checkpoint that ends before the parse error.
    for entries, chars, stack in reversed(scanner.checkpoints):
        if err is None:
            break
        if chars > err.pos:
            continue
        candidate = scanner.closed_text(entries, stack)
        err = _try_parse(candidate)
        if err is None:
            fixes["rolled_back_tail"] += 1
            logger.warning("discarded %d characters of incomplete data", scanner.size - chars)

    if err is not None:
        raise _fail(f"unrecoverable JSON damage near character {err.pos}: {err.msg}")

    _check_store_markers(candidate)
    return RepairResult(text=candidate, fixes=dict(fixes))


def repair_session_data(data: bytes) -> bytes:
    """
    Repair a possibly broken chat store export.

    Already-valid input comes back byte-for-byte. Otherwise the returned
    bytes parse as JSON and contain the store object with its sessions array.
    """
    fixes: Counter = Counter()
    text = _decode(data, fixes)

    if not fixes and _try_parse(text) is None:
        _check_store_markers(text)
        logger.info("input is already valid JSON; nothing to repair")
        return data

    result = repair_json_text(text, fixes)
    for line in result.describe():
        logger.info("repair: %s", line)
    return result.text.encode("utf-8")
