"""
Dataset renderer.

Flattens sessions into a JSON array for ML tooling.

MESSAGE granularity (default): one record per message, same columns as the
per-line CSV layout.
SESSION granularity: one record per session with its messages as
[{role, content}, ...].

Keys are always written in the same order.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from model import Session
from processors.cancel import CancelToken, check
from renderers.csv_layouts import encode_text


class DatasetGranularity(Enum):
    MESSAGE = "message"
    SESSION = "session"


def message_records(sessions: Sequence[Session], cancel: Optional[CancelToken] = None) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    for s in sessions:
        check(cancel)
        for m in s.messages:
            records.append(
                {
                    "session_id": s.id,
                    "session_title": s.title,
                    "role": m.role,
                    "message_index": m.index,
                    "content": m.content,
                }
            )
    return records


def session_records(sessions: Sequence[Session], cancel: Optional[CancelToken] = None) -> List[Dict[str, Any]]:
    records: List[Dict[str, Any]] = []
    for s in sessions:
        check(cancel)
        records.append(
            {
                "session_id": s.id,
                "session_title": s.title,
                "messages": [{"role": m.role, "content": m.content} for m in s.messages],
            }
        )
    return records


def extract_dataset(
    sessions: Sequence[Session],
    cancel: Optional[CancelToken] = None,
    granularity: DatasetGranularity = DatasetGranularity.MESSAGE,
) -> bytes:
    if granularity is DatasetGranularity.SESSION:
        records = session_records(sessions, cancel)
    else:
        records = message_records(sessions, cancel)
    check(cancel)
    return encode_text(json.dumps(records, indent=2, ensure_ascii=False))
