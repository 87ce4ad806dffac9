"""
Tests for the dataset renderer.
"""

import json

import pytest

from model import Message, Session
from processors.cancel import CancelToken
from processors.errors import ErrorKind, ExportError
from renderers.dataset import DatasetGranularity, extract_dataset


class TestMessageRecords:
    def test_one_record_per_message(self, sample_store):
        records = json.loads(extract_dataset(sample_store.sessions))
        assert len(records) == sample_store.message_count

    def test_field_order_is_fixed(self, sample_store):
        records = json.loads(extract_dataset(sample_store.sessions))
        assert list(records[0]) == ["session_id", "session_title", "role", "message_index", "content"]

    def test_order_matches_source(self, sample_store):
        records = json.loads(extract_dataset(sample_store.sessions))
        keys = [(r["session_id"], r["message_index"]) for r in records]
        assert keys == [("s1-Lz8k2", 0), ("s1-Lz8k2", 1), ("s1-Lz8k2", 2), ("s2-Qp1d9", 0), ("s2-Qp1d9", 1)]

    def test_content_untouched(self, tricky_store):
        records = json.loads(extract_dataset(tricky_store.sessions))
        assert records[0]["content"] == 'He said "hi", then\nleft'
        assert records[1]["content"] == ""

    def test_deterministic(self, sample_store):
        assert extract_dataset(sample_store.sessions) == extract_dataset(sample_store.sessions)

    def test_non_ascii_written_as_utf8(self):
        sessions = (Session(id="x", title="été", messages=(Message(role="user", content="日本", index=0),)),)
        assert "日本".encode("utf-8") in extract_dataset(sessions)


class TestSessionRecords:
    def test_one_record_per_session(self, sample_store):
        records = json.loads(extract_dataset(sample_store.sessions, granularity=DatasetGranularity.SESSION))
        assert [r["session_id"] for r in records] == ["s1-Lz8k2", "s2-Qp1d9"]
        assert records[0]["messages"][0] == {"role": "user", "content": 'How do I write "a, b" in CSV?'}


class TestEdges:
    @pytest.mark.parametrize("granularity", list(DatasetGranularity))
    def test_empty_is_empty_array(self, granularity):
        assert json.loads(extract_dataset((), granularity=granularity)) == []

    def test_cancelled(self, sample_store):
        token = CancelToken()
        token.cancel()
        with pytest.raises(ExportError) as exc_info:
            extract_dataset(sample_store.sessions, token)
        assert exc_info.value.kind is ErrorKind.CANCELED


class TestLoneSurrogates:
    @pytest.mark.parametrize("granularity", list(DatasetGranularity))
    def test_half_emoji_becomes_replacement_char(self, granularity):
        sessions = (Session(id="x", title="t\udc00", messages=(Message(role="user", content="cut \ud83d", index=0),)),)
        out = extract_dataset(sessions, granularity=granularity)
        text = out.decode("utf-8")
        assert "cut \ufffd" in text
        assert "t\ufffd" in text
