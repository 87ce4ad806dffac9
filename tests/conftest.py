"""
Pytest configuration and shared fixtures.
"""

import json
import sys
from pathlib import Path

import pytest

# Repo root holds the top-level modules (model, convert) and packages.
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from processors.filesystem import InMemoryFileSystem
from processors.loader import load_store


def make_store_doc(sessions):
    return {"chat-next-web-store": {"currentSessionIndex": 0, "sessions": sessions}}


def make_session(sid, topic, messages, **extra):
    raw = {"id": sid, "topic": topic, "memoryPrompt": "", "messages": messages}
    raw.update(extra)
    return raw


def make_message(role, content, mid="", date=""):
    return {"id": mid, "date": date, "role": role, "content": content}


@pytest.fixture
def examples_dir():
    """Path to the bundled sample exports."""
    return ROOT / "examples"


@pytest.fixture
def sample_bytes(examples_dir):
    return (examples_dir / "sample_store.json").read_bytes()


@pytest.fixture
def sample_store(sample_bytes):
    return load_store(sample_bytes)


@pytest.fixture
def tricky_doc():
    """Two sessions whose content needs CSV quoting."""
    return make_store_doc(
        [
            make_session(
                "a",
                "Quoting, commas",
                [
                    make_message("user", 'He said "hi", then\nleft', mid="1"),
                    make_message("assistant", "", mid="2"),
                ],
            ),
            make_session("b", "Second", [make_message("user", "plain", mid="3")]),
        ]
    )


@pytest.fixture
def tricky_store(tricky_doc):
    return load_store(json.dumps(tricky_doc).encode("utf-8"))


@pytest.fixture
def memfs():
    return InMemoryFileSystem()
