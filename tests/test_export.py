"""
Tests for the export coordinator.
"""

import csv
import io
import json

import pytest

from processors.cancel import CancelToken
from processors.errors import ErrorKind, ExportError
from processors.export import (
    OutputKind,
    export_sessions,
    load_store_file,
    parse_csv_layout,
    parse_output_kind,
    repair_file,
    repaired_path,
    with_extension,
)
from processors.filesystem import InMemoryFileSystem
from processors.loader import load_store
from renderers.csv_layouts import CsvLayout
from renderers.dataset import DatasetGranularity


def _rows(data: bytes):
    return list(csv.reader(io.StringIO(data.decode("utf-8"), newline="")))


class CancelOnWrite(InMemoryFileSystem):
    """Cancels the token right after the first write lands."""

    def __init__(self, token):
        super().__init__()
        self.token = token

    def write_file(self, path, data, permissions=0o644):
        super().write_file(path, data, permissions)
        self.token.cancel()


class TestSelections:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("csv", OutputKind.CSV),
            ("1", OutputKind.CSV),
            (2, OutputKind.DATASET),
            (" Dataset ", OutputKind.DATASET),
            (OutputKind.CSV, OutputKind.CSV),
        ],
    )
    def test_output_kind(self, value, expected):
        assert parse_output_kind(value) is expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("inline", CsvLayout.INLINE),
            ("per-line", CsvLayout.PER_LINE),
            ("per_line", CsvLayout.PER_LINE),
            ("separate", CsvLayout.SEPARATE_FILES),
            ("4", CsvLayout.JSON_IN_CSV),
            (3, CsvLayout.SEPARATE_FILES),
        ],
    )
    def test_csv_layout(self, value, expected):
        assert parse_csv_layout(value) is expected

    @pytest.mark.parametrize("value", ["", "xml", "0", "5", None])
    def test_invalid_layout(self, value):
        with pytest.raises(ExportError) as exc_info:
            parse_csv_layout(value)
        assert exc_info.value.kind is ErrorKind.INVALID_SELECTION

    def test_invalid_kind_writes_nothing(self, sample_store, memfs):
        with pytest.raises(ExportError) as exc_info:
            export_sessions(memfs, sample_store.sessions, "3", None, ["out"])
        assert exc_info.value.kind is ErrorKind.INVALID_SELECTION
        assert memfs.files == {}


class TestNaming:
    def test_extension_appended(self):
        assert with_extension("chats", ".csv") == "chats.csv"
        assert with_extension("chats.csv", ".csv") == "chats.csv"
        assert with_extension("data.JSON", ".json") == "data.JSON"

    def test_empty_name_rejected(self):
        with pytest.raises(ExportError) as exc_info:
            with_extension("  ", ".csv")
        assert exc_info.value.kind is ErrorKind.INVALID_SELECTION

    def test_repaired_path(self):
        assert repaired_path("backup.json") == "repaired_backup.json"
        assert repaired_path("dir/sub/backup.json") == "dir/sub/repaired_backup.json"


class TestExport:
    def test_single_csv(self, sample_store, memfs):
        written = export_sessions(memfs, sample_store.sessions, "csv", "per-line", ["chats"])
        assert written == ["chats.csv"]
        assert len(_rows(memfs.files["chats.csv"])) == 6
        assert memfs.modes["chats.csv"] == 0o644

    def test_separate_files(self, sample_store, memfs):
        written = export_sessions(
            memfs, sample_store.sessions, OutputKind.CSV, CsvLayout.SEPARATE_FILES, ["sessions", "messages"]
        )
        assert written == ["sessions.csv", "messages.csv"]
        session_ids = {r[0] for r in _rows(memfs.files["sessions.csv"])[1:]}
        assert all(r[0] in session_ids for r in _rows(memfs.files["messages.csv"])[1:])

    def test_separate_files_needs_two_names(self, sample_store, memfs):
        with pytest.raises(ExportError) as exc_info:
            export_sessions(memfs, sample_store.sessions, "csv", "separate", ["only-one"])
        assert exc_info.value.kind is ErrorKind.INVALID_SELECTION
        assert memfs.files == {}

    def test_dataset(self, sample_store, memfs):
        written = export_sessions(memfs, sample_store.sessions, "dataset", None, ["data"])
        assert written == ["data.json"]
        assert len(json.loads(memfs.files["data.json"])) == 5

    def test_dataset_ignores_layout(self, sample_store, memfs):
        export_sessions(
            memfs, sample_store.sessions, "dataset", "nonsense", ["data"], granularity=DatasetGranularity.SESSION
        )
        assert len(json.loads(memfs.files["data.json"])) == 2

    def test_empty_store(self, memfs):
        export_sessions(memfs, (), "csv", "inline", ["empty"])
        export_sessions(memfs, (), "dataset", None, ["empty"])
        assert len(_rows(memfs.files["empty.csv"])) == 1
        assert json.loads(memfs.files["empty.json"]) == []


class TestLoneSurrogates:
    RAW = (
        b'{"chat-next-web-store": {"sessions": [{"id": "s1", "topic": "t", "messages": '
        b'[{"role": "user", "content": "emoji cut \\ud83d"}]}]}}'
    )

    @pytest.mark.parametrize(
        "kind, layout, names",
        [
            ("csv", "inline", ["out"]),
            ("csv", "per-line", ["out"]),
            ("csv", "separate", ["s", "m"]),
            ("csv", "json-in-csv", ["out"]),
            ("dataset", None, ["out"]),
        ],
    )
    def test_loaded_half_emoji_exports(self, memfs, kind, layout, names):
        store = load_store(self.RAW)
        written = export_sessions(memfs, store.sessions, kind, layout, names)
        text = "".join(memfs.files[p].decode("utf-8") for p in written)
        assert "emoji cut \ufffd" in text


class TestOverwrite:
    def test_declined_overwrite_is_cancel_and_keeps_file(self, sample_store, memfs):
        memfs.files["chats.csv"] = b"old"
        with pytest.raises(ExportError) as exc_info:
            export_sessions(memfs, sample_store.sessions, "csv", "inline", ["chats"], confirm=lambda p: False)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert memfs.files["chats.csv"] == b"old"

    def test_declining_second_file_writes_neither(self, sample_store, memfs):
        memfs.files["messages.csv"] = b"old"
        with pytest.raises(ExportError):
            export_sessions(
                memfs, sample_store.sessions, "csv", "separate", ["sessions", "messages"], confirm=lambda p: False
            )
        assert "sessions.csv" not in memfs.files
        assert memfs.files["messages.csv"] == b"old"

    def test_confirm_only_asked_for_existing(self, sample_store, memfs):
        memfs.files["b.csv"] = b"old"
        asked = []

        def confirm(path):
            asked.append(path)
            return True

        export_sessions(memfs, sample_store.sessions, "csv", "separate", ["a", "b"], confirm=confirm)
        assert asked == ["b.csv"]
        assert memfs.files["b.csv"] != b"old"


class TestCancel:
    def test_cancel_before_write_creates_nothing(self, sample_store, memfs):
        token = CancelToken()
        token.cancel()
        with pytest.raises(ExportError) as exc_info:
            export_sessions(memfs, sample_store.sessions, "csv", "per-line", ["chats"], cancel=token)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert memfs.files == {}

    def test_cancel_between_separate_writes_stops(self, sample_store):
        token = CancelToken()
        fs = CancelOnWrite(token)
        with pytest.raises(ExportError) as exc_info:
            export_sessions(fs, sample_store.sessions, "csv", "separate", ["s", "m"], cancel=token)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert fs.writes == ["s.csv"]


class TestRepairFile:
    def test_writes_repaired_copy_and_keeps_original(self, examples_dir):
        broken = (examples_dir / "broken_store.json").read_bytes()
        fs = InMemoryFileSystem({"broken.json": broken})

        out = repair_file(fs, "broken.json")

        assert out == "repaired_broken.json"
        assert fs.files["broken.json"] == broken
        store = load_store_file(fs, out)
        assert [s.id for s in store.sessions] == ["s1", "s2"]

    def test_unrecoverable_writes_nothing(self):
        fs = InMemoryFileSystem({"junk.json": b"not json at all"})
        with pytest.raises(ExportError) as exc_info:
            repair_file(fs, "junk.json")
        assert exc_info.value.kind is ErrorKind.REPAIR_FAILED
        assert list(fs.files) == ["junk.json"]

    def test_missing_input_is_io_failure(self, memfs):
        with pytest.raises(ExportError) as exc_info:
            repair_file(memfs, "nope.json")
        assert exc_info.value.kind is ErrorKind.IO_FAILURE
        assert exc_info.value.path == "nope.json"

    def test_cancelled_repair_writes_nothing(self, sample_bytes):
        fs = InMemoryFileSystem({"in.json": sample_bytes})
        token = CancelToken()
        token.cancel()
        with pytest.raises(ExportError) as exc_info:
            repair_file(fs, "in.json", token)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert list(fs.files) == ["in.json"]
