"""
export.py

Export coordinator: the glue between a loaded Store and the file system.

- picks the renderer for the chosen output kind / CSV layout
- names destinations (extension, repaired_ prefix)
- asks before overwriting, then writes through the FileSystem

It never formats anything itself and never touches disk directly.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

from model import Session, Store
from renderers.csv_layouts import CsvConfig, CsvLayout, render_csv
from renderers.dataset import DatasetGranularity, extract_dataset
from .cancel import CancelToken, check
from .errors import ErrorKind, ExportError, canceled
from .filesystem import DEFAULT_PERMISSIONS, FileSystem
from .loader import load_store
from .repair import repair_session_data

logger = logging.getLogger(__name__)

REPAIRED_PREFIX = "repaired_"

# confirm(path) -> True to overwrite an existing destination.
ConfirmOverwrite = Callable[[str], bool]


class OutputKind(Enum):
    CSV = 1
    DATASET = 2


_LAYOUT_NAMES = {
    "inline": CsvLayout.INLINE,
    "per-line": CsvLayout.PER_LINE,
    "separate": CsvLayout.SEPARATE_FILES,
    "separate-files": CsvLayout.SEPARATE_FILES,
    "json-in-csv": CsvLayout.JSON_IN_CSV,
}

_KIND_NAMES = {
    "csv": OutputKind.CSV,
    "dataset": OutputKind.DATASET,
}


def _invalid(message: str) -> ExportError:
    return ExportError(ErrorKind.INVALID_SELECTION, message)


E = TypeVar("E", bound=Enum)


def _parse_choice(value: Union[str, int, Enum, None], enum_cls: Type[E], names: Dict[str, E], what: str) -> E:
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower().replace("_", "-")
    if text in names:
        return names[text]
    try:
        return enum_cls(int(text))
    except ValueError:
        pass
    raise _invalid(f"invalid {what}: {value!r}")


def parse_output_kind(value: Union[str, int, OutputKind]) -> OutputKind:
    return _parse_choice(value, OutputKind, _KIND_NAMES, "output format")


def parse_csv_layout(value: Union[str, int, CsvLayout]) -> CsvLayout:
    return _parse_choice(value, CsvLayout, _LAYOUT_NAMES, "CSV layout")


def with_extension(name: str, ext: str) -> str:
    name = (name or "").strip()
    if not name:
        raise _invalid("no file name given")
    if not name.lower().endswith(ext):
        name += ext
    return name


def repaired_path(path: str) -> str:
    directory, base = os.path.split(path)
    return os.path.join(directory, REPAIRED_PREFIX + base)


def _always(path: str) -> bool:
    return True


def repair_file(
    fs: FileSystem,
    path: str,
    cancel: Optional[CancelToken] = None,
    confirm: ConfirmOverwrite = _always,
) -> str:
    """
    Repair the export at `path` and write it next to it as repaired_<name>.
    The original is never touched. Returns the repaired path.
    """
    data = fs.read_file(path)
    repaired = repair_session_data(data)

    out_path = repaired_path(path)
    check(cancel)
    if fs.exists(out_path) and not confirm(out_path):
        raise canceled(f"not overwriting {out_path}")
    check(cancel)
    fs.write_file(out_path, repaired, DEFAULT_PERMISSIONS)
    logger.info("wrote repaired JSON to %s", out_path)
    return out_path


def load_store_file(fs: FileSystem, path: str) -> Store:
    return load_store(fs.read_file(path))


def render_outputs(
    sessions: Sequence[Session],
    kind: OutputKind,
    layout: Optional[CsvLayout] = None,
    cancel: Optional[CancelToken] = None,
    config: CsvConfig = CsvConfig(),
    granularity: DatasetGranularity = DatasetGranularity.MESSAGE,
) -> List[bytes]:
    if kind is OutputKind.DATASET:
        return [extract_dataset(sessions, cancel, granularity)]
    if layout is None:
        raise _invalid("a CSV layout is required for CSV output")
    return render_csv(sessions, layout, cancel, config)


def destination_names(kind: OutputKind, layout: Optional[CsvLayout], names: Sequence[str]) -> List[str]:
    """Check the destination count for the selection and add the extension."""
    expected = 2 if kind is OutputKind.CSV and layout is CsvLayout.SEPARATE_FILES else 1
    if len(names) != expected:
        raise _invalid(f"expected {expected} destination name(s), got {len(names)}")
    ext = ".json" if kind is OutputKind.DATASET else ".csv"
    return [with_extension(n, ext) for n in names]


def export_sessions(
    fs: FileSystem,
    sessions: Sequence[Session],
    kind: Union[str, int, OutputKind],
    layout: Union[str, int, CsvLayout, None],
    destinations: Sequence[str],
    cancel: Optional[CancelToken] = None,
    confirm: ConfirmOverwrite = _always,
    config: CsvConfig = CsvConfig(),
    granularity: DatasetGranularity = DatasetGranularity.MESSAGE,
) -> List[str]:
    """
    Render sessions and write them out.

    Order: validate the selection, render every output in memory, confirm
    every overwrite, then write. A cancel at any point before a write means
    that file is never created. Returns the written paths.
    """
    kind = parse_output_kind(kind)
    if kind is OutputKind.CSV:
        layout = parse_csv_layout(layout if layout is not None else "")
    else:
        layout = None

    paths = destination_names(kind, layout, destinations)
    outputs = render_outputs(sessions, kind, layout, cancel, config, granularity)

    for path in paths:
        check(cancel)
        if fs.exists(path) and not confirm(path):
            raise canceled(f"not overwriting {path}")

    written: List[str] = []
    for path, data in zip(paths, outputs):
        check(cancel)
        fs.write_file(path, data, DEFAULT_PERMISSIONS)
        written.append(path)
        logger.info("wrote %d bytes to %s", len(data), path)
    return written
