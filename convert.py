"""
convert.py

Command-line entry point.

- Load a ChatGPT-Next-Web backup (chat-next-web-store JSON)
- Either repair it (--repair) and write repaired_<name> next to it,
- or export its sessions as CSV (four layouts) or as a JSON dataset

Examples:

python convert.py examples/sample_store.json --repair
python convert.py examples/sample_store.json --format csv --csv-layout per-line --out chats
python convert.py examples/sample_store.json --format csv --csv-layout separate \
    --sessions-out sessions --messages-out messages
python convert.py examples/sample_store.json --format dataset --out dataset

Exit status is 0 on success and when cancelled (Ctrl+C, declined overwrite),
1 on any other error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from processors.cancel import CancelToken, install_signal_handlers, read_line_cancellable
from processors.errors import ExportError
from processors.export import (
    ConfirmOverwrite,
    OutputKind,
    export_sessions,
    load_store_file,
    parse_csv_layout,
    parse_output_kind,
    repair_file,
)
from processors.filesystem import RealFileSystem
from renderers.csv_layouts import CsvConfig, CsvLayout
from renderers.dataset import DatasetGranularity

logger = logging.getLogger("convert")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Repair a ChatGPT-Next-Web session backup, or export its sessions "
            "to CSV or to a JSON dataset."
        )
    )
    parser.add_argument("input", help="Path to the exported JSON backup")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Repair the JSON and save it as repaired_<name> (no export)",
    )
    parser.add_argument("--format", default="csv", help="Output format: csv or dataset (default: csv)")
    parser.add_argument(
        "--csv-layout",
        default="per-line",
        help="CSV layout: inline, per-line, separate, json-in-csv (default: per-line)",
    )
    parser.add_argument("--out", help="Output file name (.csv / .json appended if missing)")
    parser.add_argument("--sessions-out", help="Sessions CSV name for --csv-layout separate")
    parser.add_argument("--messages-out", help="Messages CSV name for --csv-layout separate")
    parser.add_argument(
        "--granularity",
        default="message",
        choices=[g.value for g in DatasetGranularity],
        help="Dataset records per message or per session (default: message)",
    )
    parser.add_argument("--lf", action="store_true", help="Use LF instead of CRLF line endings in CSV")
    parser.add_argument("-y", "--yes", action="store_true", help="Overwrite existing files without asking")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def make_confirm(token: CancelToken, assume_yes: bool) -> ConfirmOverwrite:
    def confirm(path: str) -> bool:
        if assume_yes:
            return True
        print(f"File {path} already exists. Overwrite? (yes/no): ", end="", flush=True)
        answer = read_line_cancellable(token, sys.stdin.readline)
        return answer.lower() in ("y", "yes")

    return confirm


def _destinations(args: argparse.Namespace, kind: OutputKind, layout: Optional[CsvLayout]) -> List[str]:
    if kind is OutputKind.CSV and layout is CsvLayout.SEPARATE_FILES:
        return [args.sessions_out or "", args.messages_out or ""]
    return [args.out or ""]


def run(args: argparse.Namespace, token: CancelToken) -> int:
    fs = RealFileSystem()
    confirm = make_confirm(token, args.yes)

    if args.repair:
        out_path = repair_file(fs, args.input, token, confirm)
        print(f"Repaired JSON data has been saved to: {out_path}")
        return 0

    kind = parse_output_kind(args.format)
    layout = parse_csv_layout(args.csv_layout) if kind is OutputKind.CSV else None
    store = load_store_file(fs, args.input)

    written = export_sessions(
        fs,
        store.sessions,
        kind,
        layout,
        _destinations(args, kind, layout),
        cancel=token,
        confirm=confirm,
        config=CsvConfig(line_terminator="\n" if args.lf else "\r\n"),
        granularity=DatasetGranularity(args.granularity),
    )

    print()
    print("=" * 72)
    print("Export complete")
    print("=" * 72)
    print(f"Input:    {args.input}")
    print(f"Sessions: {len(store.sessions)}")
    print(f"Messages: {store.message_count}")
    for path in written:
        print(f"Output:   {path}")
    print()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    token = CancelToken()
    install_signal_handlers(token)

    try:
        return run(args, token)
    except ExportError as exc:
        if exc.is_canceled:
            print(f"\nExiting gracefully...\nReason: {exc.message}")
            return 0
        logger.debug("export failed", exc_info=True)
        print(f"Error ({exc.kind.value}): {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
