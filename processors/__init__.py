"""
processors package

Everything between the raw export bytes and the renderers:

- repair.py      broken JSON -> parseable JSON
- loader.py      JSON -> Store (model.py)
- export.py      Store -> renderers -> FileSystem
- filesystem.py  read/write/exists contract, disk and in-memory
- cancel.py      cancellation token and signal wiring
- errors.py      ExportError + ErrorKind

To run the whole pipeline use the CLI:

python convert.py examples/sample_store.json --format csv --csv-layout inline --out chats

Sample result in CLI:

========================================================================
Export complete
========================================================================
Input:    examples/sample_store.json
Sessions: 2
Messages: 5
Output:   chats.csv

"""
