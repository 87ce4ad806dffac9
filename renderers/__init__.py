"""
Renderers: Store sessions -> output bytes.

Public API:
- CsvLayout, CsvConfig, render_csv
- DatasetGranularity, extract_dataset
"""

from .csv_layouts import CsvConfig, CsvLayout, render_csv
from .dataset import DatasetGranularity, extract_dataset

__all__ = ["CsvConfig", "CsvLayout", "render_csv", "DatasetGranularity", "extract_dataset"]
