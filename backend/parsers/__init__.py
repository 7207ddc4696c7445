"""Data file parsers for the tabular importer."""

from .tabular_csv import TabularCSVParser, infer_scalar, normalize_header, parse_csv

__all__ = [
    "TabularCSVParser",
    "parse_csv",
    "infer_scalar",
    "normalize_header",
]
