"""Parsers for source CSV files and cell values."""

from .csv_loader import CsvSourceLoader
from .values import DEFAULT_DATE_FORMATS, parse_amount, parse_date

__all__ = ["CsvSourceLoader", "DEFAULT_DATE_FORMATS", "parse_amount", "parse_date"]
