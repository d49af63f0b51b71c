"""
Source CSV loader.
Reads an exported CSV file into the header/row shape consumed by the engine.
"""

from pathlib import Path
from typing import Optional, TYPE_CHECKING
import logging

import pandas as pd

from ..models.transaction import SourceData
from ..utils.exceptions import SourceParseError

if TYPE_CHECKING:
    from ..config import InputConfig

logger = logging.getLogger(__name__)


class CsvSourceLoader:
    """
    Loader for source CSV exports.

    Every cell is kept as the original string. Nothing is coerced to NaN or
    numbers, so rule evaluation sees exactly what the file contains.
    """

    def __init__(self, input_config: Optional["InputConfig"] = None):
        """
        Initialize the loader.

        Args:
            input_config: CSV reading options (encoding, delimiter)
        """
        self.encoding = input_config.encoding if input_config else "utf-8"
        self.delimiter = input_config.delimiter if input_config else ","

    def load(self, file_path: Path) -> SourceData:
        """
        Read a CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            SourceData with headers, rows and the file name

        Raises:
            SourceParseError: If the file cannot be read
        """
        logger.info(f"Reading source CSV: {file_path}")

        try:
            df = pd.read_csv(
                file_path,
                encoding=self.encoding,
                delimiter=self.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except pd.errors.EmptyDataError:
            logger.warning(f"Source file is empty: {file_path}")
            return SourceData(headers=[], rows=[], filename=Path(file_path).name)
        except Exception as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise SourceParseError(f"Failed to read CSV file {file_path}: {e}") from e

        source = self._from_dataframe(df, Path(file_path).name)
        logger.info(f"Read {source.row_count} rows from {file_path}")
        return source

    def _from_dataframe(self, df: pd.DataFrame, filename: str) -> SourceData:
        headers = [str(column) for column in df.columns]
        rows = [
            {header: "" if value is None else str(value) for header, value in zip(headers, record)}
            for record in df.itertuples(index=False, name=None)
        ]
        return SourceData(headers=headers, rows=rows, filename=filename)
