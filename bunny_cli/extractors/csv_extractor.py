"""CSV/JSON file-based data extractor."""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List
from datetime import datetime

from .base import BaseExtractor, ExtractionResult
from ..exceptions import InputFileError
from ..models.record import SourceRecord

logger = logging.getLogger(__name__)


class CSVExtractor(BaseExtractor):
    """
    Extractor for CSV import files.

    Headers are taken verbatim from the first row. Ragged rows are kept:
    missing trailing cells become absent keys and surplus cells are dropped.
    Every read goes back to the file, so the row sequence can be replayed.
    """

    source_name = "csv"

    def __init__(
        self,
        file_path: str,
        encoding: str = "utf-8-sig",
        delimiter: str = ","
    ):
        """
        Initialize the CSV extractor.

        Args:
            file_path: Path to the CSV file
            encoding: File encoding (the default strips a UTF-8 BOM)
            delimiter: CSV delimiter character
        """
        super().__init__()
        self.file_path = Path(file_path)
        self.encoding = encoding
        self.delimiter = delimiter

    def extract(self) -> ExtractionResult:
        """Extract all rows from the file."""
        self.reset()
        started_at = datetime.utcnow()
        records = list(self.iter_rows())

        result = self.get_extraction_result(records)
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata["source_file"] = str(self.file_path)

        logger.info(f"Extracted {len(records)} rows from {self.file_path}")
        return result

    def iter_rows(self) -> Iterator[SourceRecord]:
        """
        Yield one SourceRecord per data row.

        Raises:
            InputFileError: the file is missing or cannot be parsed
        """
        self._check_exists()
        yield from self._read(self._resolve_encoding())

    def count_rows(self) -> int:
        """Count data rows with a full pass over the file."""
        return sum(1 for _ in self.iter_rows())

    def headers(self) -> List[str]:
        """Column names from the header row."""
        self._check_exists()
        try:
            with open(self.file_path, "r", encoding=self._resolve_encoding(), newline="") as f:
                reader = csv.reader(f, delimiter=self.delimiter)
                return next(reader, [])
        except csv.Error as e:
            raise InputFileError(f"Failed to read CSV file {self.file_path}: {e}") from e

    def read_text(self) -> str:
        """Return the raw file contents."""
        self._check_exists()
        try:
            return self.file_path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise InputFileError(f"Failed to read {self.file_path}: {e}") from e

    def _resolve_encoding(self) -> str:
        """The configured encoding, or latin-1 when the file does not decode with it."""
        try:
            with open(self.file_path, "r", encoding=self.encoding, newline="") as f:
                while f.read(65536):
                    pass
            return self.encoding
        except UnicodeDecodeError:
            logger.warning(f"UTF-8 decode failed, trying latin-1 for {self.file_path}")
            return "latin-1"
        except OSError as e:
            raise InputFileError(f"Failed to read CSV file {self.file_path}: {e}") from e

    def _check_exists(self) -> None:
        if not self.file_path.is_file():
            raise InputFileError(f"File not found: {self.file_path}")

    def _read(self, encoding: str) -> Iterator[SourceRecord]:
        try:
            with open(self.file_path, "r", encoding=encoding, newline="") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)
                for row_num, row in enumerate(reader, start=1):
                    yield self._process_row(row, row_num)
        except csv.Error as e:
            raise InputFileError(f"Failed to parse CSV file {self.file_path}: {e}") from e
        except OSError as e:
            raise InputFileError(f"Failed to read CSV file {self.file_path}: {e}") from e

    def _process_row(self, row: Dict[Any, Any], row_num: int) -> SourceRecord:
        """Drop surplus cells (key None) and missing trailing cells (value None)."""
        data = {k: v for k, v in row.items() if k is not None and v is not None}
        return SourceRecord(row_number=row_num, data=data, source_file=str(self.file_path))


class JSONDocumentExtractor(BaseExtractor):
    """
    Extractor for JSON import files shaped as one object holding a named
    array, e.g. `{ "products": [...] }`.
    """

    source_name = "json"

    def __init__(self, file_path: str, collection: str, encoding: str = "utf-8"):
        super().__init__()
        self.file_path = Path(file_path)
        self.collection = collection
        self.encoding = encoding

    def load(self) -> Dict[str, Any]:
        """
        Load and shape-check the whole document.

        Raises:
            InputFileError: missing file, invalid JSON or no `collection` array
        """
        if not self.file_path.is_file():
            raise InputFileError(f"File not found: {self.file_path}")

        try:
            with open(self.file_path, "r", encoding=self.encoding) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InputFileError(f"Invalid JSON in {self.file_path}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise InputFileError(f"Failed to read JSON file {self.file_path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get(self.collection), list):
            raise InputFileError(
                f"Expected an object with a '{self.collection}' array in {self.file_path}"
            )
        return data

    def extract(self) -> ExtractionResult:
        """Extract the entries of the named array."""
        self.reset()
        started_at = datetime.utcnow()
        items = self.load()[self.collection]

        result = self.get_extraction_result(list(items))
        result.started_at = started_at
        result.completed_at = datetime.utcnow()
        result.metadata["source_file"] = str(self.file_path)

        logger.info(f"Extracted {len(items)} {self.collection} from {self.file_path}")
        return result
