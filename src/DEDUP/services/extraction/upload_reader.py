"""
Upload validation and spreadsheet parsing.

This module provides the UploadReader class which validates an uploaded file
(name, extension, size), classifies it as CSV or Excel, and parses its bytes
into rows of raw cell values. Workbooks are read with pandas (openpyxl for
.xlsx, xlrd for .xls); CSV text goes through the csv module so ragged rows
survive intact.

Module Input:
    - Original upload filename
    - Raw upload bytes

Module Output:
    - TabularFormat classification
    - List of rows (each a list of raw cell values)
"""

import csv
import io
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import pandas as pd

from DEDUP.core.exceptions import (
    FileParseError,
    FileTooLargeError,
    UnsupportedFileTypeError,
)
from DEDUP.core.logging_config import get_logger

logger = get_logger(__name__)


class TabularFormat(Enum):
    """
    Supported tabular formats.

    Values:
        CSV: Comma-separated text (.csv)
        EXCEL: Excel workbook (.xlsx, .xls)
    """
    CSV = "csv"
    EXCEL = "excel"

    @property
    def extension(self) -> str:
        """Extension used when writing output files in this format."""
        return ".csv" if self is TabularFormat.CSV else ".xlsx"


# Extension to TabularFormat mapping
EXTENSION_TO_FORMAT: Dict[str, TabularFormat] = {
    ".csv": TabularFormat.CSV,
    ".xlsx": TabularFormat.EXCEL,
    ".xls": TabularFormat.EXCEL,
}

# pandas engine per Excel extension
EXCEL_ENGINES: Dict[str, str] = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}


class UploadReader:
    """
    Validates uploads and converts them into raw rows.

    Only the first worksheet of a workbook is read. CSV cells are kept as
    strings so numeric interpretation happens in one place (the value
    extractor), whatever the source format.

    Attributes:
        allowed_extensions (Set[str]): Lowercase extensions accepted
        max_file_size_bytes (int): Largest accepted upload
        encoding (str): Text encoding used for CSV uploads

    Thread Safety:
        Stateless after construction; safe to share.
    """

    def __init__(
        self,
        allowed_extensions: Optional[Set[str]] = None,
        max_file_size_mb: int = 50,
        encoding: str = "utf-8",
    ):
        """
        Initialize reader with validation rules.

        Args:
            allowed_extensions (Optional[Set[str]]): Accepted extensions
                (default: every extension in EXTENSION_TO_FORMAT)
            max_file_size_mb (int): Maximum upload size in MB (default: 50)
            encoding (str): CSV text encoding (default: "utf-8")
        """
        self.allowed_extensions = (
            {ext.lower() for ext in allowed_extensions}
            if allowed_extensions else set(EXTENSION_TO_FORMAT)
        )
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        self.encoding = encoding

        logger.info(
            f"Initialized UploadReader: "
            f"allowed_extensions={sorted(self.allowed_extensions)}, "
            f"max_size={max_file_size_mb}MB"
        )

    def detect_format(self, filename: str) -> TabularFormat:
        """
        Classify an upload by its extension.

        Args:
            filename (str): Original filename supplied by the client

        Returns:
            TabularFormat: CSV or EXCEL

        Raises:
            UnsupportedFileTypeError: If the extension is missing or not allowed

        Example:
            >>> UploadReader().detect_format("ids.XLSX")
            <TabularFormat.EXCEL: 'excel'>
        """
        extension = Path(filename or "").suffix.lower()
        if extension not in self.allowed_extensions or extension not in EXTENSION_TO_FORMAT:
            raise UnsupportedFileTypeError(
                f"Unsupported file type: {extension or '<none>'}",
                details={
                    "filename": filename,
                    "allowed_extensions": sorted(self.allowed_extensions),
                }
            )
        return EXTENSION_TO_FORMAT[extension]

    def validate_size(self, filename: str, size: int) -> None:
        """
        Reject uploads over the configured size limit.

        Raises:
            FileTooLargeError: If size exceeds max_file_size_bytes
        """
        if size > self.max_file_size_bytes:
            raise FileTooLargeError(
                f"File too large: {filename} ({size} bytes)",
                details={
                    "filename": filename,
                    "size_bytes": size,
                    "max_size_bytes": self.max_file_size_bytes,
                }
            )

    def read_rows(self, filename: str, content: bytes) -> List[List[Any]]:
        """
        Parse an upload into rows of raw cell values.

        Args:
            filename (str): Original filename (drives format detection)
            content (bytes): Raw upload bytes

        Returns:
            List[List[Any]]: Rows in file order. Empty for an empty file.

        Raises:
            UnsupportedFileTypeError: If the extension is not accepted
            FileTooLargeError: If the upload is over the size limit
            FileParseError: If the bytes cannot be parsed in the detected format
        """
        file_format = self.detect_format(filename)
        self.validate_size(filename, len(content))

        if not content:
            logger.warning(f"Empty upload: {filename}")
            return []

        extension = Path(filename).suffix.lower()

        if file_format is TabularFormat.CSV:
            rows = self._read_csv_rows(filename, content)
        else:
            rows = self._read_excel_rows(filename, content, extension)

        logger.info(f"Parsed {filename}: {len(rows)} rows ({file_format.value})")
        return rows

    def _read_csv_rows(self, filename: str, content: bytes) -> List[List[Any]]:
        # Rows may be ragged; pandas would reject a row wider than the first one
        text = content.decode(self.encoding, errors="replace")
        if "\x00" in text:
            raise FileParseError(
                f"Failed to parse csv upload: {filename}",
                details={"filename": filename, "error": "binary content"}
            )
        try:
            return [row for row in csv.reader(io.StringIO(text, newline="")) if row]
        except csv.Error as e:
            raise FileParseError(
                f"Failed to parse csv upload: {filename}",
                details={"filename": filename, "error": str(e)}
            )

    def _read_excel_rows(
        self, filename: str, content: bytes, extension: str
    ) -> List[List[Any]]:
        try:
            frame = pd.read_excel(
                io.BytesIO(content),
                sheet_name=0,
                header=None,
                engine=EXCEL_ENGINES.get(extension),
            )
        except (ValueError, ImportError, OSError) as e:
            raise FileParseError(
                f"Failed to parse excel upload: {filename}",
                details={"filename": filename, "error": str(e)}
            )
        except Exception as e:
            # openpyxl/xlrd raise their own types for corrupt workbooks
            raise FileParseError(
                f"Failed to parse excel upload: {filename}",
                details={"filename": filename, "error": str(e), "type": type(e).__name__}
            )
        return frame.values.tolist()
