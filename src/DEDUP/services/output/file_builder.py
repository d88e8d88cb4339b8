"""
Result file serialization.

This module provides the OutputFileBuilder class which writes an ordered
sequence of identifiers to a downloadable CSV or Excel file (one identifier
per row, single column, no header) and reports where it can be fetched.

Module Input:
    - Ordered identifiers (new or duplicate partition)
    - Output label ("new" / "duplicate"), format and run id

Module Output:
    - File on disk under <output_dir>/<run_id>/
    - OutputFile descriptor with path and public URL
"""

import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from DEDUP.core.exceptions import OutputBuildError
from DEDUP.core.logging_config import get_logger
from DEDUP.services.extraction.upload_reader import TabularFormat
from DEDUP.services.extraction.value_extractor import Identifier

logger = get_logger(__name__)

# openpyxl hard limit per worksheet
EXCEL_MAX_ROWS = 1_048_576
EXCEL_SHEET_NAME = "Data"


@dataclass
class OutputFile:
    """Descriptor of one written result file."""
    label: str
    file_format: TabularFormat
    path: Path
    url: str
    rows: int


class OutputFileBuilder:
    """
    Writes identifier lists to result files.

    File names are stable per label (processed_file_new.csv,
    processed_file_duplicate.csv); each run gets its own directory so
    concurrent uploads never overwrite each other's results. Run directories
    older than the retention period are removed by purge_expired.

    Attributes:
        output_dir (Path): Root directory for result files
        url_prefix (str): URL prefix the root directory is served under
        retention_seconds (float): Age after which a run directory is
            purged (0 disables purging)
    """

    def __init__(
        self,
        output_dir: Path,
        url_prefix: str = "/uploads",
        retention_seconds: float = 0,
    ):
        self.output_dir = Path(output_dir)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.retention_seconds = retention_seconds

        logger.info(
            f"Initialized OutputFileBuilder: output_dir={self.output_dir}, "
            f"url_prefix={self.url_prefix}, retention={retention_seconds}s"
        )

    @staticmethod
    def file_name(label: str, file_format: TabularFormat) -> str:
        """
        Example:
            >>> OutputFileBuilder.file_name("new", TabularFormat.CSV)
            'processed_file_new.csv'
        """
        return f"processed_file_{label}{file_format.extension}"

    def build(
        self,
        identifiers: Sequence[Identifier],
        label: str,
        file_format: TabularFormat,
        run_id: str,
    ) -> OutputFile:
        """
        Serialize identifiers to a result file.

        An empty sequence still produces a valid (empty) file.

        Args:
            identifiers (Sequence[Identifier]): Values, one per output row
            label (str): "new" or "duplicate"
            file_format (TabularFormat): CSV or EXCEL (.xlsx)
            run_id (str): Per-request directory name

        Returns:
            OutputFile: Location and row count of the written file

        Raises:
            OutputBuildError: If the file cannot be serialized or written

        Side Effects:
            - Creates <output_dir>/<run_id>/ if missing
            - Overwrites an existing file with the same label in that directory
        """
        file_name = self.file_name(label, file_format)
        run_dir = self.output_dir / run_id
        path = run_dir / file_name

        if file_format is TabularFormat.EXCEL and len(identifiers) > EXCEL_MAX_ROWS:
            raise OutputBuildError(
                f"Too many rows for one Excel sheet: {len(identifiers)}",
                details={"label": label, "rows": len(identifiers), "limit": EXCEL_MAX_ROWS}
            )

        # object dtype keeps ints as ints (no "5.0") next to floats
        frame = pd.DataFrame({"value": pd.Series(list(identifiers), dtype=object)})

        try:
            run_dir.mkdir(parents=True, exist_ok=True)
            if file_format is TabularFormat.CSV:
                frame.to_csv(path, header=False, index=False)
            else:
                frame.to_excel(
                    path,
                    header=False,
                    index=False,
                    sheet_name=EXCEL_SHEET_NAME,
                    engine="openpyxl",
                )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write {label} output {path}: {e}")
            raise OutputBuildError(
                f"Failed to write {label} output file",
                details={"label": label, "path": str(path), "error": str(e)}
            )

        url = f"{self.url_prefix}/{run_id}/{file_name}"
        logger.info(f"Wrote {len(identifiers)} {label} identifiers to {path}")
        return OutputFile(
            label=label,
            file_format=file_format,
            path=path,
            url=url,
            rows=len(identifiers),
        )

    def purge_expired(self, now: Optional[float] = None) -> int:
        """
        Delete run directories last modified before the retention cutoff.

        Args:
            now (Optional[float]): Reference epoch time (default: time.time())

        Returns:
            int: Number of run directories removed

        Side Effects:
            - Removes <output_dir>/<run_id>/ trees; files outside run
              directories are left alone
        """
        if self.retention_seconds <= 0 or not self.output_dir.is_dir():
            return 0

        cutoff = (now if now is not None else time.time()) - self.retention_seconds
        removed = 0
        for run_dir in self.output_dir.iterdir():
            if not run_dir.is_dir():
                continue
            try:
                if run_dir.stat().st_mtime >= cutoff:
                    continue
                shutil.rmtree(run_dir)
                removed += 1
            except OSError as e:
                logger.warning(f"Could not purge expired output {run_dir}: {e}")

        if removed:
            logger.info(f"Purged {removed} expired result directories from {self.output_dir}")
        return removed
