import logging
from pathlib import Path
from typing import Any, List

import pandas as pd
from openpyxl.utils.exceptions import IllegalCharacterError

from utils.errors import SerializationError
from workspace import MERGED_PREFIX, remove_path, unique_name

logger = logging.getLogger(__name__)

# Hard limits of the xlsx format
MAX_CELL_LENGTH = 32767
MAX_ROWS = 1048576
MAX_COLUMNS = 16384

SHEET_NAME = "Merged Data"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

Row = List[Any]
Table = List[Row]


def sanitize_cell(value: Any, max_length: int = MAX_CELL_LENGTH) -> Any:
    """
    Truncate string cell values to the maximum cell length.

    Non-string values are returned unchanged.
    """
    if isinstance(value, str) and len(value) > max_length:
        return value[:max_length]
    return value


def sanitize_table(table: Table, max_length: int = MAX_CELL_LENGTH) -> Table:
    return [[sanitize_cell(cell, max_length) for cell in row] for row in table]


class ArtifactBuilder:
    """
    Serializes a merged table into a single-sheet xlsx document.

    Cells are sanitized here and nowhere earlier, so values that end up
    dropped as duplicate headers are never touched.
    """

    def __init__(self, work_dir: Path, max_cell_length: int = MAX_CELL_LENGTH):
        self.work_dir = Path(work_dir)
        self.max_cell_length = max_cell_length

    def build(self, table: Table) -> Path:
        """
        Write the table to a uniquely named artifact in the working directory.

        Args:
            table: Merged rows, header first. Rows may have different lengths.

        Returns:
            Path: Location of the written artifact

        Raises:
            SerializationError: If the table exceeds the xlsx row or column limit,
                or the writer rejects a cell value
        """
        self._check_limits(table)

        sanitized = sanitize_table(table, self.max_cell_length)
        artifact_path = self.work_dir / unique_name(MERGED_PREFIX, ".xlsx")
        log_context = {"artifact_path": str(artifact_path), "row_count": len(sanitized)}

        try:
            df = pd.DataFrame(sanitized)
            with pd.ExcelWriter(artifact_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name=SHEET_NAME, header=False, index=False)
        except (ValueError, IllegalCharacterError) as e:
            remove_path(artifact_path)
            logger.error("Failed to write artifact", extra={**log_context, "error": str(e)})
            raise SerializationError(f"Could not write merged spreadsheet: {e}") from e
        except Exception:
            remove_path(artifact_path)
            raise

        logger.info("Wrote merged artifact", extra=log_context)
        return artifact_path

    @staticmethod
    def _check_limits(table: Table) -> None:
        if len(table) > MAX_ROWS:
            raise SerializationError(
                f"Merged data has {len(table)} rows, the spreadsheet limit is {MAX_ROWS}"
            )
        widest = max((len(row) for row in table), default=0)
        if widest > MAX_COLUMNS:
            raise SerializationError(
                f"Merged data has {widest} columns, the spreadsheet limit is {MAX_COLUMNS}"
            )
