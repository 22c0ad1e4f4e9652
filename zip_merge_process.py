import asyncio
import logging
import os
import re
import shutil
import time
import uuid
import zipfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, List, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel

from artifact_builder import ArtifactBuilder, Row, Table
from config import Settings
from utils.errors import EmptyResult, ExtractionError, MergeError, NoFilesProvided, UnexpectedError
from utils.result import Result
from workspace import EXTRACTED_PREFIX, WorkspaceJanitor, remove_path, unique_name

# Configure logger with more structured format
logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class UploadedArchive(BaseModel):
    """
    An uploaded archive stored on disk.

    Attributes:
        storage_path: Where the upload layer stored the file
        original_name: File name supplied by the client
    """
    storage_path: Path
    original_name: str


class ExtractionWorkspace(BaseModel):
    """Scratch directory holding one archive's extracted contents."""
    directory_path: Path


def append_rows(table: Table, rows: Sequence[Row]) -> Table:
    """
    Append a sheet's (or an archive's) rows to a running table.

    The first non-empty contribution is kept whole and becomes the header;
    every later contribution loses its first row.
    """
    if not rows:
        return table
    if not table:
        table.extend(rows)
    else:
        table.extend(rows[1:])
    return table


def _is_unsafe_member(name: str) -> bool:
    # Zip Slip defenses.
    if not name or not name.strip():
        return True
    if name.startswith(("/", "\\")) or _DRIVE_PREFIX.match(name):
        return True
    return ".." in PurePosixPath(name.replace("\\", "/")).parts


def _trim_to_used_range(df: pd.DataFrame) -> pd.DataFrame:
    """Drop the blank rows and columns above and left of a sheet's first non-empty cell."""
    rows_with_data = df.notna().any(axis=1).to_numpy()
    if not rows_with_data.any():
        return df.iloc[0:0, 0:0]
    columns_with_data = df.notna().any(axis=0).to_numpy()
    return df.iloc[rows_with_data.argmax():, columns_with_data.argmax():]


class ArchiveExtractor:
    """
    Decompresses uploaded zip archives into per-archive scratch directories.
    """

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)

    def extract(self, archive: UploadedArchive) -> ExtractionWorkspace:
        """
        Extract an archive into a new, uniquely named directory.

        Members are streamed one at a time, so the archive is never held in
        memory as a whole. Members with unsafe paths are skipped.

        Args:
            archive: The uploaded archive to extract

        Returns:
            ExtractionWorkspace: The directory holding the extracted files

        Raises:
            ExtractionError: If the archive is corrupt or unreadable, or the
                directory cannot be created
        """
        directory = self.work_dir / unique_name(EXTRACTED_PREFIX)
        log_context = {"archive_name": archive.original_name, "extract_dir": str(directory)}

        try:
            directory.mkdir(parents=True)
            with zipfile.ZipFile(archive.storage_path) as zf:
                for info in zf.infolist():
                    if _is_unsafe_member(info.filename):
                        logger.warning(f"Skipping unsafe archive member {info.filename!r}", extra=log_context)
                        continue
                    target = directory.joinpath(*PurePosixPath(info.filename.replace("\\", "/")).parts)
                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as source, open(target, "wb") as destination:
                        shutil.copyfileobj(source, destination)
        except (zipfile.BadZipFile, OSError, RuntimeError, NotImplementedError, EOFError) as e:
            remove_path(directory)
            logger.error(
                f"Failed to extract archive",
                extra={**log_context, "error": str(e), "error_type": type(e).__name__}
            )
            raise ExtractionError(f"Could not extract {archive.original_name}: {e}") from e

        return ExtractionWorkspace(directory_path=directory)

    @contextmanager
    def extracted(self, archive: UploadedArchive) -> Iterator[ExtractionWorkspace]:
        """
        Extract an archive for the duration of a ``with`` block.

        On every exit path, including a failed extraction, the workspace
        directory and the source archive are removed.
        """
        workspace = None
        try:
            workspace = self.extract(archive)
            yield workspace
        finally:
            if workspace is not None:
                remove_path(workspace.directory_path)
            remove_path(archive.storage_path)


class WorkbookMerger:
    """
    Merges every sheet of every spreadsheet found in an extraction workspace.
    """

    @staticmethod
    def find_documents(workspace: ExtractionWorkspace) -> List[Path]:
        """Spreadsheet files directly inside the workspace, sorted by name. Subdirectories are not scanned."""
        with os.scandir(workspace.directory_path) as entries:
            documents = [
                Path(entry.path)
                for entry in entries
                if entry.is_file() and os.path.splitext(entry.name)[1].lower() in SPREADSHEET_EXTENSIONS
            ]
        return sorted(documents, key=lambda path: path.name)

    @staticmethod
    def read_sheets(document: Path) -> List[Tuple[str, Table]]:
        """
        Read every sheet of a document as rows of raw cell values.

        Missing cells are filled with an empty string. A document that cannot
        be opened yields no sheets.

        Args:
            document: Path to the spreadsheet file

        Returns:
            List of (sheet name, rows) pairs in the document's sheet order
        """
        try:
            logger.debug(f"Attempting to read spreadsheet", extra={"document_path": str(document)})
            frames = pd.read_excel(document, sheet_name=None, header=None, dtype=object)
        except Exception as e:
            logger.warning(
                f"Failed to read spreadsheet, skipping it",
                extra={"document_path": str(document), "error": str(e), "error_type": type(e).__name__}
            )
            return []

        sheets = []
        for sheet_name, df in frames.items():
            df = _trim_to_used_range(df)
            filled = df.astype(object).where(pd.notna(df), "")
            sheets.append((str(sheet_name), filled.values.tolist()))
        return sheets

    def merge(self, workspace: ExtractionWorkspace) -> Table:
        """
        Concatenate the rows of all sheets in the workspace.

        Only the first non-empty sheet keeps its header row.

        Args:
            workspace: The extracted archive contents

        Returns:
            Table: Merged rows; empty when no spreadsheet could be read
        """
        table: Table = []
        for document in self.find_documents(workspace):
            for sheet_name, rows in self.read_sheets(document):
                if not rows:
                    continue
                append_rows(table, rows)
                logger.debug(
                    f"Merged sheet {sheet_name!r}",
                    extra={"document_path": str(document), "row_count": len(rows)}
                )
        return table


class ArchiveProcessor:
    """Extracts one archive and merges its workbooks. The unit of concurrent work."""

    def __init__(self, extractor: ArchiveExtractor, merger: WorkbookMerger):
        self.extractor = extractor
        self.merger = merger

    def __call__(self, archive: UploadedArchive) -> Table:
        with LogContext("archive processing", archive_name=archive.original_name):
            with self.extractor.extracted(archive) as workspace:
                return self.merger.merge(workspace)


class BatchScheduler:
    """
    Processes archives concurrently in fixed-size windows.

    A window finishes completely before the next one starts. One archive
    failing never cancels its siblings, and results are combined in input
    order whatever order the tasks complete in.
    """

    def __init__(self, processor: Callable[[UploadedArchive], Table], batch_size: int = 5):
        if batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
        self.processor = processor
        self.batch_size = batch_size

    async def process_window(self, archives: Sequence[UploadedArchive]) -> List[Result[Table]]:
        """
        Process one window of archives concurrently.

        Returns:
            One outcome per archive, in input order
        """
        settled = await asyncio.gather(
            *(asyncio.to_thread(self.processor, archive) for archive in archives),
            return_exceptions=True
        )

        outcomes: List[Result[Table]] = []
        for archive, outcome in zip(archives, settled):
            if isinstance(outcome, MergeError):
                result = Result.from_error(outcome)
            elif isinstance(outcome, Exception):
                result = Result.server_error(str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result = Result.ok(outcome)
            if result.is_failure():
                logger.error(
                    f"Error processing file {archive.original_name}: {result.error}",
                    extra={"archive_name": archive.original_name, "error_code": result.code}
                )
            outcomes.append(result)
        return outcomes

    async def run_batch(self, archives: Sequence[UploadedArchive]) -> Table:
        """
        Process all archives and merge their tables.

        Returns:
            Table: Rows of every successful archive in input order, with a
                single header row; empty when nothing produced data
        """
        merged: Table = []
        for start in range(0, len(archives), self.batch_size):
            window = archives[start:start + self.batch_size]
            for outcome in await self.process_window(window):
                if outcome.is_success():
                    append_rows(merged, outcome.data)
        return merged


class MergePipeline:
    """
    Runs one merge request from uploaded archives to a written artifact.

    This class wires together:
    - the workspace janitor's pre-run sweep
    - batch extraction and merging of the archives
    - serialization of the merged table
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        work_dir = settings.ensure_work_dir()
        self.janitor = WorkspaceJanitor(work_dir)
        self.scheduler = BatchScheduler(
            ArchiveProcessor(ArchiveExtractor(work_dir), WorkbookMerger()),
            batch_size=settings.batch_size
        )
        self.builder = ArtifactBuilder(work_dir, max_cell_length=settings.max_cell_length)

    async def process_archives(self, archives: Sequence[UploadedArchive]) -> Result[Path]:
        """
        Merge the archives into one spreadsheet.

        Args:
            archives: Uploaded archives in the order the client sent them

        Returns:
            Result[Path]: The artifact path, or the request-level error
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {"request_id": request_id, "archive_count": len(archives)}

        try:
            self.janitor.sweep_stale()

            if not archives:
                raise NoFilesProvided()

            with LogContext("batch merge", **log_context):
                table = await self.scheduler.run_batch(archives)

            if not table:
                raise EmptyResult()

            with LogContext("artifact build", row_count=len(table), **log_context):
                artifact_path = await asyncio.to_thread(self.builder.build, table)

            return Result.ok(artifact_path)

        except MergeError as e:
            logger.warning(f"Merge request failed: {e.message}", extra={**log_context, "error_code": e.code})
            return Result.from_error(e)
        except Exception as e:
            logger.exception(f"Unexpected error during merge", extra={**log_context, "error": str(e)})
            return Result.from_error(UnexpectedError())
