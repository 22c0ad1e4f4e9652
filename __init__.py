"""
Zip Excel Merger Application

This package provides an API that merges the spreadsheets found inside
uploaded zip archives into a single workbook. Every sheet of every workbook
is concatenated in upload order with a single header row, long text cells
are truncated to the xlsx cell limit, and the result is returned as a
download.

Key modules:
- main.py: FastAPI application with API endpoints
- zip_merge_process.py: Archive extraction, workbook merging and batch scheduling
- artifact_builder.py: Cell sanitization and xlsx serialization
- workspace.py: Unique naming and cleanup of the shared working directory
- config.py: Environment driven settings
- utils/result.py: Result pattern implementation for error handling
- utils/errors.py: Error kinds reported to callers
"""
