"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and provides fixtures
that build real xlsx workbooks and zip archives on disk.
"""
import os
import sys
import zipfile
from pathlib import Path

import pandas as pd
import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from config import Settings  # noqa: E402
from zip_merge_process import UploadedArchive  # noqa: E402


@pytest.fixture
def work_dir(tmp_path):
    """
    Fixture providing an empty shared working directory.

    Returns:
        Path: The working directory
    """
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def settings(work_dir):
    """
    Fixture providing settings that point at the temporary working directory.

    Returns:
        Settings: Test settings
    """
    return Settings(work_dir=work_dir)


@pytest.fixture
def make_workbook(tmp_path):
    """
    Fixture returning a factory that writes an xlsx workbook.

    The factory takes a file name and a mapping of sheet name to rows; rows are
    written as-is with no header or index added. An optional mapping of sheet
    name to (start row, start column) places a sheet's first cell away from A1.
    """
    source_dir = tmp_path / "sources"
    source_dir.mkdir(exist_ok=True)

    def _make(filename, sheets, offsets=None):
        offsets = offsets or {}
        path = source_dir / filename
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for sheet_name, rows in sheets.items():
                start_row, start_col = offsets.get(sheet_name, (0, 0))
                pd.DataFrame(rows).to_excel(
                    writer,
                    sheet_name=sheet_name,
                    header=False,
                    index=False,
                    startrow=start_row,
                    startcol=start_col
                )
        return path

    return _make


@pytest.fixture
def make_archive(work_dir):
    """
    Fixture returning a factory that writes a zip archive into the working directory.

    The factory takes the archive name and a list of (member name, source) pairs,
    where source is either a Path to copy or raw bytes.

    Returns:
        Callable returning an UploadedArchive
    """
    def _make(name, members):
        path = work_dir / f"upload-{name}"
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for member_name, source in members:
                if isinstance(source, Path):
                    archive.write(source, member_name)
                else:
                    archive.writestr(member_name, source)
        return UploadedArchive(storage_path=path, original_name=name)

    return _make


@pytest.fixture
def make_corrupt_archive(work_dir):
    """
    Fixture returning a factory that writes a file that is not a zip archive.
    """
    def _make(name):
        path = work_dir / f"upload-{name}"
        path.write_bytes(b"this is not a zip archive")
        return UploadedArchive(storage_path=path, original_name=name)

    return _make
