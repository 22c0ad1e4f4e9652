from unittest.mock import patch

import pandas as pd
import pytest

import artifact_builder
from artifact_builder import (
    MAX_CELL_LENGTH,
    SHEET_NAME,
    ArtifactBuilder,
    sanitize_cell,
    sanitize_table,
)
from utils.errors import SerializationError


class TestSanitizeCell:
    """
    Tests for the cell length limit.
    """

    @pytest.mark.parametrize(
        "length",
        [MAX_CELL_LENGTH + 1, MAX_CELL_LENGTH + 500, 100000],
        ids=["one-over", "well-over", "far-over"]
    )
    def test_long_strings_are_truncated_to_prefix(self, length):
        value = "".join(chr(ord("a") + i % 26) for i in range(length))

        result = sanitize_cell(value)

        assert len(result) == MAX_CELL_LENGTH
        assert value.startswith(result)

    @pytest.mark.parametrize(
        "value",
        ["", "short", "x" * MAX_CELL_LENGTH, 42, 3.5, True, False, None],
        ids=["empty-string", "short", "exact-limit", "int", "float", "true", "false", "none"]
    )
    def test_other_values_pass_through(self, value):
        assert sanitize_cell(value) is value

    @pytest.mark.parametrize(
        "value",
        ["y" * (MAX_CELL_LENGTH + 10), "ok", 7, ""],
        ids=["long", "short", "number", "empty"]
    )
    def test_is_idempotent(self, value):
        once = sanitize_cell(value)
        assert sanitize_cell(once) == once

    def test_custom_limit(self):
        assert sanitize_cell("abcdef", max_length=3) == "abc"

    def test_sanitize_table_applies_to_every_cell(self):
        table = [["abcdef", 1], ["xy", "123456", True]]

        assert sanitize_table(table, max_length=4) == [["abcd", 1], ["xy", "1234", True]]


class TestArtifactBuilder:
    """
    Tests for ArtifactBuilder.build.
    """

    def test_writes_single_sheet_in_order(self, work_dir):
        table = [["name", "qty"], ["apple", 1], ["pear", 2]]

        path = ArtifactBuilder(work_dir).build(table)

        sheets = pd.read_excel(path, sheet_name=None, header=None, dtype=object)
        assert list(sheets) == [SHEET_NAME]
        assert sheets[SHEET_NAME].values.tolist() == table

    def test_artifact_name_is_unique(self, work_dir):
        builder = ArtifactBuilder(work_dir)

        first = builder.build([["h"], ["x"]])
        second = builder.build([["h"], ["x"]])

        assert first != second
        assert first.name.startswith("merged-") and first.suffix == ".xlsx"

    def test_long_strings_truncated_in_output(self, work_dir):
        table = [["text"], ["z" * (MAX_CELL_LENGTH + 100)]]

        path = ArtifactBuilder(work_dir).build(table)

        df = pd.read_excel(path, header=None, dtype=object)
        assert len(df.iloc[1, 0]) == MAX_CELL_LENGTH

    def test_jagged_rows_are_padded(self, work_dir):
        table = [["a", "b", "c"], ["d"]]

        path = ArtifactBuilder(work_dir).build(table)

        df = pd.read_excel(path, header=None, dtype=object)
        assert df.iloc[1, 0] == "d"
        assert pd.isna(df.iloc[1, 1]) and pd.isna(df.iloc[1, 2])

    def test_too_many_rows_raises(self, work_dir):
        with patch.object(artifact_builder, 'MAX_ROWS', 2):
            with pytest.raises(SerializationError) as exc_info:
                ArtifactBuilder(work_dir).build([["h"], ["a"], ["b"]])

        assert "rows" in exc_info.value.message
        assert list(work_dir.iterdir()) == []

    def test_too_many_columns_raises(self, work_dir):
        with patch.object(artifact_builder, 'MAX_COLUMNS', 2):
            with pytest.raises(SerializationError) as exc_info:
                ArtifactBuilder(work_dir).build([["a", "b"], ["c", "d", "e"]])

        assert "columns" in exc_info.value.message
        assert list(work_dir.iterdir()) == []

    def test_writer_value_error_becomes_serialization_error(self, work_dir):
        with patch('pandas.DataFrame.to_excel', side_effect=ValueError("bad cell")), \
             patch.object(artifact_builder.logger, 'error'):
            with pytest.raises(SerializationError) as exc_info:
                ArtifactBuilder(work_dir).build([["h"], ["x"]])

        assert "bad cell" in exc_info.value.message
        assert [p for p in work_dir.iterdir() if p.name.startswith("merged-")] == []
