"""Tests for header lookup and reconciliation."""

from __future__ import annotations

import logging

import pytest

from medextract.core.exceptions import OutputHeaderCountMismatchError
from medextract.core.headers import (
    ensure_unique_header,
    find_column_index,
    reconcile_headers,
)


class TestFindColumnIndex:
    def test_case_insensitive(self):
        assert find_column_index(["Id", "Texto", "T"], "t") == 2

    def test_first_match_wins(self):
        assert find_column_index(["a", "A"], "A") == 0

    def test_missing(self):
        assert find_column_index(["Id"], "T") is None


class TestEnsureUniqueHeader:
    def test_unused_name_kept(self):
        assert ensure_unique_header(["Id", "T"], "Medication") == "Medication"

    def test_numeric_suffix(self):
        assert ensure_unique_header(["Id", "T"], "T") == "T1"

    def test_skips_taken_suffixes(self):
        assert ensure_unique_header(["T", "T1", "T2"], "T") == "T3"


class TestReconcileHeaders:
    def test_append(self):
        out, added = reconcile_headers(["Id", "T"], ["Medication"], 1, False, 1)
        assert out == ["Id", "T", "Medication"]
        assert added == ["Medication"]

    def test_overwrite_replaces_in_place(self):
        out, _ = reconcile_headers(
            ["Id", "T", "Fecha"], ["T-Searched", "Type", "Value", "Unit"], 1, True, 4,
        )
        assert out == ["Id", "T-Searched", "Type", "Value", "Unit", "Fecha"]
        assert out.index("T-Searched") == 1

    def test_overwrite_with_same_name_is_unchanged(self):
        out, added = reconcile_headers(["Id", "NewName"], ["newname"], 1, True, 1)
        assert out == ["Id", "NewName"]
        assert added == ["NewName"]

    def test_collision_renamed_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            out, added = reconcile_headers(["Id", "T", "Medication"], ["Medication"], 1, False, 1)
        assert added == ["Medication1"]
        assert out == ["Id", "T", "Medication", "Medication1"]
        assert "changed to 'Medication1'" in caplog.text

    def test_additional_names_unique_among_themselves(self):
        out, added = reconcile_headers(["Id"], ["X", "X"], None, False, 2)
        assert added == ["X", "X1"]
        assert len(set(out)) == len(out)

    def test_count_mismatch_raises(self):
        with pytest.raises(OutputHeaderCountMismatchError) as exc_info:
            reconcile_headers(["Id", "T"], ["A", "B"], 1, False, 1)
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2

    def test_no_additional_headers(self):
        out, added = reconcile_headers(["Id", "T"], [], None, False, 0)
        assert out == ["Id", "T"]
        assert added == []

    @pytest.mark.parametrize("overwrite", [True, False])
    def test_result_has_no_duplicates(self, overwrite):
        headers = ["T", "T1", "Medication", "Type"]
        additional = ["T", "Medication", "Type", "Type"]
        out, added = reconcile_headers(headers, additional, 0, overwrite, 4)
        assert len(set(out)) == len(out)
        assert len(added) == 4
