"""Unit tests for sipin_status.extract."""

import pytest

from sipin_status.extract import (
    base_pid,
    filename_from_path,
    lookup,
    lookup_int,
    lookup_str,
    require_str,
)
from sipin_status.shared import FieldExtractionError


# ---------------------------------------------------------------------------
# base_pid
# ---------------------------------------------------------------------------

class TestBasePid:
    def test_strips_collateral_suffix(self):
        assert base_pid("a1b2c3d4e5_str") == "a1b2c3d4e5"

    def test_splits_on_first_underscore_only(self):
        assert base_pid("a1b2c3_d4_e5") == "a1b2c3"

    def test_without_underscore_unchanged(self):
        assert base_pid("plainid") == "plainid"

    def test_hyphen_is_not_a_separator(self):
        assert base_pid("has-hyphen-str") == "has-hyphen-str"

    def test_leading_underscore_gives_empty(self):
        assert base_pid("_srt") == ""


# ---------------------------------------------------------------------------
# filename_from_path
# ---------------------------------------------------------------------------

class TestFilenameFromPath:
    def test_absolute_path(self):
        assert filename_from_path("/home/u/files/dir/filename-123.bag.zip") == "filename-123.bag.zip"

    def test_bare_filename(self):
        assert filename_from_path("bag.zip") == "bag.zip"

    def test_relative_path(self):
        assert filename_from_path("dir/sub/bag.zip") == "bag.zip"

    @pytest.mark.parametrize("path", [None, "", "   ", "/", "dir/", "..", 42])
    def test_no_filename_raises_typed_error(self, path):
        with pytest.raises(FieldExtractionError) as exc_info:
            filename_from_path(path)
        assert exc_info.value.field_name == "path"


# ---------------------------------------------------------------------------
# lookup
# ---------------------------------------------------------------------------

class TestLookup:
    DATA = {"a": {"b": [{"c": "deep"}, {"c": 7}]}, "n": None}

    def test_nested_dict_and_list(self):
        assert lookup(self.DATA, ("a", "b", 0, "c")) == "deep"

    def test_missing_key(self):
        assert lookup(self.DATA, ("a", "x")) is None

    def test_index_out_of_range(self):
        assert lookup(self.DATA, ("a", "b", 5, "c")) is None

    def test_index_into_dict(self):
        assert lookup(self.DATA, ("a", 0)) is None

    def test_key_into_list(self):
        assert lookup(self.DATA, ("a", "b", "c")) is None

    def test_none_payload(self):
        assert lookup(None, ("a",)) is None

    def test_empty_path_returns_data(self):
        assert lookup(self.DATA, ()) is self.DATA

    def test_lookup_str_wrong_type(self):
        assert lookup_str(self.DATA, ("a", "b", 1, "c")) is None

    def test_lookup_int(self):
        assert lookup_int(self.DATA, ("a", "b", 1, "c")) == 7

    def test_lookup_int_rejects_bool_and_float(self):
        assert lookup_int({"x": True}, ("x",)) is None
        assert lookup_int({"x": 1.5}, ("x",)) is None

    def test_lookup_int_rejects_numeric_string(self):
        assert lookup_int({"x": "12"}, ("x",)) is None


class TestRequireStr:
    def test_present(self):
        assert require_str({"pid": "abc"}, ("pid",)) == "abc"

    def test_missing_names_field(self):
        with pytest.raises(FieldExtractionError, match="pid"):
            require_str({}, ("pid",))

    def test_null_value(self):
        with pytest.raises(FieldExtractionError):
            require_str({"pid": None}, ("pid",))
