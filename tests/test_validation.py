"""
Tests for code-value validation.
"""

import re

import pytest
from codesheet.examples import build_example_project
from codesheet.model import Column, NoSuchCodeError
from codesheet.validation import check_valid_codes, check_valid_codes_map


def _reach():
    col = Column(name="reach", code_schema=["hand", "grasp", "count"])
    col.add_cell(0, 100, hand="l", grasp="y", count="3")
    col.add_cell(200, 300, hand="x", grasp="maybe", count="many")
    return col


class TestValidators:
    """Test each validator kind."""

    def test_value_list(self):
        """One bad value gives exactly one error row."""
        col = Column(name="reach", code_schema=["hand"])
        col.add_cell(0, 100, hand="x")
        report = check_valid_codes(col, {"hand": ["l", "r"]})
        assert report.error_count == 1
        assert report.rows() == [["reach", "1", "hand", "x"]]

    def test_values_compared_as_strings(self):
        """Non-string accepted values are compared by their string form."""
        col = Column(name="c", code_schema=["n"])
        col.add_cell(0, 1, n="1")
        assert check_valid_codes(col, {"n": [1, 2]}).ok

    def test_pattern(self):
        """Compiled patterns use search semantics."""
        report = check_valid_codes(_reach(), {"count": re.compile(r"\A\d+\Z")})
        assert [e.value for e in report.errors] == ["many"]

    def test_predicate(self):
        """Callables decide validity."""
        report = check_valid_codes(_reach(), {"grasp": lambda v: v in ("y", "n")})
        assert [(e.ordinal, e.value) for e in report.errors] == [(2, "maybe")]

    def test_mixed_kinds(self):
        """Every invalid value is reported across validator kinds."""
        report = check_valid_codes(_reach(), {
            "hand": ["l", "r", "b"],
            "grasp": lambda v: v in ("y", "n"),
            "count": re.compile(r"^\d+$"),
        })
        assert report.error_count == 3
        assert {e.code for e in report.errors} == {"hand", "grasp", "count"}

    def test_plain_string_rejected(self):
        """A bare string is not a validator."""
        with pytest.raises(TypeError):
            check_valid_codes(_reach(), {"hand": "lr"})

    def test_unknown_validator_type(self):
        """Objects that are neither iterable nor callable are rejected."""
        with pytest.raises(TypeError):
            check_valid_codes(_reach(), {"hand": 42})


class TestCheckValidCodes:
    """Test column handling and reporting."""

    def test_no_mutation(self):
        """Validation leaves the data unchanged."""
        col = _reach()
        before = [c.as_row() for c in col.cells]
        check_valid_codes(col, {"hand": ["l"]})
        assert [c.as_row() for c in col.cells] == before

    def test_unknown_code(self):
        """An unknown code is an input error."""
        with pytest.raises(NoSuchCodeError):
            check_valid_codes(_reach(), {"speed": ["fast"]})

    def test_sanitized_code_names(self):
        """Code names are sanitized before lookup."""
        col = Column(name="c", code_schema=["Hand Used"])
        col.add_cell(0, 1, hand_used="q")
        assert check_valid_codes(col, {"Hand Used": ["l"]}).error_count == 1

    def test_map_by_name(self):
        """Several columns are checked in one pass through a project."""
        project, _ = build_example_project()
        report = check_valid_codes_map({
            "trial": {"condition": ["toy", "food"]},
            "reach": {"hand": ["l", "r"]},
        }, project=project)
        assert report.rows() == [["reach", "3", "hand", "b"]]

    def test_format_and_write(self, tmp_path):
        """The report is tab-delimited with a header."""
        col = Column(name="reach", code_schema=["hand"])
        col.add_cell(0, 100, hand="x")
        report = check_valid_codes(col, {"hand": ["l", "r"]})
        assert report.format() == "COLUMN\tCELL_ORDINAL\tCODE\tVALUE\nreach\t1\thand\tx\n"
        out = tmp_path / "errors.txt"
        report.write(out)
        assert out.read_text() == report.format()
