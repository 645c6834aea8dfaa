"""
Tests for the legacy tick-based text importer.
"""

import logging

import pytest
from codesheet.config import EngineConfig
from codesheet.legacy_import import (
    LegacyImportError,
    parse_legacy_file,
    parse_legacy_string,
)
from codesheet.serialization import FormatError

LINES = [
    "Legacy export v1",
    "***Predicates***",
    "3",
    "1 5 0 trial(<ord>,<onset>,<offset>,<trialnum>,<condition>)",
    "2 3 0 ###QueryVar###(<ord>,<onset>,<offset>,<q>)",
    "3 4 0 notes(<ord>,<onset>,<offset>,<text>)",
    "4 4 0 hand-pos(<ord>,<onset>,<offset>,<x&y>,<item#>)",
    "***Variables***",
    "var 1 trial(<ord>,<onset>,<offset>,<trialnum>,<condition>)",
    "60\t120\t0\t(1,toy)",
    "180\t240\t0\t(2,<condition>)",
    "0",
    "strID 7",
    "var 3 notes(<ord>,<onset>,<offset>,<text>)",
    "0\t60\t0\t11 hello/bye!",
    "0",
    "var 4 hand-pos(<ord>,<onset>,<offset>,<x&y>,<item#>)",
    "1\t2\t0\t(, 7)",
    "0",
    "***SpreadPane***",
    "layout",
]


def _content(lines=LINES, sep="\r"):
    return sep.join(lines) + sep


def _replace(old, new):
    return [new if line == old else line for line in LINES]


class TestParseLegacyString:
    """Test parsing of legacy file content."""

    def test_columns_in_declaration_order(self):
        """Ignored declarations are skipped; names are cleaned."""
        columns = parse_legacy_string(_content())
        assert [c.name for c in columns] == ["trial", "notes", "hand_pos"]

    def test_matrix_cells(self):
        """Ticks convert to ms and placeholders become blank."""
        trial = parse_legacy_string(_content())[0]
        assert trial.code_schema == ["trialnum", "condition"]
        assert [(c.onset, c.offset) for c in trial.cells] == [(1000, 2000), (3000, 4000)]
        assert [c.get_codes() for c in trial.cells] == [["1", "toy"], ["2", ""]]

    def test_string_cells(self):
        """String cells put cleaned text into the last code."""
        notes = parse_legacy_string(_content())[1]
        assert notes.code_schema == ["text"]
        assert notes.cells[0].get_code("text") == "hello or bye"
        assert (notes.cells[0].onset, notes.cells[0].offset) == (0, 1000)

    def test_code_name_cleanup(self):
        """Brackets and symbols are removed from code names."""
        hand = parse_legacy_string(_content())[2]
        assert hand.raw_code_names == ["xandy", "itemnumber"]
        cell = hand.cells[0]
        assert (cell.onset, cell.offset) == (17, 33)
        assert cell.get_codes() == ["", "7"]

    def test_lf_and_crlf_line_endings(self):
        """Unix and DOS line endings parse the same."""
        expected = [c.name for c in parse_legacy_string(_content())]
        assert [c.name for c in parse_legacy_string(_content(sep="\n"))] == expected
        assert [c.name for c in parse_legacy_string(_content(sep="\r\n"))] == expected

    def test_ignore_columns(self):
        """Caller-ignored declarations are skipped."""
        columns = parse_legacy_string(_content(), ignore_columns=["notes", "hand-pos"])
        assert [c.name for c in columns] == ["trial"]

    def test_tick_rate_from_config(self):
        """The tick rate comes from the config."""
        trial = parse_legacy_string(_content(), config=EngineConfig(ticks_per_second=30))[0]
        assert (trial.cells[0].onset, trial.cells[0].offset) == (2000, 4000)

    def test_declared_column_without_cells(self, caplog):
        """A declaration with no cell block still gives an empty column, with a warning."""
        block = LINES.index("var 4 hand-pos(<ord>,<onset>,<offset>,<x&y>,<item#>)")
        lines = LINES[:block] + LINES[block + 3:]
        with caplog.at_level(logging.WARNING):
            columns = parse_legacy_string(_content(lines))
        hand = columns[2]
        assert hand.name == "hand_pos"
        assert hand.cells == []
        assert "hand_pos" in caplog.text
        assert "no cell data" in caplog.text


class TestMalformedInput:
    """Any malformed line aborts the import."""

    def test_missing_section(self):
        """All three section markers are required."""
        lines = [line for line in LINES if line != "***SpreadPane***"]
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_bad_declaration(self):
        """Declarations must match the expected shape."""
        lines = _replace("3 4 0 notes(<ord>,<onset>,<offset>,<text>)", "not a declaration")
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_bad_ticks(self):
        """Non-numeric times are rejected."""
        lines = _replace("60\t120\t0\t(1,toy)", "sixty\t120\t0\t(1,toy)")
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_matrix_without_values(self):
        """Matrix cells need a parenthesized value list."""
        lines = _replace("60\t120\t0\t(1,toy)", "60\t120\t0\t1,toy")
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_too_many_values(self):
        """More values than codes is an error."""
        lines = _replace("60\t120\t0\t(1,toy)", "60\t120\t0\t(1,toy,extra)")
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_unterminated_block(self):
        """A cell block must end with a 0 line."""
        lines = LINES[:9] + ["60\t120\t0\t(1,toy)", "***SpreadPane***"]
        with pytest.raises(LegacyImportError):
            parse_legacy_string(_content(lines))

    def test_is_a_format_error(self):
        """Legacy errors are format errors."""
        assert issubclass(LegacyImportError, FormatError)


class TestParseLegacyFile:
    """Test reading legacy files from disk."""

    def test_reads_cr_file(self, tmp_path):
        """CR-separated files are read as written."""
        path = tmp_path / "study.txt"
        path.write_bytes(_content().encode("latin-1"))
        columns = parse_legacy_file(path)
        assert [c.name for c in columns] == ["trial", "notes", "hand_pos"]

    def test_missing_file(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            parse_legacy_file(tmp_path / "nope.txt")
