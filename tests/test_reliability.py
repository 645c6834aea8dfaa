"""
Tests for inter-rater reliability.

These tests verify:
    - Contingency table arithmetic and kappa
    - Onset matching and degenerate codes in compute_kappa
    - Match-code cross-checks with time tolerance
    - Continuous disagreement regions
    - Reliability column construction
"""

import logging
import math

import pytest
from codesheet.examples import build_example_project
from codesheet.model import Column
from codesheet.reliability import (
    ContingencyTable,
    check_reliability,
    check_reliability_continuous,
    compute_kappa,
    make_reliability,
)


class TestContingencyTable:
    """Test ContingencyTable."""

    def test_needs_two_values(self):
        """Fewer than two values is an error."""
        with pytest.raises(ValueError):
            ContingencyTable(["a"])

    def test_unknown_value(self):
        """Adding an unobserved value is an error."""
        table = ContingencyTable(["a", "b"])
        with pytest.raises(ValueError):
            table.add("a", "c")

    def test_known_kappa(self):
        """20/5/10/15 table gives kappa 0.4."""
        table = ContingencyTable(["y", "n"])
        for pri, rel, count in [("y", "y", 20), ("y", "n", 5), ("n", "y", 10), ("n", "n", 15)]:
            for _ in range(count):
                table.add(pri, rel)
        assert table.total == 50
        assert table.observed_agreement == pytest.approx(0.7)
        assert table.expected_agreement == pytest.approx(0.5)
        assert table.expected_frequency(0) == pytest.approx(15.0)
        assert table.kappa == pytest.approx(0.4)

    def test_kappa_bounds(self):
        """Complete disagreement gives -1."""
        table = ContingencyTable(["a", "b"])
        table.add("a", "b")
        table.add("b", "a")
        assert table.kappa == pytest.approx(-1.0)
        assert -1.0 <= table.kappa <= 1.0

    def test_empty_table(self):
        """An empty table has no kappa."""
        assert math.isnan(ContingencyTable(["a", "b"]).kappa)

    def test_expected_frequency_bounds(self):
        """Out-of-range indexes are rejected."""
        with pytest.raises(IndexError):
            ContingencyTable(["a", "b"]).expected_frequency(2)

    def test_format(self):
        """Should render a labelled tab-delimited table."""
        table = ContingencyTable(["a", "b"])
        table.add("a", "a")
        assert str(table) == "\ta\tb\na\t1\t0\nb\t0\t0\n"


class TestComputeKappa:
    """Test compute_kappa."""

    def _columns(self, rel_values):
        pri = Column(name="pri", code_schema=["v"])
        rel = Column(name="rel", code_schema=["v"])
        for onset, value in zip([0, 1000], ["a", "b"]):
            pri.add_cell(onset, onset + 500, v=value)
        for onset, value in zip([0, 1000], rel_values):
            rel.add_cell(onset, onset + 500, v=value)
        return pri, rel

    def test_perfect_agreement(self):
        """Matching values at matching onsets give kappa 1."""
        pri, rel = self._columns(["a", "b"])
        kappas, tables = compute_kappa(pri, rel, ["v"])
        assert kappas == {"v": pytest.approx(1.0)}
        assert set(tables) == set(kappas)
        assert tables["v"].total == 2

    def test_matching_is_by_onset_only(self):
        """Reliability cells without an onset match are left out."""
        pri, rel = self._columns(["a", "b"])
        rel.cells[1].onset = 1001
        _, tables = compute_kappa(pri, rel, ["v"])
        assert tables["v"].total == 1

    def test_degenerate_code_skipped(self, caplog):
        """Codes with a single observed value are skipped with a warning."""
        pri = Column(name="pri", code_schema=["v", "const"])
        rel = Column(name="rel", code_schema=["v", "const"])
        for onset, value in [(0, "a"), (1000, "b")]:
            pri.add_cell(onset, onset + 1, v=value, const="x")
            rel.add_cell(onset, onset + 1, v=value, const="x")
        with caplog.at_level(logging.WARNING):
            kappas, tables = compute_kappa(pri, rel)
        assert "const" not in kappas
        assert "const" not in tables
        assert "v" in kappas
        assert "const" in caplog.text

    def test_names_through_project(self):
        """Columns can be named when a project is given."""
        project, _ = build_example_project()
        kappas, _ = compute_kappa("trial", "trial_rel", ["condition"], project=project)
        assert "condition" in kappas


class TestCheckReliability:
    """Test check_reliability."""

    def test_example_project(self):
        """One condition disagreement out of two reliability cells is 50%."""
        project, _ = build_example_project()
        report = check_reliability("trial", "trial_rel", "trialnum", project=project)
        assert report.reliability_cell_count == 2
        assert report.errors["condition"] == 1
        assert report.errors["trialnum"] == 0
        assert report.errors["onset"] == 0
        assert report.errors["offset"] == 0
        assert report.agreement("condition") == pytest.approx(50.0)
        assert report.agreement("trialnum") == pytest.approx(100.0)
        row = report.disagreements[0]
        assert (row.ordinal, row.reliability_ordinal, row.code) == (4, 2, "condition")
        assert (row.primary_value, row.reliability_value) == ("food", "toy")

    def test_time_tolerance_boundary(self):
        """A difference equal to the tolerance counts as an error."""
        pri = Column(name="pri", code_schema=["trial"])
        rel = Column(name="rel", code_schema=["trial"])
        pri.add_cell(0, 1000, trial="1")
        rel.add_cell(100, 1000, trial="1")
        assert check_reliability(pri, rel, "trial", time_tolerance=100).errors["onset"] == 1
        assert check_reliability(pri, rel, "trial", time_tolerance=101).errors["onset"] == 0

    def test_no_reliability_cells(self):
        """Agreement is undefined without reliability cells."""
        pri = Column(name="pri", code_schema=["trial"])
        pri.add_cell(0, 1000, trial="1")
        rel = Column(name="rel", code_schema=["trial"])
        report = check_reliability(pri, rel, "trial")
        assert math.isnan(report.agreement("trial"))

    def test_write_appends(self, tmp_path):
        """The report text is appended to the file."""
        project, _ = build_example_project()
        report = check_reliability("trial", "trial_rel", "trialnum", project=project)
        out = tmp_path / "rel.txt"
        report.write(out)
        report.write(out)
        text = out.read_text()
        assert text.count("Total errors for condition: 1, Agreement:50.00%") == 2
        assert "ERROR in trial at Ordinal 4, rel ordinal 2 in argument condition: food, toy" in text


class TestCheckReliabilityContinuous:
    """Test check_reliability_continuous."""

    def _coders(self):
        p = Column(name="P", code_schema=["v"])
        r = Column(name="R", code_schema=["v"])
        p.add_cell(0, 1000, v="a")
        r.add_cell(0, 1000, v="a")
        # Missed entirely by R
        p.add_cell(2000, 2500, v="b")
        # Code disagreement
        p.add_cell(3000, 4000, v="a")
        r.add_cell(3000, 4000, v="b")
        # Short single-coder tail
        p.add_cell(5000, 5050, v="a")
        r.add_cell(5000, 5100, v="a")
        return p, r

    def test_disagreement_regions(self):
        """Keeps missed cells and code differences; drops agreement and short tails."""
        p, r = self._coders()
        result = check_reliability_continuous(p, r, ["v"])
        assert result.name == "disagreements"
        assert [(c.onset, c.offset) for c in result.cells] == [(2000, 2500), (3000, 4000)]
        assert [c.ordinal for c in result.cells] == [1, 2]

    def test_long_single_coder_slice(self):
        """A single-coder slice at or over the threshold is kept."""
        p, r = self._coders()
        result = check_reliability_continuous(p, r, ["v"], time_threshold=50)
        assert (5050, 5100) in [(c.onset, c.offset) for c in result.cells]

    def test_block_column(self):
        """Only slices inside a block cell are kept."""
        p, r = self._coders()
        blocks = Column(name="block")
        blocks.add_cell(0, 2600)
        result = check_reliability_continuous(p, r, ["v"], block_column=blocks, name="dis")
        assert result.name == "dis"
        assert [(c.onset, c.offset) for c in result.cells] == [(2000, 2500)]

    def test_inputs_untouched(self):
        """The coders' columns are not modified."""
        p, r = self._coders()
        check_reliability_continuous(p, r, ["v"])
        assert len(p.cells) == 4
        assert len(r.cells) == 3


class TestMakeReliability:
    """Test make_reliability."""

    def test_every_second_cell(self):
        """Keeps ordinals divisible by n and blanks everything not kept."""
        project, _ = build_example_project()
        rel = make_reliability("rel_trial", "trial", 2, ["onset", "trialnum"], project=project)
        assert rel.name == "rel_trial"
        assert [c.ordinal for c in rel.cells] == [1, 2]
        assert [c.onset for c in rel.cells] == [10000, 30000]
        assert [c.offset for c in rel.cells] == [0, 0]
        assert [c.get_code("trialnum") for c in rel.cells] == ["2", "4"]
        assert [c.get_code("condition") for c in rel.cells] == ["", ""]

    def test_zero_keeps_nothing(self):
        """A multiple of 0 keeps no cells."""
        project, _ = build_example_project()
        rel = make_reliability("rel", "trial", 0, project=project)
        assert rel.cells == []
        assert rel.code_schema == ["trialnum", "condition"]

    def test_negative_multiple(self):
        """A negative multiple is an error."""
        with pytest.raises(ValueError):
            make_reliability("rel", Column(name="c"), -1)
