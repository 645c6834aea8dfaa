"""
Inter-rater reliability for coded columns.

Compares a primary coder's column with a reliability coder's column:
    - compute_kappa: Cohen's kappa per code over onset-matched cells
    - check_reliability: pairwise check keyed by a match code, with time slack
    - check_reliability_continuous: disagreement regions for continuous coding
    - make_reliability: blank reliability column built from a primary column

IMPORTANT: Nothing here modifies the input columns. Data problems are
accumulated into the returned reports; only malformed input (unknown codes,
bad intervals) raises.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from codesheet.algebra import merge_columns
from codesheet.config import DEFAULT_CONFIG, EngineConfig
from codesheet.model import Cell, Column, sanitize_code_name
from codesheet.project import ColumnRef, ColumnSet, resolve_column

logger = logging.getLogger(__name__)


# =========================================================================
# Cohen's kappa
# =========================================================================

class ContingencyTable:
    """
    Agreement table for one code.

    Rows are the primary coder's values, columns the reliability coder's,
    both indexed by position in `codes`.

    Properties:
        codes: Distinct observed values; indices key the table
        table: Square integer matrix of (primary, reliability) counts
    """

    def __init__(self, values: Sequence[str]):
        values = list(values)
        if len(values) < 2:
            raise ValueError(f"ContingencyTable must have at least 2 valid values. Got: {values}")
        self.codes: List[str] = values
        self.table = np.zeros((len(values), len(values)), dtype=np.int64)

    def add(self, pri_value: str, rel_value: str) -> None:
        """Count one (primary, reliability) pair."""
        if pri_value not in self.codes:
            raise ValueError(f"Invalid primary value: {pri_value}")
        if rel_value not in self.codes:
            raise ValueError(f"Invalid reliability value: {rel_value}")
        self.table[self.codes.index(pri_value), self.codes.index(rel_value)] += 1

    @property
    def total(self) -> int:
        return int(self.table.sum())

    def expected_frequency(self, idx: int) -> float:
        """Chance agreement count for one category: row_total * column_total / total."""
        if idx >= len(self.codes):
            raise IndexError(f"Index out of bounds: requested {idx}, have {len(self.codes)}.")
        total = self.total
        if total == 0:
            return 0.0
        return float(self.table[idx, :].sum() * self.table[:, idx].sum()) / total

    @property
    def observed_agreement(self) -> float:
        total = self.total
        return float(np.trace(self.table)) / total if total else math.nan

    @property
    def expected_agreement(self) -> float:
        total = self.total
        if total == 0:
            return math.nan
        rows = self.table.sum(axis=1).astype(float)
        cols = self.table.sum(axis=0).astype(float)
        return float(np.dot(rows, cols)) / (total * total)

    @property
    def kappa(self) -> float:
        """
        Cohen's kappa: (p_o - p_e) / (1 - p_e).

        NaN for an empty table. When chance agreement is 1 every pair sits on
        the same diagonal cell, which is reported as perfect agreement (1.0).
        """
        if self.total == 0:
            return math.nan
        p_o = self.observed_agreement
        p_e = self.expected_agreement
        if p_e >= 1.0:
            return 1.0
        return (p_o - p_e) / (1.0 - p_e)

    def format(self) -> str:
        """Tab-delimited table with value labels."""
        lines = ["\t" + "\t".join(self.codes)]
        for i, code in enumerate(self.codes):
            lines.append(code + "\t" + "\t".join(str(int(n)) for n in self.table[i]))
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"ContingencyTable(codes={self.codes!r}, total={self.total})"


def _observed_values(cells: Iterable[Cell], code: str) -> List[str]:
    values: List[str] = []
    for cell in cells:
        value = cell.get_code(code)
        if value not in values:
            values.append(value)
    return values


def compute_kappa(
    primary: ColumnRef,
    reliability: ColumnRef,
    codes: Optional[Sequence[str]] = None,
    project: Optional[ColumnSet] = None,
) -> Tuple[Dict[str, float], Dict[str, ContingencyTable]]:
    """
    Compute Cohen's kappa for each code between two coders.

    Reliability cells are paired with the primary cell that has exactly the
    same onset. Codes with fewer than two distinct observed values (pooled
    over both columns) are skipped with a warning.

    Args:
        primary: Primary coder's column (or name resolved through `project`)
        reliability: Reliability coder's column
        codes: Codes to score; defaults to all of the primary column's codes

    Returns:
        (kappas, tables): code name -> kappa, code name -> ContingencyTable,
        with identical key sets

    Raises:
        ValueError: If there are no codes to score
        NoSuchCodeError: If a code is missing from either column
    """
    pri_col = resolve_column(primary, project)
    rel_col = resolve_column(reliability, project)

    codes = [sanitize_code_name(c) for c in (codes or pri_col.code_schema)]
    if not codes:
        raise ValueError("No codes to compute kappa for")

    all_cells = pri_col.cells + rel_col.cells
    tables: Dict[str, ContingencyTable] = {}
    for code in codes:
        values = _observed_values(all_cells, code)
        if len(values) < 2:
            logger.warning(
                f"Cannot compute score for {code} (less than 2 values observed): {','.join(values)}"
            )
            continue
        tables[code] = ContingencyTable(values)

    by_onset: Dict[int, Cell] = {}
    for cell in pri_col.cells:
        by_onset.setdefault(cell.onset, cell)

    unmatched = 0
    for rel_cell in rel_col.cells:
        pri_cell = by_onset.get(rel_cell.onset)
        if pri_cell is None:
            unmatched += 1
            continue
        for code, table in tables.items():
            table.add(pri_cell.get_code(code), rel_cell.get_code(code))

    if unmatched:
        logger.warning(
            f"{unmatched} cell(s) in {rel_col.name} have no onset match in {pri_col.name}"
        )

    kappas = {code: table.kappa for code, table in tables.items()}
    return kappas, tables


# =========================================================================
# Match-code reliability check
# =========================================================================

@dataclass
class Disagreement:
    """One code on which a matched primary/reliability cell pair differs."""
    column: str
    ordinal: int
    reliability_ordinal: int
    code: str
    primary_value: str
    reliability_value: str

    def format(self) -> str:
        return (
            f"ERROR in {self.column} at Ordinal {self.ordinal}, rel ordinal "
            f"{self.reliability_ordinal} in argument {self.code}: "
            f"{self.primary_value}, {self.reliability_value}"
        )


@dataclass
class ReliabilityReport:
    """Per-code error counts and agreement from check_reliability."""

    primary_name: str
    reliability_name: str
    reliability_cell_count: int = 0
    errors: Dict[str, int] = field(default_factory=dict)
    disagreements: List[Disagreement] = field(default_factory=list)

    def agreement(self, code: str) -> float:
        """Percentage agreement: 100 * (1 - errors / reliability cells)."""
        if self.reliability_cell_count == 0:
            return math.nan
        return 100.0 * (1.0 - self.errors[code] / float(self.reliability_cell_count))

    @property
    def agreements(self) -> Dict[str, float]:
        return {code: self.agreement(code) for code in self.errors}

    def format(self) -> str:
        lines = [d.format() for d in self.disagreements]
        for code, count in self.errors.items():
            lines.append(f"Total errors for {code}: {count}, Agreement:{self.agreement(code):.2f}%")
        return "\n".join(lines) + "\n"

    def write(self, path) -> None:
        """Append the formatted report to a text file."""
        with open(Path(path).expanduser(), "a", encoding="utf-8") as fh:
            fh.write(self.format())


def check_reliability(
    primary: ColumnRef,
    reliability: ColumnRef,
    match_code: str,
    time_tolerance: Optional[int] = None,
    project: Optional[ColumnSet] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ReliabilityReport:
    """
    Cross-check every primary cell against every reliability cell sharing
    the same value of `match_code` (e.g. a trial number).

    For each such pair, onset and offset count as errors when they differ
    by `time_tolerance` ms or more, and every code of the primary column
    counts as an error when the values differ.

    Returns:
        ReliabilityReport with errors for every code plus "onset"/"offset"
    """
    pri_col = resolve_column(primary, project)
    rel_col = resolve_column(reliability, project)
    match_code = sanitize_code_name(match_code)
    if time_tolerance is None:
        time_tolerance = config.reliability_time_tolerance_ms

    report = ReliabilityReport(
        primary_name=pri_col.name,
        reliability_name=rel_col.name,
        reliability_cell_count=len(rel_col.cells),
    )
    for code in pri_col.code_schema:
        report.errors[code] = 0
    report.errors["onset"] = 0
    report.errors["offset"] = 0

    def record(m_cell: Cell, r_cell: Cell, code: str) -> None:
        report.errors[code] += 1
        report.disagreements.append(Disagreement(
            column=pri_col.name,
            ordinal=m_cell.ordinal,
            reliability_ordinal=r_cell.ordinal,
            code=code,
            primary_value=str(m_cell.get_code(code)),
            reliability_value=str(r_cell.get_code(code)),
        ))

    for m_cell in pri_col.cells:
        main_bind = m_cell.get_code(match_code)
        for r_cell in rel_col.cells:
            if r_cell.get_code(match_code) != main_bind:
                continue
            if abs(m_cell.onset - r_cell.onset) >= time_tolerance:
                record(m_cell, r_cell, "onset")
            if abs(m_cell.offset - r_cell.offset) >= time_tolerance:
                record(m_cell, r_cell, "offset")
            for code in pri_col.code_schema:
                if m_cell.get_code(code) != r_cell.get_code(code):
                    record(m_cell, r_cell, code)

    for code, count in report.errors.items():
        logger.info(
            f"Total errors for {code}: {count}, Agreement:{report.agreement(code):.2f}%"
        )
    return report


# =========================================================================
# Continuous reliability
# =========================================================================

def check_reliability_continuous(
    primary: ColumnRef,
    reliability: ColumnRef,
    codes_to_check: Sequence[str] = (),
    time_threshold: Optional[int] = None,
    block_column: Optional[ColumnRef] = None,
    name: Optional[str] = None,
    project: Optional[ColumnSet] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Column:
    """
    Find the regions where two continuous coding passes disagree.

    The columns are merged with merge_columns; a merged slice is kept when
        - only one coder has a cell there and the slice lasts at least
          `time_threshold` ms, or
        - only one coder has a cell there and the slice is exactly one of
          the input cells (a whole cell the other coder missed), or
        - both coders have cells there and any of `codes_to_check` differ.

    Args:
        block_column: Optional column of coding blocks; slices not contained
            by any block cell are dropped first
        name: Result column name (default from config)

    Returns:
        Column of disagreement slices, with the merged column's codes
    """
    p_col = resolve_column(primary, project)
    r_col = resolve_column(reliability, project)
    b_col = None
    if block_column is not None and block_column != "":
        b_col = resolve_column(block_column, project)
    if time_threshold is None:
        time_threshold = config.continuous_time_threshold_ms

    # Raw intervals, to spot slices that are whole input cells
    interval_map = {(c.onset, c.offset) for c in p_col.cells + r_col.cells}

    merged = merge_columns(name or config.disagreement_column_name, p_col, r_col)

    p_prefix = sanitize_code_name(p_col.name) + "_"
    r_prefix = sanitize_code_name(r_col.name) + "_"
    codes = [sanitize_code_name(c) for c in codes_to_check]

    kept = []
    for slice_cell in merged.cells:
        if b_col is not None and not any(b.contains(slice_cell) for b in b_col.cells):
            continue

        ordinals = (slice_cell.get_code(p_prefix + "ordinal"), slice_cell.get_code(r_prefix + "ordinal"))
        num_coders = sum(1 for o in ordinals if o != "")
        whole_cell = (slice_cell.onset, slice_cell.offset) in interval_map

        pri_codes = [slice_cell.get_code(p_prefix + c) for c in codes]
        rel_codes = [slice_cell.get_code(r_prefix + c) for c in codes]
        code_differs = any(p != r for p, r in zip(pri_codes, rel_codes))

        flag_duration = num_coders == 1 and slice_cell.duration >= time_threshold
        flag_missed = num_coders == 1 and whole_cell
        flag_code = num_coders == 2 and code_differs
        if flag_duration or flag_missed or flag_code:
            kept.append(slice_cell)

    merged.cells = kept
    merged.renumber()
    logger.info(f"Found {len(kept)} disagreement region(s) between {p_col.name} and {r_col.name}")
    return merged


# =========================================================================
# Reliability column construction
# =========================================================================

def make_reliability(
    name: str,
    column: ColumnRef,
    multiple_to_keep: int,
    keep_codes: Iterable[str] = (),
    project: Optional[ColumnSet] = None,
) -> Column:
    """
    Build a blank reliability column from every n-th cell of a column.

    Cells whose (onset-order) ordinal is divisible by `multiple_to_keep` are
    copied and renumbered ordinal // n. Onset, offset and codes are blanked
    unless named in `keep_codes` ("onset" and "offset" are accepted).
    A multiple of 0 keeps no cells.

    Example:
        rel = make_reliability("rel_trial", trial, 2, ["onset", "trialnum"])
    """
    if multiple_to_keep < 0:
        raise ValueError(f"multiple_to_keep must not be negative, got {multiple_to_keep}")

    source = resolve_column(column, project).copy()
    source.sort_cells()
    keep = {k if k in ("onset", "offset") else sanitize_code_name(k) for k in keep_codes}

    rel = Column(name=name, code_schema=list(source.raw_code_names))
    if multiple_to_keep == 0:
        return rel

    for cell in source.cells:
        if cell.ordinal % multiple_to_keep != 0:
            continue
        new = rel.new_cell(template=cell)
        new.ordinal = cell.ordinal // multiple_to_keep
        if "onset" not in keep:
            new.onset = 0
        if "offset" not in keep:
            new.offset = 0
        for code in rel.code_schema:
            if code not in keep:
                new.codes[code] = ""
    return rel
