"""
Column Analyzer: early diagnostics and inventory of coded columns.

This module provides lightweight analysis of Column objects:
    - Cell counts, coded duration and time span
    - Malformed intervals (inverted, unset offset, zero length)
    - Overlapping cells within a column
    - Per-code value inventory and blank counts
    - Warning flags for problems that break merges or reliability checks

IMPORTANT: This is the analysis layer. It does NOT modify columns.
It only produces read-only reports.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from codesheet.algebra import find_overlapping_cells, scan_for_bad_cells
from codesheet.model import Column
from codesheet.project import ColumnSet


@dataclass
class ColumnReport:
    """Analysis report for a single column."""

    column_name: str
    code_names: List[str] = field(default_factory=list)
    total_cells: int = 0

    # Interval problems (ordinals)
    inverted_cells: List[int] = field(default_factory=list)
    unset_offset_cells: List[int] = field(default_factory=list)
    point_cells: List[int] = field(default_factory=list)
    overlapping_cells: List[int] = field(default_factory=list)

    # Time coverage
    total_duration: int = 0
    span: Optional[Tuple[int, int]] = None

    # Code inventory
    value_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    blank_counts: Dict[str, int] = field(default_factory=dict)

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)

    @property
    def mergeable(self) -> bool:
        """True when the column can be given to the merge operations."""
        return not self.inverted_cells and not self.unset_offset_cells


@dataclass
class ProjectReport:
    """Analysis report over every column of a column set."""

    columns: Dict[str, ColumnReport] = field(default_factory=dict)
    # Column names, most coded time first
    by_duration: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [f"{name}: {w}" for name, report in self.columns.items() for w in report.warnings]


def analyze_column(column: Column) -> ColumnReport:
    """
    Perform diagnostic analysis of a Column.

    Checks for:
    - Inverted and unset intervals
    - Overlapping cells
    - Code value distribution and blanks

    Returns a ColumnReport with metrics and warnings.
    """
    report = ColumnReport(column_name=column.name, code_names=list(column.code_schema))
    report.total_cells = len(column.cells)

    # =========================================================================
    # 1. INTERVALS
    # =========================================================================

    report.inverted_cells = [c.ordinal for c in scan_for_bad_cells(column)]
    for cell in column.cells:
        if cell.offset == 0:
            report.unset_offset_cells.append(cell.ordinal)
        elif cell.onset == cell.offset:
            report.point_cells.append(cell.ordinal)

    report.overlapping_cells = [c.ordinal for c in find_overlapping_cells(column)]

    valid = [c for c in column.cells if c.interval.is_valid()]
    report.total_duration = sum(c.duration for c in valid)
    if valid:
        report.span = (min(c.onset for c in valid), max(c.offset for c in valid))

    # =========================================================================
    # 2. CODE INVENTORY
    # =========================================================================

    for code in column.code_schema:
        counts = Counter(cell.codes[code] for cell in column.cells)
        report.blank_counts[code] = counts.pop("", 0)
        report.value_counts[code] = dict(sorted(counts.items()))

    # =========================================================================
    # 3. WARNING FLAGS
    # =========================================================================

    if report.inverted_cells:
        report.add_warning(
            f"Cells with onset > offset: {', '.join(str(o) for o in report.inverted_cells)}"
        )

    if report.unset_offset_cells:
        report.add_warning(
            f"Cells with blank offset: {', '.join(str(o) for o in report.unset_offset_cells)}"
        )

    if report.overlapping_cells:
        report.add_warning(
            f"Overlapping cells: {', '.join(str(o) for o in report.overlapping_cells)}"
        )

    for code, blanks in report.blank_counts.items():
        if report.total_cells and blanks == report.total_cells:
            report.add_warning(f"Code '{code}' is blank in every cell")

    return report


def analyze_project(column_set: ColumnSet) -> ProjectReport:
    """Analyze every column of a column set."""
    report = ProjectReport()
    for column in column_set.columns():
        report.columns[column.name] = analyze_column(column)

    report.by_duration = sorted(
        report.columns,
        key=lambda name: report.columns[name].total_duration,
        reverse=True,
    )
    return report
