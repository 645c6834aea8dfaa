"""
Interval set-algebra over columns.

Operations here combine or reshape columns along the time axis:
    - create_mutually_exclusive: two-column merge at every cell boundary
    - merge_columns: N-column merge using enclosing-cell lookup
    - resample: fixed-width re-gridding by largest overlap
    - smooth_column: close small gaps between consecutive cells

IMPORTANT: Every operation is read-only over its inputs and returns a
freshly allocated Column. Source cells are never moved or edited.

The two merge entry points deliberately keep different matching rules:
create_mutually_exclusive matches a breakpoint pair only to a cell that
fully covers it (single-millisecond pairs only to a cell with exactly those
boundaries), while merge_columns widens point cells to 1 ms and takes the
first cell that contains each slice.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from codesheet.config import DEFAULT_CONFIG, EngineConfig
from codesheet.model import Cell, Column, Interval, InvalidIntervalError, sanitize_code_name
from codesheet.project import ColumnRef, ColumnSet, resolve_column

logger = logging.getLogger(__name__)


class UnsetOffsetError(InvalidIntervalError):
    """Raised when a merge input holds a cell whose offset was never set (== 0)."""
    pass


# =========================================================================
# Input checks
# =========================================================================

def scan_for_bad_cells(column: Column) -> List[Cell]:
    """Cells of the column whose onset is greater than their offset."""
    return [cell for cell in column.cells if not cell.interval.is_valid()]


def find_overlapping_cells(column: Column) -> List[Cell]:
    """
    Cells that start inside the cell preceding them in onset order.

    The column itself is not re-sorted.
    """
    ordered = sorted(column.cells, key=lambda c: c.onset)
    overlapping = []
    for prev, cell in zip(ordered, ordered[1:]):
        if prev.onset <= cell.onset <= prev.offset:
            overlapping.append(cell)
    return overlapping


def _check_merge_input(column: Column) -> None:
    bad = scan_for_bad_cells(column)
    if bad:
        ordinals = ", ".join(str(c.ordinal) for c in bad)
        raise InvalidIntervalError(
            f"Column {column.name} has cells with onset > offset (ordinals: {ordinals}); "
            f"fix these before merging"
        )
    for cell in column.cells:
        if cell.offset == 0:
            raise UnsetOffsetError(
                f"Cell {cell.ordinal} in column {column.name} has a blank offset"
            )


def _fill_from_source(cell: Cell, source: Optional[Cell], prefix: str) -> None:
    if source is None:
        return
    # Keys go in directly; an unprefixed "ordinal" is a plain code here
    cell.codes[sanitize_code_name(prefix + "ordinal")] = str(source.ordinal)
    for code, value in source.codes.items():
        cell.codes[sanitize_code_name(prefix + code)] = value


def _prefixed_schema(columns: Sequence[Column], prefixes: Sequence[str]) -> List[str]:
    codes = []
    for col, prefix in zip(columns, prefixes):
        codes.append(prefix + "ordinal")
        codes.extend(prefix + code for code in col.code_schema)
    return codes


def _breakpoints(intervals) -> List[int]:
    times = set()
    for interval in intervals:
        times.add(interval.onset)
        times.add(interval.offset)
    return sorted(times)


# =========================================================================
# Two-column mutually exclusive merge
# =========================================================================

def _find_active(cells: List[Cell], start: int, t0: int, t1: int) -> Tuple[Optional[Cell], int]:
    """
    First cell from index `start` covering [t0, t1].

    A single-millisecond pair is only matched by a cell whose own boundaries
    are exactly t0 and t1.
    """
    for j in range(start, len(cells)):
        c = cells[j]
        if c.onset <= t0 and c.offset >= t1 and (t1 - t0 > 1 or (c.onset == t0 and c.offset == t1)):
            return c, j
    return None, start


def create_mutually_exclusive(
    name: str,
    column1: ColumnRef,
    column2: ColumnRef,
    prefix1: Optional[str] = None,
    prefix2: Optional[str] = None,
    project: Optional[ColumnSet] = None,
) -> Column:
    """
    Combine two columns into one timeline segmented at every cell boundary.

    Each output cell covers one pair of consecutive breakpoints during which
    at least one source has an active cell. It carries that source's
    ordinal and codes under the source's prefix; codes of silent sources
    stay blank.

    Args:
        name: Name of the new column
        column1, column2: Columns, or names resolved through `project`
        prefix1, prefix2: Code prefixes; default to the sanitized column
            name followed by "_"
        project: ColumnSet used to resolve column names

    Returns:
        New column with codes [prefix1 + "ordinal", prefix1 + code..., prefix2 + ...]

    Raises:
        InvalidIntervalError: If a source has a cell with onset > offset
        UnsetOffsetError: If a source has a cell with offset == 0
        CodeNameCollisionError: If the prefixed codes collide
        ColumnNotFoundError: If a named column does not exist
    """
    col1 = resolve_column(column1, project)
    col2 = resolve_column(column2, project)

    _check_merge_input(col1)
    _check_merge_input(col2)

    if prefix1 is None:
        prefix1 = sanitize_code_name(col1.name) + "_"
    if prefix2 is None:
        prefix2 = sanitize_code_name(col2.name) + "_"

    mutex = Column(name=name, code_schema=_prefixed_schema([col1, col2], [prefix1, prefix2]))

    cells1 = sorted(col1.cells, key=lambda c: c.onset)
    cells2 = sorted(col2.cells, key=lambda c: c.onset)
    times = _breakpoints(c.interval for c in cells1 + cells2)
    logger.debug(f"Breakpoints: {times}")

    idx1 = 0
    idx2 = 0
    for t0, t1 in zip(times, times[1:]):
        v1cell, idx1 = _find_active(cells1, idx1, t0, t1)
        v2cell, idx2 = _find_active(cells2, idx2, t0, t1)

        if v1cell is None and v2cell is None:
            continue

        cell = mutex.new_cell(onset=t0, offset=t1)
        _fill_from_source(cell, v1cell, prefix1)
        _fill_from_source(cell, v2cell, prefix2)

    mutex.renumber()
    logger.info(f"Created a column with {len(mutex.cells)} cells.")
    return mutex


# =========================================================================
# N-column merge
# =========================================================================

def _widen_point(interval: Interval) -> Interval:
    if interval.onset == interval.offset:
        return Interval(interval.onset, interval.onset + 1)
    return interval


def merge_columns(name: str, *columns: ColumnRef, project: Optional[ColumnSet] = None) -> Optional[Column]:
    """
    Combine any number of columns into one timeline.

    Point cells (onset == offset) are treated as 1 ms long. For every pair
    of consecutive boundaries, the first cell of each source that contains
    the slice contributes its ordinal and codes, prefixed with the lower-cased
    source column name and "_". Slices no source covers are skipped.

    Returns:
        None when no columns are given, a renamed copy for a single column,
        otherwise the merged column

    Raises:
        InvalidIntervalError, UnsetOffsetError: On malformed source cells
        CodeNameCollisionError: If two sources share a name
        ColumnNotFoundError: If a named column does not exist
    """
    if not columns:
        return None

    cols = [resolve_column(c, project) for c in columns]
    for col in cols:
        _check_merge_input(col)

    if len(cols) == 1:
        return cols[0].copy(name=name)

    prefixes = [sanitize_code_name(col.name) + "_" for col in cols]
    merged = Column(name=name, code_schema=_prefixed_schema(cols, prefixes))

    # Widened copies of the intervals; the sources stay untouched
    sources = [[(_widen_point(c.interval), c) for c in col.cells] for col in cols]
    times = _breakpoints(iv for source in sources for iv, _ in source)

    for t0, t1 in zip(times, times[1:]):
        region = Interval(t0, t1)
        enclosing = [
            next((c for iv, c in source if iv.contains(region)), None)
            for source in sources
        ]
        if all(c is None for c in enclosing):
            continue

        cell = merged.new_cell(onset=t0, offset=t1)
        for prefix, source_cell in zip(prefixes, enclosing):
            _fill_from_source(cell, source_cell, prefix)

    merged.renumber()
    logger.info(f"Merged {len(cols)} columns into {len(merged.cells)} cells.")
    return merged


# =========================================================================
# Resampling and smoothing
# =========================================================================

def resample(
    column: Column,
    step: int,
    column_name: Optional[str] = None,
    start_time: Optional[int] = None,
    stop_time: Optional[int] = None,
) -> Column:
    """
    Re-grid a column onto fixed-width cells.

    Output cells are [t, t + step - 1] for t = start_time, start_time + step,
    ... up to stop_time. Each takes the codes of the source cell with the
    largest overlap; ties go to the earlier source cell. Slices without any
    overlapping source cell are omitted.

    Args:
        column: Source column
        step: Cell width in ms (> 0)
        column_name: Name of the result (defaults to the source name)
        start_time: Defaults to the earliest onset
        stop_time: Defaults to the latest offset

    Note:
        Undefined for sources whose own cells overlap each other.
    """
    if step <= 0:
        raise ValueError(f"Resample step must be positive, got {step}")

    bad = scan_for_bad_cells(column)
    if bad:
        raise InvalidIntervalError(
            f"Column {column.name} has cells with onset > offset (ordinal {bad[0].ordinal})"
        )

    ncol = Column(name=column.name if column_name is None else column_name,
                  code_schema=list(column.raw_code_names))
    if not column.cells:
        return ncol

    if start_time is None:
        start_time = min(c.onset for c in column.cells)
    if stop_time is None:
        stop_time = max(c.offset for c in column.cells)

    for time in range(start_time, stop_time + 1, step):
        region = Interval(time, time + step - 1)
        overlapping = [c for c in column.cells if c.interval.overlaps(region)]
        if not overlapping:
            continue

        # Stable: equal overlaps keep source order, so the first one wins
        ranked = sorted(overlapping, key=lambda c: c.interval.overlap_region(region).duration, reverse=True)
        winner = ranked[0]

        cell = ncol.new_cell(onset=region.onset, offset=region.offset)
        for code in ncol.code_schema:
            cell.codes[code] = winner.codes[code]

    ncol.renumber()
    return ncol


def smooth_column(column: Column, tolerance: Optional[int] = None,
                  config: EngineConfig = DEFAULT_CONFIG) -> Column:
    """
    Make temporally adjacent cells continuous.

    When the gap between a cell's offset and the next cell's onset is below
    `tolerance` ms, the next cell's onset is moved to that offset. Offsets
    never change.

    Returns:
        Smoothed, onset-sorted copy of the column
    """
    if tolerance is None:
        tolerance = config.smoothing_tolerance_ms

    smoothed = column.copy()
    smoothed.sort_cells()
    for cur, nxt in zip(smoothed.cells, smoothed.cells[1:]):
        if nxt.onset - cur.offset < tolerance:
            nxt.onset = cur.offset
    return smoothed
