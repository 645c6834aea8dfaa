"""
Core Coding Model Objects

Defines the fundamental data structures of a behavioral-coding spreadsheet.

These are plain data classes representing:
    - Intervals (time ranges in integer milliseconds)
    - Cells (one timestamped annotation instance)
    - Columns (a named, schema-typed collection of cells)

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about storage formats or rendering
        - Hold code values as strings, looked up by code name
        - Never silently repair malformed input (inverted intervals are kept
          and reported by the operations that require validity)
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

DEFAULT_CODE_NAME = "code01"

# Names answered by Cell.get_code in addition to the column's codes
TIME_CODES = ("onset", "offset", "ordinal")


class CodesheetError(Exception):
    """Base class for all errors raised by the coding engine."""
    pass


class CodeNameCollisionError(CodesheetError, ValueError):
    """Raised when two code names sanitize to the same string."""
    pass


class NoSuchCodeError(CodesheetError, KeyError):
    """Raised when a code name is not part of a column's schema."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class InvalidIntervalError(CodesheetError, ValueError):
    """Raised when an interval with onset > offset reaches an operation that needs validity."""
    pass


_NON_WORD_RE = re.compile(r"[^0-9A-Za-z_]")
_LEADING_DIGIT_RE = re.compile(r"^(\d)")


def sanitize_code_name(name: str) -> str:
    """
    Normalize a code name so it is a valid identifier.

    Non-alphanumeric characters become underscores, the result is lower-cased
    and a leading digit is prefixed with an underscore.

    Examples:
        "Hand Used" -> "hand_used"
        "2nd-look"  -> "_2nd_look"
    """
    sanitized = _NON_WORD_RE.sub("_", str(name)).lower()
    return _LEADING_DIGIT_RE.sub(r"_\1", sanitized)


@dataclass(frozen=True)
class Interval:
    """
    Closed time range [onset, offset] in integer milliseconds.

    Callers may build inverted intervals (onset > offset); they are detected
    with is_valid() / validate(), never corrected.

    Properties:
        onset: Start time in ms
        offset: End time in ms
    """

    onset: int
    offset: int

    @property
    def duration(self) -> int:
        return self.offset - self.onset

    def is_valid(self) -> bool:
        return self.onset <= self.offset

    def validate(self) -> "Interval":
        """
        Return self, or raise if the interval is inverted.

        Raises:
            InvalidIntervalError: If onset > offset
        """
        if not self.is_valid():
            raise InvalidIntervalError(
                f"Interval onset {self.onset} is greater than offset {self.offset}"
            )
        return self

    def spans(self, time: int) -> bool:
        """True iff onset <= time <= offset."""
        return self.onset <= time <= self.offset

    def overlaps(self, other: "Interval") -> bool:
        """
        True iff either interval spans an endpoint of the other.

        Boundary contact counts: [0, 100] overlaps [100, 200].
        """
        return (
            other.spans(self.onset)
            or other.spans(self.offset)
            or self.spans(other.onset)
            or self.spans(other.offset)
        )

    def contains(self, other: "Interval") -> bool:
        """True iff other is a valid interval lying inside this one."""
        return (
            other.is_valid()
            and self.onset <= other.onset
            and other.offset <= self.offset
        )

    def within(self, outer: "Interval") -> bool:
        return outer.contains(self)

    def overlap_region(self, other: "Interval") -> "Interval":
        """
        Intersection of the two intervals.

        Only meaningful when the intervals overlap; otherwise the result is
        inverted and its sign must not be relied upon.
        """
        return Interval(max(self.onset, other.onset), min(self.offset, other.offset))


def _as_value(value) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass
class Cell:
    """
    A single annotation instance within a column.

    Code values are held in an ordered mapping from code name to string.
    The key set always equals the owning column's code schema; schema edits
    go through Column, which updates every cell.

    Properties:
        ordinal:
            1-based position in the column at the last sort.
            NOT a stable identity.
        interval:
            Time range of the annotation
        codes:
            Ordered mapping code name -> value (strings)
        parent:
            Owning Column (None for detached cells)
    """

    ordinal: int = 0
    interval: Interval = field(default_factory=lambda: Interval(0, 0))
    codes: Dict[str, str] = field(default_factory=dict)
    parent: Optional["Column"] = field(default=None, repr=False, compare=False)

    # ------------------------------------------------------------------
    # Time accessors
    # ------------------------------------------------------------------

    @property
    def onset(self) -> int:
        return self.interval.onset

    @onset.setter
    def onset(self, value: int) -> None:
        self.interval = Interval(int(value), self.interval.offset)

    @property
    def offset(self) -> int:
        return self.interval.offset

    @offset.setter
    def offset(self, value: int) -> None:
        self.interval = Interval(self.interval.onset, int(value))

    @property
    def duration(self) -> int:
        return self.interval.duration

    # ------------------------------------------------------------------
    # Code accessors
    # ------------------------------------------------------------------

    @property
    def code_names(self) -> List[str]:
        return list(self.codes.keys())

    def get_code(self, name: str):
        """
        Get the value of a code.

        Args:
            name: Code name, or one of "onset", "offset", "ordinal"

        Returns:
            int for the time codes, str otherwise

        Raises:
            NoSuchCodeError: If the cell has no such code
        """
        if name in TIME_CODES:
            return getattr(self, name)
        if name in self.codes:
            return self.codes[name]
        sanitized = sanitize_code_name(name)
        if sanitized in self.codes:
            return self.codes[sanitized]
        raise NoSuchCodeError(
            f"Cell {self.ordinal} in column {self._parent_name()} has no code '{name}'"
        )

    def set_code(self, name: str, value) -> None:
        """
        Change the value of a code.

        Time codes are converted to int; everything else is stored as str.

        Raises:
            NoSuchCodeError: If the cell has no such code
        """
        if name in TIME_CODES:
            setattr(self, name, int(value))
            return
        key = name if name in self.codes else sanitize_code_name(name)
        if key not in self.codes:
            raise NoSuchCodeError(
                f"Unable to change code '{name}' in column {self._parent_name()}; no such code found."
            )
        self.codes[key] = _as_value(value)

    def get_codes(self, *names: str) -> list:
        """Values of the given codes, or of every code when none are named."""
        if not names:
            return list(self.codes.values())
        return [self.get_code(n) for n in names]

    def as_row(self) -> List[str]:
        """Ordinal, onset, offset and every code value as strings."""
        return [str(self.ordinal), str(self.onset), str(self.offset)] + list(self.codes.values())

    # ------------------------------------------------------------------
    # Temporal predicates
    # ------------------------------------------------------------------

    def spans(self, time: int) -> bool:
        return self.interval.spans(time)

    def overlaps(self, other: "Cell") -> bool:
        return self.interval.overlaps(other.interval)

    def overlaps_range(self, onset: int, offset: int) -> bool:
        return self.interval.overlaps(Interval(onset, offset))

    def contains(self, inner: "Cell") -> bool:
        return self.interval.contains(inner.interval)

    def is_within(self, outer: "Cell") -> bool:
        return self.interval.within(outer.interval)

    def overlap_region(self, other: "Cell") -> Interval:
        return self.interval.overlap_region(other.interval)

    def _parent_name(self) -> str:
        return self.parent.name if self.parent is not None else "<detached>"


@dataclass(eq=False)
class Column:
    """
    Named, schema-typed ordered collection of cells (a coding "variable").

    INVARIANTS:
        - code_schema holds sanitized, unique code names in insertion order
        - every cell's code key set equals code_schema
        - every cell's parent is this column

    Properties:
        name:
            Column name
        code_schema:
            Ordered sanitized code names
        cells:
            Cells in column order (see sort_cells)
        hidden:
            Spreadsheet visibility flag
        raw_code_names:
            Code names as entered, parallel to code_schema. Used when a
            column is stored without sanitizing.
        source_name:
            Name of the stored column this object was read from, or None for
            columns built in memory. Drives overwrite-vs-patch on save.
    """

    name: str
    code_schema: List[str] = field(default_factory=list)
    cells: List[Cell] = field(default_factory=list)
    hidden: bool = False
    raw_code_names: List[str] = field(default_factory=list)
    source_name: Optional[str] = None

    def __post_init__(self) -> None:
        raw = list(self.code_schema) or [DEFAULT_CODE_NAME]
        self.code_schema = []
        self.raw_code_names = []
        for code in raw:
            self._append_code(code)
        # Cells handed in are copied; the caller's cells and list stay untouched
        given, self.cells = self.cells, []
        for cell in given:
            dup = Cell(ordinal=cell.ordinal, interval=cell.interval, codes=dict(cell.codes))
            self._adopt(dup)
            self.cells.append(dup)

    # ------------------------------------------------------------------
    # Schema edits
    # ------------------------------------------------------------------

    def _append_code(self, name: str) -> str:
        sanitized = sanitize_code_name(name)
        if sanitized in self.code_schema:
            raise CodeNameCollisionError(
                f"Code name '{name}' collides with existing code '{sanitized}' in column {self.name}"
            )
        self.code_schema.append(sanitized)
        self.raw_code_names.append(str(name))
        return sanitized

    def _index_of(self, name: str) -> int:
        sanitized = sanitize_code_name(name)
        if sanitized not in self.code_schema:
            raise NoSuchCodeError(f"Column {self.name} has no code '{name}'")
        return self.code_schema.index(sanitized)

    def add_code(self, name: str) -> str:
        """
        Append a code to the schema; every existing cell gets a blank value.

        Returns:
            The sanitized code name

        Raises:
            CodeNameCollisionError: If the sanitized name already exists
        """
        sanitized = self._append_code(name)
        for cell in self.cells:
            cell.codes[sanitized] = ""
        return sanitized

    def remove_code(self, name: str) -> None:
        """Drop a code from the schema and from every cell."""
        i = self._index_of(name)
        sanitized = self.code_schema.pop(i)
        self.raw_code_names.pop(i)
        for cell in self.cells:
            del cell.codes[sanitized]

    def rename_code(self, old_name: str, new_name: str) -> str:
        """
        Rename a code in place, keeping its position and every cell's value.

        Returns:
            The sanitized new name
        """
        i = self._index_of(old_name)
        old = self.code_schema[i]
        new = sanitize_code_name(new_name)
        if new != old and new in self.code_schema:
            raise CodeNameCollisionError(
                f"Code name '{new_name}' collides with existing code '{new}' in column {self.name}"
            )
        self.code_schema[i] = new
        self.raw_code_names[i] = str(new_name)
        for cell in self.cells:
            cell.codes = {
                (new if key == old else key): value for key, value in cell.codes.items()
            }
        return new

    def has_code(self, name: str) -> bool:
        return sanitize_code_name(name) in self.code_schema

    # ------------------------------------------------------------------
    # Cell edits
    # ------------------------------------------------------------------

    def _adopt(self, cell: Cell) -> None:
        # Re-key the cell onto this schema: unknown keys are dropped, missing ones blank
        values = {}
        for key, value in cell.codes.items():
            values[sanitize_code_name(key)] = value
        cell.codes = {code: _as_value(values.get(code)) for code in self.code_schema}
        cell.parent = self

    def new_cell(self, template: Optional[Cell] = None, onset: int = 0, offset: int = 0) -> Cell:
        """
        Create a blank cell at the end of this column.

        If a template cell is given, its onset/offset and the values of any
        codes shared with this column are copied. The new cell never refers
        back to the template.

        Returns:
            The new cell; modify it through this reference
        """
        cell = Cell(ordinal=len(self.cells) + 1, interval=Interval(int(onset), int(offset)))
        cell.codes = {code: "" for code in self.code_schema}
        cell.parent = self
        if template is not None:
            cell.interval = template.interval
            for code in self.code_schema:
                if code in template.codes:
                    cell.codes[code] = template.codes[code]
        self.cells.append(cell)
        return cell

    def add_cell(self, onset: int, offset: int, **values) -> Cell:
        """Create a cell with the given times and code values."""
        cell = self.new_cell(onset=onset, offset=offset)
        for code, value in values.items():
            cell.set_code(code, value)
        return cell

    def remove_cell(self, cell: Cell) -> None:
        """
        Remove a cell from this column.

        Matches by identity: cells with equal times and values are distinct.

        Raises:
            ValueError: If the cell is not in this column
        """
        for i, candidate in enumerate(self.cells):
            if candidate is cell:
                del self.cells[i]
                cell.parent = None
                return
        raise ValueError(f"Cell {cell.ordinal} is not in column {self.name}")

    def sort_cells(self) -> None:
        """Stable sort by onset, then renumber ordinals 1..N."""
        self.cells.sort(key=lambda c: c.onset)
        self.renumber()

    def renumber(self) -> None:
        for i, cell in enumerate(self.cells, start=1):
            cell.ordinal = i

    def cell_at(self, time: int) -> Optional[Cell]:
        """First cell spanning the given time, or None."""
        for cell in self.cells:
            if cell.spans(time):
                return cell
        return None

    def set_hidden(self, value: bool) -> None:
        self.hidden = bool(value)

    def copy(self, name: Optional[str] = None) -> "Column":
        """
        Deep copy of this column (fresh cells, same ordinals).

        The copy keeps raw code names and source_name unless renamed.
        """
        col = Column(
            name=self.name if name is None else name,
            code_schema=list(self.raw_code_names),
            hidden=self.hidden,
            source_name=self.source_name if name is None else None,
        )
        for cell in self.cells:
            dup = Cell(ordinal=cell.ordinal, interval=cell.interval, codes=dict(cell.codes))
            dup.parent = col
            col.cells.append(dup)
        return col

    @classmethod
    def with_codes(cls, name: str, codes: Iterable[str]) -> "Column":
        return cls(name=name, code_schema=list(codes))
