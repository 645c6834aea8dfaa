"""
Column sets: the explicit context object every script works against.

A ColumnSet stands in for the spreadsheet's data store. Scripts read
independent copies of its columns, edit them, and write them back with
set_column. Nothing here is global; operations that accept column names
take the ColumnSet that resolves them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from codesheet.model import CodesheetError, Column

logger = logging.getLogger(__name__)

ColumnRef = Union[Column, str]


class ColumnNotFoundError(CodesheetError, LookupError):
    """Raised when a caller demands a named column that does not exist."""
    pass


@dataclass
class ProjectMetadata:
    """
    Project information that travels with a column set on load/save.

    Properties:
        name: Project name (defaults to the file name on save)
        database_file_name: Name of the embedded data store
        attributes: Free-form string pairs (use sparingly)
    """

    name: str = ""
    database_file_name: str = "dataStore"
    attributes: Dict[str, str] = field(default_factory=dict)


class ColumnSet:
    """
    Ordered collection of named columns with spreadsheet CRUD semantics.

    Columns handed out by get_column are copies: editing one has no effect
    on the set until it is passed back to set_column.
    """

    def __init__(self, columns: Optional[List[Column]] = None):
        self._columns: Dict[str, Column] = {}
        for col in columns or []:
            self.set_column(col)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def column_names(self) -> List[str]:
        return list(self._columns.keys())

    def columns(self) -> List[Column]:
        """Copies of every stored column, in spreadsheet order."""
        return [self.get_column(name) for name in self._columns]

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def __len__(self) -> int:
        return len(self._columns)

    def get_column(self, name: str) -> Optional[Column]:
        """
        Independent, onset-sorted copy of a stored column.

        Returns:
            Column or None (with a logged warning) when no such column exists
        """
        stored = self._columns.get(name)
        if stored is None:
            logger.warning(f"No column with name '{name}' was found!")
            return None
        col = stored.copy()
        col.source_name = name
        col.sort_cells()
        return col

    def require_column(self, name: str) -> Column:
        """
        Like get_column, but a missing column is an error.

        Raises:
            ColumnNotFoundError: If no such column exists
        """
        if name not in self._columns:
            raise ColumnNotFoundError(f"No column with name '{name}' was found")
        return self.get_column(name)

    def resolve(self, ref: ColumnRef) -> Column:
        """Return Column objects unchanged; look names up with require_column."""
        if isinstance(ref, Column):
            return ref
        if isinstance(ref, str):
            return self.require_column(ref)
        raise TypeError(f"Unhandled column value or class: {ref!r}, {type(ref).__name__}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def new_column(self, name: str, *codes: str) -> Column:
        """
        Create a blank in-memory column.

        The column is not part of the set until saved with set_column.
        """
        return Column(name=name, code_schema=list(codes))

    def set_column(self, column: Column, name: Optional[str] = None, sanitize: bool = True) -> None:
        """
        Store a column under a name, overwriting any existing one.

        If the column was not read from this set under the same name, the
        stored column is deleted and recreated. Otherwise the stored schema
        is patched (codes added/removed to match) and the cells replaced.

        Args:
            column: Column to store (a copy is kept)
            name: Storage name; defaults to column.name
            sanitize: Store sanitized code names; when False, the names
                as originally entered are kept for persistence
        """
        name = column.name if name is None else name
        if column.source_name is None or column.source_name != name or name not in self._columns:
            self._recreate(column, name, sanitize)
        else:
            self._patch(column, name, sanitize)
        column.source_name = name

    def set_column_force(self, column: Column, name: Optional[str] = None, sanitize: bool = True) -> None:
        """Always delete and rebuild the stored column and its schema."""
        column.source_name = None
        self.set_column(column, name=name, sanitize=sanitize)

    def _recreate(self, column: Column, name: str, sanitize: bool) -> None:
        if name in self._columns:
            del self._columns[name]
        stored = column.copy(name=name)
        if sanitize:
            stored.raw_code_names = list(stored.code_schema)
        stored.renumber()
        self._columns[name] = stored

    def _patch(self, column: Column, name: str, sanitize: bool) -> None:
        stored = self._columns[name]
        incoming = column.copy(name=name)

        for code, raw in zip(incoming.code_schema, incoming.raw_code_names):
            if code not in stored.code_schema:
                stored.add_code(raw)
        for code in [c for c in stored.code_schema if c not in incoming.code_schema]:
            logger.info(f"Deleting code '{code}' from column {name}")
            stored.remove_code(code)

        # Incoming order wins
        order = {code: i for i, code in enumerate(incoming.code_schema)}
        pairs = sorted(zip(stored.code_schema, stored.raw_code_names), key=lambda p: order[p[0]])
        stored.code_schema = [p[0] for p in pairs]
        stored.raw_code_names = list(stored.code_schema) if sanitize else list(incoming.raw_code_names)

        stored.cells = []
        for cell in incoming.cells:
            stored.new_cell(template=cell)
        stored.hidden = incoming.hidden
        stored.renumber()

    def delete_column(self, ref: ColumnRef) -> None:
        """Remove a column; a missing name only logs a warning."""
        name = ref.name if isinstance(ref, Column) else ref
        if name not in self._columns:
            logger.warning(f"No column with name '{name}' was found!")
            return
        del self._columns[name]

    # ------------------------------------------------------------------
    # Visibility and order
    # ------------------------------------------------------------------

    def hide_columns(self, *names: str) -> None:
        for name in names:
            if name in self._columns:
                self._columns[name].hidden = True

    def show_columns(self, *names: str) -> None:
        for name in names:
            if name in self._columns:
                self._columns[name].hidden = False

    def set_column_order(self, names: List[str]) -> None:
        """Move the listed columns to the front, in order; hide all others."""
        if not names:
            return
        listed = [n for n in names if n in self._columns]
        rest = [n for n in self._columns if n not in listed]
        self._columns = {n: self._columns[n] for n in listed + rest}
        self.show_columns(*listed)
        self.hide_columns(*rest)

    def is_hidden(self, name: str) -> bool:
        return self.require_column(name).hidden


def resolve_column(ref: ColumnRef, project: Optional[ColumnSet] = None) -> Column:
    """
    Turn a Column-or-name argument into a Column.

    Names need a project to be looked up in; a missing column is fatal.

    Raises:
        ColumnNotFoundError: If a name cannot be resolved
    """
    if isinstance(ref, Column):
        return ref
    if project is None:
        raise ColumnNotFoundError(f"Column '{ref}' was given by name but no column set was supplied")
    return project.resolve(ref)
