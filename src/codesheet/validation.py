"""
Code-value validation.

Checks, per cell and per code, that values are acceptable. A validator is
one of:
    - a collection of accepted values (list, tuple, set...; compared as strings)
    - a compiled regular expression (a value is valid if the pattern is found)
    - a callable predicate taking the value and returning truthy for valid

Validators of different kinds can be mixed freely in one call.

IMPORTANT: Validation never modifies data. Every invalid value found is
reported; checking does not stop at the first problem.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Union

from codesheet.model import Column, NoSuchCodeError, sanitize_code_name
from codesheet.project import ColumnRef, ColumnSet, resolve_column

logger = logging.getLogger(__name__)

Validator = Union[Callable[[str], Any], "re.Pattern[str]", List[Any]]

REPORT_HEADER = ("COLUMN", "CELL_ORDINAL", "CODE", "VALUE")


@dataclass
class CodeError:
    """One invalid code value."""
    column: str
    ordinal: int
    code: str
    value: str

    def as_row(self) -> List[str]:
        return [self.column, str(self.ordinal), self.code, self.value]


@dataclass
class ValidationReport:
    """All invalid values found by a validation pass."""

    errors: List[CodeError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors

    def rows(self) -> List[List[str]]:
        return [e.as_row() for e in self.errors]

    def format(self) -> str:
        lines = ["\t".join(REPORT_HEADER)]
        lines.extend("\t".join(row) for row in self.rows())
        return "\n".join(lines) + "\n"

    def write(self, path) -> None:
        """Append the header and error rows to a text file."""
        with open(Path(path).expanduser(), "a", encoding="utf-8") as fh:
            fh.write(self.format())


def _is_valid(value: str, validator) -> bool:
    if isinstance(validator, re.Pattern):
        return validator.search(value) is not None
    # Strings are iterable but are never meant as value sets
    if isinstance(validator, (str, bytes)):
        raise TypeError(
            f"Unhandled validator type: {type(validator).__name__} "
            f"(use a list of values or re.compile for patterns)"
        )
    if callable(validator):
        return bool(validator(value))
    try:
        accepted = {str(v) for v in validator}
    except TypeError:
        raise TypeError(f"Unhandled validator type: {type(validator).__name__}") from None
    return value in accepted


def _check_column(column: Column, validators: Mapping[str, Validator], report: ValidationReport) -> None:
    checks = [(sanitize_code_name(code), v) for code, v in validators.items()]
    for code, _ in checks:
        if not column.has_code(code):
            # Input error: raised before any cell is looked at
            raise NoSuchCodeError(f"Column {column.name} has no code '{code}'")

    for cell in column.cells:
        for code, validator in checks:
            value = cell.codes[code]
            if not _is_valid(value, validator):
                report.errors.append(CodeError(column.name, cell.ordinal, code, value))


def check_valid_codes(column: ColumnRef, validators: Mapping[str, Validator],
                      project: Optional[ColumnSet] = None) -> ValidationReport:
    """
    Validate codes of one column.

    Args:
        column: Column, or name resolved through `project`
        validators: code name -> validator

    Returns:
        ValidationReport listing (column, ordinal, code, value) per bad value

    Example:
        check_valid_codes(trial, {"hand": ["l", "r"], "unit": re.compile(r"\\A\\d+\\Z")})
    """
    return check_valid_codes_map({column: validators}, project=project)


def check_valid_codes_map(mapping: Mapping[ColumnRef, Mapping[str, Validator]],
                          project: Optional[ColumnSet] = None) -> ValidationReport:
    """
    Validate several columns at once.

    Args:
        mapping: column (or name) -> {code name -> validator}
        project: ColumnSet used to resolve column names

    Returns:
        One ValidationReport covering every column
    """
    report = ValidationReport()
    for ref, validators in mapping.items():
        col = resolve_column(ref, project)
        _check_column(col, validators, report)

    if report.ok:
        logger.debug("No errors found.")
    else:
        logger.info(f"Found {report.error_count} invalid code value(s)")
    return report


__all__ = [
    "CodeError",
    "ValidationReport",
    "check_valid_codes",
    "check_valid_codes_map",
]
