"""
Legacy Text Importer (old tick-based spreadsheet files → Columns).

Converts the plain-text export of the legacy coding application into
Column objects.

File Format:
    Lines are separated by CR (the legacy platform default) or LF. Three
    section markers must appear in this order:

        ***Predicates***    column declarations, starting two lines below
        ***Variables***     one cell block per declared column
        ***SpreadPane***    layout (ignored)

    Declaration line:
        <int> <int> <int> name(<ord>,<onset>,<offset>,<code1>,<code2>,...)

    Cell block:
        a header line whose third whitespace-separated field is the
        declaration text, followed by one line per cell, ended by a line
        holding just "0". When the line before the header contains "strID"
        the column is a string column.

    Matrix cell line (tab-separated):
        onset_ticks  offset_ticks  ...  (v1,v2,...)

    String cell line (tab-separated):
        onset_ticks  offset_ticks  ...  <char count> <text>

Syntax Notes:
    - Times are in ticks (60 per second) and converted to milliseconds
    - Blank values and <placeholder> values import as ""
    - Only matrix and string columns are read; queries are not
"""

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from codesheet.config import DEFAULT_CONFIG, EngineConfig
from codesheet.model import Column
from codesheet.serialization import FormatError

logger = logging.getLogger(__name__)

PREDICATES_MARKER = "***Predicates***"
VARIABLES_MARKER = "***Variables***"
SPREADPANE_MARKER = "***SpreadPane***"

# Slots every declaration carries; cells hold them as times, not codes
TIME_SLOTS = ("<ord>", "<onset>", "<offset>")

_DECLARATION_RE = re.compile(
    r"^(\d+)\s*(\d+)\s*(\d+)\s*(?P<decl>(?P<name>[^\s(]+)\((?P<codes>[^)]*)\))\s*$"
)


class LegacyImportError(FormatError):
    """Raised when a legacy file cannot be imported."""
    pass


@dataclass
class LegacyDeclaration:
    """Parsed column declaration."""
    raw_name: str
    name: str
    declaration: str
    codes: List[str] = field(default_factory=list)


def _clean_column_name(name: str) -> str:
    return re.sub(r"\W+", "_", name)


def _clean_code_name(code: str) -> str:
    return code.replace("<", "").replace(">", "").replace("#", "number").replace("&", "and")


def _ticks_to_ms(ticks: int, ticks_per_second: int) -> int:
    # Half away from zero
    return int(math.floor(ticks / float(ticks_per_second) * 1000 + 0.5))


def _find_marker(lines: List[str], marker: str) -> int:
    try:
        return lines.index(marker)
    except ValueError:
        raise LegacyImportError(f"Missing section marker: {marker}") from None


def _parse_declarations(lines: List[str], ignored: Iterable[str]) -> List[LegacyDeclaration]:
    """Parse the predicate section into declarations, skipping ignored names."""
    ignored = set(ignored)
    declarations = []
    for line_num, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        match = _DECLARATION_RE.match(line)
        if match is None:
            raise LegacyImportError(f"Malformed declaration on predicate line {line_num}: {line!r}")

        raw_name = match.group("name")
        if raw_name in ignored:
            logger.debug(f"Skipping ignored column {raw_name}")
            continue

        name = _clean_column_name(raw_name)
        if name != raw_name:
            logger.info(f"Replacing {raw_name} with {name}")

        codes = [
            _clean_code_name(c)
            for c in match.group("codes").split(",")
            if c and c not in TIME_SLOTS
        ]
        declarations.append(LegacyDeclaration(
            raw_name=raw_name,
            name=name,
            declaration=match.group("decl"),
            codes=codes,
        ))
    return declarations


def _parse_times(fields: List[str], line: str, config: EngineConfig):
    try:
        onset_ticks = int(fields[0])
        offset_ticks = int(fields[1])
    except (IndexError, ValueError):
        raise LegacyImportError(f"Malformed cell times: {line!r}") from None
    return (
        _ticks_to_ms(onset_ticks, config.ticks_per_second),
        _ticks_to_ms(offset_ticks, config.ticks_per_second),
    )


def _matrix_values(last_field: str, line: str) -> List[str]:
    start = last_field.find("(")
    if start < 0 or not last_field.rstrip().endswith(")"):
        raise LegacyImportError(f"Malformed matrix cell: {line!r}")
    data = re.sub(r"[() ]", "", last_field[start:])
    values = []
    for value in data.split(","):
        values.append("" if "<" in value else value)
    return values


def _string_value(last_field: str) -> str:
    data = last_field.strip()
    if len(data.split()) <= 1:
        return ""
    # Drop the leading character count
    text = data[data.index(" "):]
    text = text.replace("/", " or ")
    text = re.sub(r"[^\w ]", "", text)
    text = text.replace("  ", " ")
    return text.strip()


def _read_cells(column: Column, block: List[str], string_column: bool, config: EngineConfig) -> None:
    for line in block:
        fields = line.split("\t")
        onset, offset = _parse_times(fields, line, config)
        cell = column.new_cell(onset=onset, offset=offset)

        if string_column:
            cell.codes[column.code_schema[-1]] = _string_value(fields[-1])
            continue

        values = _matrix_values(fields[-1], line)
        if values == [""]:
            continue
        if len(values) > len(column.code_schema):
            raise LegacyImportError(
                f"Cell in column {column.name} has {len(values)} values for "
                f"{len(column.code_schema)} codes: {line!r}"
            )
        for code, value in zip(column.code_schema, values):
            cell.codes[code] = value


def _cell_block(section: List[str], header_idx: int) -> List[str]:
    block = []
    for line in section[header_idx + 1:]:
        if line.strip() == "0":
            return block
        block.append(line)
    raise LegacyImportError(f"Unterminated cell block after: {section[header_idx]!r}")


def parse_legacy_string(
    content: str,
    ignore_columns: Iterable[str] = (),
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Column]:
    """
    Parse legacy file content into columns.

    Args:
        content: Whole file as a string
        ignore_columns: Extra declaration names to skip
        config: Supplies the tick rate and the always-ignored names

    Returns:
        Columns in declaration order

    Raises:
        LegacyImportError: If a section is missing or any line is malformed
    """
    lines = re.split(r"[\r\n]", content.replace("\r\n", "\n"))

    pred_idx = _find_marker(lines, PREDICATES_MARKER)
    var_idx = _find_marker(lines, VARIABLES_MARKER)
    spread_idx = _find_marker(lines, SPREADPANE_MARKER)
    if not pred_idx < var_idx < spread_idx:
        raise LegacyImportError("Section markers are out of order")

    ignored = list(config.legacy_ignored_columns) + list(ignore_columns)
    declarations = _parse_declarations(lines[pred_idx + 2:var_idx], ignored)
    logger.info(f"Found {len(declarations)} column declaration(s)")

    section = lines[var_idx:spread_idx + 1]
    columns = []
    for decl in declarations:
        column = Column(name=decl.name, code_schema=decl.codes)
        for idx, line in enumerate(section):
            parts = line.split()
            if len(parts) < 3 or parts[2] != decl.declaration:
                continue
            string_column = idx > 0 and "strID" in section[idx - 1]
            _read_cells(column, _cell_block(section, idx), string_column, config)
        if not column.cells:
            logger.warning(f"Column {column.name} is declared but has no cell data")
        logger.debug(f"Imported {len(column.cells)} cells into {column.name}")
        columns.append(column)

    return columns


def parse_legacy_file(
    filepath,
    ignore_columns: Iterable[str] = (),
    config: Optional[EngineConfig] = None,
) -> List[Column]:
    """
    Parse a legacy file into columns.

    Raises:
        FileNotFoundError: If file doesn't exist
        LegacyImportError: If parsing fails
    """
    path = Path(filepath).expanduser()
    try:
        # Legacy files predate UTF-8
        with open(path, "r", encoding="latin-1", newline="") as f:
            content = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Legacy file not found: {filepath}")

    logger.info(f"Opened legacy file {path}")
    return parse_legacy_string(content, ignore_columns=ignore_columns, config=config or DEFAULT_CONFIG)


__all__ = [
    "LegacyImportError",
    "parse_legacy_string",
    "parse_legacy_file",
]
