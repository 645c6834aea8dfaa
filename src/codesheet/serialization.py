"""
Serialization helpers for coding objects (Cell, Column, ColumnSet).

Provides lossless JSON/YAML round-trip via intermediate dict representation,
plus the load/save boundary used by scripts. Structure is kept stable and
explicit; nothing is inferred from the stored data beyond what is written.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from codesheet.model import Cell, CodesheetError, Column, Interval
from codesheet.project import ColumnSet, ProjectMetadata

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class FormatError(CodesheetError, ValueError):
    """Raised when stored contents cannot be parsed into columns."""
    pass


def cell_to_dict(c: Cell) -> Dict[str, Any]:
    return {
        "ordinal": c.ordinal,
        "onset": c.onset,
        "offset": c.offset,
        "values": dict(c.codes),
    }


def cell_from_dict(d: Dict[str, Any]) -> Cell:
    return Cell(
        ordinal=int(d.get("ordinal", 0)),
        interval=Interval(int(d["onset"]), int(d["offset"])),
        codes={str(k): "" if v is None else str(v) for k, v in (d.get("values") or {}).items()},
    )


def column_to_dict(col: Column) -> Dict[str, Any]:
    # Values are keyed by sanitized code; the raw names give the stored labels
    return {
        "name": col.name,
        "hidden": col.hidden,
        "codes": list(col.raw_code_names),
        "cells": [cell_to_dict(c) for c in col.cells],
    }


def column_from_dict(d: Dict[str, Any]) -> Column:
    return Column(
        name=d["name"],
        code_schema=list(d.get("codes") or []),
        cells=[cell_from_dict(c) for c in d.get("cells", [])],
        hidden=bool(d.get("hidden", False)),
    )


def metadata_to_dict(m: ProjectMetadata) -> Dict[str, Any]:
    return {
        "name": m.name,
        "database_file_name": m.database_file_name,
        "attributes": dict(m.attributes),
    }


def metadata_from_dict(d: Dict[str, Any] | None) -> ProjectMetadata:
    d = d or {}
    return ProjectMetadata(
        name=d.get("name", ""),
        database_file_name=d.get("database_file_name", "dataStore"),
        attributes=dict(d.get("attributes") or {}),
    )


def column_set_to_dict(cs: ColumnSet, metadata: ProjectMetadata | None = None) -> Dict[str, Any]:
    return {
        "format_version": FORMAT_VERSION,
        "metadata": metadata_to_dict(metadata or ProjectMetadata()),
        "columns": [column_to_dict(col) for col in cs.columns()],
    }


def column_set_from_dict(d: Dict[str, Any]) -> Tuple[ColumnSet, ProjectMetadata]:
    """
    Rebuild a column set from its dict form.

    Raises:
        FormatError: If the structure is not a stored column set
    """
    if not isinstance(d, dict):
        raise FormatError(f"Expected a mapping at top level, got {type(d).__name__}")
    version = d.get("format_version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise FormatError(f"Unsupported format version: {version}")
    try:
        columns = [column_from_dict(c) for c in d.get("columns", [])]
        metadata = metadata_from_dict(d.get("metadata"))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise FormatError(f"Malformed column data: {e}") from e

    cs = ColumnSet()
    for col in columns:
        # Stored code names are already what the user chose to keep
        cs.set_column(col, sanitize=False)
    return cs, metadata


def column_set_to_json(cs: ColumnSet, metadata: ProjectMetadata | None = None) -> str:
    return json.dumps(column_set_to_dict(cs, metadata), sort_keys=True)


def column_set_from_json(s: str) -> Tuple[ColumnSet, ProjectMetadata]:
    try:
        d = json.loads(s)
    except json.JSONDecodeError as e:
        raise FormatError(f"Invalid JSON: {e}") from e
    return column_set_from_dict(d)


def column_set_to_yaml(cs: ColumnSet, metadata: ProjectMetadata | None = None) -> str:
    return yaml.safe_dump(column_set_to_dict(cs, metadata), sort_keys=False)


def column_set_from_yaml(s: str) -> Tuple[ColumnSet, ProjectMetadata]:
    try:
        d = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise FormatError(f"Invalid YAML: {e}") from e
    return column_set_from_dict(d)


def _is_json(path: Path) -> bool:
    return path.suffix.lower() == ".json"


def load(path) -> Tuple[ColumnSet, ProjectMetadata]:
    """
    Load a column set and its project metadata from a file.

    `.json` files are read as JSON, anything else as YAML.

    Raises:
        FileNotFoundError: If the path does not exist
        FormatError: If the contents cannot be parsed
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"File does not exist: {path}")

    with open(path, "r", encoding="utf-8") as fh:
        content = fh.read()

    if _is_json(path):
        cs, metadata = column_set_from_json(content)
    else:
        cs, metadata = column_set_from_yaml(content)
    logger.info(f"Opened {path} with {len(cs)} columns")
    return cs, metadata


def save(cs: ColumnSet, metadata: ProjectMetadata | None, path) -> None:
    """
    Save a column set and project metadata, overwriting the destination.

    A missing project name is filled in from the file name.

    Raises:
        OSError: If the destination cannot be written
    """
    path = Path(path).expanduser()
    metadata = metadata or ProjectMetadata()
    if not metadata.name:
        metadata = ProjectMetadata(
            name=path.name,
            database_file_name=metadata.database_file_name,
            attributes=dict(metadata.attributes),
        )

    if _is_json(path):
        content = column_set_to_json(cs, metadata)
    else:
        content = column_set_to_yaml(cs, metadata)

    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    logger.info(f"Saved {len(cs)} columns to {path}")
