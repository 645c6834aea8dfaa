"""
Codesheet Package

Scripting API over a behavioral-coding spreadsheet: time-stamped cells in
named columns, interval algebra across columns, inter-rater reliability and
code validation.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - Video playback
    - Spreadsheet rendering
    - Any process-wide "current project"

Every operation receives the Column or ColumnSet it works on.
Storage formats live behind serialization and legacy_import only.
"""

from codesheet.model import (
    Cell,
    CodeNameCollisionError,
    CodesheetError,
    Column,
    Interval,
    InvalidIntervalError,
    NoSuchCodeError,
    sanitize_code_name,
)
from codesheet.project import ColumnNotFoundError, ColumnSet, ProjectMetadata
from codesheet.algebra import (
    UnsetOffsetError,
    create_mutually_exclusive,
    merge_columns,
    resample,
    smooth_column,
)
from codesheet.reliability import (
    ContingencyTable,
    check_reliability,
    check_reliability_continuous,
    compute_kappa,
    make_reliability,
)
from codesheet.validation import check_valid_codes, check_valid_codes_map
from codesheet.serialization import FormatError, load, save
from codesheet.legacy_import import LegacyImportError, parse_legacy_file

__version__ = "0.1.0"
