"""
Utility helpers used by the extraction tool.

This subpackage exposes the error taxonomy with its structured report
logging, CSV table generation and natural ordering of identifiers.
"""

from .csv_writer import write_csv
from .errors import (
    ERRORS,
    ConfigurationError,
    ConversionError,
    ExtractionError,
    LayoutMigrationError,
    SchemaViolation,
    ScriptParseError,
    ScriptRuntimeError,
    StorageError,
    report_error,
    report_ok,
)
from .sorting import natural_key, natural_sorted

__all__ = [
    "ERRORS",
    "ConfigurationError",
    "ConversionError",
    "ExtractionError",
    "LayoutMigrationError",
    "SchemaViolation",
    "ScriptParseError",
    "ScriptRuntimeError",
    "StorageError",
    "report_error",
    "report_ok",
    "write_csv",
    "natural_key",
    "natural_sorted",
]
