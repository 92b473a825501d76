"""
Error taxonomy and structured reports for the extraction run.

The :mod:`fedora_migrator.utils.errors` module centralizes two things:

* the exceptions raised by the pipeline.  Every fatal failure derives from
  :class:`ExtractionError` and renders as a single human readable message
  naming the file, position and (when relevant) the object identifier being
  processed, so a failure can be fixed without re-running with more
  verbosity;
* the writing of log entries for failed and successful steps.  Each entry is
  appended to a JSON Lines file under the reports directory so that the
  information can be reviewed or parsed after a run.

Two public report functions are provided:

``report_error``
    Record an error for a subject (a script, an object, a stream).  An
    optional exception can be supplied and will be serialized to the log.

``report_ok``
    Record a successful step.  Additional key/value information can be
    attached to the entry via the ``extra`` parameter.

The ``ERRORS`` dictionary maps error or event codes to human readable
messages.  Codes not present in the dictionary fall back to the code itself.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

# Mapping of event codes used throughout the run to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :func:`report_error` and :func:`report_ok`.
ERRORS: Dict[str, str] = {
    "CONFIGURATION": "Invalid configuration",
    "CONVERSION": "Failed to convert datastream, treated as absent",
    "SCRIPT_PARSE": "Failed to parse script",
    "SCRIPT_RUNTIME": "Runtime error in script",
    "SCHEMA_VIOLATION": "Script output does not match its headers",
    "LAYOUT_MIGRATION": "Failed to migrate Fedora content",
    "STORAGE": "Failed to read or write a file",
    "CSV_WRITTEN": "CSV file written",
    "MIGRATED": "Fedora content migrated",
}

DEFAULT_REPORT_DIR = os.path.join("reports", "extraction")


class ExtractionError(Exception):
    """Base class of every fatal error raised by the tool."""

    code = "EXTRACTION"

    def context(self) -> Dict[str, Any]:
        """Fields written to the JSON Lines report alongside the message."""
        return {}


class ConfigurationError(ExtractionError):
    code = "CONFIGURATION"


class LayoutMigrationError(ExtractionError):
    code = "LAYOUT_MIGRATION"


class StorageError(ExtractionError):
    """An input could not be read or an output could not be written."""

    code = "STORAGE"


def _position(line: Optional[int], column: Optional[int]) -> str:
    if line is None:
        return ""
    if column is None:
        return f" (line {line})"
    return f" (line {line}, column {column})"


class ConversionError(ExtractionError):
    """A content stream is not a well-formed XML document.

    Never fatal on its own: the script host turns it into an absent value.
    """

    code = "CONVERSION"

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None,
                 byte_offset: Optional[int] = None) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.byte_offset = byte_offset
        super().__init__(str(self))

    def __str__(self) -> str:
        offset = f" at byte {self.byte_offset}" if self.byte_offset is not None else ""
        return f"{self.message}{_position(self.line, self.column)}{offset}"

    def context(self) -> Dict[str, Any]:
        return {"line": self.line, "column": self.column, "byte_offset": self.byte_offset}


class ScriptParseError(ExtractionError):
    """A script or helper module could not be compiled."""

    code = "SCRIPT_PARSE"

    def __init__(self, path: str, message: str, line: Optional[int] = None,
                 column: Optional[int] = None) -> None:
        self.path = str(path)
        self.message = message
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Failed to parse script {self.path}{_position(self.line, self.column)}: {self.message}"

    def context(self) -> Dict[str, Any]:
        return {"path": self.path, "line": self.line, "column": self.column}


class ScriptRuntimeError(ExtractionError):
    """Script code raised while loading or while evaluating an entry point."""

    code = "SCRIPT_RUNTIME"

    def __init__(self, path: str, function: str, message: str, pid: Optional[str] = None,
                 line: Optional[int] = None, column: Optional[int] = None) -> None:
        self.path = str(path)
        self.function = function
        self.message = message
        self.pid = pid
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        target = f" for object '{self.pid}'" if self.pid is not None else ""
        return (
            f"Runtime error in script {self.path}, in {self.function}(){target}"
            f"{_position(self.line, self.column)}: {self.message}"
        )

    def context(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "function": self.function,
            "pid": self.pid,
            "line": self.line,
            "column": self.column,
        }


class SchemaViolation(ExtractionError):
    """Script output does not have the shape declared by ``headers()``."""

    code = "SCHEMA_VIOLATION"

    def __init__(self, module: str, message: str, pid: Optional[str] = None,
                 expected: Optional[int] = None, actual: Optional[int] = None) -> None:
        self.module = module
        self.message = message
        self.pid = pid
        self.expected = expected
        self.actual = actual
        super().__init__(str(self))

    def __str__(self) -> str:
        target = f" for object '{self.pid}'" if self.pid is not None else ""
        return f"Schema violation in module '{self.module}'{target}: {self.message}"

    def context(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "pid": self.pid,
            "expected": self.expected,
            "actual": self.actual,
        }


def _write_jsonl(report_dir: str, file_name: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline."""
    os.makedirs(report_dir, exist_ok=True)
    with open(os.path.join(report_dir, file_name), "a", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
        f.write("\n")


def report_error(code: str, subject: Dict[str, Any], exc: Optional[Exception] = None, *,
                 report_dir: str = DEFAULT_REPORT_DIR) -> Dict[str, Any]:
    """Log an error event for ``subject``.

    Parameters
    ----------
    code:
        A key identifying the type of error.  If ``code`` is present in
        :data:`ERRORS` its value will be used as the message.
    subject:
        What the error is about, e.g. ``{"module": "subject"}`` or
        ``{"pid": "ns:1", "dsid": "MODS"}``.
    exc:
        Optional exception instance that triggered the error.  Its string
        representation, and the positional context of an
        :class:`ExtractionError`, are included in the log entry.
    report_dir:
        Directory holding ``errors.jsonl``.

    Returns
    -------
    dict
        The entry that was written.
    """
    entry: Dict[str, Any] = {"code": code, "message": ERRORS.get(code, code)}
    entry.update(subject)
    if exc is not None:
        entry["error"] = str(exc)
        if isinstance(exc, ExtractionError):
            entry.update({k: v for k, v in exc.context().items() if v is not None})
    _write_jsonl(report_dir, "errors.jsonl", entry)
    return entry


def report_ok(code: str, subject: Dict[str, Any], extra: Optional[Dict[str, Any]] = None, *,
              report_dir: str = DEFAULT_REPORT_DIR) -> Dict[str, Any]:
    """Log a successful event for ``subject``.

    ``extra`` is merged into the entry written to ``success.jsonl``.
    """
    entry: Dict[str, Any] = {"code": code, "message": ERRORS.get(code, code)}
    entry.update(subject)
    if extra:
        entry.update(extra)
    _write_jsonl(report_dir, "success.jsonl", entry)
    return entry
