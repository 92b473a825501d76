import json
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fedora_migrator.utils.errors import (
    ERRORS,
    ConversionError,
    SchemaViolation,
    ScriptParseError,
    ScriptRuntimeError,
    report_error,
    report_ok,
)


def test_parse_error_message_names_file_and_position():
    error = ScriptParseError("scripts/subject.py", "invalid syntax", line=4, column=12)
    assert str(error) == "Failed to parse script scripts/subject.py (line 4, column 12): invalid syntax"


def test_runtime_error_message_names_function_and_object():
    error = ScriptRuntimeError("scripts/subject.py", "rows", "NameError: name 'x' is not defined",
                               pid="ns:1", line=7)
    assert str(error) == (
        "Runtime error in script scripts/subject.py, in rows() for object 'ns:1' (line 7): "
        "NameError: name 'x' is not defined"
    )


def test_schema_violation_message_names_module_and_object():
    error = SchemaViolation("subject", "expected 2 values per row, got 3", pid="ns:1", expected=2, actual=3)
    assert str(error) == "Schema violation in module 'subject' for object 'ns:1': expected 2 values per row, got 3"
    assert error.code == "SCHEMA_VIOLATION"


def test_conversion_error_includes_byte_offset():
    error = ConversionError("mismatched tag", line=3, column=2, byte_offset=17)
    assert str(error) == "mismatched tag (line 3, column 2) at byte 17"


def test_report_error_writes_context(tmp_path):
    error = SchemaViolation("subject", "too wide", pid="ns:1", expected=1, actual=2)
    entry = report_error("SCHEMA_VIOLATION", {"module": "subject"}, error, report_dir=str(tmp_path))
    with open(tmp_path / "errors.jsonl", encoding="utf-8") as f:
        written = json.loads(f.read())
    assert written == entry
    assert entry["message"] == ERRORS["SCHEMA_VIOLATION"]
    assert entry["pid"] == "ns:1"
    assert entry["expected"] == 1
    assert entry["error"] == str(error)


def test_report_error_omits_empty_context(tmp_path):
    entry = report_error("SCRIPT_PARSE", {}, ScriptParseError("a.py", "bad"), report_dir=str(tmp_path))
    assert "line" not in entry
    assert entry["path"] == "a.py"


def test_report_ok_appends_lines(tmp_path):
    report_ok("CSV_WRITTEN", {"module": "a"}, {"path": "out/a.csv"}, report_dir=str(tmp_path))
    report_ok("UNLISTED", {"module": "b"}, report_dir=str(tmp_path))
    with open(tmp_path / "success.jsonl", encoding="utf-8") as f:
        entries = [json.loads(line) for line in f]
    assert entries[0] == {"code": "CSV_WRITTEN", "message": "CSV file written", "module": "a", "path": "out/a.csv"}
    assert entries[1]["message"] == "UNLISTED"
