"""
High-level orchestration of the Fedora extraction.

This module defines a :class:`FedoraExtractionTool` class that ties together
the repository accessor, the script host and the CSV writer into a complete
pipeline.  It supports migrating a Fedora installation into the
directory-per-object layout, then running a directory of scripts over every
object to produce one CSV table per script.

Configuration is supplied via a JSON file path or directly as a dictionary.
Every key is optional; see :meth:`FedoraExtractionTool.__init__` for the
sections and their defaults.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fedora_migrator.migrators.layout import MigrationResults, migrate_data_from_fedora
from fedora_migrator.repository import Repository
from fedora_migrator.scripting import DEFAULT_XML_MIME_TYPES, ScriptHost, ScriptModule, load_modules
from fedora_migrator.utils.csv_writer import write_csv
from fedora_migrator.utils.errors import (
    ConfigurationError,
    ExtractionError,
    SchemaViolation,
    StorageError,
    report_error,
    report_ok,
)

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

SCALAR_TYPES = (str, int, float, bool, type(None))

STAGING_PREFIX = ".staging-"


def find_scripts(directories: Sequence[str]) -> List[str]:
    """Script files found anywhere below ``directories``, in sorted walk order.

    Files and directories whose name starts with ``_`` or ``.`` are skipped.

    Raises :class:`ConfigurationError` for a missing directory or when two
    scripts share a name, since both would write the same CSV file.
    """
    scripts: List[str] = []
    seen: Dict[str, str] = {}
    for directory in directories:
        if not os.path.isdir(directory):
            raise ConfigurationError(f"Scripts directory {directory} does not exist")
        for root, dirs, files in os.walk(directory):
            dirs[:] = sorted(d for d in dirs if not d.startswith("_") and not d.startswith("."))
            for name in sorted(files):
                if not name.endswith(".py") or name.startswith("_"):
                    continue
                path = os.path.join(root, name)
                module = name[:-3]
                if module in seen:
                    raise ConfigurationError(f"Scripts {seen[module]} and {path} both define the table '{module}'")
                seen[module] = path
                scripts.append(path)
    return scripts


def _cell(value: Any) -> Any:
    return "" if value is None else value


def validate_headers(module: str, headers: Any) -> List[str]:
    if not isinstance(headers, (list, tuple)) or not headers:
        raise SchemaViolation(module, "headers() must return a non-empty list of column names")
    for name in headers:
        if not isinstance(name, str):
            raise SchemaViolation(module, f"column name {name!r} is not a string")
    return list(headers)


def validate_rows(module: str, pid: str, rows: Any, width: int) -> List[List[Any]]:
    """Check the shape of ``rows(pid)`` output against the header width."""
    if rows is None:
        return []
    if not isinstance(rows, (list, tuple)):
        raise SchemaViolation(module, f"rows() must return a list of rows, not {type(rows).__name__}", pid=pid)
    validated: List[List[Any]] = []
    for row in rows:
        if not isinstance(row, (list, tuple)):
            raise SchemaViolation(module, f"row {row!r} is not a list of values", pid=pid)
        if len(row) != width:
            raise SchemaViolation(
                module,
                f"expected {width} values per row, got {len(row)}",
                pid=pid,
                expected=width,
                actual=len(row),
            )
        for value in row:
            if not isinstance(value, SCALAR_TYPES):
                raise SchemaViolation(module, f"value {value!r} of type {type(value).__name__} is not a scalar", pid=pid)
        validated.append([_cell(v) for v in row])
    return validated


def _blank(row: Sequence[Any]) -> bool:
    return all(str(v).strip() == "" for v in row)


class FedoraExtractionTool:
    """
    Encapsulates all state and behavior required to extract CSV tables from
    a Fedora repository.  This class is responsible for reading
    configuration, logging, migrating the repository layout and running the
    scripts.  Detailed success and failure information is recorded using the
    :mod:`fedora_migrator.utils.errors` module.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, *, config_file: Optional[str] = None) -> None:
        if config_file and os.path.exists(config_file):
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Could not decode {config_file}: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Could not read {config_file}: {e}") from e
        elif config is None:
            config = {}

        # Ensure essential keys exist to prevent KeyErrors
        config.setdefault("repository", {})
        config["repository"].setdefault("skip_system_objects", True)

        config.setdefault("extraction", {})
        config["extraction"].setdefault("skip_empty_rows", False)
        config["extraction"].setdefault("xml_mime_types", list(DEFAULT_XML_MIME_TYPES))

        config.setdefault("reports", {})
        config["reports"].setdefault(
            "directory", os.getenv("FEDORA_MIGRATOR_REPORTS_DIR", os.path.join("reports", "extraction"))
        )

        config.setdefault("logging", {})
        config["logging"].setdefault("level", os.getenv("FEDORA_MIGRATOR_LOG_LEVEL", "INFO"))
        config["logging"].setdefault(
            "log_file", os.path.join(config["reports"]["directory"], "extraction.log")
        )

        level = str(config["logging"]["level"]).upper()
        if level not in LEVELS:
            raise ConfigurationError(f"Unknown log level '{config['logging']['level']}'")
        config["logging"]["level"] = level

        self.config = config
        self.report_dir: str = config["reports"]["directory"]

    def log_message(self, message: str, level: str = "INFO") -> None:
        if LEVELS.get(level, LEVELS["INFO"]) < LEVELS[self.config["logging"]["level"]]:
            return
        print(f"[{level}] {message}")
        # Append to log file
        log_file = self.config["logging"]["log_file"]
        if log_file:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            with open(log_file, "a", encoding="utf-8") as f:
                f.write(f"{level}: {message}\n")

    def fail(self, exc: ExtractionError, subject: Dict[str, Any]) -> None:
        """Log and report a fatal error once."""
        self.log_message(str(exc), level="ERROR")
        report_error(exc.code, subject, exc, report_dir=self.report_dir)

    # ------------------------------------------------------------------
    # Layout migration
    # ------------------------------------------------------------------
    def migrate_layout(self, fedora_home: str, output_dir: str, *, copy: bool = True,
                       checksum: bool = False) -> Dict[str, MigrationResults]:
        self.log_message(f"Migrating Fedora content from {fedora_home} to {output_dir}")
        try:
            results = migrate_data_from_fedora(
                fedora_home, output_dir, copy=copy, checksum=checksum, log=self.log_message
            )
        except ExtractionError as e:
            self.fail(e, {"input": fedora_home})
            raise
        except OSError as e:
            error = StorageError(f"Failed to migrate {fedora_home} to {output_dir}: {e}")
            self.fail(error, {"input": fedora_home})
            raise error from e
        for kind, counts in results.items():
            self.log_message(
                f"{kind}: {counts.migrated} migrated, {counts.updated} updated, {counts.skipped} skipped"
            )
            report_ok("MIGRATED", {"kind": kind}, counts.as_dict(), report_dir=self.report_dir)
        return results

    # ------------------------------------------------------------------
    # Script extraction
    # ------------------------------------------------------------------
    def _table(self, host: ScriptHost, module: ScriptModule, pids: Sequence[str]) -> Tuple[List[str], List[List[Any]]]:
        headers = validate_headers(module.name, host.call_headers(module))
        self.log_message(f"Module '{module.name}' declares columns {headers}", level="DEBUG")
        skip_empty = self.config["extraction"]["skip_empty_rows"]
        table: List[List[Any]] = []
        for pid in pids:
            rows = validate_rows(module.name, pid, host.call_rows(module, pid), len(headers))
            if skip_empty:
                rows = [row for row in rows if not _blank(row)]
            table.extend(rows)
        return headers, table

    def run_scripts(self, input_dir: str, output_dir: str, scripts_dirs: Sequence[str],
                    modules_dirs: Sequence[str] = (), pids: Sequence[str] = ()) -> Dict[str, str]:
        """
        Run every script over the selected objects and write one CSV per
        script.  Output is all-or-nothing: tables are staged and only moved
        into ``output_dir`` once every script has completed.

        :param input_dir: Root of the migrated repository layout.
        :param output_dir: Directory receiving ``<module>.csv`` files.
        :param scripts_dirs: Directories holding the script modules.
        :param modules_dirs: Directories holding helper modules scripts may import.
        :param pids: Restrict the run to these identifiers.
        :return: Mapping of module name to the written CSV path.
        :raises ExtractionError: on the first fatal error, after reporting it.
        """
        subject: Dict[str, Any] = {"input": input_dir}
        try:
            if not os.path.isdir(input_dir):
                raise ConfigurationError(f"Input directory {input_dir} does not exist")
            repository = Repository(
                input_dir,
                skip_system_objects=self.config["repository"]["skip_system_objects"],
                log=self.log_message,
            )
            host = ScriptHost(
                repository,
                modules_dirs,
                xml_mime_types=self.config["extraction"]["xml_mime_types"],
                log=self.log_message,
                report_dir=self.report_dir,
            )
            modules = load_modules(host, find_scripts(scripts_dirs))
            self.log_message(f"Loaded {len(modules)} script modules")
            selected = repository.identifiers(limit_to=pids or None)
            self.log_message(f"Selected {len(selected)} objects")

            os.makedirs(output_dir, exist_ok=True)
            staging = tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=output_dir)
            try:
                staged: Dict[str, str] = {}
                for module in modules:
                    subject = {"module": module.name, "path": module.path}
                    headers, table = self._table(host, module, selected)
                    staged[module.name] = write_csv(os.path.join(staging, f"{module.name}.csv"), headers, table)
                    self.log_message(f"Module '{module.name}' produced {len(table)} rows")
                written: Dict[str, str] = {}
                for name, path in staged.items():
                    target = os.path.join(output_dir, f"{name}.csv")
                    os.replace(path, target)
                    written[name] = target
                    report_ok("CSV_WRITTEN", {"module": name}, {"path": target}, report_dir=self.report_dir)
            finally:
                shutil.rmtree(staging, ignore_errors=True)
        except ExtractionError as e:
            self.fail(e, subject)
            raise
        except OSError as e:
            error = StorageError(f"Failed to extract tables from {input_dir} into {output_dir}: {e}")
            self.fail(error, subject)
            raise error from e
        self.log_message(f"Wrote {len(written)} CSV files to {output_dir}")
        return written
