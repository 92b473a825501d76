"""
Sandboxed execution of user scripts.

A script is a restricted Python module defining two functions::

    def headers():
        return ["topic"]

    def rows(pid):
        mods = object(pid).datastream("MODS") if object(pid) else None
        if mods is None:
            return []
        return [[topic.text] for topic in mods.find("subject/topic")]

Scripts are compiled with RestrictedPython, so they only see the host
functions registered here, a handful of pure builtins, the helper modules of
the configured module directories and the ``math``/``re`` standard modules.
Each entry point call runs in a freshly executed module namespace.
"""

from __future__ import annotations

import ast
import builtins
import importlib
import operator
import os
import re
import traceback
import types
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from RestrictedPython import compile_restricted_exec, limited_builtins, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from ..parsers.tree import Element, convert
from ..repository.objects import Repository
from ..utils.errors import (
    ConversionError,
    ExtractionError,
    ScriptParseError,
    ScriptRuntimeError,
    report_error,
)
from .bindings import ObjectHandle, edtf, join, plain_text, render, stable_hash

DEFAULT_XML_MIME_TYPES = ("application/rdf+xml", "application/xml", "text/xml")

ENTRY_POINTS = ("headers", "rows")

# Standard modules scripts may import and the names they see of each.  Scripts
# get a namespace copy of these names, never the module itself.
STDLIB_EXPORTS: Dict[str, Tuple[str, ...]] = {
    "math": (
        "ceil", "comb", "copysign", "e", "exp", "fabs", "factorial", "floor", "fmod", "fsum",
        "gcd", "inf", "isclose", "isfinite", "isinf", "isnan", "isqrt", "lcm", "log", "log10",
        "log2", "nan", "perm", "pi", "pow", "prod", "sqrt", "tau", "trunc",
    ),
    "re": (
        "compile", "escape", "findall", "finditer", "fullmatch", "match", "search", "split",
        "sub", "subn", "A", "ASCII", "I", "IGNORECASE", "M", "MULTILINE", "S", "DOTALL",
        "X", "VERBOSE",
    ),
}

_PURE_BUILTINS = (
    "all",
    "any",
    "dict",
    "enumerate",
    "filter",
    "list",
    "map",
    "max",
    "min",
    "reversed",
    "set",
    "sorted",
    "sum",
)

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
    "@=": operator.imatmul,
}

_POLICY_MESSAGE = re.compile(r"^Line (\d+):\s*(.*)$", re.DOTALL)

LogFunction = Callable[..., None]


def _print_log(message: str, level: str = "INFO") -> None:
    print(f"[{level}] {message}")


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    return _INPLACE_OPERATORS[op](target, value)


def _apply(function: Callable, *args: Any, **kwargs: Any) -> Any:
    return function(*args, **kwargs)


def _stdlib_namespace(name: str) -> types.SimpleNamespace:
    """Read-only copy of the exported names of a standard module.

    Flags become plain integers and nested modules are never exposed, so no
    attribute chain leads back to ``sys``.
    """
    module = importlib.import_module(name)
    exports: Dict[str, Any] = {}
    for attr in STDLIB_EXPORTS[name]:
        value = getattr(module, attr, None)
        if value is None or isinstance(value, (types.ModuleType, type)):
            continue
        if isinstance(value, int) and not isinstance(value, bool):
            value = int(value)
        exports[attr] = value
    return types.SimpleNamespace(**exports)


@dataclass(frozen=True)
class ScriptModule:
    """One loaded script: its file, its name and its compiled code."""

    path: str
    name: str
    code: types.CodeType


class _DebugPrinter(PrintCollector):
    """``print`` target forwarding complete lines to the debug sink."""

    def __init__(self, sink: Callable[[str], None], _getattr_: Any = None) -> None:
        super().__init__(_getattr_)
        self._sink = sink
        self._pending = ""

    def write(self, text: str) -> None:
        super().write(text)
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self._sink(line)


class ScriptHost:
    """Loads script modules and evaluates their entry points for objects."""

    def __init__(self, repository: Repository, modules_directories: Sequence[str] = (), *,
                 xml_mime_types: Iterable[str] = DEFAULT_XML_MIME_TYPES,
                 log: Optional[LogFunction] = None,
                 report_dir: Optional[str] = None) -> None:
        self.repository = repository
        self.modules_directories = list(modules_directories)
        self.xml_mime_types = {m.lower() for m in xml_mime_types}
        self.log = log or _print_log
        self.report_dir = report_dir
        self._source_files: Set[str] = set()
        self._helpers: Dict[str, types.CodeType] = {}
        self._builtins = self._make_builtins()

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------
    def _compile(self, path: str) -> types.CodeType:
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ScriptParseError(path, f"cannot read file: {e}") from e
        try:
            ast.parse(source, filename=path)
        except SyntaxError as e:
            raise ScriptParseError(path, e.msg, line=e.lineno, column=e.offset) from e
        result = compile_restricted_exec(source, filename=path)
        if result.errors:
            message = result.errors[0]
            match = _POLICY_MESSAGE.match(message)
            if match:
                raise ScriptParseError(path, match.group(2), line=int(match.group(1)))
            raise ScriptParseError(path, message)
        self._source_files.add(path)
        return result.code

    def load(self, path: str) -> ScriptModule:
        """Compile the script at ``path`` and check its entry points.

        Raises :class:`ScriptParseError` when the file does not compile and
        :class:`ScriptRuntimeError` when its body fails or does not define
        ``headers`` and ``rows``.
        """
        path = str(path)
        name = os.path.splitext(os.path.basename(path))[0]
        module = ScriptModule(path=path, name=name, code=self._compile(path))
        namespace = self._run_body(module, "<module>", pid=None)
        for entry in ENTRY_POINTS:
            if not callable(namespace.get(entry)):
                raise ScriptRuntimeError(path, entry, f"required function '{entry}' is not defined")
        return module

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def call_headers(self, module: ScriptModule) -> Any:
        return self._call(module, "headers", (), pid=None)

    def call_rows(self, module: ScriptModule, pid: str) -> Any:
        return self._call(module, "rows", (pid,), pid=pid)

    def _call(self, module: ScriptModule, function: str, args: Tuple[Any, ...],
              pid: Optional[str]) -> Any:
        namespace = self._run_body(module, function, pid)
        entry = namespace.get(function)
        if not callable(entry):
            raise ScriptRuntimeError(module.path, function, f"required function '{function}' is not defined", pid=pid)
        try:
            return entry(*args)
        except ExtractionError:
            raise
        except Exception as e:
            raise self._runtime_error(module, function, pid, e) from e

    def _run_body(self, module: ScriptModule, function: str, pid: Optional[str]) -> Dict[str, Any]:
        namespace = self._namespace(module.name)
        try:
            exec(module.code, namespace)
        except ExtractionError:
            raise
        except Exception as e:
            raise self._runtime_error(module, function, pid, e) from e
        return namespace

    def _runtime_error(self, module: ScriptModule, function: str, pid: Optional[str],
                       error: Exception) -> ScriptRuntimeError:
        line: Optional[int] = None
        column: Optional[int] = None
        for frame in traceback.extract_tb(error.__traceback__):
            if frame.filename in self._source_files:
                line = frame.lineno
                colno = getattr(frame, "colno", None)
                column = colno + 1 if colno is not None else None
        message = f"{type(error).__name__}: {error}"
        return ScriptRuntimeError(module.path, function, message, pid=pid, line=line, column=column)

    # ------------------------------------------------------------------
    # Sandbox
    # ------------------------------------------------------------------
    def _make_builtins(self) -> Dict[str, Any]:
        sandbox = dict(safe_builtins)
        sandbox.update(limited_builtins)
        sandbox.update({name: getattr(builtins, name) for name in _PURE_BUILTINS})
        sandbox.pop("hash", None)
        sandbox["__import__"] = self._import
        return sandbox

    def _namespace(self, name: str) -> Dict[str, Any]:
        return {
            "__builtins__": self._builtins,
            "__name__": name,
            "__metaclass__": type,
            "_getattr_": safer_getattr,
            "_getitem_": default_guarded_getitem,
            "_getiter_": default_guarded_getiter,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_write_": full_write_guard,
            "_inplacevar_": _inplacevar,
            "_apply_": _apply,
            "_print_": self._printer,
            "object": self.object,
            "debug": self.debug,
            "join": join,
            "edtf": edtf,
            "hash": stable_hash,
            "plain_text": plain_text,
        }

    def _printer(self, _getattr_: Any = None) -> _DebugPrinter:
        return _DebugPrinter(lambda line: self.log(line, level="DEBUG"), _getattr_)

    def _find_helper(self, name: str) -> Optional[str]:
        if not name or "." in name:
            return None
        for directory in self.modules_directories:
            path = os.path.join(directory, f"{name}.py")
            if os.path.isfile(path):
                return path
        return None

    def _import(self, name: str, globals: Any = None, locals: Any = None,
                fromlist: Any = (), level: int = 0) -> Any:
        if level != 0:
            raise ImportError("relative imports are not available to scripts")
        if name in STDLIB_EXPORTS:
            return _stdlib_namespace(name)
        path = self._find_helper(name)
        if path is None:
            raise ImportError(f"module '{name}' is not available to scripts")
        if path not in self._helpers:
            self._helpers[path] = self._compile(path)
        namespace = self._namespace(name)
        exec(self._helpers[path], namespace)
        module = types.ModuleType(name)
        module.__dict__.update({k: v for k, v in namespace.items() if not k.startswith("_")})
        return module

    # ------------------------------------------------------------------
    # Host functions
    # ------------------------------------------------------------------
    def object(self, pid: str) -> Optional[ObjectHandle]:
        """Handle on the object ``pid``, ``None`` when it does not exist."""
        obj = self.repository.resolve(pid)
        return ObjectHandle(obj, self.datastream) if obj is not None else None

    def datastream(self, pid: str, dsid: str) -> Optional[Element]:
        """Converted newest version of an XML datastream.

        Absent streams, non-XML streams and streams that fail to convert all
        yield ``None``.  Conversion failures are logged and reported.
        """
        version = self.repository.latest_stream_version(pid, dsid)
        if version is None:
            return None
        if version.mime_type.split(";")[0].strip().lower() not in self.xml_mime_types:
            return None
        data = self.repository.latest_version(pid, dsid)
        if data is None:
            return None
        try:
            return convert(data)
        except ConversionError as e:
            self.log(f"Datastream {dsid} of {pid} is not well-formed XML, treated as absent: {e}", level="WARNING")
            if self.report_dir:
                report_error("CONVERSION", {"pid": pid, "dsid": dsid}, e, report_dir=self.report_dir)
            return None

    def debug(self, *values: Any) -> None:
        self.log(" ".join(render(v) for v in values), level="DEBUG")


def load_modules(host: ScriptHost, paths: Iterable[str]) -> List[ScriptModule]:
    """Load every script, stopping at the first failure."""
    return [host.load(path) for path in paths]
