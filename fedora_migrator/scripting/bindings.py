"""
Host-callable surface exposed to scripts.

Everything here is read-only: :class:`ObjectHandle` wraps an immutable
:class:`RepositoryObject` and the helper functions are pure.  The script host
registers them as globals of every script namespace.
"""

from __future__ import annotations

import hashlib
import re
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Iterable, Optional, Tuple

from bs4 import BeautifulSoup

from ..parsers.tree import Element
from ..repository.models import RepositoryObject

StreamLoader = Callable[[str, str], Optional[Element]]

_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


class ObjectHandle:
    """Script view of one repository object."""

    __slots__ = ("_object", "_load_stream")

    def __init__(self, obj: RepositoryObject, load_stream: StreamLoader) -> None:
        self._object = obj
        self._load_stream = load_stream

    @property
    def pid(self) -> str:
        return self._object.pid

    @property
    def state(self) -> str:
        return self._object.state.value

    @property
    def label(self) -> str:
        return self._object.label

    @property
    def model(self) -> str:
        return self._object.model

    @property
    def parents(self) -> Tuple[str, ...]:
        return self._object.parents

    @property
    def owner(self) -> str:
        return self._object.owner

    @property
    def created(self) -> str:
        return self._object.created.isoformat() if self._object.created else ""

    @property
    def modified(self) -> str:
        return self._object.modified.isoformat() if self._object.modified else ""

    @property
    def weight(self) -> Optional[int]:
        return self._object.weight

    @property
    def datastreams(self) -> Tuple[str, ...]:
        return tuple(stream.id for stream in self._object.datastreams)

    def datastream(self, dsid: str) -> Optional[Element]:
        """Converted newest version of ``dsid``; ``None`` when absent or not XML."""
        return self._load_stream(self._object.pid, dsid)

    def __repr__(self) -> str:
        return f"ObjectHandle({self._object.pid!r}, model={self._object.model!r})"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Element):
        return value.text
    return str(value)


def join(values: Iterable[Any], delimiter: str = "") -> str:
    """Join the non-empty values; elements contribute their text."""
    return delimiter.join(text for text in (_as_text(v) for v in values) if text)


def edtf(value: Any) -> str:
    """Normalize a legacy date to ISO 8601.

    RFC 2822 and RFC 3339 timestamps keep their time and offset, otherwise the
    first valid ``YYYY-MM-DD`` found in the value is returned.  Anything else
    yields an empty string.
    """
    text = _as_text(value).strip()
    if not text:
        return ""
    try:
        return parsedate_to_datetime(text).isoformat()
    except (TypeError, ValueError, IndexError):
        pass
    if _RFC3339.match(text):
        normalized = text.replace("z", "Z").replace("Z", "+00:00").replace("t", "T")
        try:
            return datetime.fromisoformat(normalized).isoformat()
        except ValueError:
            pass
    found = _ISO_DATE.search(text)
    if found:
        try:
            return date.fromisoformat(found.group(0)).isoformat()
        except ValueError:
            return ""
    return ""


def stable_hash(value: Any) -> str:
    """Hex digest of the value's text, identical from one run to the next."""
    return hashlib.sha1(_as_text(value).encode("utf-8")).hexdigest()[:16].upper()


def plain_text(value: Any) -> str:
    """Strip HTML markup embedded in a metadata value and collapse whitespace."""
    text = _as_text(value)
    if "<" not in text and "&" not in text:
        return " ".join(text.split())
    soup = BeautifulSoup(text, "html.parser")
    return " ".join(soup.get_text(" ").split())


def render(value: Any) -> str:
    """Readable rendering used by ``debug()``."""
    if isinstance(value, Element):
        return repr(value.to_dict())
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render(v) for v in value) + "]"
    return repr(value) if not isinstance(value, str) else value
