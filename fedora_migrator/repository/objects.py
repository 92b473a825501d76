"""
Read-only access to a migrated repository.

The layout, as written by :mod:`fedora_migrator.migrators.layout`, is one
directory per object, named after its identifier::

    <root>/<pid>/object.xml                        FOXML metadata
    <root>/<pid>/datastreams/<DSID>/<file name>    one file per version

:class:`Repository` resolves identifiers to :class:`RepositoryObject` values
and datastream ids to the bytes of their newest version.  Nothing is ever
written; a missing object or stream is reported as ``None`` so scripts can
treat it as ordinary data absence.
"""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..utils.sorting import natural_sorted
from .foxml import RelsExt, object_from_foxml, parse_rels_ext, read_foxml
from .models import RepositoryObject, StreamVersion

OBJECT_FILE = "object.xml"
DATASTREAMS_DIRECTORY = "datastreams"
RELS_EXT = "RELS-EXT"

LogFunction = Callable[..., None]


def _print_log(message: str, level: str = "INFO") -> None:
    print(f"[{level}] {message}")


def valid_identifier(pid: str) -> bool:
    """Whether ``pid`` can name an object directory directly under the root."""
    return (
        isinstance(pid, str)
        and bool(pid)
        and pid not in (".", "..")
        and not any(c in pid for c in ("/", "\\", "\x00"))
    )


def object_directory(root: str, pid: str) -> str:
    return os.path.join(root, pid)


def version_path(root: str, pid: str, dsid: str, version: StreamVersion) -> str:
    return os.path.join(root, pid, DATASTREAMS_DIRECTORY, dsid, version.file_name)


class Repository:
    """Accessor over the directory-per-object layout rooted at ``root``."""

    def __init__(self, root: str, *, skip_system_objects: bool = True,
                 log: Optional[LogFunction] = None) -> None:
        self.root = root
        self.skip_system_objects = skip_system_objects
        self.log = log or _print_log
        self._objects: Dict[str, Optional[RepositoryObject]] = {}

    def _object_file(self, pid: str) -> Optional[str]:
        if not valid_identifier(pid):
            return None
        path = os.path.join(object_directory(self.root, pid), OBJECT_FILE)
        return path if os.path.isfile(path) else None

    def _rels_ext(self, pid: str, obj: RepositoryObject) -> Optional[RelsExt]:
        stream = obj.datastream(RELS_EXT)
        version = stream.latest() if stream else None
        if version is None:
            return None
        path = version_path(self.root, pid, RELS_EXT, version)
        if not os.path.isfile(path):
            self.log(f"RELS-EXT of {pid} is missing from {path}", level="WARNING")
            return None
        with open(path, "rb") as f:
            return parse_rels_ext(f.read())

    def _load(self, pid: str) -> Optional[RepositoryObject]:
        path = self._object_file(pid)
        if path is None:
            return None
        try:
            root = read_foxml(path)
            # Datastream inventory first, RELS-EXT is one of its streams.
            inventory = object_from_foxml(pid, root)
            return object_from_foxml(pid, root, self._rels_ext(pid, inventory))
        except (ET.ParseError, ValueError) as e:
            self.log(f"Failed to read object {pid} from {path}: {e}", level="WARNING")
            return None

    def resolve(self, pid: str) -> Optional[RepositoryObject]:
        """The object named ``pid``, or ``None`` when there is no valid object directory."""
        if pid not in self._objects:
            self._objects[pid] = self._load(pid)
        return self._objects[pid]

    def stream_names(self, pid: str) -> Set[str]:
        obj = self.resolve(pid)
        return obj.stream_names() if obj else set()

    def latest_stream_version(self, pid: str, dsid: str) -> Optional[StreamVersion]:
        obj = self.resolve(pid)
        stream = obj.datastream(dsid) if obj else None
        return stream.latest() if stream else None

    def latest_version(self, pid: str, dsid: str) -> Optional[bytes]:
        """Bytes of the newest version of ``dsid``, ``None`` when absent."""
        version = self.latest_stream_version(pid, dsid)
        if version is None:
            return None
        path = version_path(self.root, pid, dsid, version)
        if not os.path.isfile(path):
            self.log(f"Datastream {dsid} of {pid} is missing from {path}", level="WARNING")
            return None
        with open(path, "rb") as f:
            return f.read()

    def _discover(self) -> List[str]:
        if not os.path.isdir(self.root):
            return []
        return [name for name in os.listdir(self.root) if self._object_file(name)]

    def identifiers(self, limit_to: Optional[Iterable[str]] = None) -> List[str]:
        """Identifiers to process, in natural order.

        With ``limit_to`` exactly those identifiers are returned (missing ones
        included, scripts see them as absent).  Otherwise every object
        directory is returned, minus Fedora system objects and content models
        when ``skip_system_objects`` is set.
        """
        if limit_to:
            return natural_sorted(set(limit_to))
        pids = natural_sorted(self._discover())
        if not self.skip_system_objects:
            return pids
        selected = []
        for pid in pids:
            obj = self.resolve(pid)
            if obj is not None and (obj.is_system_object or obj.is_content_model):
                continue
            selected.append(pid)
        return selected
