"""
Migration of a Fedora installation into the directory-per-object layout.

Fedora keeps objects and managed datastream versions as flat files named
after their URL encoded identifiers::

    data/objectStore/**/info%3Afedora%2Fns%3A1
    data/datastreamStore/**/info%3Afedora%2Fns%3A1%2FOBJ%2FOBJ.0

:func:`migrate_data_from_fedora` copies (or moves) them to the layout read by
:class:`fedora_migrator.repository.Repository` and writes inline XML
datastreams out of their FOXML into files of their own.  Files already
migrated are skipped, so the step can be re-run after a partial migration.
"""

from __future__ import annotations

import os
import shutil
import xml.etree.ElementTree as ET
import zlib
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import unquote

from ..repository.foxml import (
    FEDORA_PREFIX,
    content_location,
    iter_datastream_versions,
    read_foxml,
    xml_content,
)
from ..repository.models import version_file_name
from ..repository.objects import DATASTREAMS_DIRECTORY, OBJECT_FILE, valid_identifier
from ..utils.errors import LayoutMigrationError
from ..utils.sorting import natural_key

OBJECT_STORE = os.path.join("data", "objectStore")
DATASTREAM_STORE = os.path.join("data", "datastreamStore")

MIGRATED = "migrated"
UPDATED = "updated"
SKIPPED = "skipped"

DatastreamKey = Tuple[str, str, str]
LogFunction = Callable[..., None]


def _print_log(message: str, level: str = "INFO") -> None:
    print(f"[{level}] {message}")


@dataclass
class MigrationResults:
    total: int = 0
    migrated: int = 0
    updated: int = 0
    skipped: int = 0

    def add(self, result: str) -> None:
        self.total += 1
        setattr(self, result, getattr(self, result) + 1)

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"Total: {self.total} (Migrated: {self.migrated}, "
            f"Updated: {self.updated}, Skipped: {self.skipped})"
        )


def _identifier_parts(path: str) -> Optional[List[str]]:
    name = unquote(os.path.basename(path))
    if not name.startswith(FEDORA_PREFIX):
        return None
    return name[len(FEDORA_PREFIX):].split("/")


def object_identifier(path: str) -> Optional[str]:
    """PID encoded in an objectStore file name, e.g. ``info%3Afedora%2Fns%3A1``."""
    parts = _identifier_parts(path)
    if not parts or len(parts) != 1 or ":" not in parts[0]:
        return None
    return parts[0]


def datastream_identifier(path: str) -> Optional[DatastreamKey]:
    """``(pid, dsid, version)`` encoded in a datastreamStore file name."""
    parts = _identifier_parts(path)
    if not parts or len(parts) != 3 or ":" not in parts[0] or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def _files(directory: str) -> Iterator[str]:
    for current, directories, names in os.walk(directory):
        directories.sort()
        for name in sorted(names):
            yield os.path.join(current, name)


def _crc32_file(path: str) -> int:
    checksum = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            checksum = zlib.crc32(chunk, checksum)
    return checksum


def should_migrate_file(src: str, dest: str, checksum: bool) -> bool:
    if not os.path.exists(dest):
        return True
    if checksum:
        return _crc32_file(src) != _crc32_file(dest)
    src_stat, dest_stat = os.stat(src), os.stat(dest)
    return src_stat.st_size != dest_stat.st_size or src_stat.st_mtime_ns != dest_stat.st_mtime_ns


def should_migrate_content(content: bytes, dest: str, checksum: bool) -> bool:
    if not os.path.exists(dest):
        return True
    if checksum:
        return zlib.crc32(content) != _crc32_file(dest)
    # No modified time to compare against generated content.
    return len(content) != os.path.getsize(dest)


def migrate_file(src: str, dest: str, *, copy: bool = True, checksum: bool = False) -> str:
    """Copy or move ``src`` to ``dest`` unless it is already there."""
    existed = os.path.exists(dest)
    if not should_migrate_file(src, dest, checksum):
        return SKIPPED
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    if copy:
        shutil.copy2(src, dest)
    else:
        # Falls back to copying across filesystems.
        shutil.move(src, dest)
    return UPDATED if existed else MIGRATED


def migrate_content(content: bytes, dest: str, *, checksum: bool = False) -> str:
    existed = os.path.exists(dest)
    if not should_migrate_content(content, dest, checksum):
        return SKIPPED
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    with open(dest, "wb") as f:
        f.write(content)
    return UPDATED if existed else MIGRATED


def _stream_path(output_dir: str, pid: str, dsid: str, version_id: str, mime_type: str) -> str:
    return os.path.join(output_dir, pid, DATASTREAMS_DIRECTORY, dsid, version_file_name(version_id, mime_type))


def _warn_list(log: LogFunction, header: str, items: List[str]) -> None:
    if items:
        log(header + "\n\t" + "\n\t".join(items), level="WARNING")


def migrate_object_files(object_store: str, output_dir: str, *, copy: bool, checksum: bool,
                         log: LogFunction) -> Tuple[Dict[str, str], MigrationResults]:
    """Migrate the FOXML files; returns the migrated file of each PID."""
    identified: Dict[str, str] = {}
    unknown: List[str] = []
    for path in _files(object_store):
        pid = object_identifier(path)
        if pid is None or not valid_identifier(pid):
            unknown.append(path)
        else:
            identified[pid] = path
    _warn_list(log, "The following files could not be identified:", unknown)

    log(f"Migrating {len(identified)} object files.")
    results = MigrationResults()
    migrated: Dict[str, str] = {}
    for pid in sorted(identified, key=natural_key):
        dest = os.path.join(output_dir, pid, OBJECT_FILE)
        results.add(migrate_file(identified[pid], dest, copy=copy, checksum=checksum))
        migrated[pid] = dest
    log(f"Finished migrating object files: {results}")
    return migrated, results


def _parse_objects(object_files: Dict[str, str], log: LogFunction) -> Dict[str, ET.Element]:
    parsed: Dict[str, ET.Element] = {}
    failed: List[str] = []
    for pid, path in object_files.items():
        try:
            parsed[pid] = read_foxml(path)
        except ET.ParseError as e:
            failed.append(f"{path} => {e}")
    _warn_list(log, "The following Foxml files could not be parsed:", failed)
    return parsed


def migrate_managed_datastreams(objects: Dict[str, ET.Element], datastream_store: str, output_dir: str, *,
                                copy: bool, checksum: bool, log: LogFunction) -> MigrationResults:
    files: Dict[DatastreamKey, str] = {}
    unknown: List[str] = []
    for path in _files(datastream_store):
        key = datastream_identifier(path)
        if key is None:
            unknown.append(path)
        else:
            files[key] = path
    _warn_list(log, "The following files could not be identified:", unknown)

    # Managed versions referenced by object files, may be more or less than
    # the files present in the datastream store.
    referenced: Dict[DatastreamKey, str] = {}
    for pid, root in objects.items():
        for datastream, version in iter_datastream_versions(root):
            if datastream.get("CONTROL_GROUP") != "M":
                continue
            dsid, version_id = datastream.get("ID", ""), version.get("ID", "")
            key = (pid, dsid, version_id)
            referenced[key] = _stream_path(output_dir, pid, dsid, version_id, version.get("MIMETYPE", ""))
            location = content_location(version)
            if location:
                # contentLocation REF is ``pid+DSID+VERSION``.
                parts = location.split("+")
                if len(parts) == 3 and tuple(parts) != key:
                    referenced[(parts[0], parts[1], parts[2])] = referenced[key]

    log(f"Found {len(files)} managed datastreams in Fedora, with {len(referenced)} referenced by object files.")
    orphans = sorted((key for key in files if key not in referenced), key=lambda k: [natural_key(p) for p in k])
    _warn_list(log, "The following managed datastreams have been orphaned:", [" ".join(k) for k in orphans])

    results = MigrationResults()
    for key in sorted(files, key=lambda k: [natural_key(p) for p in k]):
        if key in referenced:
            results.add(migrate_file(files[key], referenced[key], copy=copy, checksum=checksum))
    log(f"Finished migrating managed datastreams: {results}")
    return results


def migrate_inline_datastreams(objects: Dict[str, ET.Element], output_dir: str, *, checksum: bool,
                               log: LogFunction) -> MigrationResults:
    log(f"Migrating inline datastreams in {len(objects)} object files.")
    results = MigrationResults()
    for pid, root in objects.items():
        for datastream, version in iter_datastream_versions(root):
            if datastream.get("CONTROL_GROUP") != "X":
                continue
            content = xml_content(version)
            if content is None:
                continue
            data = ET.tostring(content, encoding="utf-8", xml_declaration=True)
            dest = _stream_path(output_dir, pid, datastream.get("ID", ""), version.get("ID", ""),
                                version.get("MIMETYPE", "") or "text/xml")
            results.add(migrate_content(data, dest, checksum=checksum))
    log(f"Finished migrating inline datastreams: {results}")
    return results


def migrate_data_from_fedora(fedora_home: str, output_dir: str, copy: bool = True, checksum: bool = False,
                             log: Optional[LogFunction] = None) -> Dict[str, MigrationResults]:
    """Migrate objects and datastreams of ``fedora_home`` into ``output_dir``.

    :param fedora_home: Fedora installation holding ``data/objectStore`` and
        ``data/datastreamStore``.
    :param output_dir: Root of the directory-per-object layout.
    :param copy: Copy the files, otherwise move them.
    :param checksum: Compare CRC32 checksums rather than sizes and modified
        times to decide whether a file needs migrating again.
    :return: Results for ``objects``, ``managed`` and ``inline`` files.
    :raises LayoutMigrationError: when either store is missing.
    """
    log = log or _print_log
    object_store = os.path.join(fedora_home, OBJECT_STORE)
    datastream_store = os.path.join(fedora_home, DATASTREAM_STORE)
    for directory in (fedora_home, object_store, datastream_store):
        if not os.path.isdir(directory):
            raise LayoutMigrationError(f"The directory '{directory}' does not exist")

    log(f"Migrating Fedora data from {fedora_home} to {output_dir}.")
    object_files, object_results = migrate_object_files(
        object_store, output_dir, copy=copy, checksum=checksum, log=log
    )
    objects = _parse_objects(object_files, log)
    managed_results = migrate_managed_datastreams(
        objects, datastream_store, output_dir, copy=copy, checksum=checksum, log=log
    )
    inline_results = migrate_inline_datastreams(objects, output_dir, checksum=checksum, log=log)
    log(f"In total {len(objects)} objects have been migrated.")
    return {"objects": object_results, "managed": managed_results, "inline": inline_results}
