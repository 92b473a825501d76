import os
import sys
from xml.sax.saxutils import escape, quoteattr

import pytest

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from fedora_migrator.repository.models import version_file_name

CREATED = "2020-01-01T00:00:00.000Z"


def rels_ext(pid, model=None, parents=(), extra=""):
    statements = []
    if model:
        statements.append(f'<fedora-model:hasModel rdf:resource="info:fedora/{model}"/>')
    for relation, parent in parents:
        statements.append(f'<fedora:{relation} rdf:resource="info:fedora/{parent}"/>')
    return (
        '<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"'
        ' xmlns:fedora="info:fedora/fedora-system:def/relations-external#"'
        ' xmlns:fedora-model="info:fedora/fedora-system:def/model#"'
        ' xmlns:islandora="http://islandora.ca/ontology/relsext#">'
        f'<rdf:Description rdf:about="info:fedora/{pid}">'
        + "".join(statements)
        + extra
        + "</rdf:Description></rdf:RDF>"
    ).encode("utf-8")


def foxml(pid, *, state="A", label="", owner="fedoraAdmin", created=CREATED, streams=None, inline=None):
    """FOXML document for ``pid``.

    ``streams`` maps a managed datastream id to ``(version id, mime type,
    created)`` tuples; ``inline`` maps an inline datastream id to its XML.
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<foxml:digitalObject VERSION="1.1" PID={quoteattr(pid)}'
        ' xmlns:foxml="info:fedora/fedora-system:def/foxml#">',
        "<foxml:objectProperties>",
        f'<foxml:property NAME="info:fedora/fedora-system:def/model#state" VALUE="{state}"/>',
        f'<foxml:property NAME="info:fedora/fedora-system:def/model#label" VALUE={quoteattr(label)}/>',
        f'<foxml:property NAME="info:fedora/fedora-system:def/model#ownerId" VALUE="{owner}"/>',
        f'<foxml:property NAME="info:fedora/fedora-system:def/model#createdDate" VALUE="{created}"/>',
        f'<foxml:property NAME="info:fedora/fedora-system:def/view#lastModifiedDate" VALUE="{created}"/>',
        "</foxml:objectProperties>",
    ]
    for dsid, versions in (streams or {}).items():
        parts.append(f'<foxml:datastream ID="{dsid}" STATE="A" CONTROL_GROUP="M" VERSIONABLE="true">')
        for version_id, mime_type, version_created in versions:
            parts.append(
                f'<foxml:datastreamVersion ID="{version_id}" LABEL="{escape(dsid)}"'
                f' CREATED="{version_created}" MIMETYPE="{mime_type}" SIZE="0">'
                f'<foxml:contentLocation TYPE="INTERNAL_ID" REF="{pid}+{dsid}+{version_id}"/>'
                "</foxml:datastreamVersion>"
            )
        parts.append("</foxml:datastream>")
    for dsid, content in (inline or {}).items():
        parts.append(
            f'<foxml:datastream ID="{dsid}" STATE="A" CONTROL_GROUP="X" VERSIONABLE="true">'
            f'<foxml:datastreamVersion ID="{dsid}.0" LABEL="{dsid}" CREATED="{created}" MIMETYPE="text/xml">'
            f"<foxml:xmlContent>{content}</foxml:xmlContent>"
            "</foxml:datastreamVersion></foxml:datastream>"
        )
    parts.append("</foxml:digitalObject>")
    return "\n".join(parts).encode("utf-8")


def mods(*topics, title="Untitled"):
    subjects = "".join(f"<mods:subject><mods:topic>{escape(t)}</mods:topic></mods:subject>" for t in topics)
    return (
        '<mods:mods xmlns:mods="http://www.loc.gov/mods/v3">'
        f"<mods:titleInfo><mods:title>{escape(title)}</mods:title></mods:titleInfo>"
        f"{subjects}</mods:mods>"
    ).encode("utf-8")


class RepositoryBuilder:
    """Writes objects in the directory-per-object layout under ``root``."""

    def __init__(self, root):
        self.root = str(root)

    def add(self, pid, *, model="islandora:sp_basic_image", parents=(), label="", state="A",
            streams=None, rels_extra="", created=CREATED):
        """Add ``pid``; ``streams`` maps a datastream id to ``[(version id, mime, created, data)]``."""
        streams = dict(streams or {})
        if model is not None:
            streams.setdefault(
                "RELS-EXT",
                [("RELS-EXT.0", "application/rdf+xml", created, rels_ext(pid, model, parents, rels_extra))],
            )
        inventory = {dsid: [(v, m, c) for v, m, c, _ in versions] for dsid, versions in streams.items()}
        directory = os.path.join(self.root, pid)
        os.makedirs(directory, exist_ok=True)
        with open(os.path.join(directory, "object.xml"), "wb") as f:
            f.write(foxml(pid, state=state, label=label, created=created, streams=inventory))
        for dsid, versions in streams.items():
            for version_id, mime_type, _, data in versions:
                if data is None:
                    continue
                stream_dir = os.path.join(directory, "datastreams", dsid)
                os.makedirs(stream_dir, exist_ok=True)
                with open(os.path.join(stream_dir, version_file_name(version_id, mime_type)), "wb") as f:
                    f.write(data)
        return pid

    def add_with_mods(self, pid, data, **kwargs):
        streams = kwargs.pop("streams", {})
        streams["MODS"] = [("MODS.0", "text/xml", CREATED, data)]
        return self.add(pid, streams=streams, **kwargs)


@pytest.fixture
def repository_root(tmp_path):
    root = tmp_path / "repository"
    root.mkdir()
    return root


@pytest.fixture
def builder(repository_root):
    return RepositoryBuilder(repository_root)


@pytest.fixture
def write_script(tmp_path):
    """Write ``source`` as ``<directory>/<name>.py`` under ``tmp_path``."""

    def write(name, source, directory="scripts"):
        folder = tmp_path / directory
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / f"{name}.py"
        path.write_text(source, encoding="utf-8")
        return str(path)

    return write
