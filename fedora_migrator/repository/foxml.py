"""Extraction of object metadata from FOXML and RELS-EXT documents.

FOXML is Fedora's serialization of an object: its properties (state, label,
owner, dates) and the inventory of its datastreams with every version.
RELS-EXT is the RDF datastream holding the object's relationships, from which
the content model, the parents and the page/sequence weight are read.

See https://wiki.lyrasis.org/display/FEDORA35/FOXML+Reference+Example
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ..utils.sorting import natural_sorted
from .models import ContentStream, RepositoryObject, StreamVersion

FOXML_NAMESPACE = "info:fedora/fedora-system:def/foxml#"
RDF_NAMESPACE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
FEDORA_MODEL_NAMESPACE = "info:fedora/fedora-system:def/model#"
FEDORA_RELS_NAMESPACE = "info:fedora/fedora-system:def/relations-external#"
ISLANDORA_NAMESPACE = "http://islandora.ca/ontology/relsext#"

_F = "{%s}" % FOXML_NAMESPACE

PROPERTY_STATE = "info:fedora/fedora-system:def/model#state"
PROPERTY_LABEL = "info:fedora/fedora-system:def/model#label"
PROPERTY_OWNER = "info:fedora/fedora-system:def/model#ownerId"
PROPERTY_CREATED = "info:fedora/fedora-system:def/model#createdDate"
PROPERTY_MODIFIED = "info:fedora/fedora-system:def/view#lastModifiedDate"

FEDORA_PREFIX = "info:fedora/"

# Map specific Fedora users to users of the target system.
USER_MAP: Dict[str, str] = {"fedoraAdmin": "admin"}

# Relationships pointing from a child to its parent.  isSequenceNumberOf is
# covered by isConstituentOf.
PARENT_RELATIONSHIPS = (
    "isPartOf",
    "isConstituentOf",
    "isMemberOf",
    "isSubsetOf",
    "isMemberOfCollection",
    "isDerivationOf",
    "isDependentOf",
    "isDescriptionOf",
    "isMetadataFor",
    "isAnnotationOf",
)

_SEQUENCE_NUMBER_OF = "isSequenceNumberOf"


def read_foxml(source: Union[str, bytes]) -> ET.Element:
    """Parse a FOXML document from a path or from its bytes.

    Raises :class:`xml.etree.ElementTree.ParseError` for malformed input.
    """
    if isinstance(source, bytes):
        return ET.fromstring(source)
    return ET.parse(source).getroot()


def object_properties(root: ET.Element) -> Dict[str, str]:
    return {
        prop.get("NAME", ""): prop.get("VALUE", "")
        for prop in root.findall(f"{_F}objectProperties/{_F}property")
    }


def iter_datastream_versions(root: ET.Element) -> Iterator[Tuple[ET.Element, ET.Element]]:
    """Yield ``(datastream, datastreamVersion)`` element pairs in document order."""
    for datastream in root.findall(f"{_F}datastream"):
        for version in datastream.findall(f"{_F}datastreamVersion"):
            yield datastream, version


def content_location(version: ET.Element) -> Optional[str]:
    """``REF`` of a managed version's ``contentLocation``, e.g. ``ns:1+OBJ+OBJ.0``."""
    location = version.find(f"{_F}contentLocation")
    return location.get("REF") if location is not None else None


def xml_content(version: ET.Element) -> Optional[ET.Element]:
    """Root element embedded in an inline version's ``xmlContent``."""
    wrapper = version.find(f"{_F}xmlContent")
    if wrapper is None or len(wrapper) == 0:
        return None
    return wrapper[0]


def datastreams_from_foxml(root: ET.Element, default_created: str = "") -> List[ContentStream]:
    streams: List[ContentStream] = []
    for datastream in root.findall(f"{_F}datastream"):
        versions = [
            StreamVersion(
                id=version.get("ID", ""),
                label=version.get("LABEL", ""),
                created=version.get("CREATED") or default_created,
                mime_type=version.get("MIMETYPE", ""),
            )
            for version in datastream.findall(f"{_F}datastreamVersion")
        ]
        streams.append(
            ContentStream(
                id=datastream.get("ID", ""),
                state=datastream.get("STATE", "A"),
                control_group=datastream.get("CONTROL_GROUP", "M"),
                versions=tuple(versions),
            )
        )
    return streams


def _digits(text: Optional[str]) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", text or "")
    return int(digits) if digits else None


def _strip_prefix(resource: str) -> str:
    return resource[len(FEDORA_PREFIX):] if resource.startswith(FEDORA_PREFIX) else resource


@dataclass
class RelsExt:
    about: str = ""
    models: List[str] = field(default_factory=list)
    relationships: Dict[str, List[str]] = field(default_factory=dict)
    page_number: Optional[int] = None
    sequence_number: Optional[int] = None
    sequence_number_of: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def model(self) -> str:
        return self.models[0] if self.models else ""

    @property
    def parents(self) -> List[str]:
        parents: List[str] = []
        for name in PARENT_RELATIONSHIPS:
            parents.extend(self.relationships.get(name, []))
        return natural_sorted(parents)

    @property
    def weight(self) -> Optional[int]:
        # The target model supports several parents but a single weight.
        if self.page_number is not None:
            return self.page_number
        if self.sequence_number is not None:
            return self.sequence_number
        if self.sequence_number_of:
            return self.sequence_number_of[0][1]
        return None


def parse_rels_ext(data: bytes) -> RelsExt:
    root = ET.fromstring(data)
    rels = RelsExt()
    for description in root.iter(f"{{{RDF_NAMESPACE}}}Description"):
        rels.about = rels.about or _strip_prefix(description.get(f"{{{RDF_NAMESPACE}}}about", ""))
        for statement in description:
            if not statement.tag.startswith("{"):
                continue
            namespace, _, name = statement.tag[1:].partition("}")
            resource = _strip_prefix(statement.get(f"{{{RDF_NAMESPACE}}}resource", ""))
            if namespace == FEDORA_MODEL_NAMESPACE and name == "hasModel":
                rels.models.append(resource)
            elif namespace == FEDORA_RELS_NAMESPACE:
                rels.relationships.setdefault(name, []).append(resource)
            elif namespace == ISLANDORA_NAMESPACE:
                if name == "isPageNumber":
                    rels.page_number = _digits(statement.text)
                elif name == "isSequenceNumber":
                    rels.sequence_number = _digits(statement.text)
                elif name == "isPageOf" and resource:
                    rels.relationships.setdefault(name, []).append(resource)
                elif name.startswith(_SEQUENCE_NUMBER_OF):
                    # Compound children, e.g. isSequenceNumberOfnamespace_100.
                    parent = name[len(_SEQUENCE_NUMBER_OF):].replace("_", ":", 1)
                    rels.sequence_number_of.append((parent, _digits(statement.text) or 0))
    return rels


def object_from_foxml(pid: str, root: ET.Element, rels_ext: Optional[RelsExt] = None) -> RepositoryObject:
    """Build the :class:`RepositoryObject` for ``pid``.

    Raises ``ValueError`` (pydantic's ``ValidationError`` included) when a
    required property is missing or malformed.
    """
    properties = object_properties(root)
    if PROPERTY_STATE not in properties:
        raise ValueError(f"FOXML of {pid} has no {PROPERTY_STATE} property")
    owner = properties.get(PROPERTY_OWNER, "")
    created = properties.get(PROPERTY_CREATED) or None
    return RepositoryObject(
        pid=pid,
        state=properties[PROPERTY_STATE],
        label=properties.get(PROPERTY_LABEL, ""),
        owner=USER_MAP.get(owner, owner),
        model=rels_ext.model if rels_ext else "",
        parents=tuple(rels_ext.parents) if rels_ext else (),
        created=created,
        modified=properties.get(PROPERTY_MODIFIED) or None,
        weight=rels_ext.weight if rels_ext else None,
        datastreams=tuple(datastreams_from_foxml(root, default_created=created or "")),
    )
