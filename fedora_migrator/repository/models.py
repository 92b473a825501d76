from __future__ import annotations

import mimetypes
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.sorting import natural_key

SYSTEM_OBJECT_PREFIX = "fedora-system:"
CONTENT_MODEL = "fedora-system:ContentModel-3.0"

# Extensions for the mime types commonly found in Fedora, other types fall
# back to the platform table.
_EXTENSIONS = {
    "application/rdf+xml": ".rdf",
    "application/xml": ".xml",
    "text/xml": ".xml",
    "text/plain": ".txt",
    "text/html": ".html",
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jp2": ".jp2",
    "image/png": ".png",
    "image/tiff": ".tif",
    "audio/mpeg": ".mp3",
    "video/mp4": ".mp4",
}

_UNSAFE_FILE_CHARACTERS = re.compile(r"[\\/:*?\"<>|\x00-\x1f]")

_STATE_LETTERS = {"A": "Active", "I": "Inactive", "D": "Deleted"}


def version_file_name(version_id: str, mime_type: str) -> str:
    """File name of one datastream version in the migrated layout."""
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    extension = _EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type, strict=False) or ".bin"
    return _UNSAFE_FILE_CHARACTERS.sub("_", version_id) + extension


def _state_from_letter(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return _STATE_LETTERS.get(value.upper(), value.capitalize())
    return value


class ObjectState(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DELETED = "Deleted"


class ControlGroup(str, Enum):
    INLINE = "X"
    MANAGED = "M"
    EXTERNAL = "E"
    REDIRECT = "R"


class StreamVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    label: str = ""
    created: datetime
    mime_type: str = ""

    @field_validator("created", mode="after")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)

    @property
    def file_name(self) -> str:
        return version_file_name(self.id, self.mime_type)


class ContentStream(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    state: ObjectState = ObjectState.ACTIVE
    control_group: ControlGroup = ControlGroup.MANAGED
    versions: Tuple[StreamVersion, ...] = ()

    @field_validator("state", mode="before")
    @classmethod
    def _expand_state(cls, v: Any) -> Any:
        return _state_from_letter(v)

    @field_validator("versions", mode="after")
    @classmethod
    def _oldest_first(cls, v: Tuple[StreamVersion, ...]) -> Tuple[StreamVersion, ...]:
        return tuple(sorted(v, key=lambda version: (version.created, natural_key(version.id))))

    def latest(self) -> Optional[StreamVersion]:
        return self.versions[-1] if self.versions else None


class RepositoryObject(BaseModel):
    """One repository object as read from its FOXML and RELS-EXT."""

    model_config = ConfigDict(frozen=True)

    pid: str = Field(..., min_length=1)
    state: ObjectState
    label: str = ""
    owner: str = ""
    model: str = ""
    parents: Tuple[str, ...] = ()
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    weight: Optional[int] = None
    datastreams: Tuple[ContentStream, ...] = ()

    @field_validator("state", mode="before")
    @classmethod
    def _expand_state(cls, v: Any) -> Any:
        return _state_from_letter(v)

    @field_validator("datastreams", mode="after")
    @classmethod
    def _sort_datastreams(cls, v: Tuple[ContentStream, ...]) -> Tuple[ContentStream, ...]:
        return tuple(sorted(v, key=lambda stream: natural_key(stream.id)))

    def datastream(self, dsid: str) -> Optional[ContentStream]:
        for stream in self.datastreams:
            if stream.id == dsid:
                return stream
        return None

    def stream_names(self) -> Set[str]:
        return {stream.id for stream in self.datastreams}

    @property
    def is_system_object(self) -> bool:
        return self.pid.startswith(SYSTEM_OBJECT_PREFIX)

    @property
    def is_content_model(self) -> bool:
        return self.model == CONTENT_MODEL

    @property
    def missing_content_model(self) -> bool:
        return not self.model
