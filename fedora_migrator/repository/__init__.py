"""
Read-only model of a migrated Fedora repository.

This subpackage parses FOXML object files and RELS-EXT relationships into
immutable pydantic models and exposes them, together with the newest version
of each datastream, through :class:`Repository`.
"""

from .models import ContentStream, ControlGroup, ObjectState, RepositoryObject, StreamVersion
from .objects import Repository

__all__ = [
    "ContentStream",
    "ControlGroup",
    "ObjectState",
    "Repository",
    "RepositoryObject",
    "StreamVersion",
]
