"""Restricted script execution and the functions scripts can call."""

from .bindings import ObjectHandle, edtf, join, plain_text, stable_hash
from .host import DEFAULT_XML_MIME_TYPES, ScriptHost, ScriptModule, load_modules

__all__ = [
    "DEFAULT_XML_MIME_TYPES",
    "ObjectHandle",
    "ScriptHost",
    "ScriptModule",
    "edtf",
    "join",
    "load_modules",
    "plain_text",
    "stable_hash",
]
