"""
Parsers and converters used by the extraction pipeline.

Currently this subpackage exposes :func:`convert`, turning one XML datastream
into the generic :class:`Element` tree handed to scripts.
"""

from .tree import ATTRIBUTE_PREFIX, UNKNOWN_NAMESPACE, Element, convert

__all__ = ["ATTRIBUTE_PREFIX", "UNKNOWN_NAMESPACE", "Element", "convert"]
