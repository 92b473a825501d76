"""
Conversion of namespace-qualified XML documents into script-navigable trees.

:func:`convert` turns the bytes of one datastream into an :class:`Element`.
The resulting tree is self-contained (no reference to the source document)
and uniform to navigate from scripts:

* children are grouped by local name and always exposed as tuples, even for a
  single occurrence, so script code never depends on cardinality;
* attributes are keyed by local name and addressed with an ``@`` prefix
  (``element["@type"]``), so they can never be confused with children;
* the namespace of an element is the URI bound to its prefix by the
  declarations in scope, never the prefix text itself.

Namespace processing is done here rather than by the XML parser: an
undeclared prefix is not an error in a legacy metadata record, it resolves to
:data:`UNKNOWN_NAMESPACE` instead.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from xml.parsers import expat

from ..utils.errors import ConversionError

UNKNOWN_NAMESPACE = "#unknown"
XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"
ATTRIBUTE_PREFIX = "@"


class Element:
    """One element of a converted document."""

    __slots__ = ("name", "namespace", "text", "_children", "_attributes", "_ordered")

    def __init__(self, name: str, namespace: str, text: str = "",
                 attributes: Optional[Dict[str, str]] = None,
                 children: Optional[List["Element"]] = None) -> None:
        ordered = tuple(children or ())
        grouped: Dict[str, List[Element]] = {}
        for child in ordered:
            grouped.setdefault(child.name, []).append(child)
        self.name = name
        self.namespace = namespace
        self.text = text
        self._ordered = ordered
        self._children = MappingProxyType({k: tuple(v) for k, v in grouped.items()})
        self._attributes = MappingProxyType(dict(attributes or {}))

    @property
    def children(self) -> Mapping[str, Tuple["Element", ...]]:
        return self._children

    @property
    def attributes(self) -> Mapping[str, str]:
        return self._attributes

    def __getitem__(self, key: str) -> Any:
        """Children named ``key`` as a tuple, or the value of ``"@attr"``.

        A missing child gives an empty tuple and a missing attribute ``None``,
        so use :meth:`get` to test for absence.
        """
        if not isinstance(key, str):
            raise TypeError(f"element keys are child names or '@attribute' names, not {type(key).__name__}")
        if key.startswith(ATTRIBUTE_PREFIX):
            return self._attributes.get(key[len(ATTRIBUTE_PREFIX):])
        return self._children.get(key, ())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        if key.startswith(ATTRIBUTE_PREFIX):
            return key[len(ATTRIBUTE_PREFIX):] in self._attributes
        return key in self._children

    def get(self, key: str, default: Any = None) -> Any:
        """Like ``element[key]`` but ``default`` (``None``) when ``key`` is absent.

        This is how a script tests whether a child or attribute exists.
        """
        return self[key] if key in self else default

    def keys(self) -> List[str]:
        """Attribute keys (``@``-prefixed) followed by child names."""
        return [ATTRIBUTE_PREFIX + name for name in self._attributes] + list(self._children)

    def elements(self) -> Tuple["Element", ...]:
        """All child elements in document order."""
        return self._ordered

    def find(self, path: str) -> List["Element"]:
        """Every element reached by following ``path`` (``"subject/topic"``).

        Matches are returned in document order; an empty list when any step
        of the path is missing.
        """
        current: List[Element] = [self]
        for step in (s for s in path.split("/") if s):
            current = [child for element in current for child in element[step]]
        return current

    def to_dict(self) -> Dict[str, Any]:
        """Plain ``dict`` rendering, used by ``debug()`` output and tests."""
        result: Dict[str, Any] = {"#name": self.name, "#namespace": self.namespace, "#text": self.text}
        result.update({ATTRIBUTE_PREFIX + k: v for k, v in self._attributes.items()})
        for name, children in self._children.items():
            result[name] = [child.to_dict() for child in children]
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Element):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Element({self.name!r}, namespace={self.namespace!r}, text={self.text!r})"


def _split(qualified: str) -> Tuple[Optional[str], str]:
    prefix, sep, local = qualified.partition(":")
    if not sep:
        return None, qualified
    return prefix, local


class _Builder:
    """Expat callbacks assembling the tree with a namespace-declaration stack."""

    def __init__(self) -> None:
        self.scopes: List[Dict[Optional[str], str]] = [{"xml": XML_NAMESPACE, None: ""}]
        # (name, namespace, attributes, children, text parts) per open element.
        self.stack: List[Tuple[str, str, Dict[str, str], List[Element], List[str]]] = []
        self.root: Optional[Element] = None

    def resolve(self, prefix: Optional[str]) -> str:
        for scope in reversed(self.scopes):
            if prefix in scope:
                return scope[prefix]
        return UNKNOWN_NAMESPACE

    def start(self, qualified: str, raw_attributes: List[str]) -> None:
        declarations: Dict[Optional[str], str] = {}
        attributes: Dict[str, str] = {}
        pairs = zip(raw_attributes[::2], raw_attributes[1::2])
        for key, value in pairs:
            if key == "xmlns":
                declarations[None] = value
            elif key.startswith("xmlns:"):
                declarations[key[len("xmlns:"):]] = value
            else:
                _, local = _split(key)
                attributes.setdefault(local, value)
        self.scopes.append(declarations)
        prefix, local = _split(qualified)
        self.stack.append((local, self.resolve(prefix), attributes, [], []))

    def end(self, qualified: str) -> None:
        name, namespace, attributes, children, text = self.stack.pop()
        self.scopes.pop()
        element = Element(name, namespace, "".join(text).strip(), attributes, children)
        if self.stack:
            self.stack[-1][3].append(element)
        else:
            self.root = element

    def characters(self, data: str) -> None:
        if self.stack:
            self.stack[-1][4].append(data)


def convert(data: bytes) -> Element:
    """Convert an XML document to its root :class:`Element`.

    Raises :class:`ConversionError` carrying the line, column and byte offset
    of the first malformed construct.
    """
    builder = _Builder()
    parser = expat.ParserCreate()
    parser.ordered_attributes = True
    parser.buffer_text = True
    parser.StartElementHandler = builder.start
    parser.EndElementHandler = builder.end
    parser.CharacterDataHandler = builder.characters
    try:
        parser.Parse(data, True)
    except expat.ExpatError as e:
        raise ConversionError(
            expat.ErrorString(e.code),
            line=e.lineno,
            column=e.offset + 1,
            byte_offset=parser.ErrorByteIndex,
        ) from e
    if builder.root is None:
        raise ConversionError("document has no root element", line=1, column=1, byte_offset=0)
    return builder.root
