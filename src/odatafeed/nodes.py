"""Lookups over inline content fragments.

Inline payloads keep whatever prefixes the server chose, so every name
comparison here works on local names only.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Iterator, Optional

from lxml import etree

from .errors import StructureError

if TYPE_CHECKING:
    from lxml.etree import _Element

ATOM_NS = "http://www.w3.org/2005/Atom"
DATASERVICES_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"
METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"

_M_NULL_ATTR = f"{{{METADATA_NS}}}null"

_DEFAULT_XPATH_NAMESPACES = {
    "atom": ATOM_NS,
    "d": DATASERVICES_NS,
    "m": METADATA_NS,
}


def local_name(tag: str) -> str:
    """Strip a ``{uri}`` qualifier or a ``prefix:`` from a tag name."""
    if tag.startswith("{"):
        tag = tag.split("}", 1)[1]
    index = tag.find(":")
    if index != -1:
        tag = tag[index + 1 :]
    return tag


def child_elements(element: _Element) -> Iterator[_Element]:
    for child in element:
        # Comments and processing instructions have non-string tags
        if isinstance(child.tag, str):
            yield child


def text_content(element: _Element) -> str:
    return "".join(element.itertext())


def is_null(element: _Element) -> bool:
    return element.get(_M_NULL_ATTR, "").strip().lower() == "true"


def property_nodes(inline: Optional[_Element]) -> list[_Element]:
    """Return the children of a ``properties`` container.

    Anything else (a missing payload, or a root element with another name)
    has no property nodes.
    """
    if inline is None or not isinstance(inline.tag, str):
        return []
    if local_name(inline.tag) != "properties":
        return []
    return list(child_elements(inline))


def detach(element: _Element) -> _Element:
    """Copy an element into a document of its own.

    Absolute XPath expressions evaluated on the copy start at the fragment
    rather than at the enclosing feed.
    """
    return copy.deepcopy(element)


def select_text(
    root: _Element,
    path: str,
    prefix: Optional[str] = None,
    uri: Optional[str] = None,
) -> Optional[str]:
    """Evaluate an XPath expression and return the text it designates."""
    namespaces = dict(_DEFAULT_XPATH_NAMESPACES)
    if prefix:
        resolved = uri or root.nsmap.get(prefix)
        if resolved is None:
            raise StructureError(f"Unbound namespace prefix in mapping: {prefix}")
        namespaces[prefix] = resolved

    try:
        result = root.xpath(path, namespaces=namespaces)
    except etree.XPathError as e:
        raise StructureError(f"Invalid value path {path!r}: {e}") from e

    if isinstance(result, list):
        if not result:
            return None
        result = result[0]
    if isinstance(result, etree._Element):
        return text_content(result)
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, float) and result.is_integer():
        return str(int(result))
    return str(result)
