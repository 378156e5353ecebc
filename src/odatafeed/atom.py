"""Atom reader producing the feed objects the materializer walks.

Only the parts of Atom that OData services emit are kept: entries, links with
``m:inline`` payloads, inline ``application/xml`` content, people, text
constructs, categories and timestamps.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from dateutil import parser as dateutil_parser
from lxml import etree

from .errors import StructureError
from .nodes import ATOM_NS, METADATA_NS, child_elements, local_name, text_content

if TYPE_CHECKING:
    from lxml.etree import _Element

logger = logging.getLogger(__name__)

SCHEME = "http://schemas.microsoft.com/ado/2007/08/dataservices/scheme"

_ATOM_NAMESPACES = frozenset(
    {
        ATOM_NS,
        "https://www.w3.org/2005/Atom",
    }
)
_M_INLINE_TAG = f"{{{METADATA_NS}}}inline"
_M_PROPERTIES_TAG = f"{{{METADATA_NS}}}properties"

_UTC = datetime.timezone.utc

_RE_XML_DECL_ENCODING = re.compile(
    r'(<\?xml[^>]*encoding=["\'])([^"\']+)(["\'][^>]*\?>)', re.IGNORECASE
)


@dataclass
class Person:
    name: Optional[str] = None
    email: Optional[str] = None
    uri: Optional[str] = None


@dataclass
class Text:
    content: Optional[str] = None
    type: str = "text"


@dataclass
class Category:
    term: str
    scheme: Optional[str] = None
    label: Optional[str] = None


@dataclass
class Content:
    type: Optional[str] = None
    src: Optional[str] = None
    inline: Optional[_Element] = None


@dataclass
class Link:
    href: Optional[str] = None
    rel: Optional[str] = None
    type: Optional[str] = None
    title: Optional[str] = None
    inline: Optional[_Element] = None
    has_inline: bool = False


@dataclass
class Entry:
    id: Optional[str] = None
    title: Optional[Text] = None
    summary: Optional[str] = None
    rights: Optional[Text] = None
    published: Optional[datetime.datetime] = None
    updated: Optional[datetime.datetime] = None
    content: Optional[Content] = None
    links: list[Link] = field(default_factory=list)
    authors: list[Person] = field(default_factory=list)
    contributors: list[Person] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)

    @property
    def type_tag(self) -> Optional[str]:
        """Qualified entity type name announced by the entry, if any."""
        for category in self.categories:
            if category.scheme == SCHEME:
                return category.term
        return None

    @property
    def inline_content(self) -> Optional[_Element]:
        return self.content.inline if self.content is not None else None


@dataclass
class Feed:
    entries: list[Entry] = field(default_factory=list)
    id: Optional[str] = None
    title: Optional[Text] = None
    updated: Optional[datetime.datetime] = None

    @property
    def entry_type(self) -> Optional[str]:
        """Type tag of the first entry, which stands for the whole feed."""
        for entry in self.entries:
            return entry.type_tag
        return None


@lru_cache(maxsize=4)
def _atom_ns_tags(atom_ns: str) -> dict[str, str]:
    ns = f"{{{atom_ns}}}"
    return {
        name: ns + name
        for name in (
            "id",
            "title",
            "summary",
            "rights",
            "published",
            "updated",
            "content",
            "link",
            "author",
            "contributor",
            "category",
            "entry",
            "name",
            "email",
            "uri",
        )
    }


def _namespace_of(element: _Element) -> Optional[str]:
    tag = element.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _stripped(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_feed_bytes(content: bytes) -> bytes:
    """Drop a BOM and any junk in front of the XML document."""
    stripped = content.lstrip()
    if stripped.startswith(b"\xef\xbb\xbf"):
        stripped = stripped[3:]

    preview = stripped[:2000].lower()
    if preview.startswith((b"<?xml", b"<feed", b"<entry")):
        return stripped
    if preview.startswith((b"<!doctype html", b"<html")):
        raise StructureError("Content appears to be HTML, not an Atom feed")

    search_chunk = stripped[:8192].lower()
    earliest = -1
    for pattern in (b"<?xml", b"<feed", b"<entry"):
        idx = search_chunk.find(pattern)
        if idx != -1 and (earliest == -1 or idx < earliest):
            earliest = idx
    if earliest != -1:
        return stripped[earliest:]
    return stripped


def _prepare_xml_bytes(xml_content: str | bytes) -> bytes:
    if isinstance(xml_content, bytes):
        cleaned = _clean_feed_bytes(xml_content)
        if not cleaned.strip():
            raise StructureError("Empty content")
        return cleaned

    # lxml refuses str input carrying an encoding declaration, so re-declare
    # the document as the UTF-8 bytes we hand over.
    if xml_content.lstrip().startswith("<?xml"):
        xml_content = _RE_XML_DECL_ENCODING.sub(r"\1utf-8\3", xml_content, count=1)
    return _prepare_xml_bytes(xml_content.encode("utf-8", errors="replace"))


_STRICT_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=False,
    collect_ids=False,
    resolve_entities=False,
)
_RECOVER_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=True,
    collect_ids=False,
    resolve_entities=False,
)


def _parse_xml_root(xml_content: bytes) -> _Element:
    try:
        root = etree.fromstring(xml_content, parser=_STRICT_XML_PARSER)
    except etree.XMLSyntaxError:
        logger.debug("Strict XML parsing failed, retrying in recover mode")
        try:
            root = etree.fromstring(xml_content, parser=_RECOVER_XML_PARSER)
        except etree.XMLSyntaxError as e:
            raise StructureError(f"Failed to parse XML content: {e}") from e

    if root is None:
        preview = xml_content[:200].decode("utf-8", errors="replace").strip()
        raise StructureError(
            f"Failed to parse XML: content couldn't be parsed as XML ({preview!r})"
        )
    return root


def _ensure_utc(dt: datetime.datetime) -> Optional[datetime.datetime]:
    try:
        return dt.replace(tzinfo=_UTC) if dt.tzinfo is None else dt.astimezone(_UTC)
    except (ValueError, OverflowError):
        return None


@lru_cache(maxsize=512)
def _slow_dateutil_parse(value: str) -> Optional[datetime.datetime]:
    try:
        return dateutil_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None


@lru_cache(maxsize=4096)
def _parse_date(date_str: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an Atom timestamp into a UTC datetime, or None when unreadable."""
    if not date_str:
        return None
    candidate = date_str.strip()
    if not candidate:
        return None

    # Fast path: RFC 3339 as written by every OData service
    iso = candidate[:-1] + "+00:00" if candidate[-1] in ("Z", "z") else candidate
    try:
        dt = datetime.datetime.fromisoformat(iso)
    except ValueError:
        dt = _slow_dateutil_parse(candidate)
    if dt is None:
        return None
    return _ensure_utc(dt)


def _parse_person(element: _Element, tags: dict[str, str]) -> Person:
    return Person(
        name=_stripped(element.findtext(tags["name"])),
        email=_stripped(element.findtext(tags["email"])),
        uri=_stripped(element.findtext(tags["uri"])),
    )


def _parse_text(element: _Element) -> Text:
    text_type = element.get("type", "text")
    if text_type == "xhtml":
        value = text_content(element).strip()
    else:
        value = (element.text or "").strip()
    return Text(content=value, type=text_type)


def _first_child_element(element: _Element) -> Optional[_Element]:
    for child in child_elements(element):
        return child
    return None


def _parse_link(element: _Element) -> Link:
    link = Link(
        href=element.get("href"),
        rel=element.get("rel"),
        type=element.get("type"),
        title=element.get("title"),
    )
    inline_el = element.find(_M_INLINE_TAG)
    if inline_el is None:
        # Some servers leave m:inline unqualified or bind it to another URI
        for child in child_elements(element):
            if local_name(child.tag) == "inline":
                inline_el = child
                break
    if inline_el is not None:
        link.has_inline = True
        link.inline = _first_child_element(inline_el)
    return link


def _parse_content(element: _Element) -> Content:
    return Content(
        type=element.get("type"),
        src=element.get("src"),
        inline=_first_child_element(element) if element.get("src") is None else None,
    )


def entry_from_element(element: _Element) -> Entry:
    """Read one ``<atom:entry>`` element."""
    atom_ns = _namespace_of(element) or ATOM_NS
    t = _atom_ns_tags(atom_ns)
    entry = Entry()
    properties_el: Optional[_Element] = None

    for child in child_elements(element):
        tag = child.tag
        if tag == t["id"] and entry.id is None:
            entry.id = _stripped(child.text)
        elif tag == t["title"] and entry.title is None:
            entry.title = _parse_text(child)
        elif tag == t["summary"] and entry.summary is None:
            entry.summary = _parse_text(child).content
        elif tag == t["rights"] and entry.rights is None:
            entry.rights = _parse_text(child)
        elif tag == t["published"] and entry.published is None:
            entry.published = _parse_date(child.text)
        elif tag == t["updated"] and entry.updated is None:
            entry.updated = _parse_date(child.text)
        elif tag == t["link"]:
            entry.links.append(_parse_link(child))
        elif tag == t["content"] and entry.content is None:
            entry.content = _parse_content(child)
        elif tag == t["author"]:
            entry.authors.append(_parse_person(child, t))
        elif tag == t["contributor"]:
            entry.contributors.append(_parse_person(child, t))
        elif tag == t["category"]:
            term = child.get("term")
            if term:
                entry.categories.append(
                    Category(term=term, scheme=child.get("scheme"), label=child.get("label"))
                )
        elif tag == _M_PROPERTIES_TAG:
            properties_el = child

    # Media link entries carry their properties next to an out-of-line content
    if properties_el is not None and entry.inline_content is None:
        if entry.content is None:
            entry.content = Content(type="application/xml")
        entry.content.inline = properties_el

    return entry


def feed_from_element(element: _Element) -> Feed:
    """Read a ``<atom:feed>`` element; only its direct entries are kept."""
    atom_ns = _namespace_of(element) or ATOM_NS
    t = _atom_ns_tags(atom_ns)
    feed = Feed()
    for child in child_elements(element):
        tag = child.tag
        if tag == t["entry"]:
            feed.entries.append(entry_from_element(child))
        elif tag == t["id"] and feed.id is None:
            feed.id = _stripped(child.text)
        elif tag == t["title"] and feed.title is None:
            feed.title = _parse_text(child)
        elif tag == t["updated"] and feed.updated is None:
            feed.updated = _parse_date(child.text)
    return feed


def parse_feed(source: str | bytes) -> Feed:
    """Parse Atom XML into a Feed.

    A document whose root is a single ``<entry>`` is returned as a one-entry
    feed.

    Raises:
        StructureError: If content is empty, isn't XML or isn't Atom
    """
    root = _parse_xml_root(_prepare_xml_bytes(source))
    atom_ns = _namespace_of(root)
    if atom_ns not in _ATOM_NAMESPACES:
        raise StructureError(f"Unknown Atom namespace in document: {root.tag}")

    root_tag_local = local_name(root.tag)
    if root_tag_local == "feed":
        return feed_from_element(root)
    if root_tag_local == "entry":
        return Feed(entries=[entry_from_element(root)])
    raise StructureError(f"Unknown feed type: {root.tag}")
