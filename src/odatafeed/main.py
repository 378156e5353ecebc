from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, Optional, Union

from . import atom, nodes
from .diagnostics import Diagnostics, LoggingDiagnostics
from .edm import (
    AssociationEnd,
    ComplexType,
    EntityType,
    Mapping,
    Metadata,
    StructuralType,
    normalize,
    set_path,
)
from .errors import ConstructionError, ODataFeedError, StructureError

if TYPE_CHECKING:
    from lxml.etree import _Element

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

_FeedSource = Union[atom.Feed, str, bytes, None]
_TargetType = Union[EntityType, type, str, None]


def _person_field(people: list[atom.Person], name: str) -> Optional[str]:
    if not people:
        return None
    return getattr(people[0], name)


def _text_content(text: Optional[atom.Text]) -> Optional[str]:
    return text.content if text is not None else None


_SYNDICATION_GETTERS: dict[str, Callable[[atom.Entry], Any]] = {
    "SyndicationAuthorEmail": lambda e: _person_field(e.authors, "email"),
    "SyndicationAuthorName": lambda e: _person_field(e.authors, "name"),
    "SyndicationAuthorUri": lambda e: _person_field(e.authors, "uri"),
    "SyndicationContributorEmail": lambda e: _person_field(e.contributors, "email"),
    "SyndicationContributorName": lambda e: _person_field(e.contributors, "name"),
    "SyndicationContributorUri": lambda e: _person_field(e.contributors, "uri"),
    "SyndicationPublished": lambda e: e.published,
    "SyndicationRights": lambda e: _text_content(e.rights),
    "SyndicationSummary": lambda e: e.summary,
    "SyndicationTitle": lambda e: _text_content(e.title),
    "SyndicationUpdated": lambda e: e.updated,
}


def _syndication_value(entry: atom.Entry, keyword: str) -> Any:
    """Read a well-known Atom field; unknown keywords yield None."""
    getter = _SYNDICATION_GETTERS.get(keyword)
    return getter(entry) if getter is not None else None


class _InlineCopy:
    """Detached copy of an entry's inline content, shared by its mappings.

    The copy is only made once a structured mapping asks for it.
    """

    def __init__(self, entry: atom.Entry) -> None:
        self.entry = entry
        self._root: Optional[_Element] = None

    @property
    def root(self) -> Optional[_Element]:
        if self._root is None and self.entry.inline_content is not None:
            self._root = nodes.detach(self.entry.inline_content)
        return self._root


class FeedParser:
    """Materializes the entries of one feed as entities of one type.

    Every failure below the entry level is reported to ``diagnostics`` and
    skipped; ``parse`` itself never raises.
    """

    def __init__(
        self,
        feed: atom.Feed,
        entity_type: EntityType,
        metadata: Metadata,
        *,
        diagnostics: Optional[Diagnostics] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        depth: int = 0,
    ) -> None:
        self.feed = feed
        self.entity_type = entity_type
        self.metadata = metadata
        self.diagnostics = diagnostics if diagnostics is not None else LoggingDiagnostics(logger)
        self.max_depth = max_depth
        self.depth = depth

    def create_feed_parser(self, feed: atom.Feed, entity_type: EntityType) -> FeedParser:
        """Parser for a feed nested one level below this one."""
        return FeedParser(
            feed,
            entity_type,
            self.metadata,
            diagnostics=self.diagnostics,
            max_depth=self.max_depth,
            depth=self.depth + 1,
        )

    def _warn(self, message: str, error: Optional[BaseException] = None) -> None:
        self.diagnostics.report(logging.WARNING, message, error)

    def parse(self) -> Iterator[Any]:
        entities: list[Any] = []
        for entry in self.feed.entries:
            try:
                entity = self.entity_type.create()
            except ConstructionError as e:
                self._warn(
                    "Can't instantiate the constructor without arguments of the "
                    f"entity type: {self.entity_type.qualified_name}",
                    e,
                )
                continue

            self._bind_content(entity, entry.content)

            for link in entry.links:
                self._bind_link(entity, link)

            # Mappings run last so they take precedence over inline values
            inline_copy = _InlineCopy(entry)
            for mapping in self.metadata.mappings:
                self._bind_mapping(entity, mapping, entry, inline_copy)

            entities.append(entity)

        logger.debug(
            "Materialized %d of %d %s entries at depth %d",
            len(entities),
            len(self.feed.entries),
            self.entity_type.qualified_name,
            self.depth,
        )
        return iter(entities)

    def _bind_content(self, entity: Any, content: Optional[atom.Content]) -> None:
        if content is None or content.inline is None:
            return
        self._bind_properties(entity, self.entity_type, nodes.property_nodes(content.inline))

    def _bind_properties(
        self, obj: Any, structural_type: StructuralType, elements: Iterable[_Element]
    ) -> None:
        bound: set[str] = set()
        for node in elements:
            name = nodes.local_name(node.tag)
            if name in bound:
                self._warn(f"Ignoring repeated property {name} of {type(obj).__name__}")
                continue
            bound.add(name)
            try:
                prop = self.metadata.get_property(obj, name, structural_type)
                if nodes.is_null(node):
                    value = None
                elif isinstance(prop.type, ComplexType):
                    value = prop.type.create()
                    self._bind_properties(value, prop.type, nodes.child_elements(node))
                else:
                    value = prop.convert(nodes.text_content(node))
                prop.assign(obj, value)
            except ODataFeedError as e:
                self._warn(f"Can't set the property {name} of {type(obj).__name__}", e)

    def _bind_link(self, entity: Any, link: atom.Link) -> None:
        if not link.has_inline or not link.title:
            return
        name = normalize(link.title)
        association = self.metadata.get_association(self.entity_type, name)
        if association is None:
            return

        try:
            if self.depth >= self.max_depth:
                raise StructureError(
                    f"Inline content nested deeper than {self.max_depth} levels"
                )
            linked_feed = self._linked_feed(link, association)
            target_type = self._linked_type(linked_feed, association)
            logger.debug(
                "Expanding %s of %s as %s",
                association.name,
                self.entity_type.qualified_name,
                target_type.qualified_name,
            )
            linked = list(self.create_feed_parser(linked_feed, target_type).parse())
            if association.to_many:
                association.assign(entity, linked)
            else:
                association.assign(entity, linked[0] if linked else None)
        except ODataFeedError as e:
            self._warn(f"Can't retrieve associated property {name}", e)

    @staticmethod
    def _linked_feed(link: atom.Link, association: AssociationEnd) -> atom.Feed:
        """Normalize a link payload into a feed, one synthetic entry for to-one."""
        inline = link.inline
        if inline is None:
            return atom.Feed()
        tag = nodes.local_name(inline.tag)
        if association.to_many:
            if tag != "feed":
                raise StructureError(
                    f"Expected an inline feed for {association.name}, found <{tag}>"
                )
            return atom.feed_from_element(inline)
        if tag != "entry":
            raise StructureError(
                f"Expected an inline entry for {association.name}, found <{tag}>"
            )
        return atom.Feed(entries=[atom.entry_from_element(inline)])

    def _linked_type(self, feed: atom.Feed, association: AssociationEnd) -> EntityType:
        # The payload's own annotation wins over the declared target
        tag = feed.entry_type
        if tag is None:
            tag = association.target
        return self.metadata.resolve_tag(tag)

    def _bind_mapping(
        self,
        entity: Any,
        mapping: Mapping,
        entry: atom.Entry,
        inline_copy: _InlineCopy,
    ) -> None:
        if mapping.type != self.entity_type.qualified_name:
            return
        try:
            value = self._mapping_value(mapping, entry, inline_copy)
            if value is not None:
                set_path(
                    entity,
                    mapping.property_path,
                    value,
                    self.metadata,
                    root_type=self.entity_type,
                )
        except ODataFeedError as e:
            self._warn(
                f"Can't map {mapping.value_path} to {mapping.property_path} "
                f"of {type(entity).__name__}",
                e,
            )

    @staticmethod
    def _mapping_value(
        mapping: Mapping, entry: atom.Entry, inline_copy: _InlineCopy
    ) -> Any:
        if mapping.is_syndication:
            return _syndication_value(entry, mapping.value_path)

        root = inline_copy.root
        if root is None:
            return None
        return nodes.select_text(
            root, mapping.value_path, mapping.ns_prefix, mapping.ns_uri
        )


def parse(
    feed: _FeedSource,
    target_type: _TargetType = None,
    metadata: Optional[Metadata] = None,
    *,
    diagnostics: Optional[Diagnostics] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Iterator[Any]:
    """Materialize the entries of a feed as entities.

    Args:
        feed: Parsed Atom feed, or Atom XML content string/bytes
        target_type: Entity type, registered entity class or qualified type
            name; inferred from the first entry's type tag when omitted
        metadata: Schema the entries are bound against
        diagnostics: Sink receiving every recoverable failure; defaults to
            logging through the ``odatafeed`` loggers
        max_depth: Deepest level of inline link content that gets expanded

    Returns:
        Iterator over the entities, in entry order. It is empty when the feed
        or metadata is missing, when the XML can't be read, or when the
        entity type can't be resolved.
    """
    if diagnostics is None:
        diagnostics = LoggingDiagnostics(logger)
    if feed is None or metadata is None:
        return iter(())

    if isinstance(feed, (str, bytes)):
        try:
            feed = atom.parse_feed(feed)
        except StructureError as e:
            diagnostics.report(logging.WARNING, "Can't read the feed document", e)
            return iter(())

    if target_type is None:
        if not feed.entries:
            return iter(())
        try:
            entity_type = metadata.resolve_tag(feed.entry_type)
        except StructureError as e:
            diagnostics.report(logging.WARNING, "Can't infer the entity type of the feed", e)
            return iter(())
    else:
        entity_type = metadata.get_entity_type(target_type)
        if entity_type is None:
            diagnostics.report(logging.WARNING, f"Unknown entity type: {target_type!r}")
            return iter(())

    return FeedParser(
        feed,
        entity_type,
        metadata,
        diagnostics=diagnostics,
        max_depth=max_depth,
    ).parse()
