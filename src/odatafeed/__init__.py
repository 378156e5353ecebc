from .atom import Category, Content, Entry, Feed, Link, Person, Text, parse_feed
from .diagnostics import CollectingDiagnostics, Diagnostic, Diagnostics, LoggingDiagnostics
from .edm import (
    AssociationEnd,
    ComplexType,
    EntityType,
    Mapping,
    Metadata,
    Property,
    normalize,
)
from .errors import (
    AssignmentError,
    ConstructionError,
    ODataFeedError,
    PropertyLookupError,
    StructureError,
)
from .main import DEFAULT_MAX_DEPTH, FeedParser, parse

__all__ = [
    "AssignmentError",
    "AssociationEnd",
    "Category",
    "CollectingDiagnostics",
    "ComplexType",
    "ConstructionError",
    "Content",
    "DEFAULT_MAX_DEPTH",
    "Diagnostic",
    "Diagnostics",
    "Entry",
    "EntityType",
    "Feed",
    "FeedParser",
    "Link",
    "LoggingDiagnostics",
    "Mapping",
    "Metadata",
    "ODataFeedError",
    "Person",
    "Property",
    "PropertyLookupError",
    "StructureError",
    "Text",
    "normalize",
    "parse",
    "parse_feed",
]
