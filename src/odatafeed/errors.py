from __future__ import annotations


class ODataFeedError(ValueError):
    """Base class for every error raised while materializing a feed."""


class ConstructionError(ODataFeedError):
    """The entity type can't be instantiated without arguments."""


class PropertyLookupError(ODataFeedError):
    """The schema declares no such property or association."""


class AssignmentError(ODataFeedError):
    """A value is incompatible with the property it targets."""


class StructureError(ODataFeedError):
    """Feed or nested inline content is malformed or untyped."""
