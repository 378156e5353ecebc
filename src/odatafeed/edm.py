"""Entity data model: the schema a feed is materialized against.

Each structural type carries an explicit binding table instead of relying on
introspection: ``factory`` builds a blank instance and every ``Property`` knows
the attribute (or setter) that receives its value.
"""

from __future__ import annotations

import base64
import binascii
import datetime
import decimal
import keyword
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

from dateutil import parser as dateutil_parser

from .errors import AssignmentError, ConstructionError, PropertyLookupError, StructureError

_RE_SEPARATORS = re.compile(r"\W+")
_RE_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_RE_UNDERSCORES = re.compile(r"_+")
_RE_PATH_SEPARATOR = re.compile(r"[./]")
_RE_DURATION = re.compile(
    r"^(?P<sign>-)?P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)

_INT_RANGES: dict[str, tuple[int, int]] = {
    "Edm.Byte": (0, 255),
    "Edm.SByte": (-128, 127),
    "Edm.Int16": (-(2**15), 2**15 - 1),
    "Edm.Int32": (-(2**31), 2**31 - 1),
    "Edm.Int64": (-(2**63), 2**63 - 1),
}


def normalize(name: str) -> str:
    """Turn a schema or link title into a Python attribute name.

    >>> normalize("Order Details")
    'order_details'
    >>> normalize("CustomerID")
    'customer_id'
    """
    result = _RE_SEPARATORS.sub("_", name.strip())
    result = _RE_CAMEL_BOUNDARY.sub("_", result)
    result = _RE_UNDERSCORES.sub("_", result).strip("_").lower()
    if result and result[0].isdigit():
        result = "_" + result
    if keyword.iskeyword(result):
        result += "_"
    return result


def _to_boolean(text: str) -> bool:
    value = text.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    raise ValueError(f"not a boolean: {text!r}")


def _to_duration(text: str) -> datetime.timedelta:
    match = _RE_DURATION.match(text.strip())
    if not match:
        # Some producers write a clock time instead of a duration
        parsed = datetime.time.fromisoformat(text.strip())
        return datetime.timedelta(
            hours=parsed.hour,
            minutes=parsed.minute,
            seconds=parsed.second,
            microseconds=parsed.microsecond,
        )
    delta = datetime.timedelta(
        days=int(match.group("days") or 0),
        hours=int(match.group("hours") or 0),
        minutes=int(match.group("minutes") or 0),
        seconds=float(match.group("seconds") or 0),
    )
    return -delta if match.group("sign") else delta


_CONVERTERS: dict[str, Callable[[str], Any]] = {
    "Edm.String": str,
    "Edm.Boolean": _to_boolean,
    "Edm.Single": lambda text: float(text.strip()),
    "Edm.Double": lambda text: float(text.strip()),
    "Edm.Decimal": lambda text: decimal.Decimal(text.strip()),
    "Edm.DateTime": lambda text: dateutil_parser.isoparse(text.strip()),
    "Edm.DateTimeOffset": lambda text: dateutil_parser.isoparse(text.strip()),
    "Edm.Time": _to_duration,
    "Edm.Guid": lambda text: uuid.UUID(text.strip()),
    "Edm.Binary": lambda text: base64.b64decode(text.strip(), validate=True),
}


def convert(edm_type: str, text: str) -> Any:
    """Convert the text of a property element to its EDM type.

    Unknown type names keep the raw text.

    Raises:
        AssignmentError: If the text isn't a valid literal of the type
    """
    try:
        if edm_type in _INT_RANGES:
            value = int(text.strip())
            low, high = _INT_RANGES[edm_type]
            if not low <= value <= high:
                raise ValueError(f"{value} is out of range for {edm_type}")
            return value
        converter = _CONVERTERS.get(edm_type)
        if converter is None:
            return text
        return converter(text)
    except (ValueError, TypeError, OverflowError, decimal.InvalidOperation, binascii.Error) as e:
        raise AssignmentError(f"Can't convert {text!r} to {edm_type}: {e}") from e


@dataclass
class Property:
    name: str
    type: Union[str, "ComplexType"] = "Edm.String"
    attribute: Optional[str] = None
    nullable: bool = True
    setter: Optional[Callable[[Any, Any], None]] = None

    def __post_init__(self) -> None:
        if self.attribute is None:
            self.attribute = normalize(self.name)

    def convert(self, text: str) -> Any:
        if isinstance(self.type, ComplexType):
            raise AssignmentError(
                f"Property {self.name} expects a {self.type.qualified_name} value"
            )
        return convert(self.type, text)

    def assign(self, obj: Any, value: Any) -> None:
        if value is None and not self.nullable:
            raise AssignmentError(f"Property {self.name} isn't nullable")
        try:
            if self.setter is not None:
                self.setter(obj, value)
            else:
                setattr(obj, self.attribute, value)
        except Exception as e:
            raise AssignmentError(
                f"Can't assign {self.name} on {type(obj).__name__}: {e}"
            ) from e


@dataclass
class AssociationEnd:
    """Navigation property of an entity type."""

    name: str
    target: Union[str, "EntityType"]
    to_many: bool = False
    attribute: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.target, EntityType):
            self.target = self.target.qualified_name
        if self.attribute is None:
            self.attribute = normalize(self.name)

    def assign(self, obj: Any, value: Any) -> None:
        try:
            setattr(obj, self.attribute, value)
        except Exception as e:
            raise AssignmentError(
                f"Can't assign {self.name} on {type(obj).__name__}: {e}"
            ) from e


@dataclass
class Mapping:
    """Custom feed mapping declared for one entity type.

    Without a namespace, ``value_path`` is one of the ``Syndication*``
    keywords; with one, it is an XPath into the entry's inline content.
    """

    type: Union[str, "EntityType"]
    value_path: str
    property_path: str
    ns_prefix: Optional[str] = None
    ns_uri: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.type, EntityType):
            self.type = self.type.qualified_name

    @property
    def is_syndication(self) -> bool:
        return self.ns_prefix is None and self.ns_uri is None


class ComplexType:
    """Structured type without identity, such as an address."""

    def __init__(
        self,
        namespace: str,
        name: str,
        properties: Iterable[Property] = (),
        factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.namespace = namespace
        self.name = name
        self.factory = factory
        self.properties: dict[str, Property] = {p.name: p for p in properties}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.qualified_name!r})"

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def create(self) -> Any:
        """Build a blank instance.

        Raises:
            ConstructionError: If no factory is bound or the factory fails
        """
        if self.factory is None:
            raise ConstructionError(f"No factory bound to {self.qualified_name}")
        try:
            return self.factory()
        except Exception as e:
            raise ConstructionError(
                f"Can't instantiate {self.qualified_name} without arguments: {e}"
            ) from e

    def get_property(self, name: str) -> Property:
        try:
            return self.properties[name]
        except KeyError:
            raise PropertyLookupError(
                f"{self.qualified_name} declares no property {name!r}"
            ) from None

    def find_property(self, segment: str) -> Optional[Property]:
        """Match a path segment against property names, then attributes."""
        prop = self.properties.get(segment)
        if prop is not None:
            return prop
        for prop in self.properties.values():
            if prop.attribute == segment:
                return prop
        return None


class EntityType(ComplexType):
    def __init__(
        self,
        namespace: str,
        name: str,
        properties: Iterable[Property] = (),
        associations: Iterable[AssociationEnd] = (),
        factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        super().__init__(namespace, name, properties, factory)
        self.associations: dict[str, AssociationEnd] = {
            normalize(a.name): a for a in associations
        }

    def get_association(self, name: str) -> Optional[AssociationEnd]:
        return self.associations.get(name)


StructuralType = Union[EntityType, ComplexType]


class Metadata:
    """Read-only view of a service schema once it has been filled."""

    def __init__(
        self,
        entity_types: Iterable[EntityType] = (),
        complex_types: Iterable[ComplexType] = (),
        mappings: Iterable[Mapping] = (),
    ) -> None:
        self._types_by_name: dict[str, StructuralType] = {}
        self._types_by_class: dict[type, StructuralType] = {}
        self.mappings: list[Mapping] = []
        for complex_type in complex_types:
            self.add_complex_type(complex_type)
        for entity_type in entity_types:
            self.add_entity_type(entity_type)
        for mapping in mappings:
            self.add_mapping(mapping)

    def _register(self, structural_type: StructuralType) -> None:
        self._types_by_name[structural_type.qualified_name] = structural_type
        if isinstance(structural_type.factory, type):
            self._types_by_class[structural_type.factory] = structural_type

    def add_entity_type(self, entity_type: EntityType) -> EntityType:
        self._register(entity_type)
        return entity_type

    def add_complex_type(self, complex_type: ComplexType) -> ComplexType:
        self._register(complex_type)
        return complex_type

    def add_mapping(self, mapping: Mapping) -> Mapping:
        self.mappings.append(mapping)
        return mapping

    def get_entity_type(self, key: Union[type, str, EntityType, None]) -> Optional[EntityType]:
        """Look up an entity type by class, qualified name or descriptor."""
        if key is None:
            return None
        if isinstance(key, EntityType):
            return key
        if isinstance(key, str):
            found = self._types_by_name.get(key)
        else:
            found = self._types_by_class.get(key)
        return found if isinstance(found, EntityType) else None

    def resolve_tag(self, tag: Optional[str]) -> EntityType:
        """Resolve the type tag carried by feed content.

        Raises:
            StructureError: If the tag is missing or names no entity type
        """
        if not tag:
            raise StructureError("Content carries no entity type tag")
        entity_type = self.get_entity_type(tag)
        if entity_type is None:
            raise StructureError(f"Unknown entity type tag: {tag}")
        return entity_type

    def type_of(self, obj: Any) -> Optional[StructuralType]:
        return self._types_by_class.get(type(obj))

    def get_property(
        self, obj: Any, name: str, structural_type: Optional[StructuralType] = None
    ) -> Property:
        """Look up the property ``name`` of ``obj``.

        ``structural_type`` stands in for the class lookup when the object
        comes from a factory that isn't a registered class.
        """
        structural_type = structural_type or self.type_of(obj)
        if structural_type is None:
            raise PropertyLookupError(f"No schema registered for {type(obj).__name__}")
        return structural_type.get_property(name)

    def get_association(
        self, entity_type: Optional[EntityType], name: str
    ) -> Optional[AssociationEnd]:
        if entity_type is None:
            return None
        return entity_type.get_association(name)


def set_path(
    obj: Any,
    path: str,
    value: Any,
    metadata: Metadata,
    root_type: Optional[StructuralType] = None,
) -> None:
    """Assign ``value`` at a dot-separated property path below ``obj``.

    Missing intermediate objects of a complex type are created on the way
    down. String values reaching a declared property are converted to its EDM
    type.

    Raises:
        AssignmentError: If a segment can't be followed or assigned
    """
    segments = [s for s in _RE_PATH_SEPARATOR.split(path) if s]
    if not segments:
        raise AssignmentError(f"Empty property path: {path!r}")

    holder = obj
    structural_type = root_type or metadata.type_of(obj)
    for segment in segments[:-1]:
        prop = structural_type.find_property(segment) if structural_type else None
        attribute = prop.attribute if prop is not None else segment
        try:
            child = getattr(holder, attribute)
        except AttributeError as e:
            raise AssignmentError(
                f"{type(holder).__name__} has no attribute {attribute!r}"
            ) from e
        if child is None:
            if prop is None or not isinstance(prop.type, ComplexType):
                raise AssignmentError(f"Can't traverse {segment!r} of {path!r}: no value")
            try:
                child = prop.type.create()
            except ConstructionError as e:
                raise AssignmentError(f"Can't traverse {segment!r} of {path!r}: {e}") from e
            prop.assign(holder, child)
        holder = child
        if prop is not None and isinstance(prop.type, ComplexType):
            structural_type = prop.type
        else:
            structural_type = metadata.type_of(holder)

    leaf = segments[-1]
    prop = structural_type.find_property(leaf) if structural_type else None
    if prop is not None:
        if isinstance(value, str):
            value = prop.convert(value)
        prop.assign(holder, value)
        return

    if not hasattr(holder, leaf):
        raise AssignmentError(f"{type(holder).__name__} has no attribute {leaf!r}")
    try:
        setattr(holder, leaf, value)
    except Exception as e:
        raise AssignmentError(f"Can't assign {leaf} on {type(holder).__name__}: {e}") from e
