# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the fixture record store.

This module defines the metadata a type declares and the small value types
passed between the store and the relationship index:
- AttrKind: Kinds of attributes (plain field, single relation, list relation)
- FieldAttr / SequenceAttr: Plain FIELD-kind attributes
- HasOneAttr / HasManyAttr: Relationship attributes
- TypeDescriptor: A named record schema
- CrudOptions: Read-time materialization options
- CameFrom: The edge a materialization step descended along

Records, edges and exported metadata use JSON-compatible primitives only.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from fixture_lair.errors import InvalidFieldValue, InvalidIdentifier

logger = logging.getLogger(__name__)

# A leading integer, optionally signed
_ID_PATTERN = re.compile(r"^\s*[-+]?\d")

# Edge value: a single id (or None) for HAS_ONE, a sorted id list for HAS_MANY
EdgeValue = Union[Optional[str], List[str]]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class AttrKind:
    """Kinds of attributes a type may declare."""

    FIELD = "field"  # plain value stored in the record table
    HAS_ONE = "has_one"  # single related id (one-to-one, one-to-many)
    HAS_MANY = "has_many"  # list of related ids (many-to-one, many-to-many)


def is_id(value: Any) -> bool:
    """Check whether a value is id-like (a string starting with an integer)."""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def get_id(value: Any) -> Any:
    """Resolve a relation input to a plain id.

    Accepts an id string, a mapping with an ``"id"`` key or an object with an
    ``id`` attribute. Anything else is returned unchanged for the caller to
    reject.
    """
    if isinstance(value, dict):
        return value.get("id", value)
    if value is not None and not isinstance(value, str) and hasattr(value, "id"):
        return value.id
    return value


class FieldAttr:
    """A plain FIELD-kind attribute.

    The value for a generated record is either static (deep-copied for every
    record) or computed by a callable receiving the factory. ``field()`` may
    also decorate a method, which then computes the value::

        class UserFactory(Factory):
            factory_name = "user"
            name = field("Jane")

            @field()
            def email(self):
                return f"user{self.id}@example.com"
    """

    kind = AttrKind.FIELD

    def __init__(
        self,
        value: Any = None,
        default_value: Any = MISSING,
        allowed_values: Optional[List[Any]] = None,
        preferred_type: Optional[type] = None,
    ) -> None:
        if callable(default_value):
            raise ValueError('"default_value" can\'t be a function')
        self.name: Optional[str] = None
        self.value = value
        self.getter: Optional[Callable[[Any], Any]] = None
        self.default_value = default_value
        self.allowed_values = list(allowed_values) if allowed_values is not None else None
        self.preferred_type = preferred_type

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __call__(self, getter: Callable[[Any], Any]) -> "FieldAttr":
        self.getter = getter
        return self

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance.field_value(self.name)

    @property
    def has_default(self) -> bool:
        return self.default_value is not MISSING

    def compute(self, factory: Any) -> Any:
        """Compute the value of this field for the factory's current record."""
        if self.getter is not None:
            return self.getter(factory)
        if callable(self.value):
            return self.value(factory)
        return copy.deepcopy(self.value)

    def validate(self, value: Any) -> None:
        """Check a caller-supplied value against declared constraints.

        Raises:
            InvalidFieldValue: If value is not one of ``allowed_values``.
        """
        if self.allowed_values is not None and value not in self.allowed_values:
            allowed = ",".join(str(v) for v in self.allowed_values)
            raise InvalidFieldValue(
                f'"{self.name}" must be one of the "{allowed}". You passed "{value}"'
            )
        if self.preferred_type is not None and not isinstance(value, self.preferred_type):
            logger.warning(
                f'"{self.name}" expected to be "{self.preferred_type.__name__}". '
                f'You passed "{type(value).__name__}"'
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {"type": self.kind}
        if self.has_default:
            result["default_value"] = self.default_value
        if self.allowed_values is not None:
            result["allowed_values"] = self.allowed_values
        if self.preferred_type is not None:
            result["preferred_type"] = self.preferred_type.__name__
        return result


class SequenceAttr(FieldAttr):
    """A FIELD-kind attribute whose value depends on previously generated values.

    The first generated record gets ``initial_value``; every later one gets
    ``get_next_value(previous_values)``, where ``previous_values`` is limited to
    the last ``last_values_count`` items when that is set.
    """

    def __init__(
        self,
        initial_value: Any,
        get_next_value: Callable[[List[Any]], Any],
        last_values_count: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.initial_value = initial_value
        self.get_next_value = get_next_value
        self.last_values_count = last_values_count

    def compute(self, factory: Any) -> Any:
        prev_values = factory.sequence_history(self.name)
        if not prev_values:
            value = self.initial_value
        else:
            window = prev_values
            if self.last_values_count is not None:
                window = prev_values[len(prev_values) - self.last_values_count :]
            value = self.get_next_value(list(window))
        prev_values.append(value)
        return copy.deepcopy(value)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["sequence"] = True
        if self.last_values_count is not None:
            result["last_values_count"] = self.last_values_count
        return result


class RelationshipAttr:
    """Base for relationship attributes.

    ``inverted_attr_name`` names the attribute on the target type that mirrors
    this one. ``None`` declares a one-way relation.
    """

    kind = ""

    def __init__(
        self,
        factory_name: str,
        inverted_attr_name: Optional[str] = None,
        reflexive: bool = False,
        depth: Optional[int] = None,
        create_related: Union[None, int, Callable[[str], int]] = None,
    ) -> None:
        self.name: Optional[str] = None
        self.factory_name = factory_name
        self.inverted_attr_name = inverted_attr_name
        self.reflexive = reflexive
        self.reflexive_depth = depth
        self.create_related = create_related

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def is_reflexive(self, owner_type: str) -> bool:
        """Whether this relation points back at its own type."""
        return self.reflexive or self.factory_name == owner_type

    def default_value(self) -> EdgeValue:
        raise NotImplementedError

    def related_count(self, record_id: str) -> int:
        """Number of related records to auto-create for a new record."""
        if callable(self.create_related):
            return int(self.create_related(record_id))
        return int(self.create_related or 0)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: Dict[str, Any] = {
            "type": self.kind,
            "factory_name": self.factory_name,
            "inverted_attr_name": self.inverted_attr_name,
            "reflexive": self.reflexive,
        }
        if self.reflexive_depth is not None:
            result["reflexive_depth"] = self.reflexive_depth
        if self.create_related is not None and not callable(self.create_related):
            result["create_related"] = self.create_related
        return result


class HasOneAttr(RelationshipAttr):
    """Single related record: one-to-one or one-to-many."""

    kind = AttrKind.HAS_ONE

    def default_value(self) -> EdgeValue:
        return None

    def related_count(self, record_id: str) -> int:
        return 1


class HasManyAttr(RelationshipAttr):
    """List of related records: many-to-one or many-to-many."""

    kind = AttrKind.HAS_MANY

    def default_value(self) -> EdgeValue:
        return []


AttrMeta = Union[FieldAttr, HasOneAttr, HasManyAttr]


@dataclass
class TypeDescriptor:
    """A named record schema: ordered attribute name -> attribute metadata."""

    name: str
    attrs: Dict[str, AttrMeta] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for attr_name, attr in self.attrs.items():
            if attr.name is None:
                attr.name = attr_name

    def relations(self) -> Iterator[Tuple[str, RelationshipAttr]]:
        """Iterate over relationship attributes in declaration order."""
        for attr_name, attr in self.attrs.items():
            if isinstance(attr, RelationshipAttr):
                yield attr_name, attr

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "name": self.name,
            "attrs": {attr_name: attr.to_dict() for attr_name, attr in self.attrs.items()},
        }


@dataclass
class CrudOptions:
    """Options accepted by every read and write operation.

    Attributes:
        depth: Materialization depth (>= 1). None means unbounded.
        ignore_related: False, True (omit every relation) or a list of type
            names whose relation attributes are omitted.
        handle_not_attrs: Store undeclared keys of written data as plain values.
    """

    depth: Optional[int] = None
    ignore_related: Union[bool, Sequence[str]] = False
    handle_not_attrs: bool = False

    def __post_init__(self) -> None:
        if self.depth is not None and (
            isinstance(self.depth, bool) or not isinstance(self.depth, int) or self.depth < 1
        ):
            raise ValueError(f"depth must be an integer >= 1, got {self.depth!r}")

    def ignores(self, type_name: str) -> bool:
        """Whether relation attributes targeting ``type_name`` are omitted."""
        if self.ignore_related is True:
            return True
        if isinstance(self.ignore_related, (list, tuple, set)):
            return type_name in self.ignore_related
        return False

    def ignored_types(self) -> List[str]:
        if isinstance(self.ignore_related, (list, tuple, set)):
            return list(self.ignore_related)
        return []


class CameFrom(NamedTuple):
    """The edge a materialization step just descended along."""

    type_name: str
    record_id: str
    attr_name: str


def resolve_relation_ids(attr: RelationshipAttr, value: Any) -> EdgeValue:
    """Normalize a caller-supplied relation value to plain id(s).

    Raises:
        InvalidIdentifier: If a HAS_MANY value is not a list/tuple/None.
    """
    if isinstance(attr, HasManyAttr):
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise InvalidIdentifier(
                f'Array of ids should be provided for value of "{attr.name}" '
                f'[relationship with "{attr.factory_name}"]'
            )
        return [get_id(v) for v in value if v is not None]
    return get_id(value)
