# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Declarative type metadata and record generation.

A factory describes one record type: its plain fields, sequence fields and
relationships. The record store asks it for field values of every generated
record, for the related records to auto-create, and for the after-create hook.

Usage:
    class ClusterFactory(Factory):
        factory_name = "cluster"
        name = field("cluster")
        hosts = has_many("host", "cluster", create_related=2)

    class HostFactory(Factory):
        factory_name = "host"
        cluster = has_one("cluster", "hosts")

        @field()
        def hostname(self):
            return f"host-{self.id}"
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, Union

from fixture_lair.errors import MissingFactoryName
from fixture_lair.models import (
    MISSING,
    AttrMeta,
    FieldAttr,
    HasManyAttr,
    HasOneAttr,
    RelationshipAttr,
    SequenceAttr,
    TypeDescriptor,
)

logger = logging.getLogger(__name__)


def field(
    value: Any = None,
    *,
    default_value: Any = MISSING,
    allowed_values: Optional[List[Any]] = None,
    preferred_type: Optional[type] = None,
) -> FieldAttr:
    """Declare a plain field. Can also decorate a method computing the value."""
    return FieldAttr(
        value=value,
        default_value=default_value,
        allowed_values=allowed_values,
        preferred_type=preferred_type,
    )


def sequence_item(
    initial_value: Any,
    get_next_value: Callable[[List[Any]], Any],
    last_values_count: Optional[int] = None,
) -> SequenceAttr:
    """Declare a field computed from previously generated values."""
    return SequenceAttr(initial_value, get_next_value, last_values_count)


def has_one(
    factory_name: str,
    inverted_attr_name: Optional[str] = None,
    *,
    reflexive: bool = False,
    depth: Optional[int] = None,
    create_related: Union[None, int, Callable[[str], int]] = None,
) -> HasOneAttr:
    """Declare a single relation (one-to-one or one-to-many)."""
    return HasOneAttr(factory_name, inverted_attr_name, reflexive, depth, create_related)


def has_many(
    factory_name: str,
    inverted_attr_name: Optional[str] = None,
    *,
    reflexive: bool = False,
    depth: Optional[int] = None,
    create_related: Union[None, int, Callable[[str], int]] = None,
) -> HasManyAttr:
    """Declare a list relation (many-to-one or many-to-many)."""
    return HasManyAttr(factory_name, inverted_attr_name, reflexive, depth, create_related)


class Factory:
    """Base class for record factories.

    Child classes declare attributes as class attributes and set
    ``factory_name``. Declarations are inherited and may be overridden.

    Class options:
    - allow_custom_ids: accept caller-supplied ids (create_one, load_records)
    - after_create_relationships_depth: depth of the record passed to after_create
    - after_create_ignore_related: ignore_related of the record passed to after_create
    """

    factory_name: str = ""
    allow_custom_ids: bool = False
    after_create_relationships_depth: Optional[int] = None
    after_create_ignore_related: Union[bool, Sequence[str]] = ()

    def __init__(self) -> None:
        if not self.get_factory_name():
            raise MissingFactoryName()
        # Id of the record currently being generated
        self.id: Optional[str] = None
        self._meta: Dict[str, AttrMeta] = self.get_meta()
        self._record_cache: Dict[str, Any] = {}
        self._sequences: Dict[str, List[Any]] = {}

    @classmethod
    def get_meta(cls) -> Dict[str, AttrMeta]:
        """Collect attribute declarations, parents first."""
        meta: Dict[str, AttrMeta] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, (FieldAttr, RelationshipAttr)):
                    meta[name] = value  # type: ignore[assignment]
                elif name in meta:
                    del meta[name]
        return meta

    @property
    def meta(self) -> Dict[str, AttrMeta]:
        return self._meta

    @property
    def descriptor(self) -> TypeDescriptor:
        return TypeDescriptor(self.get_factory_name(), dict(self._meta))

    def get_factory_name(self) -> str:
        return self.factory_name

    def related(self) -> Dict[str, RelationshipAttr]:
        """Relationship attributes that auto-create related records."""
        return {
            name: attr
            for name, attr in self._meta.items()
            if isinstance(attr, RelationshipAttr) and attr.create_related
        }

    def field_value(self, attr_name: str) -> Any:
        """Value of a field for the current record, computed once per record."""
        if attr_name not in self._record_cache:
            attr = self._meta[attr_name]
            assert isinstance(attr, FieldAttr)
            self._record_cache[attr_name] = attr.compute(self)
        return self._record_cache[attr_name]

    def sequence_history(self, attr_name: str) -> List[Any]:
        return self._sequences.setdefault(attr_name, [])

    def create_record(self, record_id: str) -> Dict[str, Any]:
        """Generate the plain field values of a new record."""
        self.id = record_id
        self._record_cache = {}
        record: Dict[str, Any] = {"id": record_id}
        try:
            for attr_name, attr in self._meta.items():
                if isinstance(attr, FieldAttr):
                    record[attr_name] = copy.deepcopy(self.field_value(attr_name))
        finally:
            self._record_cache = {}
        return record

    def get_defaults(self) -> Dict[str, Any]:
        """Default values of fields that declare ``default_value``."""
        return {
            attr_name: copy.deepcopy(attr.default_value)
            for attr_name, attr in self._meta.items()
            if isinstance(attr, FieldAttr) and attr.has_default
        }

    def after_create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Hook called with every generated record once generation is complete.

        Only FIELD-kind values of the returned record are written back.
        """
        return record


class DescriptorFactory(Factory):
    """Factory built from a plain TypeDescriptor."""

    def __init__(self, descriptor: TypeDescriptor) -> None:
        self._descriptor = descriptor
        super().__init__()
        self._meta = dict(descriptor.attrs)

    def get_factory_name(self) -> str:
        return self._descriptor.name


def as_factory(source: Union[TypeDescriptor, Factory, Type[Factory]]) -> Factory:
    """Normalize a registration argument to a factory instance."""
    if isinstance(source, TypeDescriptor):
        return DescriptorFactory(source)
    if isinstance(source, type) and issubclass(source, Factory):
        return source()
    if isinstance(source, Factory):
        return source
    raise TypeError(f"Cannot register {source!r}: expected TypeDescriptor or Factory")
