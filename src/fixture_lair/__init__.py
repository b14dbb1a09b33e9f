# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""In-memory store of interrelated synthetic records for test fixtures."""

from .config import Config
from .errors import (
    CreateRelatedLoop,
    CustomIdsNotAllowed,
    DanglingReference,
    DuplicateRecord,
    DuplicateType,
    InvalidFieldValue,
    InvalidIdentifier,
    LairError,
    MissingFactoryName,
    RecordNotFound,
    RelationKindMismatch,
    ReservedAttributeName,
    UnknownAttribute,
    UnknownIgnoredType,
    UnknownType,
)
from .factory import DescriptorFactory, Factory, field, has_many, has_one, sequence_item
from .models import (
    AttrKind,
    CrudOptions,
    FieldAttr,
    HasManyAttr,
    HasOneAttr,
    SequenceAttr,
    TypeDescriptor,
)
from .relationships import RelationshipIndex
from .store import RecordStore

__version__ = "0.1.0"

__all__ = [
    "RecordStore",
    "RelationshipIndex",
    "Config",
    "Factory",
    "DescriptorFactory",
    "field",
    "sequence_item",
    "has_one",
    "has_many",
    "AttrKind",
    "CrudOptions",
    "FieldAttr",
    "SequenceAttr",
    "HasOneAttr",
    "HasManyAttr",
    "TypeDescriptor",
    "LairError",
    "UnknownType",
    "DuplicateType",
    "ReservedAttributeName",
    "MissingFactoryName",
    "InvalidIdentifier",
    "DanglingReference",
    "RelationKindMismatch",
    "UnknownAttribute",
    "CreateRelatedLoop",
    "RecordNotFound",
    "DuplicateRecord",
    "UnknownIgnoredType",
    "CustomIdsNotAllowed",
    "InvalidFieldValue",
]
