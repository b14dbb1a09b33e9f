# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Exception taxonomy for the record store.

Every error is a caller/programmer error: raised synchronously, never retried,
never recovered internally. A failed validation leaves the store unchanged.
"""

import json
from typing import List


class LairError(Exception):
    """Base class for all record store errors."""

    pass


class UnknownType(LairError):
    """Raised when an operation references an unregistered type."""

    def __init__(self, type_name: str):
        super().__init__(f'"{type_name}"-type doesn\'t exist in the database')
        self.type_name = type_name


class DuplicateType(LairError):
    """Raised when a type is registered twice."""

    def __init__(self, type_name: str):
        super().__init__(f'Factory with name "{type_name}" is already registered')
        self.type_name = type_name


class ReservedAttributeName(LairError):
    """Raised when a type declares an attribute literally named ``id``."""

    def __init__(self, type_name: str, attr_name: str = "id"):
        super().__init__(
            f'"{type_name}" declares attribute "{attr_name}". '
            "This name is reserved for the record id"
        )
        self.type_name = type_name
        self.attr_name = attr_name


class MissingFactoryName(LairError):
    """Raised when a factory class does not define ``factory_name``."""

    def __init__(self) -> None:
        super().__init__(
            'Factory name must be defined in the "Factory" child-class '
            'as a class attribute "factory_name"'
        )


class InvalidIdentifier(LairError):
    """Raised when a relation value is not id-like."""

    pass


class DanglingReference(LairError):
    """Raised when a relation value references a record that doesn't exist."""

    def __init__(self, type_name: str, record_id: str, flavour: str):
        super().__init__(
            f'Record of "{type_name}" with id "{record_id}" doesn\'t exist. '
            f"Create it first [{flavour} relationship]"
        )
        self.type_name = type_name
        self.record_id = record_id


class RelationKindMismatch(LairError):
    """Raised when a HAS_ONE-only or HAS_MANY-only operation hits the other kind."""

    def __init__(self, operation: str, expected_kind: str, type_name: str, attr_name: str):
        super().__init__(
            f'"{operation}" should be used only for {expected_kind} relationships. '
            f'You try to use it for "{type_name}.{attr_name}"'
        )
        self.type_name = type_name
        self.attr_name = attr_name


class UnknownAttribute(LairError):
    """Raised when a relationship operation names an undeclared attribute."""

    def __init__(self, type_name: str, attr_name: str):
        super().__init__(f'"{type_name}" doesn\'t declare attribute "{attr_name}"')
        self.type_name = type_name
        self.attr_name = attr_name


class CreateRelatedLoop(LairError):
    """Raised when auto-generation of related records cycles back to a type in the chain."""

    def __init__(self, type_name: str, chain: List[str]):
        super().__init__(
            f'Loop is detected in the "create_related". Chain is {json.dumps(chain)}. '
            f'You try to create records for "{type_name}" again.'
        )
        self.type_name = type_name
        self.chain = list(chain)


class RecordNotFound(LairError):
    """Raised when an operation targets a record id that doesn't exist."""

    def __init__(self, type_name: str, record_id: str):
        super().__init__(f'Record of "{type_name}" with id "{record_id}" doesn\'t exist')
        self.type_name = type_name
        self.record_id = record_id


class DuplicateRecord(LairError):
    """Raised when a caller-supplied id is already taken."""

    def __init__(self, type_name: str, record_id: str):
        super().__init__(f'Record of "{type_name}" with id "{record_id}" already exists')
        self.type_name = type_name
        self.record_id = record_id


class UnknownIgnoredType(LairError):
    """Raised when ``ignore_related`` names an unregistered type."""

    def __init__(self, type_name: str):
        super().__init__(
            f'"ignore_related" contains type "{type_name}" which doesn\'t exist in the database'
        )
        self.type_name = type_name


class CustomIdsNotAllowed(LairError):
    """Raised when records with caller-supplied ids are loaded into a store-assigned type."""

    def __init__(self, type_name: str):
        super().__init__(f'"{type_name}" must have "allow_custom_ids" set to "True"')
        self.type_name = type_name


class InvalidFieldValue(LairError):
    """Raised when a field value is not one of its declared allowed values."""

    pass
