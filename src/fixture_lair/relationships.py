# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Canonical bidirectional storage of relationship edges.

The index keeps one edge row per record: (type, id) -> {attr: edge}. An edge
is ``None``/a single id for HAS_ONE attributes and a deduplicated, sorted id
list for HAS_MANY attributes. Rows are created with defaults for every
declared relation the moment a record is registered, so no relation is ever
missing.

Every relation update goes through one of four multiplicity algorithms that
keep the inverse side in sync:
- one-to-one:   HAS_ONE  <-> HAS_ONE
- one-to-many:  HAS_ONE  <-> HAS_MANY
- many-to-one:  HAS_MANY <-> HAS_ONE
- many-to-many: HAS_MANY <-> HAS_MANY

One-way relations (no declared inverse) only update the source side.

Limitations:
- NOT thread-safe: Designed for single-threaded use only
- Deletion sweeps every row of the referring types (fixture-scale data)
"""

import logging
from typing import Dict, List, Mapping, Optional, Tuple

from fixture_lair.errors import (
    InvalidIdentifier,
    RecordNotFound,
    RelationKindMismatch,
    UnknownAttribute,
    UnknownType,
)
from fixture_lair.models import (
    AttrKind,
    AttrMeta,
    EdgeValue,
    HasManyAttr,
    HasOneAttr,
    RelationshipAttr,
)

logger = logging.getLogger(__name__)

EdgeRow = Dict[str, EdgeValue]


def _normalize_ids(ids: List[str]) -> List[str]:
    return sorted(set(ids))


class RelationshipIndex:
    """Edge store plus the bidirectional consistency algorithms.

    The index knows nothing about plain field values. It only needs the
    relation declarations of every registered type to build default rows and
    to find the inverse side of an attribute.
    """

    def __init__(self) -> None:
        """Initialize empty index."""
        # type -> record id -> attr -> edge
        self._edges: Dict[str, Dict[str, EdgeRow]] = {}

        # type -> relation attr name -> declaration
        self._meta: Dict[str, Dict[str, RelationshipAttr]] = {}

    # =========================================================================
    # Registration
    # =========================================================================

    def register_type(self, type_name: str, attrs: Optional[Mapping[str, AttrMeta]] = None) -> None:
        """Create an empty edge table for a type. Idempotent."""
        if type_name in self._edges:
            return
        self._edges[type_name] = {}
        self._meta[type_name] = {}
        for attr_name, attr in (attrs or {}).items():
            if isinstance(attr, RelationshipAttr):
                if attr.name is None:
                    attr.name = attr_name
                self._meta[type_name][attr_name] = attr

    def register_record(self, type_name: str, record_id: str) -> None:
        """Create a default edge row for a record. Idempotent."""
        table = self._table(type_name)
        if record_id in table:
            return
        table[record_id] = {
            attr_name: attr.default_value() for attr_name, attr in self._meta[type_name].items()
        }

    def has_type(self, type_name: str) -> bool:
        return type_name in self._edges

    def has_record(self, type_name: str, record_id: str) -> bool:
        return record_id in self._edges.get(type_name, {})

    def record_ids(self, type_name: str) -> List[str]:
        return list(self._table(type_name))

    def get_edges(self, type_name: str, record_id: str) -> EdgeRow:
        """Return an independent copy of a record's edge row."""
        row = self._row(type_name, record_id)
        return {
            attr_name: list(value) if isinstance(value, list) else value
            for attr_name, value in row.items()
        }

    # =========================================================================
    # Low-level accessors
    # =========================================================================

    def read_one(self, type_name: str, record_id: str, attr_name: str) -> Optional[str]:
        self._expect_kind("read_one", type_name, attr_name, AttrKind.HAS_ONE)
        value = self._row(type_name, record_id)[attr_name]
        assert not isinstance(value, list)
        return value

    def read_many(self, type_name: str, record_id: str, attr_name: str) -> List[str]:
        self._expect_kind("read_many", type_name, attr_name, AttrKind.HAS_MANY)
        value = self._row(type_name, record_id)[attr_name]
        assert isinstance(value, list)
        return list(value)

    def write_one(
        self, type_name: str, record_id: str, attr_name: str, value: Optional[str]
    ) -> None:
        self._expect_kind("write_one", type_name, attr_name, AttrKind.HAS_ONE)
        self._row(type_name, record_id)[attr_name] = value

    def write_many(self, type_name: str, record_id: str, attr_name: str, ids: List[str]) -> None:
        """Store a deduplicated, sorted copy of ``ids``."""
        self._expect_kind("write_many", type_name, attr_name, AttrKind.HAS_MANY)
        self._row(type_name, record_id)[attr_name] = _normalize_ids(ids)

    def add_to_many(self, type_name: str, record_id: str, attr_name: str, value: str) -> None:
        self._expect_kind("add_to_many", type_name, attr_name, AttrKind.HAS_MANY)
        current = self.read_many(type_name, record_id, attr_name)
        if value not in current:
            current.append(value)
            self.write_many(type_name, record_id, attr_name, current)

    def remove_from_many(
        self, type_name: str, record_id: str, attr_name: str, value: str
    ) -> None:
        self._expect_kind("remove_from_many", type_name, attr_name, AttrKind.HAS_MANY)
        current = self.read_many(type_name, record_id, attr_name)
        if value in current:
            self.write_many(type_name, record_id, attr_name, [v for v in current if v != value])

    # =========================================================================
    # Multiplicity algorithms
    # =========================================================================

    def apply(self, type_name: str, record_id: str, attr_name: str, value: EdgeValue) -> None:
        """Set a relation and update its inverse side.

        Dispatches on the multiplicity of the attribute and of its inverse.
        ``value`` must already be resolved to plain, existing ids.
        """
        attr = self._relation(type_name, attr_name)
        inverse = self.inverse_of(type_name, attr_name)
        if isinstance(attr, HasOneAttr):
            if isinstance(value, (list, tuple)):
                raise InvalidIdentifier(
                    f'Single id should be provided for value of "{attr_name}" '
                    f'[relationship with "{attr.factory_name}"]'
                )
            if inverse is None:
                self.write_one(type_name, record_id, attr_name, value)
            elif isinstance(inverse, HasOneAttr):
                self.apply_one_to_one(
                    type_name, record_id, attr_name, value, attr.factory_name, inverse.name or ""
                )
            else:
                self.apply_one_to_many(
                    type_name, record_id, attr_name, value, attr.factory_name, inverse.name or ""
                )
        else:
            if value is not None and not isinstance(value, (list, tuple)):
                raise InvalidIdentifier(
                    f'Array of ids should be provided for value of "{attr_name}" '
                    f'[relationship with "{attr.factory_name}"]'
                )
            ids = list(value or [])
            if inverse is None:
                self.write_many(type_name, record_id, attr_name, ids)
            elif isinstance(inverse, HasOneAttr):
                self.apply_many_to_one(
                    type_name, record_id, attr_name, ids, attr.factory_name, inverse.name or ""
                )
            else:
                self.apply_many_to_many(
                    type_name, record_id, attr_name, ids, attr.factory_name, inverse.name or ""
                )

    def clear_attr(self, type_name: str, record_id: str, attr_name: str) -> None:
        """Detach a relation by setting it to nothing."""
        attr = self._relation(type_name, attr_name)
        self.apply(type_name, record_id, attr_name, attr.default_value())

    def apply_one_to_one(
        self,
        src_type: str,
        src_id: str,
        src_attr: str,
        new_target_id: Optional[str],
        dst_type: str,
        dst_attr: str,
    ) -> None:
        """HAS_ONE <-> HAS_ONE. Each side has at most one owner."""
        logger.debug(f"one-to-one {src_type}[{src_id}].{src_attr} -> {dst_type}[{new_target_id}]")
        old_target_id = self.read_one(src_type, src_id, src_attr)
        if old_target_id is not None and old_target_id != new_target_id:
            if self.has_record(dst_type, old_target_id):
                back_id = self.read_one(dst_type, old_target_id, dst_attr)
                self.write_one(dst_type, old_target_id, dst_attr, None)
                if (
                    back_id is not None
                    and back_id != src_id
                    and self.has_record(src_type, back_id)
                ):
                    self.write_one(src_type, back_id, src_attr, None)

        if new_target_id is not None:
            prev_owner_id = self.read_one(dst_type, new_target_id, dst_attr)
            if (
                prev_owner_id is not None
                and prev_owner_id != src_id
                and self.has_record(src_type, prev_owner_id)
            ):
                self.write_one(src_type, prev_owner_id, src_attr, None)

        self.write_one(src_type, src_id, src_attr, new_target_id)
        if new_target_id is not None:
            self.write_one(dst_type, new_target_id, dst_attr, src_id)

    def apply_one_to_many(
        self,
        src_type: str,
        src_id: str,
        src_attr: str,
        new_target_id: Optional[str],
        dst_type: str,
        dst_attr: str,
    ) -> None:
        """HAS_ONE source, HAS_MANY target."""
        logger.debug(f"one-to-many {src_type}[{src_id}].{src_attr} -> {dst_type}[{new_target_id}]")
        old_target_id = self.read_one(src_type, src_id, src_attr)
        if (
            old_target_id is not None
            and old_target_id != new_target_id
            and self.has_record(dst_type, old_target_id)
        ):
            self.remove_from_many(dst_type, old_target_id, dst_attr, src_id)
        if new_target_id is not None:
            self.add_to_many(dst_type, new_target_id, dst_attr, src_id)
        self.write_one(src_type, src_id, src_attr, new_target_id)

        # No other list may still claim the source
        for other_id, row in self._table(dst_type).items():
            other_ids = row[dst_attr]
            if other_id != new_target_id and isinstance(other_ids, list) and src_id in other_ids:
                self.remove_from_many(dst_type, other_id, dst_attr, src_id)

    def apply_many_to_one(
        self,
        src_type: str,
        src_id: str,
        src_attr: str,
        new_target_ids: List[str],
        dst_type: str,
        dst_attr: str,
    ) -> None:
        """HAS_MANY source, HAS_ONE target.

        A target belongs to at most one owner: when it joins this list its
        previous owner's list is scrubbed in the same call.
        """
        logger.debug(f"many-to-one {src_type}[{src_id}].{src_attr} -> {dst_type}{new_target_ids}")
        new_ids = _normalize_ids(new_target_ids)
        current_ids = self.read_many(src_type, src_id, src_attr)
        to_remove = [target_id for target_id in current_ids if target_id not in new_ids]
        to_add = [target_id for target_id in new_ids if target_id not in current_ids]

        for target_id in to_remove:
            if self.has_record(dst_type, target_id):
                self.write_one(dst_type, target_id, dst_attr, None)
        for target_id in to_add:
            old_owner_id = self.read_one(dst_type, target_id, dst_attr)
            if (
                old_owner_id is not None
                and old_owner_id != src_id
                and self.has_record(src_type, old_owner_id)
            ):
                self.remove_from_many(src_type, old_owner_id, src_attr, target_id)
            self.write_one(dst_type, target_id, dst_attr, src_id)
        self.write_many(src_type, src_id, src_attr, new_ids)

    def apply_many_to_many(
        self,
        src_type: str,
        src_id: str,
        src_attr: str,
        new_target_ids: List[str],
        dst_type: str,
        dst_attr: str,
    ) -> None:
        """HAS_MANY <-> HAS_MANY."""
        logger.debug(f"many-to-many {src_type}[{src_id}].{src_attr} -> {dst_type}{new_target_ids}")
        new_ids = _normalize_ids(new_target_ids)
        current_ids = self.read_many(src_type, src_id, src_attr)
        to_remove = [target_id for target_id in current_ids if target_id not in new_ids]
        to_add = [target_id for target_id in new_ids if target_id not in current_ids]

        for target_id in to_remove:
            if self.has_record(dst_type, target_id):
                self.remove_from_many(dst_type, target_id, dst_attr, src_id)
        for target_id in to_add:
            self.add_to_many(dst_type, target_id, dst_attr, src_id)
        self.write_many(src_type, src_id, src_attr, new_ids)

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_record(self, type_name: str, record_id: str) -> None:
        """Remove a record's edge row and every inbound reference to it.

        Sweeps every relation attribute (of any type) that targets
        ``type_name``. This covers declared inverses as well as one-way
        relations pointing at the deleted record.

        Complexity: O(rows of the referring types).
        """
        table = self._table(type_name)
        if record_id not in table:
            return
        del table[record_id]

        for other_type, attrs in self._meta.items():
            inbound = [
                attr_name for attr_name, attr in attrs.items() if attr.factory_name == type_name
            ]
            if not inbound:
                continue
            for row in self._edges[other_type].values():
                for attr_name in inbound:
                    value = row[attr_name]
                    if isinstance(value, list):
                        if record_id in value:
                            row[attr_name] = [v for v in value if v != record_id]
                    elif value == record_id:
                        row[attr_name] = None

    # =========================================================================
    # Consistency checks
    # =========================================================================

    def inverse_of(self, type_name: str, attr_name: str) -> Optional[RelationshipAttr]:
        """Declaration of the inverse attribute, None for one-way relations."""
        attr = self._relation(type_name, attr_name)
        if attr.inverted_attr_name is None:
            return None
        return self._meta.get(attr.factory_name, {}).get(attr.inverted_attr_name)

    def validate_index(self) -> Tuple[bool, List[str]]:
        """Validate edge rows for consistency.

        Checks for:
        - Completeness: every declared relation present with the right shape
        - Ordering: HAS_MANY edges sorted and deduplicated
        - Dangling edges: ids pointing at records without an edge row
        - Symmetry: cross relations mirrored on the inverse side

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []
        for type_name, table in self._edges.items():
            attrs = self._meta[type_name]
            for record_id, row in table.items():
                for attr_name, attr in attrs.items():
                    if attr_name not in row:
                        errors.append(f"Missing edge: {type_name}[{record_id}].{attr_name}")
                        continue
                    errors.extend(self._check_edge(type_name, record_id, attr_name, attr, row))
        return len(errors) == 0, errors

    def _check_edge(
        self,
        type_name: str,
        record_id: str,
        attr_name: str,
        attr: RelationshipAttr,
        row: EdgeRow,
    ) -> List[str]:
        errors: List[str] = []
        label = f"{type_name}[{record_id}].{attr_name}"
        value = row[attr_name]
        if isinstance(attr, HasManyAttr):
            if not isinstance(value, list):
                return [f"Malformed edge: {label} must be a list, got {value!r}"]
            if value != _normalize_ids(value):
                errors.append(f"Unordered edge: {label} = {value}")
            target_ids = value
        else:
            if isinstance(value, list):
                return [f"Malformed edge: {label} must be a single id, got {value!r}"]
            target_ids = [value] if value is not None else []

        inverse = self.inverse_of(type_name, attr_name)
        for target_id in target_ids:
            if not self.has_record(attr.factory_name, target_id):
                errors.append(f"Dangling edge: {label} -> {attr.factory_name}[{target_id}]")
                continue
            if inverse is None:
                continue
            back = self._edges[attr.factory_name][target_id].get(inverse.name or "")
            mirrored = record_id in back if isinstance(back, list) else back == record_id
            if not mirrored:
                errors.append(
                    f"Asymmetric edge: {label} -> {attr.factory_name}[{target_id}] "
                    f"but {attr.factory_name}[{target_id}].{inverse.name} = {back!r}"
                )
        return errors

    def detect_corruption(self) -> bool:
        """Run validation and log any errors found.

        Returns:
            True if corruption detected, False if index is valid.
        """
        is_valid, errors = self.validate_index()
        if not is_valid:
            logger.error(
                f"Relationship index corruption detected! Found {len(errors)} consistency "
                f"errors. Errors: {errors}"
            )
            return True
        return False

    # =========================================================================
    # Helpers
    # =========================================================================

    def _table(self, type_name: str) -> Dict[str, EdgeRow]:
        try:
            return self._edges[type_name]
        except KeyError:
            raise UnknownType(type_name) from None

    def _row(self, type_name: str, record_id: str) -> EdgeRow:
        table = self._table(type_name)
        try:
            return table[record_id]
        except KeyError:
            raise RecordNotFound(type_name, record_id) from None

    def _relation(self, type_name: str, attr_name: str) -> RelationshipAttr:
        self._table(type_name)
        attr = self._meta[type_name].get(attr_name)
        if attr is None:
            raise UnknownAttribute(type_name, attr_name)
        return attr

    def _expect_kind(self, operation: str, type_name: str, attr_name: str, kind: str) -> None:
        attr = self._relation(type_name, attr_name)
        if attr.kind != kind:
            expected = "HAS_ONE" if kind == AttrKind.HAS_ONE else "HAS_MANY"
            raise RelationKindMismatch(operation, expected, type_name, attr_name)

