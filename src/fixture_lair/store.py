# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""In-memory record store for synthetic test fixtures.

The store owns the record tables (type -> id -> plain fields) and delegates
every relationship edge to a RelationshipIndex. It provides:
- Type registration from factories or plain type descriptors
- Bulk generation with recursive creation of related records
- Create/read/update/delete with validate-then-apply semantics
- Bounded-depth materialization of a record's relation graph

Usage:
    store = RecordStore()
    store.register_type(ClusterFactory)
    store.register_type(HostFactory)
    store.create_many("cluster", 2)
    cluster = store.get_one("cluster", "1", depth=2)

Limitations:
- NOT thread-safe: one store instance per test (or per thread)
- Materialization only short-circuits the edge it just descended along;
  longer cycles are bounded by ``depth`` alone
"""

import copy
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Union

from fixture_lair.config import Config
from fixture_lair.decorators import assert_crud_options, assert_has_type, verbose
from fixture_lair.errors import (
    CreateRelatedLoop,
    CustomIdsNotAllowed,
    DanglingReference,
    DuplicateRecord,
    DuplicateType,
    InvalidIdentifier,
    RecordNotFound,
    ReservedAttributeName,
    UnknownType,
)
from fixture_lair.factory import Factory, as_factory
from fixture_lair.models import (
    AttrKind,
    CameFrom,
    CrudOptions,
    EdgeValue,
    FieldAttr,
    HasManyAttr,
    RelationshipAttr,
    TypeDescriptor,
    is_id,
    resolve_relation_ids,
)
from fixture_lair.relationships import RelationshipIndex

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Callable[[Record], bool]


class RecordStore:
    """Typed records plus their bidirectionally consistent relationships.

    A store is an explicit object: tests create a fresh instance instead of
    resetting shared state.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        """Initialize empty store.

        Args:
            config: Store configuration. If None, loads .fixture_lair.yml
                from the working directory (or uses defaults).
        """
        self.config = config if config is not None else Config()
        self.index = RelationshipIndex()

        # type -> factory providing metadata, field values and hooks
        self._factories: Dict[str, Factory] = {}

        # type -> record id -> plain fields (including "id")
        self._db: Dict[str, Dict[str, Record]] = {}

        # type -> next store-assigned id
        self._next_ids: Dict[str, int] = {}

        # (type, id) of generated records waiting for their after_create hook
        self._after_create: Deque[Tuple[str, str]] = deque()

    # =========================================================================
    # Types
    # =========================================================================

    def register_type(self, source: Union[TypeDescriptor, Factory, type]) -> Factory:
        """Register a record type.

        Args:
            source: TypeDescriptor, Factory instance or Factory subclass.

        Returns:
            The factory now serving the type.

        Raises:
            DuplicateType: If a type with the same name is registered.
            ReservedAttributeName: If the type declares an ``id`` attribute.
        """
        factory = as_factory(source)
        type_name = factory.get_factory_name()
        if type_name in self._factories:
            raise DuplicateType(type_name)
        if "id" in factory.meta:
            raise ReservedAttributeName(type_name)

        self._factories[type_name] = factory
        self._db[type_name] = {}
        self._next_ids[type_name] = self.config.initial_id
        self.index.register_type(type_name, factory.meta)
        logger.info(f"Registered type '{type_name}' with attributes {list(factory.meta)}")
        return factory

    def has_type(self, type_name: str) -> bool:
        return type_name in self._db

    @assert_has_type
    def count(self, type_name: str) -> int:
        return len(self._db[type_name])

    # =========================================================================
    # Bulk generation
    # =========================================================================

    @verbose
    def create_many(
        self,
        type_name: str,
        count: int,
        extra_fields: Optional[Record] = None,
        lineage: Optional[List[str]] = None,
    ) -> List[str]:
        """Generate ``count`` records of a type and run their after_create hooks.

        Related records declared with ``create_related`` are generated
        recursively before the hooks run.

        Returns:
            Ids of the generated records.

        Raises:
            UnknownType: If the type (or a related type) is not registered.
            CreateRelatedLoop: If related generation cycles back to a type
                already being generated.
        """
        try:
            record_ids = self._create_many(
                type_name, count, extra_fields or {}, list(lineage or [])
            )
            self.drain_after_create()
        except Exception:
            # Hooks of a failed call must not run on a later one
            self._after_create.clear()
            raise
        self._after_mutation()
        return record_ids

    def _create_many(
        self, type_name: str, count: int, extra_fields: Record, lineage: List[str]
    ) -> List[str]:
        factory = self._factories.get(type_name)
        if factory is None:
            raise UnknownType(type_name)
        if type_name in lineage:
            raise CreateRelatedLoop(type_name, lineage)

        meta = factory.meta
        extra_relations: Dict[str, EdgeValue] = {}
        extra_plain: Record = {}
        for key, value in extra_fields.items():
            attr = meta.get(key)
            if isinstance(attr, RelationshipAttr):
                extra_relations[key] = self._resolve_relation(type_name, key, attr, value)
            elif key != "id":
                extra_plain[key] = value

        logger.info(f"Creating {count} record(s) of '{type_name}' (lineage: {lineage})")
        record_ids: List[str] = []
        for _ in range(count):
            record_id = self._allocate_id(type_name)
            record = factory.create_record(record_id)
            record.update(copy.deepcopy(extra_plain))
            self.index.register_record(type_name, record_id)
            self._db[type_name][record_id] = record

            for attr_name, value in extra_relations.items():
                self.index.apply(type_name, record_id, attr_name, value)

            for attr_name, attr in factory.related().items():
                related_ids = self._create_many(
                    attr.factory_name,
                    attr.related_count(record_id),
                    self._inverse_seed(type_name, attr_name, record_id),
                    lineage + [type_name],
                )
                if isinstance(attr, HasManyAttr):
                    self.index.apply(type_name, record_id, attr_name, related_ids)
                else:
                    self.index.apply(
                        type_name, record_id, attr_name, related_ids[0] if related_ids else None
                    )

            self._after_create.append((type_name, record_id))
            record_ids.append(record_id)
        return record_ids

    def _inverse_seed(self, type_name: str, attr_name: str, record_id: str) -> Record:
        """Extra fields linking an auto-created related record back to its parent."""
        inverse = self.index.inverse_of(type_name, attr_name)
        if inverse is None or inverse.name is None:
            return {}
        if isinstance(inverse, HasManyAttr):
            return {inverse.name: [record_id]}
        return {inverse.name: record_id}

    def drain_after_create(self) -> None:
        """Run pending after_create hooks in FIFO order.

        Only FIELD-kind values of a hook's result are written back; relation
        values and ``id`` are discarded. Hooks may generate further records,
        which are processed before this call returns.
        """
        while self._after_create:
            type_name, record_id = self._after_create.popleft()
            if record_id not in self._db[type_name]:
                continue
            factory = self._factories[type_name]
            options = CrudOptions(
                depth=factory.after_create_relationships_depth,
                ignore_related=factory.after_create_ignore_related,
            )
            result = factory.after_create(self.materialize(type_name, record_id, options))
            if result is None:
                continue
            stored = self._db[type_name][record_id]
            for attr_name, attr in factory.meta.items():
                if isinstance(attr, FieldAttr) and attr_name in result:
                    stored[attr_name] = copy.deepcopy(result[attr_name])

    def _allocate_id(self, type_name: str) -> str:
        next_id = self._next_ids[type_name]
        while str(next_id) in self._db[type_name]:
            next_id += 1
        self._next_ids[type_name] = next_id + 1
        return str(next_id)

    # =========================================================================
    # CRUD
    # =========================================================================

    @verbose
    @assert_has_type
    @assert_crud_options
    def create_one(
        self,
        type_name: str,
        data: Optional[Record] = None,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
        handle_not_attrs: bool = False,
    ) -> Record:
        """Create a single record from caller data.

        Omitted fields take their declared ``default_value``. ``data["id"]``
        is used only by types with ``allow_custom_ids``.

        Raises:
            InvalidIdentifier: If a relation value is not id-like.
            DanglingReference: If a relation value references a missing record.
            InvalidFieldValue: If a field value is not allowed.
            DuplicateRecord: If a caller-supplied id is already taken.
        """
        options = CrudOptions(
            depth=depth, ignore_related=ignore_related, handle_not_attrs=handle_not_attrs
        )
        factory = self._factories[type_name]
        data = data or {}
        record_id = self._insert(type_name, data, options, factory.get_defaults())
        return self.materialize(type_name, record_id, options)

    @verbose
    @assert_has_type
    @assert_crud_options
    def update_one(
        self,
        type_name: str,
        record_id: str,
        data: Optional[Record] = None,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
        handle_not_attrs: bool = False,
    ) -> Record:
        """Update a single record. ``data["id"]`` is always ignored.

        Raises:
            RecordNotFound: If the record doesn't exist.
        """
        options = CrudOptions(
            depth=depth, ignore_related=ignore_related, handle_not_attrs=handle_not_attrs
        )
        if record_id not in self._db[type_name]:
            raise RecordNotFound(type_name, record_id)
        fields, relations = self._prepare(type_name, data or {}, options)

        self._db[type_name][record_id].update(fields)
        for attr_name, value in relations.items():
            self.index.apply(type_name, record_id, attr_name, value)
        logger.debug(f"Updated {type_name}[{record_id}]: {sorted(fields) + sorted(relations)}")
        self._after_mutation()
        return self.materialize(type_name, record_id, options)

    @verbose
    @assert_has_type
    def delete_one(self, type_name: str, record_id: str) -> None:
        """Delete a record and every reference to it. Missing ids are ignored."""
        table = self._db[type_name]
        if record_id not in table:
            return
        del table[record_id]
        self.index.delete_record(type_name, record_id)
        logger.debug(f"Deleted {type_name}[{record_id}]")
        self._after_mutation()

    @verbose
    @assert_has_type
    def load_records(self, type_name: str, records: List[Record]) -> List[str]:
        """Load externally sourced records keeping their ids.

        Undeclared keys are dropped. Relation values are validated like
        ``create_one``, so related records must be loaded first. Every record
        is validated before any of them is stored.

        Raises:
            CustomIdsNotAllowed: If the type doesn't set ``allow_custom_ids``.
            InvalidIdentifier: If a record has no ``id``.
            DuplicateRecord: If an id is taken or repeated within ``records``.
        """
        if not self._factories[type_name].allow_custom_ids:
            raise CustomIdsNotAllowed(type_name)
        options = CrudOptions()
        table = self._db[type_name]
        seen: Set[str] = set()
        prepared: List[Tuple[str, Record, Dict[str, EdgeValue]]] = []
        for data in records:
            if data.get("id") is None:
                raise InvalidIdentifier(f'Record of "{type_name}" must have an "id" to be loaded')
            record_id = str(data["id"])
            if record_id in seen or record_id in table:
                raise DuplicateRecord(type_name, record_id)
            seen.add(record_id)
            fields, relations = self._prepare(type_name, data, options)
            prepared.append((record_id, fields, relations))

        for record_id, fields, relations in prepared:
            self._store_record(type_name, record_id, {}, fields, relations)
        logger.info(f"Loaded {len(prepared)} record(s) of '{type_name}'")
        return [record_id for record_id, _, _ in prepared]

    def _insert(
        self, type_name: str, data: Record, options: CrudOptions, defaults: Record
    ) -> str:
        """Validate ``data`` and then store it as a new record."""
        factory = self._factories[type_name]
        custom_id = data.get("id") if factory.allow_custom_ids else None
        if custom_id is not None:
            custom_id = str(custom_id)
            if custom_id in self._db[type_name]:
                raise DuplicateRecord(type_name, custom_id)
        fields, relations = self._prepare(type_name, data, options)

        record_id = custom_id if custom_id is not None else self._allocate_id(type_name)
        self._store_record(type_name, record_id, defaults, fields, relations)
        return record_id

    def _store_record(
        self,
        type_name: str,
        record_id: str,
        defaults: Record,
        fields: Record,
        relations: Dict[str, EdgeValue],
    ) -> None:
        record: Record = {"id": record_id}
        record.update(defaults)
        record.update(fields)
        self.index.register_record(type_name, record_id)
        self._db[type_name][record_id] = record
        for attr_name, value in relations.items():
            self.index.apply(type_name, record_id, attr_name, value)
        logger.debug(f"Created {type_name}[{record_id}]")
        self._after_mutation()

    def _prepare(
        self, type_name: str, data: Record, options: CrudOptions
    ) -> Tuple[Record, Dict[str, EdgeValue]]:
        """Split and validate caller data. Nothing is mutated here.

        Returns:
            Tuple of (plain field values, resolved relation values).
        """
        meta = self._factories[type_name].meta
        fields: Record = {}
        relations: Dict[str, EdgeValue] = {}
        for key, value in data.items():
            if key == "id":
                continue
            attr = meta.get(key)
            if attr is None:
                if options.handle_not_attrs:
                    fields[key] = copy.deepcopy(value)
                continue
            if isinstance(attr, RelationshipAttr):
                relations[key] = self._resolve_relation(type_name, key, attr, value)
            else:
                attr.validate(value)
                fields[key] = copy.deepcopy(value)
        return fields, relations

    def _resolve_relation(
        self, type_name: str, attr_name: str, attr: RelationshipAttr, value: Any
    ) -> EdgeValue:
        """Resolve a relation input to plain ids of existing records.

        Raises:
            UnknownType: If the target type is not registered.
            InvalidIdentifier: If a value is not id-like.
            DanglingReference: If a target record doesn't exist.
        """
        target_type = attr.factory_name
        if target_type not in self._db:
            raise UnknownType(target_type)
        resolved = resolve_relation_ids(attr, value)
        flavour = self._flavour(type_name, attr_name)
        if isinstance(resolved, list):
            target_ids = resolved
        else:
            target_ids = [resolved] if resolved is not None else []
        for target_id in target_ids:
            if not self._is_id_for(target_type, target_id):
                raise InvalidIdentifier(
                    f'"{target_id}" is invalid identifier for record of "{target_type}" '
                    f"[{flavour} relationship]"
                )
            if target_id not in self._db[target_type]:
                raise DanglingReference(target_type, target_id, flavour)
        return resolved

    def _is_id_for(self, target_type: str, value: Any) -> bool:
        if is_id(value):
            return True
        return (
            self._factories[target_type].allow_custom_ids
            and isinstance(value, str)
            and value != ""
        )

    def _flavour(self, type_name: str, attr_name: str) -> str:
        attr = self.index.inverse_of(type_name, attr_name)
        if attr is None:
            return "one-way"
        own = self._factories[type_name].meta[attr_name]
        source = "many" if isinstance(own, HasManyAttr) else "one"
        target = "many" if isinstance(attr, HasManyAttr) else "one"
        return f"{source}-to-{target}"

    # =========================================================================
    # Reads
    # =========================================================================

    @verbose
    @assert_has_type
    @assert_crud_options
    def get_one(
        self,
        type_name: str,
        record_id: str,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
    ) -> Optional[Record]:
        """Materialized copy of a record, None if it doesn't exist."""
        options = CrudOptions(depth=depth, ignore_related=ignore_related)
        if record_id not in self._db[type_name]:
            return None
        return self.materialize(type_name, record_id, options)

    @verbose
    @assert_has_type
    @assert_crud_options
    def query_one(
        self,
        type_name: str,
        predicate: Predicate,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
    ) -> Optional[Record]:
        """First record matching ``predicate``, None if nothing matches."""
        options = CrudOptions(depth=depth, ignore_related=ignore_related)
        for record_id in list(self._db[type_name]):
            if predicate(self._raw_view(type_name, record_id)):
                return self.materialize(type_name, record_id, options)
        return None

    @verbose
    @assert_has_type
    @assert_crud_options
    def get_all(
        self,
        type_name: str,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
    ) -> List[Record]:
        options = CrudOptions(depth=depth, ignore_related=ignore_related)
        return [
            self.materialize(type_name, record_id, options)
            for record_id in list(self._db[type_name])
        ]

    @verbose
    @assert_has_type
    @assert_crud_options
    def query_many(
        self,
        type_name: str,
        predicate: Predicate,
        *,
        depth: Optional[int] = None,
        ignore_related: Union[bool, List[str]] = False,
    ) -> List[Record]:
        """All records matching ``predicate``.

        The predicate receives an independent copy of each record with raw
        relation ids.
        """
        options = CrudOptions(depth=depth, ignore_related=ignore_related)
        matched = [
            record_id
            for record_id in list(self._db[type_name])
            if predicate(self._raw_view(type_name, record_id))
        ]
        return [self.materialize(type_name, record_id, options) for record_id in matched]

    def _raw_view(self, type_name: str, record_id: str) -> Record:
        view = copy.deepcopy(self._db[type_name][record_id])
        view.update(self.index.get_edges(type_name, record_id))
        return view

    # =========================================================================
    # Materialization
    # =========================================================================

    def materialize(
        self, type_name: str, record_id: str, options: Optional[CrudOptions] = None
    ) -> Record:
        """Expand a record's relations into nested record copies.

        Depth starts at 1 for the requested record. Once the depth limit is
        reached relation values stay raw ids.
        """
        if options is None:
            options = CrudOptions()
        limit = options.depth if options.depth is not None else self.config.default_depth
        return self._materialize(type_name, record_id, options, None, 1, limit)

    def _materialize(
        self,
        type_name: str,
        record_id: str,
        options: CrudOptions,
        came_from: Optional[CameFrom],
        depth: int,
        limit: Optional[int],
    ) -> Record:
        record = copy.deepcopy(self._db[type_name][record_id])
        edges = self.index.get_edges(type_name, record_id)
        if limit is not None and depth >= limit:
            record.update(edges)
            return record

        meta = self._factories[type_name].meta
        for attr_name, value in edges.items():
            attr = meta[attr_name]
            assert isinstance(attr, RelationshipAttr)
            if options.ignores(attr.factory_name):
                continue
            # Walking straight back along the edge we came from
            if (
                came_from is not None
                and came_from.type_name == attr.factory_name
                and came_from.attr_name == attr.inverted_attr_name
            ):
                record[attr_name] = value
                continue

            child_limit = limit
            if limit is None and attr.is_reflexive(type_name):
                child_limit = depth + (attr.reflexive_depth or self.config.reflexive_depth)

            step = CameFrom(type_name, record_id, attr_name)
            if isinstance(value, list):
                record[attr_name] = [
                    self._materialize(
                        attr.factory_name, target_id, options, step, depth + 1, child_limit
                    )
                    for target_id in value
                ]
            elif value is None:
                record[attr_name] = None
            else:
                record[attr_name] = self._materialize(
                    attr.factory_name, value, options, step, depth + 1, child_limit
                )
        return record

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_dev_info(self) -> Dict[str, Dict[str, Any]]:
        """Per-type record count, next id and attribute metadata."""
        info: Dict[str, Dict[str, Any]] = {}
        for type_name, factory in self._factories.items():
            meta: Dict[str, Any] = {"id": {"type": AttrKind.FIELD}}
            meta.update({attr_name: attr.to_dict() for attr_name, attr in factory.meta.items()})
            info[type_name] = {
                "count": len(self._db[type_name]),
                "id": self._next_ids[type_name],
                "meta": meta,
            }
        return info

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate record tables against the relationship index.

        Returns:
            Tuple of (is_valid, error_messages).
        """
        errors: List[str] = []
        for type_name, table in self._db.items():
            edge_ids = set(self.index.record_ids(type_name))
            for record_id in table:
                if record_id not in edge_ids:
                    errors.append(f"Record without edge row: {type_name}[{record_id}]")
            for record_id in edge_ids - set(table):
                errors.append(f"Edge row without record: {type_name}[{record_id}]")
        _, index_errors = self.index.validate_index()
        errors.extend(index_errors)
        return len(errors) == 0, errors

    def detect_corruption(self) -> bool:
        """Run validation and log any errors found.

        Returns:
            True if corruption detected, False if the store is valid.
        """
        is_valid, errors = self.validate()
        if not is_valid:
            logger.error(
                f"Record store corruption detected! Found {len(errors)} consistency errors. "
                f"Errors: {errors}"
            )
            return True
        return False

    def _after_mutation(self) -> None:
        if self.config.check_consistency:
            self.detect_corruption()
