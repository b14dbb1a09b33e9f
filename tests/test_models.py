# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for attribute metadata, factories and option models."""

from types import SimpleNamespace

import pytest

from fixture_lair.errors import InvalidIdentifier, MissingFactoryName
from fixture_lair.factory import DescriptorFactory, Factory, as_factory, field, has_many, has_one
from fixture_lair.models import (
    AttrKind,
    CrudOptions,
    FieldAttr,
    HasManyAttr,
    HasOneAttr,
    TypeDescriptor,
    get_id,
    is_id,
    resolve_relation_ids,
)


class HostFactory(Factory):
    factory_name = "host"
    name = field("host", default_value="unnamed")
    state = field("up", allowed_values=["up", "down"])
    cluster = has_one("cluster", "hosts")
    disks = has_many("disk", reflexive=False, create_related=2)


class TestIdHelpers:
    """Tests for id-likeness and relation input resolution."""

    @pytest.mark.parametrize("value", ["1", "42", " 7", "-3", "+5", "12abc"])
    def test_id_like(self, value):
        """Test strings starting with an integer are id-like."""
        assert is_id(value)

    @pytest.mark.parametrize("value", ["", "abc", "a1", None, 1, ["1"], {"id": "1"}])
    def test_not_id_like(self, value):
        """Test other values are not id-like."""
        assert not is_id(value)

    def test_get_id(self):
        """Test ids are taken from mappings and objects."""
        assert get_id("3") == "3"
        assert get_id({"id": "3"}) == "3"
        assert get_id(SimpleNamespace(id="3")) == "3"
        assert get_id(None) is None

    def test_get_id_mapping_without_id(self):
        """Test a mapping without id is returned unchanged."""
        value = {"name": "x"}
        assert get_id(value) is value

    def test_resolve_has_many(self):
        """Test list relations resolve every item."""
        attr = HasManyAttr("host", "cluster")
        assert resolve_relation_ids(attr, ["1", {"id": "2"}, None]) == ["1", "2"]
        assert resolve_relation_ids(attr, None) == []
        with pytest.raises(InvalidIdentifier):
            resolve_relation_ids(attr, "1")

    def test_resolve_has_one(self):
        """Test single relations resolve to one id."""
        attr = HasOneAttr("cluster", "hosts")
        assert resolve_relation_ids(attr, SimpleNamespace(id="5")) == "5"
        assert resolve_relation_ids(attr, None) is None


class TestFactory:
    """Tests for factory metadata."""

    def test_meta_in_declaration_order(self):
        """Test attributes are collected in declaration order."""
        assert list(HostFactory().meta) == ["name", "state", "cluster", "disks"]

    def test_kinds(self):
        """Test attribute kinds."""
        meta = HostFactory().meta
        assert meta["name"].kind == AttrKind.FIELD
        assert meta["cluster"].kind == AttrKind.HAS_ONE
        assert meta["disks"].kind == AttrKind.HAS_MANY

    def test_related(self):
        """Test only relations with create_related are auto-created."""
        assert list(HostFactory().related()) == ["disks"]

    def test_get_defaults(self):
        """Test only fields with default_value contribute defaults."""
        assert HostFactory().get_defaults() == {"name": "unnamed"}

    def test_create_record(self):
        """Test a generated record holds id and plain fields only."""
        assert HostFactory().create_record("4") == {"id": "4", "name": "host", "state": "up"}

    def test_missing_factory_name(self):
        """Test a factory must be named."""
        with pytest.raises(MissingFactoryName):
            Factory()

    def test_class_options_default(self):
        """Test default class options."""
        factory = HostFactory()
        assert factory.allow_custom_ids is False
        assert factory.after_create_relationships_depth is None
        assert factory.after_create_ignore_related == ()

    def test_descriptor(self):
        """Test a factory exposes its type descriptor."""
        descriptor = HostFactory().descriptor
        assert descriptor.name == "host"
        assert descriptor.to_dict()["attrs"]["cluster"] == {
            "type": "has_one",
            "factory_name": "cluster",
            "inverted_attr_name": "hosts",
            "reflexive": False,
        }
        assert [name for name, _ in descriptor.relations()] == ["cluster", "disks"]


class TestDescriptorFactory:
    """Tests for factories built from plain descriptors."""

    def test_builds_records(self):
        """Test descriptor fields generate values."""
        factory = as_factory(TypeDescriptor("tag", {"label": FieldAttr("x")}))
        assert isinstance(factory, DescriptorFactory)
        assert factory.get_factory_name() == "tag"
        assert factory.create_record("1") == {"id": "1", "label": "x"}

    def test_names_assigned(self):
        """Test attribute names are filled in from the mapping keys."""
        attr = HasOneAttr("cluster", "hosts")
        TypeDescriptor("host", {"cluster": attr})
        assert attr.name == "cluster"

    def test_instance_passthrough(self):
        """Test factory instances are used as given."""
        factory = HostFactory()
        assert as_factory(factory) is factory

    def test_rejects_other_values(self):
        """Test unsupported sources raise TypeError."""
        with pytest.raises(TypeError):
            as_factory("host")


class TestFieldAttr:
    """Tests for field validation and serialization."""

    def test_to_dict(self):
        """Test field options are serialized."""
        attr = FieldAttr(1, default_value=0, allowed_values=[0, 1], preferred_type=int)
        assert attr.to_dict() == {
            "type": "field",
            "default_value": 0,
            "allowed_values": [0, 1],
            "preferred_type": "int",
        }

    def test_allowed_values_accepts_member(self):
        """Test allowed values pass validation."""
        FieldAttr(allowed_values=["a"]).validate("a")


class TestCrudOptions:
    """Tests for read/write options."""

    @pytest.mark.parametrize("depth", [0, -1, 1.5, True, "2"])
    def test_invalid_depth(self, depth):
        """Test depth must be an integer >= 1."""
        with pytest.raises(ValueError):
            CrudOptions(depth=depth)

    def test_ignores(self):
        """Test ignore_related matching."""
        assert CrudOptions(ignore_related=True).ignores("a")
        assert not CrudOptions(ignore_related=False).ignores("a")
        assert CrudOptions(ignore_related=["a"]).ignores("a")
        assert not CrudOptions(ignore_related=["a"]).ignores("b")
        assert CrudOptions(ignore_related=["a"]).ignored_types() == ["a"]
        assert CrudOptions(ignore_related=("a",)).ignores("a")
        assert CrudOptions(ignore_related=()).ignored_types() == []
