# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for loading externally sourced records with their own ids."""

import pytest

from fixture_lair.errors import (
    CustomIdsNotAllowed,
    DanglingReference,
    DuplicateRecord,
    InvalidIdentifier,
)
from fixture_lair.factory import Factory, field, has_many, has_one


class ClusterFactory(Factory):
    factory_name = "cluster"
    name = field("")
    hosts = has_many("host", "cluster")


class HostFactory(Factory):
    factory_name = "host"
    name = field("")
    cluster = has_one("cluster", "hosts")


@pytest.fixture
def clusters():
    return [
        {
            "id": "c1",
            "name": "cluster1",
            "hosts": [{"id": "h1", "name": "host1"}, {"id": "h2", "name": "host2"}],
        },
        {
            "id": "c2",
            "name": "cluster2",
            "hosts": [{"id": "h3", "name": "host3"}, {"id": "h4", "name": "host4"}],
        },
    ]


@pytest.fixture
def custom_store(store):
    cluster_factory = ClusterFactory()
    cluster_factory.allow_custom_ids = True
    host_factory = HostFactory()
    host_factory.allow_custom_ids = True
    store.register_type(cluster_factory)
    store.register_type(host_factory)
    return store


def test_custom_ids_required(store):
    """Test loading into a store-assigned type fails."""
    store.register_type(ClusterFactory)
    store.register_type(HostFactory)

    with pytest.raises(CustomIdsNotAllowed) as exc_info:
        store.load_records("cluster", [])
    assert str(exc_info.value) == '"cluster" must have "allow_custom_ids" set to "True"'


class TestLoadRecords:
    """Tests for load_records on types with custom ids."""

    @pytest.fixture
    def loaded(self, custom_store, clusters):
        custom_store.load_records("host", clusters[0]["hosts"])
        custom_store.load_records("host", clusters[1]["hosts"])
        custom_store.load_records(
            "cluster",
            [
                {
                    "id": cluster["id"],
                    "name": cluster["name"],
                    "hosts": [host["id"] for host in cluster["hosts"]],
                }
                for cluster in clusters
            ],
        )
        return custom_store

    def test_clusters_loaded(self, loaded, clusters):
        """Test clusters come back with their hosts nested."""
        for cluster in clusters:
            for host in cluster["hosts"]:
                host["cluster"] = cluster["id"]

        assert loaded.get_all("cluster") == clusters

    def test_hosts_loaded(self, loaded, clusters):
        """Test hosts point back at their clusters."""

        def expected_host(cluster_index, host_index):
            cluster = clusters[cluster_index]
            return {
                **cluster["hosts"][host_index],
                "cluster": {
                    "id": cluster["id"],
                    "name": cluster["name"],
                    "hosts": [host["id"] for host in cluster["hosts"]],
                },
            }

        assert loaded.get_all("host") == [
            expected_host(0, 0),
            expected_host(0, 1),
            expected_host(1, 0),
            expected_host(1, 1),
        ]

    def test_returns_ids(self, custom_store, clusters):
        """Test the loaded ids are returned in order."""
        assert custom_store.load_records("host", clusters[0]["hosts"]) == ["h1", "h2"]

    def test_not_attrs_dropped(self, custom_store, clusters):
        """Test undeclared keys are not stored."""
        host = dict(clusters[0]["hosts"][0], extra_field="azaza")
        custom_store.load_records("host", [host])

        assert "extra_field" not in custom_store.get_one("host", "h1")

    def test_missing_related_one_to_many(self, custom_store, clusters):
        """Test a host can't reference a cluster that isn't loaded."""
        with pytest.raises(DanglingReference) as exc_info:
            custom_store.load_records("host", [dict(clusters[0]["hosts"][0], cluster="c1")])
        assert str(exc_info.value) == (
            'Record of "cluster" with id "c1" doesn\'t exist. '
            "Create it first [one-to-many relationship]"
        )

    def test_missing_related_many_to_one(self, custom_store, clusters):
        """Test a cluster can't reference hosts that aren't loaded."""
        with pytest.raises(DanglingReference) as exc_info:
            custom_store.load_records("cluster", [dict(clusters[0], hosts=["h1"])])
        assert str(exc_info.value) == (
            'Record of "host" with id "h1" doesn\'t exist. '
            "Create it first [many-to-one relationship]"
        )

    def test_invalid_record_loads_nothing(self, custom_store):
        """Test a bad record anywhere in the batch leaves the store unchanged."""
        hosts = [{"id": "h1", "name": "host1"}, {"id": "h2", "cluster": "missing"}]

        with pytest.raises(DanglingReference):
            custom_store.load_records("host", hosts)

        assert custom_store.count("host") == 0
        assert custom_store.validate() == (True, [])

    def test_missing_id(self, custom_store):
        """Test every loaded record must carry its id."""
        with pytest.raises(InvalidIdentifier):
            custom_store.load_records("host", [{"id": "h1"}, {"name": "anonymous"}])
        assert custom_store.count("host") == 0

    def test_id_repeated_in_batch(self, custom_store):
        """Test an id appearing twice in one batch is rejected."""
        with pytest.raises(DuplicateRecord):
            custom_store.load_records("host", [{"id": "h1"}, {"id": "h1"}])
        assert custom_store.count("host") == 0

    def test_id_already_loaded(self, custom_store):
        """Test an id taken by an earlier load is rejected without partial loading."""
        custom_store.load_records("host", [{"id": "h1"}])

        with pytest.raises(DuplicateRecord):
            custom_store.load_records("host", [{"id": "h2"}, {"id": "h1"}])
        assert [host["id"] for host in custom_store.get_all("host")] == ["h1"]
