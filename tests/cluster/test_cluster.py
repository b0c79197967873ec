"""Tests for the Cluster façade."""

import threading

import pytest
from kazoo.exceptions import NoAuthError

from clustermeta.cluster import CacheState, Cluster
from clustermeta.errors import (
    ConfigurationError,
    ConflictError,
    OperationError,
    TopicAlreadyExistsError,
    ValidationError,
)
from clustermeta.model import Broker, Consumergroup, Topic
from clustermeta.status import NodeStatus
from clustermeta.utils.config import Config


class TestBrokerDiscovery:
    """Test broker discovery and caching."""

    def test_brokers(self, cluster, populated_zk):
        """Test brokers are keyed by integer id."""
        brokers = cluster.brokers()

        assert list(brokers) == [1, 2, 3]
        assert all(isinstance(b, Broker) for b in brokers.values())
        assert brokers[2].addr == "localhost:9093"

    def test_brokers_cached(self, cluster, populated_zk):
        """Test a second call does not run discovery again."""
        first = cluster.brokers()
        second = cluster.brokers()

        assert first is second
        assert populated_zk.count("get_children", "/brokers/ids") == 1
        assert populated_zk.count("get", "/brokers/ids/1") == 1

    def test_reset_triggers_one_fresh_discovery(self, cluster, populated_zk):
        """Test reset_metadata causes exactly one new discovery cycle."""
        cluster.brokers()
        cluster.reset_metadata()

        cluster.brokers()
        cluster.brokers()

        assert populated_zk.count("get_children", "/brokers/ids") == 2
        assert populated_zk.count("get", "/brokers/ids/3") == 2

    def test_concurrent_callers_discover_once(self, cluster, populated_zk):
        """Test racing callers share one discovery."""
        barrier = threading.Barrier(6)
        results = []

        def reader():
            barrier.wait()
            results.append(cluster.brokers())

        threads = [threading.Thread(target=reader) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert populated_zk.count("get_children", "/brokers/ids") == 1
        assert all(r is results[0] for r in results)

    def test_no_cluster_registered(self, cluster, fake_zk):
        """Test a missing /brokers/ids raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            cluster.brokers()

    def test_listing_failure(self, cluster, populated_zk):
        """Test other listing failures raise OperationError."""
        populated_zk.fail("get_children", "/brokers/ids", NoAuthError())

        with pytest.raises(OperationError) as exc_info:
            cluster.brokers()

        assert exc_info.value.code == NodeStatus.NO_AUTH

    def test_one_failing_broker_fails_the_batch(self, cluster, fake_zk):
        """Test one broken broker out of 50 leaves nothing cached."""
        for broker_id in range(1, 51):
            fake_zk.add_broker(broker_id, port=9000 + broker_id)
        fake_zk.fail("get", "/brokers/ids/23", NoAuthError())

        with pytest.raises(OperationError) as exc_info:
            cluster.brokers()

        assert exc_info.value.path == "/brokers/ids/23"
        assert cluster.cache_states()["brokers"] is CacheState.UNLOADED

    def test_malformed_broker_payload(self, cluster, fake_zk):
        """Test an unreadable broker descriptor is a marshalling error."""
        fake_zk.seed("/brokers/ids/1", b"not json")

        with pytest.raises(OperationError) as exc_info:
            cluster.brokers()

        assert exc_info.value.code == NodeStatus.MARSHALLING_ERROR

    def test_non_numeric_broker_port(self, cluster, fake_zk):
        """Test a well-formed descriptor with a bad port is a marshalling error."""
        fake_zk.seed("/brokers/ids/1", {"host": "h", "port": "x"})

        with pytest.raises(OperationError) as exc_info:
            cluster.brokers()

        assert exc_info.value.path == "/brokers/ids/1"
        assert exc_info.value.code == NodeStatus.MARSHALLING_ERROR
        assert cluster.cache_states()["brokers"] is CacheState.UNLOADED


class TestTopicDiscovery:
    """Test topic discovery and partition aggregation."""

    def test_topics_preload_partitions(self, cluster, populated_zk):
        """Test the default preload reads every assignment during discovery."""
        topics = cluster.topics()

        assert list(topics) == ["orders", "payments"]
        assert populated_zk.count("get", "/brokers/topics/orders") == 1
        assert populated_zk.count("get", "/config/topics/orders") == 0

        topics["orders"].partitions()
        assert populated_zk.count("get", "/brokers/topics/orders") == 1

    def test_topics_without_preload(self, cluster, populated_zk):
        """Test an empty preload defers every read."""
        cluster.topics(preload=())

        assert populated_zk.count("get", "/brokers/topics/orders") == 0

    def test_topics_preload_states(self, cluster, populated_zk):
        """Test partition states can be preloaded."""
        cluster.topics(preload=("partitions", "partition_states"))

        assert populated_zk.count("get", "/brokers/topics/payments/partitions/1/state") == 1

    def test_topic_listing_failure(self, cluster, populated_zk):
        """Test a failed listing of /brokers/topics surfaces its status."""
        populated_zk.fail("get_children", "/brokers/topics", NoAuthError())

        with pytest.raises(OperationError) as exc_info:
            cluster.topics()

        assert exc_info.value.path == "/brokers/topics"
        assert exc_info.value.code == NodeStatus.NO_AUTH
        assert cluster.cache_states()["topics"] is CacheState.UNLOADED

    def test_bad_partition_state(self, cluster, populated_zk):
        """Test a state with a non-numeric leader is a marshalling error."""
        path = "/brokers/topics/orders/partitions/1/state"
        populated_zk.seed(path, {"version": 1, "leader": "x", "isr": [2, 3]})

        with pytest.raises(OperationError) as exc_info:
            cluster.topics(preload=("partitions", "partition_states"))

        assert exc_info.value.path == path
        assert exc_info.value.code == NodeStatus.MARSHALLING_ERROR

    def test_unknown_preload(self, cluster, populated_zk):
        """Test an unknown preload name is rejected before any remote call."""
        with pytest.raises(ValidationError):
            cluster.topics(preload=("partitions", "offsets"))

        assert populated_zk.calls == []

    def test_partitions_order(self, cluster, populated_zk):
        """Test partitions are ordered by topic then index."""
        partitions = [(p.topic.name, p.index) for p in cluster.partitions()]

        assert partitions == [
            ("orders", 0), ("orders", 1), ("orders", 2),
            ("payments", 0), ("payments", 1),
        ]

    def test_under_replicated(self, cluster, populated_zk):
        """Test one lagging partition makes the cluster under-replicated."""
        assert cluster.under_replicated()

    def test_fully_replicated(self, cluster, fake_zk):
        """Test a healthy cluster is not under-replicated."""
        fake_zk.add_broker(1)
        fake_zk.add_topic("orders", {0: [1]})

        assert not cluster.under_replicated()

    def test_empty_cluster_not_under_replicated(self, cluster, fake_zk):
        """Test no partitions means not under-replicated."""
        fake_zk.seed("/brokers/topics")

        assert cluster.partitions() == []
        assert not cluster.under_replicated()

    def test_topic_handle_is_free(self, cluster, fake_zk):
        """Test topic() and consumergroup() make no remote calls."""
        topic = cluster.topic("anything")
        group = cluster.consumergroup("anyone")

        assert isinstance(topic, Topic)
        assert isinstance(group, Consumergroup)
        assert fake_zk.calls == []
        assert fake_zk.factory_calls == 0


class TestConsumergroupDiscovery:
    """Test consumer group discovery."""

    def test_consumergroups(self, cluster, populated_zk):
        """Test groups are listed by name."""
        groups = cluster.consumergroups()

        assert list(groups) == ["billing"]
        assert groups["billing"].instances() == ["billing-1"]

    def test_no_consumers_node(self, cluster, fake_zk):
        """Test a cluster without /consumers has no groups."""
        assert cluster.consumergroups() == {}

    def test_consumergroups_cached(self, cluster, populated_zk):
        """Test the group listing is cached."""
        cluster.consumergroups()
        cluster.consumergroups()

        assert populated_zk.count("get_children", "/consumers") == 1


class TestCreateTopic:
    """Test topic creation."""

    @pytest.mark.parametrize("partitions,replication_factor", [
        (0, 1),
        (1, 0),
        (-3, 1),
        (True, 1),
        ("many", 1),
        (None, 1),
    ])
    def test_validation_before_remote_calls(self, cluster, fake_zk, partitions, replication_factor):
        """Test invalid counts fail without touching ZooKeeper."""
        with pytest.raises(ValidationError):
            cluster.create_topic("x", partitions=partitions, replication_factor=replication_factor, config={})

        assert fake_zk.calls == []
        assert fake_zk.factory_calls == 0

    def test_create_topic(self, cluster, populated_zk):
        """Test assignment and config nodes are written."""
        topic = cluster.create_topic(
            "events",
            partitions=3,
            replication_factor=2,
            config={"retention.ms": 86400000},
        )

        assert topic.name == "events"
        assert populated_zk.json("/brokers/topics/events") == {
            "version": 1,
            "partitions": {"0": [1, 2], "1": [2, 3], "2": [3, 1]},
        }
        assert populated_zk.json("/config/topics/events") == {
            "version": 1,
            "config": {"retention.ms": "86400000"},
        }

    def test_create_topic_resets_metadata(self, cluster, populated_zk):
        """Test the new topic shows up in the next discovery."""
        assert "events" not in cluster.topics()

        cluster.create_topic("events", partitions=1, replication_factor=1)

        assert "events" in cluster.topics(preload=())

    def test_create_existing_topic(self, cluster, populated_zk):
        """Test an existing topic is not overwritten."""
        original = populated_zk.nodes["/brokers/topics/orders"]

        with pytest.raises(TopicAlreadyExistsError):
            cluster.create_topic("orders", partitions=1, replication_factor=1)

        assert populated_zk.nodes["/brokers/topics/orders"] == original

    def test_create_topic_replaces_leftover_config(self, cluster, populated_zk):
        """Test a config node without a topic is overwritten with the new config."""
        populated_zk.seed("/config/topics/events", {"version": 1, "config": {"cleanup.policy": "compact"}})

        cluster.create_topic("events", partitions=1, replication_factor=1, config={"retention.ms": 1000})

        assert populated_zk.json("/config/topics/events") == {
            "version": 1,
            "config": {"retention.ms": "1000"},
        }
        assert populated_zk.count("set", "/config/topics/events") == 1
        assert "/brokers/topics/events" in populated_zk.nodes

    def test_create_topic_config_write_failure(self, cluster, populated_zk):
        """Test a failed config write stops before the assignment is written."""
        populated_zk.fail("create", "/config/topics/events", NoAuthError())

        with pytest.raises(OperationError) as exc_info:
            cluster.create_topic("events", partitions=1, replication_factor=1)

        assert exc_info.value.path == "/config/topics/events"
        assert "/brokers/topics/events" not in populated_zk.nodes

    def test_replication_factor_exceeds_brokers(self, cluster, populated_zk):
        """Test more replicas than brokers is rejected."""
        with pytest.raises(ValidationError):
            cluster.create_topic("events", partitions=1, replication_factor=4)

        assert "/brokers/topics/events" not in populated_zk.nodes

    def test_invalid_topic_name(self, cluster, populated_zk):
        """Test illegal topic names are rejected."""
        with pytest.raises(ValidationError):
            cluster.create_topic("bad name!", partitions=1, replication_factor=1)


class TestPreferredLeaderElection:
    """Test preferred leader elections through the cluster."""

    def test_election_for_all_partitions(self, cluster, populated_zk):
        """Test the default election covers every partition."""
        assert cluster.preferred_leader_election()

        request = populated_zk.json("/admin/preferred_replica_election")
        assert request["version"] == 1
        assert len(request["partitions"]) == 5
        assert cluster.election_in_progress()

    def test_election_for_selected_partitions(self, cluster, populated_zk):
        """Test an explicit partition list is sent as given."""
        partition = cluster.topic("payments").partition(1)

        cluster.preferred_leader_election(partitions=[partition])

        request = populated_zk.json("/admin/preferred_replica_election")
        assert request["partitions"] == [{"topic": "payments", "partition": 1}]

    def test_election_in_progress(self, cluster, populated_zk):
        """Test a second election while one is pending conflicts."""
        cluster.preferred_leader_election()
        original = populated_zk.nodes["/admin/preferred_replica_election"]

        with pytest.raises(ConflictError):
            cluster.preferred_leader_election(partitions=[])

        assert populated_zk.nodes["/admin/preferred_replica_election"] == original


class TestLifecycle:
    """Test reset, close and construction."""

    def test_close(self, cluster, populated_zk):
        """Test close stops the session and clears the caches."""
        cluster.brokers()
        cluster.close()

        assert not cluster.session.connected
        assert populated_zk.stops == 1
        assert set(cluster.cache_states().values()) == {CacheState.UNLOADED}

        cluster.brokers()
        assert populated_zk.starts == 2

    def test_context_manager(self, populated_zk):
        """Test leaving the with block closes the cluster."""
        with Cluster("fake-zk:2181", client_factory=populated_zk.factory) as cluster:
            cluster.brokers()

        assert not cluster.session.connected

    def test_from_config(self, fake_zk):
        """Test settings are taken from the configuration."""
        config = Config()
        config.set("coordination.hosts", "zk1:2181,zk2:2181/kafka")
        config.set("coordination.request_timeout", 2.5)
        config.set("fetch.max_workers", 4)

        cluster = Cluster.from_config(config, client_factory=fake_zk.factory)

        assert cluster.zookeeper == "zk1:2181,zk2:2181/kafka"
        assert cluster.session.request_timeout == 2.5
        assert cluster.fetcher.max_workers == 4

    def test_recursive_helpers(self, cluster, fake_zk):
        """Test the tree helpers are reachable through the cluster."""
        cluster.recursive_create("/a/b/c")
        assert "/a/b/c" in fake_zk.nodes

        cluster.recursive_delete("/a")
        assert "/a" not in fake_zk.nodes
