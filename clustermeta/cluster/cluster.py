"""
Cluster façade.

Entry point for inspecting and administering a Kafka cluster
through the metadata it keeps in ZooKeeper: brokers, topics, partitions and
consumer groups, plus topic creation and preferred leader elections.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from kazoo.client import KazooClient

from clustermeta.cluster.cache import CacheState, MetadataCache
from clustermeta.cluster.election import ElectionTrigger
from clustermeta.coordination.fetcher import ConcurrentFetcher
from clustermeta.coordination.session import CoordinationSession
from clustermeta.coordination.tree import NodeTreeManager
from clustermeta.errors import ConfigurationError, OperationError, ValidationError
from clustermeta.model.broker import Broker
from clustermeta.model.consumergroup import Consumergroup
from clustermeta.model.partition import Partition
from clustermeta.model.topic import ALL_PRELOAD_OPERATIONS, DEFAULT_PRELOAD_OPERATIONS, Topic
from clustermeta.schemas import BROKER_IDS_PATH, CONSUMERS_PATH, TOPICS_PATH, decode_json
from clustermeta.status import NodeStatus
from clustermeta.utils.config import Config, get_config
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)


def _positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}") from None
    if number <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return number


class Cluster:
    """
    A Kafka cluster as registered in ZooKeeper.

    Brokers, topics and consumer groups are discovered on first access and
    cached until reset_metadata() or close(). Discovery fans out one worker
    per broker or topic; concurrent callers share a single discovery.

    Attributes:
        zookeeper: ZooKeeper connect string the cluster is registered at
        session: Shared CoordinationSession
        tree: NodeTreeManager for recursive node operations
        fetcher: ConcurrentFetcher bounding every fan-out
    """

    def __init__(
        self,
        zookeeper: str,
        session_timeout: float = 10.0,
        request_timeout: Optional[float] = None,
        max_workers: int = 16,
        client_factory=KazooClient,
    ):
        """
        Initialize cluster. No connection is made until the first query.

        Args:
            zookeeper: ZooKeeper connect string, e.g. "zk1:2181,zk2:2181/kafka"
            session_timeout: ZooKeeper session timeout in seconds
            request_timeout: Per-call timeout in seconds, None waits forever
            max_workers: Maximum threads per fan-out batch
            client_factory: Builds the kazoo client
        """
        self.zookeeper = zookeeper
        self.session = CoordinationSession(
            zookeeper,
            session_timeout=session_timeout,
            request_timeout=request_timeout,
            client_factory=client_factory,
        )
        self.fetcher = ConcurrentFetcher(max_workers=max_workers, name="clustermeta")
        self.tree = NodeTreeManager(self.session, self.fetcher)
        self._election = ElectionTrigger(self.session)
        self._metadata = MetadataCache(
            brokers_loader=self._load_brokers,
            topics_loader=self._load_topics,
            consumergroups_loader=self._load_consumergroups,
        )

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **kwargs) -> "Cluster":
        """
        Build a cluster from the coordination and fetch configuration.

        Raises:
            ValidationError: If the configuration is out of range
        """
        config = config or get_config()
        config.validate()
        options = {
            "session_timeout": config.get("coordination.session_timeout", 10.0),
            "request_timeout": config.get("coordination.request_timeout"),
            "max_workers": config.get("fetch.max_workers", 16),
        }
        options.update(kwargs)
        return cls(config.get("coordination.hosts"), **options)

    def __repr__(self):
        return f"Cluster(zookeeper={self.zookeeper!r})"

    def __enter__(self) -> "Cluster":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------- Discovery --------------------------------------------------

    def brokers(self) -> Dict[int, Broker]:
        """
        Live brokers indexed by broker id.

        Raises:
            ConfigurationError: If no cluster is registered at this location
        """
        return self._metadata.brokers()

    def broker(self, broker_id: int) -> Broker:
        return self.brokers()[int(broker_id)]

    def topics(self, preload: Iterable[str] = DEFAULT_PRELOAD_OPERATIONS) -> Dict[str, Topic]:
        """
        All topics indexed by name.

        Args:
            preload: Names from ALL_PRELOAD_OPERATIONS to run for every topic
                while discovering; ignored once the topics are cached

        Raises:
            ValidationError: For an unknown preload operation
        """
        operations = self._resolve_preload(preload)
        return self._metadata.topics(operations)

    def topic(self, name: str) -> Topic:
        """Handle for a topic; nothing is read until it is queried."""
        return Topic(self, name)

    def consumergroups(self) -> Dict[str, Consumergroup]:
        """Consumer groups registered against the cluster, indexed by name."""
        return self._metadata.consumergroups()

    def consumergroup(self, name: str) -> Consumergroup:
        """
        Handle for a consumer group.

        This doesn't register the group in ZooKeeper; call create() on the
        returned handle for that.
        """
        return Consumergroup(self, name)

    def partitions(self) -> List[Partition]:
        """Every partition of every cached topic, by topic then partition index."""
        return [
            partition
            for topic in self.topics().values()
            for partition in topic.partitions()
        ]

    def under_replicated(self) -> bool:
        """True if any partition has fewer in-sync than assigned replicas."""
        return any(partition.under_replicated() for partition in self.partitions())

    def cache_states(self) -> Dict[str, CacheState]:
        return self._metadata.states()

    # ---------- Administration ---------------------------------------------

    def create_topic(
        self,
        name: str,
        partitions: int,
        replication_factor: int,
        config: Optional[Mapping[str, object]] = None,
    ) -> Topic:
        """
        Create a topic with the given number of partitions and replicas.

        Raises:
            ValidationError: If partitions or replication_factor is not a
                positive integer, checked before anything is sent
        """
        partitions = _positive_int("partitions", partitions)
        replication_factor = _positive_int("replication_factor", replication_factor)

        return Topic.create(
            self,
            name,
            partitions=partitions,
            replication_factor=replication_factor,
            config=config,
        )

    def preferred_leader_election(self, partitions: Optional[Sequence[Partition]] = None) -> bool:
        """
        Trigger a preferred leader election.

        Args:
            partitions: Partitions to elect for, all partitions when None

        Raises:
            ConflictError: If a previous election is still in progress
        """
        if partitions is None:
            partitions = self.partitions()
        return self._election.trigger(partitions)

    def election_in_progress(self) -> bool:
        return self._election.in_progress()

    def recursive_create(self, path: str) -> None:
        self.tree.recursive_create(path)

    def recursive_delete(self, path: str) -> None:
        self.tree.recursive_delete(path)

    # ---------- Lifecycle --------------------------------------------------

    def reset_metadata(self) -> None:
        """Drop cached brokers, topics and consumer groups."""
        self._metadata.reset()

    def close(self) -> None:
        """Close the ZooKeeper session and clear all local caches."""
        self.session.close()
        self.reset_metadata()

    # ---------- Loaders ----------------------------------------------------

    def _resolve_preload(self, preload: Iterable[str]) -> Tuple:
        if isinstance(preload, str):
            preload = (preload,)

        names = tuple(dict.fromkeys(preload))
        unknown = [name for name in names if name not in ALL_PRELOAD_OPERATIONS]
        if unknown:
            raise ValidationError(
                f"unknown preload operations {unknown}; "
                f"expected a subset of {sorted(ALL_PRELOAD_OPERATIONS)}"
            )
        return tuple(ALL_PRELOAD_OPERATIONS[name] for name in names)

    def _load_brokers(self) -> Dict[int, Broker]:
        result = self.session.get_children(BROKER_IDS_PATH)
        if result.status == NodeStatus.NO_NODE:
            raise ConfigurationError(
                f"No Kafka cluster registered on this ZooKeeper location ({self.zookeeper})"
            )
        if not result.ok:
            raise OperationError("Failed to list brokers", path=BROKER_IDS_PATH, code=result.status)

        try:
            ids = sorted(result.payload, key=int)
        except ValueError as e:
            raise OperationError(
                f"Invalid broker id: {e}", path=BROKER_IDS_PATH, code=NodeStatus.MARSHALLING_ERROR
            ) from e

        brokers = self.fetcher.fetch(ids, self._build_broker, key=int)

        logger.info("Discovered brokers", count=len(brokers))
        return brokers

    def _build_broker(self, broker_id: str) -> Broker:
        path = f"{BROKER_IDS_PATH}/{broker_id}"
        result = self.session.get(path)
        if not result.ok:
            raise OperationError("Failed to retrieve broker info", path=path, code=result.status)
        return Broker.from_json(self, broker_id, decode_json(path, result.payload))

    def _load_topics(self, operations: Tuple) -> Dict[str, Topic]:
        names = sorted(self.session.children(TOPICS_PATH))

        def build(name: str) -> Topic:
            topic = self.topic(name)
            for operation in operations:
                operation(topic)
            return topic

        topics = self.fetcher.fetch(names, build)

        logger.info("Discovered topics", count=len(topics), preloaded=len(operations))
        return topics

    def _load_consumergroups(self) -> Dict[str, Consumergroup]:
        result = self.session.get_children(CONSUMERS_PATH)
        if result.status == NodeStatus.NO_NODE:
            return {}
        if not result.ok:
            raise OperationError("Failed to list consumer groups", path=CONSUMERS_PATH, code=result.status)

        groups = self.fetcher.fetch(sorted(result.payload), self.consumergroup)

        logger.info("Discovered consumer groups", count=len(groups))
        return groups
