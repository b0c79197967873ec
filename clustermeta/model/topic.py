"""
Topic metadata and topic creation.

A Topic handle is cheap: constructing one performs no remote call. The
partition assignment and configuration are loaded on first use, or eagerly
when the cluster preloads them during topic discovery.
"""

import posixpath
import re
import threading
from typing import Callable, Dict, List, Mapping, Optional

from clustermeta.errors import OperationError, TopicAlreadyExistsError, ValidationError
from clustermeta.model.base import ClusterBound
from clustermeta.model.partition import Partition
from clustermeta.model.replica_assigner import ReplicaAssigner
from clustermeta.schemas import (
    DELETE_TOPICS_PATH,
    TOPIC_CONFIG_PATH,
    TOPICS_PATH,
    TopicAssignment,
    TopicConfigPayload,
    decode_json,
    encode_json,
)
from clustermeta.status import NodeStatus
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)

VALID_TOPIC_NAME = re.compile(r"\A[a-zA-Z0-9._-]+\Z")
RESERVED_TOPIC_NAMES = frozenset([".", ".."])
MAX_TOPIC_NAME_LENGTH = 249


class Topic(ClusterBound):
    """A topic registered under /brokers/topics."""

    def __init__(self, cluster, name: str):
        self._bind(cluster)
        self.name = name
        self._partitions: Optional[List[Partition]] = None
        self._config: Optional[Dict[str, str]] = None
        self._lock = threading.RLock()

    def __repr__(self):
        return f"Topic(name={self.name!r})"

    def __eq__(self, other):
        if not isinstance(other, Topic):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash(self.name)

    @property
    def path(self) -> str:
        return posixpath.join(TOPICS_PATH, self.name)

    @property
    def config_path(self) -> str:
        return posixpath.join(TOPIC_CONFIG_PATH, self.name)

    @staticmethod
    def validate_name(name: str) -> None:
        """
        Raises:
            ValidationError: If name cannot be used as a topic name
        """
        if not isinstance(name, str) or not name:
            raise ValidationError("topic name must be a non-empty string")
        if name in RESERVED_TOPIC_NAMES:
            raise ValidationError(f"topic name {name!r} is reserved")
        if len(name) > MAX_TOPIC_NAME_LENGTH:
            raise ValidationError(f"topic name is longer than {MAX_TOPIC_NAME_LENGTH} characters")
        if not VALID_TOPIC_NAME.match(name):
            raise ValidationError(
                f"topic name {name!r} may only contain ASCII alphanumerics, '.', '_' and '-'"
            )

    def partitions(self) -> List[Partition]:
        """
        Partitions ordered by index, loaded from the topic's assignment node.

        Raises:
            OperationError: If the assignment cannot be read
        """
        with self._lock:
            if self._partitions is None:
                result = self.cluster.session.get(self.path)
                if not result.ok:
                    raise OperationError(
                        "Failed to read topic partition assignment",
                        path=self.path,
                        code=result.status,
                    )

                assignment = TopicAssignment.from_payload(
                    self.path, decode_json(self.path, result.payload)
                )
                self._partitions = [
                    Partition(self, index, replicas)
                    for index, replicas in assignment.partitions.items()
                ]
            return list(self._partitions)

    def partition(self, index: int) -> Partition:
        for partition in self.partitions():
            if partition.index == index:
                return partition
        raise KeyError(f"{self.name} has no partition {index}")

    def load_partition_states(self) -> None:
        """Read the state of every partition concurrently."""
        self.cluster.fetcher.run(self.partitions(), Partition.state)

    def config(self) -> Dict[str, str]:
        """
        Per-topic configuration overrides; empty when none are set.

        Raises:
            OperationError: If the config node exists but cannot be read
        """
        with self._lock:
            if self._config is None:
                result = self.cluster.session.get(self.config_path)
                if result.status == NodeStatus.NO_NODE:
                    self._config = {}
                elif not result.ok:
                    raise OperationError(
                        "Failed to read topic config",
                        path=self.config_path,
                        code=result.status,
                    )
                else:
                    self._config = TopicConfigPayload.from_payload(
                        self.config_path, decode_json(self.config_path, result.payload)
                    ).config
            return dict(self._config)

    def replication_factor(self) -> int:
        return max((len(p.replicas) for p in self.partitions()), default=0)

    def exists(self) -> bool:
        result = self.cluster.session.stat(self.path)
        if result.ok:
            return True
        if result.status == NodeStatus.NO_NODE:
            return False
        raise OperationError("Failed to check topic", path=self.path, code=result.status)

    def under_replicated(self) -> bool:
        return any(partition.under_replicated() for partition in self.partitions())

    def destroy(self) -> None:
        """
        Request deletion of the topic.

        The controller performs the actual deletion; a pending request for
        the same topic is left in place.
        """
        self.cluster.tree.recursive_create(posixpath.join(DELETE_TOPICS_PATH, self.name))
        self.cluster.reset_metadata()

        logger.info("Requested topic deletion", topic=self.name)

    @classmethod
    def create(
        cls,
        cluster,
        name: str,
        partitions: int,
        replication_factor: int,
        config: Optional[Mapping[str, object]] = None,
    ) -> "Topic":
        """
        Register a new topic with a round-robin replica assignment.

        Args:
            cluster: Owning cluster
            name: Topic name
            partitions: Number of partitions, already validated as positive
            replication_factor: Replicas per partition, already validated as positive
            config: Per-topic configuration overrides

        Returns:
            Handle for the new topic

        Raises:
            ValidationError: For an invalid name or too few brokers
            TopicAlreadyExistsError: If the topic is already registered
        """
        cls.validate_name(name)
        topic = cls(cluster, name)

        if topic.exists():
            raise TopicAlreadyExistsError(
                f"Topic {name} already exists", path=topic.path, code=NodeStatus.NODE_EXISTS
            )

        assigner = ReplicaAssigner(cluster.brokers().keys())
        assignment = TopicAssignment(partitions=assigner.assign(partitions, replication_factor))
        config_payload = TopicConfigPayload(config={str(k): str(v) for k, v in (config or {}).items()})

        cls._write_config(cluster, topic.config_path, encode_json(config_payload.to_dict()))
        cluster.tree.recursive_create(TOPICS_PATH)

        result = cluster.session.create(topic.path, encode_json(assignment.to_dict()))
        if result.status == NodeStatus.NODE_EXISTS:
            raise TopicAlreadyExistsError(
                f"Topic {name} already exists", path=topic.path, code=result.status
            )
        if not result.ok:
            raise OperationError("Failed to create topic", path=topic.path, code=result.status)

        cluster.reset_metadata()

        logger.info(
            "Created topic",
            topic=name,
            partitions=partitions,
            replication_factor=replication_factor,
        )

        return topic

    @staticmethod
    def _write_config(cluster, path: str, data: bytes) -> None:
        # A config node without a topic is left over from an interrupted create.
        cluster.tree.recursive_create(TOPIC_CONFIG_PATH)

        result = cluster.session.create(path, data)
        if result.status == NodeStatus.NODE_EXISTS:
            logger.warning("Overwriting leftover topic config", path=path)
            result = cluster.session.set(path, data)
        if not result.ok:
            raise OperationError("Failed to write topic config", path=path, code=result.status)


# Operations that can run eagerly for every topic during discovery.
ALL_PRELOAD_OPERATIONS: Dict[str, Callable[[Topic], object]] = {
    "partitions": Topic.partitions,
    "partition_states": Topic.load_partition_states,
    "config": Topic.config,
}

DEFAULT_PRELOAD_OPERATIONS = ("partitions",)
