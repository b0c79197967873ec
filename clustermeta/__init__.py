"""
clustermeta - Kafka cluster metadata through ZooKeeper.

Reads and writes the cluster topology Kafka keeps in ZooKeeper:
- Brokers, topics, partitions and consumer groups
- Topic creation with replica assignment
- Replication health checks
- Preferred leader elections
"""

__version__ = "0.1.0"
__author__ = "Horace Njoroge"

from clustermeta.cluster import Cluster
from clustermeta.errors import (
    ClusterMetaError,
    ConfigurationError,
    ConflictError,
    OperationError,
    TopicAlreadyExistsError,
    ValidationError,
)
from clustermeta.model import Broker, Consumergroup, Partition, Topic
from clustermeta.status import NodeStatus

__all__ = [
    "Broker",
    "Cluster",
    "ClusterMetaError",
    "ConfigurationError",
    "ConflictError",
    "Consumergroup",
    "NodeStatus",
    "OperationError",
    "Partition",
    "Topic",
    "TopicAlreadyExistsError",
    "ValidationError",
]
