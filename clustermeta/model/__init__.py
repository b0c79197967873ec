"""Domain objects built from ZooKeeper node data."""

from clustermeta.model.broker import Broker
from clustermeta.model.consumergroup import Consumergroup
from clustermeta.model.partition import Partition
from clustermeta.model.replica_assigner import ReplicaAssigner
from clustermeta.model.topic import (
    ALL_PRELOAD_OPERATIONS,
    DEFAULT_PRELOAD_OPERATIONS,
    Topic,
)

__all__ = [
    "ALL_PRELOAD_OPERATIONS",
    "DEFAULT_PRELOAD_OPERATIONS",
    "Broker",
    "Consumergroup",
    "Partition",
    "ReplicaAssigner",
    "Topic",
]
