"""
Cluster façade and its metadata caches.

Composes the ZooKeeper session, tree operations and fan-out helper into
the Cluster entry point.
"""

from clustermeta.cluster.cache import CacheState, LazyCache, MetadataCache
from clustermeta.cluster.cluster import Cluster
from clustermeta.cluster.election import ElectionTrigger

__all__ = [
    "CacheState",
    "Cluster",
    "ElectionTrigger",
    "LazyCache",
    "MetadataCache",
]
