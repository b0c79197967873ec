"""
ZooKeeper access layer.

Provides the shared session, bounded fan-out helper and recursive tree
operations the cluster façade is built on.
"""

from clustermeta.coordination.fetcher import ConcurrentFetcher
from clustermeta.coordination.session import CoordinationSession, NodeResult
from clustermeta.coordination.tree import NodeTreeManager, normalize_path

__all__ = [
    "ConcurrentFetcher",
    "CoordinationSession",
    "NodeResult",
    "NodeTreeManager",
    "normalize_path",
]
