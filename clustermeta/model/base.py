"""Weak back-reference from domain objects to their Cluster."""

import weakref


class ClusterBound:
    """
    Mixin for objects that re-query live state through their cluster.

    The cluster owns its caches and the caches own these objects, so the
    reference back must not keep the cluster alive.
    """

    _cluster_ref: "weakref.ReferenceType"

    def _bind(self, cluster) -> None:
        object.__setattr__(self, "_cluster_ref", weakref.ref(cluster))

    @property
    def cluster(self):
        cluster = self._cluster_ref()
        if cluster is None:
            raise ReferenceError(f"{type(self).__name__} outlived its cluster")
        return cluster
