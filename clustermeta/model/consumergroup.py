"""
Consumer group registered under /consumers.

Constructing a Consumergroup never touches ZooKeeper; use create() to
register a new group.
"""

import posixpath
from typing import List

from clustermeta.errors import OperationError
from clustermeta.model.base import ClusterBound
from clustermeta.schemas import CONSUMERS_PATH
from clustermeta.status import NodeStatus


class Consumergroup(ClusterBound):
    """A consumer group and the instances registered in it."""

    def __init__(self, cluster, name: str):
        self._bind(cluster)
        self.name = name

    def __repr__(self):
        return f"Consumergroup(name={self.name!r})"

    def __eq__(self, other):
        if not isinstance(other, Consumergroup):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash(self.name)

    @property
    def path(self) -> str:
        return posixpath.join(CONSUMERS_PATH, self.name)

    def exists(self) -> bool:
        result = self.cluster.session.stat(self.path)
        if result.ok:
            return True
        if result.status == NodeStatus.NO_NODE:
            return False
        raise OperationError("Failed to check consumer group", path=self.path, code=result.status)

    def create(self) -> None:
        """Register the group with empty ids and owners nodes."""
        self.cluster.tree.ensure_paths(
            posixpath.join(self.path, "ids"),
            posixpath.join(self.path, "owners"),
        )

    def destroy(self) -> None:
        """Remove the group together with its offsets and ownership data."""
        self.cluster.tree.recursive_delete(self.path)

    def _children(self, child: str) -> List[str]:
        path = posixpath.join(self.path, child)
        result = self.cluster.session.get_children(path)
        if result.status == NodeStatus.NO_NODE:
            return []
        if not result.ok:
            raise OperationError("Failed to list consumer group nodes", path=path, code=result.status)
        return sorted(result.payload)

    def instances(self) -> List[str]:
        """Ids of the consumer instances currently registered."""
        return self._children("ids")

    def active(self) -> bool:
        return bool(self.instances())

    def topics(self) -> List[str]:
        """Topics the group has committed offsets for."""
        return self._children("offsets")
