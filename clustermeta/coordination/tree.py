"""
Recursive creation and deletion of ZooKeeper subtrees.

Creation walks upwards until it finds an existing ancestor and then creates
the missing nodes parent-first. Deletion discovers the subtree one level at
a time and removes it deepest level first, so every node is gone before its
parent is deleted. Both directions fan out through a bounded
ConcurrentFetcher instead of spawning a thread per node.

Two deletes of overlapping subtrees are not serialised against each other.
A descendant that disappears while a delete is running is treated as
already deleted; everything else is an OperationError.
"""

import posixpath
from typing import Dict, List, Optional

from clustermeta.coordination.fetcher import ConcurrentFetcher
from clustermeta.coordination.session import CoordinationSession
from clustermeta.errors import OperationError, ValidationError
from clustermeta.status import NodeStatus
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_path(path: Optional[str]) -> str:
    """
    Validate and normalise an absolute node path.

    Raises:
        ValidationError: If the path is missing or relative
    """
    if not path:
        raise ValidationError("path is a required argument")
    if not path.startswith("/"):
        raise ValidationError(f"path must be absolute: {path!r}")

    normalized = posixpath.normpath(path)
    # normpath keeps a leading double slash
    return "/" + normalized.lstrip("/")


class NodeTreeManager:
    """Creates and deletes whole branches of the ZooKeeper tree."""

    def __init__(self, session: CoordinationSession, fetcher: ConcurrentFetcher):
        self.session = session
        self.fetcher = fetcher

    def recursive_create(self, path: str, data: Optional[bytes] = None) -> None:
        """
        Create a node and any missing ancestors.

        Args:
            path: Absolute node path
            data: Payload for the leaf node only; ancestors are created empty

        Raises:
            OperationError: On any status other than OK, NO_NODE or NODE_EXISTS
        """
        path = normalize_path(path)
        if path == "/":
            return

        result = self.session.stat(path)
        if result.ok:
            return
        if result.status != NodeStatus.NO_NODE:
            raise OperationError("Failed to create node", path=path, code=result.status)

        self.recursive_create(posixpath.dirname(path))

        result = self.session.create(path, data)
        if result.status == NodeStatus.NODE_EXISTS:
            logger.debug("Node created concurrently", path=path)
            return
        if not result.ok:
            raise OperationError("Failed to create node", path=path, code=result.status)

        logger.debug("Created node", path=path)

    def ensure_paths(self, *paths: str) -> None:
        """Make sure every given path exists."""
        for path in paths:
            self.recursive_create(path)

    def recursive_delete(self, path: str) -> None:
        """
        Delete a node and all of its descendants.

        Args:
            path: Absolute path of the subtree root, which must exist

        Raises:
            OperationError: If the root cannot be listed or any node fails to delete
        """
        path = normalize_path(path)
        if path == "/":
            raise ValidationError("refusing to delete the root node")

        result = self.session.get_children(path)
        if not result.ok:
            raise OperationError(
                "Failed to list children of node to delete them",
                path=path,
                code=result.status,
            )

        levels: List[List[str]] = [[path]]
        frontier = [posixpath.join(path, name) for name in result.payload]

        while frontier:
            levels.append(frontier)
            listed: Dict[str, List[str]] = self.fetcher.fetch(frontier, self._list_descendant)
            frontier = [
                posixpath.join(parent, name)
                for parent in levels[-1]
                for name in listed[parent]
            ]

        for level in reversed(levels):
            self.fetcher.run(level, self._delete_node)

        logger.info(
            "Deleted subtree",
            path=path,
            nodes=sum(len(level) for level in levels),
        )

    def _list_descendant(self, path: str) -> List[str]:
        result = self.session.get_children(path)
        if result.ok:
            return result.payload
        if result.status == NodeStatus.NO_NODE:
            logger.warning("Node vanished before it could be listed", path=path)
            return []
        raise OperationError(
            "Failed to list children of node to delete them",
            path=path,
            code=result.status,
        )

    def _delete_node(self, path: str) -> None:
        result = self.session.delete(path)
        if result.ok:
            return
        if result.status == NodeStatus.NO_NODE:
            logger.warning("Node already deleted", path=path)
            return
        raise OperationError("Failed to delete node", path=path, code=result.status)
