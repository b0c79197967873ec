"""
Exception hierarchy for clustermeta.

Every public Cluster operation either returns a complete result or raises
one of these. Status codes other than the few interpreted explicitly are
wrapped in OperationError together with the path they were returned for.
"""

from typing import Optional

from clustermeta.status import NodeStatus


class ClusterMetaError(Exception):
    """Base class for all clustermeta errors."""
    pass


class ConfigurationError(ClusterMetaError):
    """Raised when no cluster is registered at the ZooKeeper location."""
    pass


class ValidationError(ClusterMetaError, ValueError):
    """Raised when a caller-supplied argument fails a precondition."""
    pass


class ConflictError(ClusterMetaError):
    """Raised when a preferred leader election is already in progress."""
    pass


class OperationError(ClusterMetaError):
    """
    Raised for an unexpected status code returned by ZooKeeper.

    Attributes:
        path: Node path the operation was issued against
        code: Raw ZooKeeper result code
    """

    def __init__(self, message: str, path: Optional[str] = None, code: Optional[int] = None):
        self.path = path
        self.code = code
        super().__init__(self._format(message, path, code))

    @staticmethod
    def _format(message: str, path: Optional[str], code: Optional[int]) -> str:
        details = []
        if path is not None:
            details.append(f"path={path}")
        if code is not None:
            details.append(f"code={NodeStatus.describe(code)}")
        if not details:
            return message
        return f"{message} ({', '.join(details)})"


class TopicAlreadyExistsError(OperationError):
    """Raised when creating a topic whose node is already registered."""
    pass
