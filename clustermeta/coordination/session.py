"""
Shared ZooKeeper session.

Wraps a kazoo client behind a status-code interface: every node operation
returns a NodeResult instead of raising, so callers decide which codes are
benign. The underlying client is created lazily and exactly once, even when
many fetch workers race on the first call.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Type

from kazoo.client import KazooClient
from kazoo.exceptions import (
    BadVersionError,
    ConnectionLoss,
    KazooException,
    NoAuthError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    OperationTimeoutError,
    SessionExpiredError,
    ZookeeperError,
)

from clustermeta.errors import OperationError
from clustermeta.status import NodeStatus
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)

# Most specific first; the two base classes catch everything else kazoo raises.
_EXCEPTION_STATUS: Tuple[Tuple[Type[Exception], NodeStatus], ...] = (
    (NoNodeError, NodeStatus.NO_NODE),
    (NodeExistsError, NodeStatus.NODE_EXISTS),
    (NotEmptyError, NodeStatus.NOT_EMPTY),
    (BadVersionError, NodeStatus.BAD_VERSION),
    (NoAuthError, NodeStatus.NO_AUTH),
    (SessionExpiredError, NodeStatus.SESSION_EXPIRED),
    (OperationTimeoutError, NodeStatus.OPERATION_TIMEOUT),
    (ConnectionLoss, NodeStatus.CONNECTION_LOSS),
    (ZookeeperError, NodeStatus.SYSTEM_ERROR),
    (KazooException, NodeStatus.CONNECTION_LOSS),
)


@dataclass(frozen=True)
class NodeResult:
    """
    Outcome of a single node operation.

    Attributes:
        status: ZooKeeper result code
        payload: Children names, node data, or None depending on the call
    """
    status: int
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.status == NodeStatus.OK


def status_for_exception(exc: Exception) -> NodeStatus:
    """Translate a kazoo exception into its ZooKeeper result code."""
    for exc_type, status in _EXCEPTION_STATUS:
        if isinstance(exc, exc_type):
            return status
    return NodeStatus.SYSTEM_ERROR


class CoordinationSession:
    """
    Lazily connected, thread-safe handle to a ZooKeeper ensemble.

    Once connected, all node operations may be issued concurrently from
    any number of worker threads; kazoo multiplexes them over one
    connection. Only connect() and close() are serialised here.
    """

    def __init__(
        self,
        hosts: str,
        session_timeout: float = 10.0,
        request_timeout: Optional[float] = None,
        client_factory: Callable[..., KazooClient] = KazooClient,
    ):
        """
        Initialize session.

        Args:
            hosts: ZooKeeper connect string, optionally with a chroot suffix
            session_timeout: ZooKeeper session timeout in seconds
            request_timeout: Seconds to wait for each call, None waits forever
            client_factory: Callable building the kazoo client
        """
        self.hosts = hosts
        self.session_timeout = session_timeout
        self.request_timeout = request_timeout
        self._client_factory = client_factory
        self._client: Optional[KazooClient] = None
        self._init_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> KazooClient:
        """
        Return the shared client, starting it on first use.

        Raises:
            OperationError: If the ensemble cannot be reached
        """
        with self._init_lock:
            if self._client is not None:
                return self._client

            client = self._client_factory(hosts=self.hosts, timeout=self.session_timeout)
            try:
                client.start(timeout=self.session_timeout)
            except (client.handler.timeout_exception, KazooException) as e:
                raise OperationError(
                    f"Failed to connect to ZooKeeper at {self.hosts}",
                    code=NodeStatus.CONNECTION_LOSS,
                ) from e

            self._client = client
            logger.info("Connected to ZooKeeper", hosts=self.hosts)
            return client

    def close(self) -> None:
        """Stop the client; the next operation reconnects."""
        with self._init_lock:
            client, self._client = self._client, None

        if client is None:
            return

        client.stop()
        client.close()
        logger.info("Closed ZooKeeper session", hosts=self.hosts)

    def _call(self, operation: str, path: str, start: Callable[[KazooClient], Any]) -> Tuple[NodeStatus, Any]:
        client = self.connect()
        try:
            value = start(client).get(timeout=self.request_timeout)
        except client.handler.timeout_exception:
            logger.warning(
                "ZooKeeper call timed out",
                operation=operation,
                path=path,
                timeout=self.request_timeout,
            )
            return NodeStatus.OPERATION_TIMEOUT, None
        except KazooException as e:
            status = status_for_exception(e)
            logger.debug("ZooKeeper call failed", operation=operation, path=path, status=status.name)
            return status, None

        logger.debug("ZooKeeper call", operation=operation, path=path)
        return NodeStatus.OK, value

    def get_children(self, path: str) -> NodeResult:
        """List the child names of a node."""
        status, children = self._call("get_children", path, lambda c: c.get_children_async(path))
        return NodeResult(status, list(children) if children is not None else None)

    def get(self, path: str) -> NodeResult:
        """Read the raw data stored at a node."""
        status, value = self._call("get", path, lambda c: c.get_async(path))
        return NodeResult(status, value[0] if value is not None else None)

    def create(self, path: str, data: Optional[bytes] = None) -> NodeResult:
        """Create a persistent node; the parent must exist."""
        status, _ = self._call(
            "create", path, lambda c: c.create_async(path, data if data is not None else b"")
        )
        return NodeResult(status)

    def set(self, path: str, data: bytes) -> NodeResult:
        """Replace the data of an existing node, whatever its version."""
        status, _ = self._call("set", path, lambda c: c.set_async(path, data))
        return NodeResult(status)

    def delete(self, path: str) -> NodeResult:
        """Delete a node without children."""
        status, _ = self._call("delete", path, lambda c: c.delete_async(path))
        return NodeResult(status)

    def stat(self, path: str) -> NodeResult:
        """Check whether a node exists; payload is the ZnodeStat."""
        status, stat = self._call("stat", path, lambda c: c.exists_async(path))
        if status == NodeStatus.OK and stat is None:
            return NodeResult(NodeStatus.NO_NODE)
        return NodeResult(status, stat)

    def children(self, path: str) -> List[str]:
        """List children, raising OperationError on any non-OK status."""
        result = self.get_children(path)
        if not result.ok:
            raise OperationError("Failed to list children", path=path, code=result.status)
        return result.payload
