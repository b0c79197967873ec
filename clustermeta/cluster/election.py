"""
Preferred replica election requests.

The controller watches /admin/preferred_replica_election and removes the
node once the election has finished, so an existing node means another
election is still in progress. A request is submitted exactly once and
never retried.
"""

from typing import Iterable

from clustermeta.coordination.session import CoordinationSession
from clustermeta.errors import ConflictError, OperationError
from clustermeta.schemas import PREFERRED_REPLICA_ELECTION_PATH, ElectionRequest, encode_json
from clustermeta.status import NodeStatus
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)


class ElectionTrigger:
    """Submits preferred leader election requests to the controller."""

    path = PREFERRED_REPLICA_ELECTION_PATH

    def __init__(self, session: CoordinationSession):
        self.session = session

    def trigger(self, partitions: Iterable) -> bool:
        """
        Ask the controller to move leadership to each partition's preferred replica.

        Args:
            partitions: Objects exposing to_dict() -> {"topic", "partition"}

        Returns:
            True once the request node has been created

        Raises:
            ConflictError: If another election is still in progress
            OperationError: On any other failure to create the request node
        """
        request = ElectionRequest.for_partitions(partitions)
        result = self.session.create(self.path, encode_json(request.to_dict()))

        if result.ok:
            logger.info(
                "Triggered preferred leader election",
                partitions=len(request.partitions),
            )
            return True

        if result.status == NodeStatus.NODE_EXISTS:
            logger.warning("Preferred leader election already in progress")
            raise ConflictError("Another preferred leader election is still in progress")

        raise OperationError(
            "Failed to start preferred leader election",
            path=self.path,
            code=result.status,
        )

    def in_progress(self) -> bool:
        """Whether an election request is waiting to be processed."""
        result = self.session.stat(self.path)
        if result.ok:
            return True
        if result.status == NodeStatus.NO_NODE:
            return False
        raise OperationError("Failed to check election status", path=self.path, code=result.status)
