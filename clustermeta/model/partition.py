"""
Topic partition.

The replica assignment comes with the topic; leader and ISR are read from
the partition state node the controller maintains, on first use.
"""

import threading
from typing import Any, Dict, List, Sequence

from clustermeta.errors import OperationError
from clustermeta.schemas import PartitionState, decode_json
from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)


class Partition:
    """
    One partition of a topic.

    Attributes:
        topic: Owning Topic
        index: Partition number within the topic
        replicas: Assigned replica broker ids, preferred leader first
    """

    def __init__(self, topic, index: int, replicas: Sequence[int]):
        self.topic = topic
        self.index = int(index)
        self.replicas = tuple(int(r) for r in replicas)
        self._state = None
        self._lock = threading.Lock()

    def __repr__(self):
        return f"Partition(topic={self.topic.name!r}, index={self.index}, replicas={list(self.replicas)})"

    def __eq__(self, other):
        if not isinstance(other, Partition):
            return NotImplemented
        return (self.topic.name, self.index) == (other.topic.name, other.index)

    def __hash__(self):
        return hash((self.topic.name, self.index))

    @property
    def cluster(self):
        return self.topic.cluster

    @property
    def state_path(self) -> str:
        return f"{self.topic.path}/partitions/{self.index}/state"

    def state(self) -> PartitionState:
        """
        Leader and ISR as last read from ZooKeeper.

        Raises:
            OperationError: If the state node cannot be read
        """
        with self._lock:
            if self._state is None:
                result = self.cluster.session.get(self.state_path)
                if not result.ok:
                    raise OperationError(
                        "Failed to read partition state",
                        path=self.state_path,
                        code=result.status,
                    )
                self._state = PartitionState.from_payload(
                    self.state_path, decode_json(self.state_path, result.payload)
                )
            return self._state

    def refresh(self) -> None:
        """Drop the cached state so the next query re-reads it."""
        with self._lock:
            self._state = None

    def leader(self) -> int:
        return self.state().leader

    def isr(self) -> List[int]:
        return list(self.state().isr)

    def preferred_leader(self) -> int:
        return self.replicas[0]

    def under_replicated(self) -> bool:
        """True when fewer replicas are in sync than are assigned."""
        return len(self.state().isr) < len(self.replicas)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic.name, "partition": self.index}
