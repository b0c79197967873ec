"""Replica placement for new topics."""

from typing import Dict, Iterable, List

from clustermeta.errors import ValidationError


class ReplicaAssigner:
    """
    Round-robin replica assignment.

    Partition p gets its preferred leader on broker (start_index + p) and
    followers on the brokers after it, so leadership and replicas spread
    evenly over sorted broker ids.
    """

    def __init__(self, broker_ids: Iterable[int], start_index: int = 0):
        self.broker_ids = sorted(int(b) for b in broker_ids)
        self.start_index = start_index

    def assign(self, partitions: int, replication_factor: int) -> Dict[int, List[int]]:
        """
        Compute the assignment for a new topic.

        Raises:
            ValidationError: If there are fewer brokers than replicas requested
        """
        count = len(self.broker_ids)
        if replication_factor > count:
            raise ValidationError(
                f"replication_factor {replication_factor} exceeds the {count} available brokers"
            )

        assignment = {}
        for partition in range(partitions):
            first = (self.start_index + partition) % count
            assignment[partition] = [
                self.broker_ids[(first + offset) % count]
                for offset in range(replication_factor)
            ]
        return assignment
