"""
Broker registered in the cluster.

Brokers register themselves as ephemeral nodes under /brokers/ids, so the
set returned by one discovery cycle is the set of live brokers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from clustermeta.model.base import ClusterBound
from clustermeta.schemas import BROKER_IDS_PATH, BrokerDescriptor


@dataclass(frozen=True, eq=False)
class Broker(ClusterBound):
    """
    A live broker.

    Attributes:
        id: Unique broker id
        host: Advertised hostname
        port: Advertised port
        jmx_port: JMX port, None when JMX is disabled
    """
    id: int
    host: str
    port: int
    jmx_port: Optional[int] = None
    descriptor: Optional[BrokerDescriptor] = field(default=None, repr=False)

    @classmethod
    def from_json(cls, cluster, id, data: Dict[str, Any]) -> "Broker":
        """
        Build a broker from the payload of /brokers/ids/{id}.

        Args:
            cluster: Owning cluster
            id: Broker id, as an int or the node name
            data: Decoded JSON payload
        """
        broker_id = int(id)
        descriptor = BrokerDescriptor.from_payload(f"{BROKER_IDS_PATH}/{broker_id}", data)
        broker = cls(
            id=broker_id,
            host=descriptor.host,
            port=descriptor.port,
            jmx_port=descriptor.jmx_port,
            descriptor=descriptor,
        )
        broker._bind(cluster)
        return broker

    def __eq__(self, other):
        if not isinstance(other, Broker):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    @property
    def addr(self) -> str:
        return f"{self.host}:{self.port}"

    def led_partitions(self) -> List:
        """Partitions this broker is currently leader for."""
        return [p for p in self.cluster.partitions() if p.leader() == self.id]

    def replicated_partitions(self) -> List:
        """Partitions this broker is assigned a replica of."""
        return [p for p in self.cluster.partitions() if self.id in p.replicas]

    def critical(self, replicas: int = 1) -> bool:
        """
        Whether stopping this broker would leave a partition with too few replicas.

        Args:
            replicas: A partition is at risk when its ISR holds this broker
                and no more than this many members
        """
        for partition in self.replicated_partitions():
            isr = partition.isr()
            if self.id in isr and len(isr) <= replicas:
                return True
        return False
