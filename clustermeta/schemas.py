"""
JSON payload schemas for the ZooKeeper nodes clustermeta reads and writes.

Layout:
    /brokers/ids/{id}                          BrokerDescriptor
    /brokers/topics/{name}                     TopicAssignment
    /brokers/topics/{name}/partitions/{i}/state PartitionState
    /config/topics/{name}                      TopicConfigPayload
    /admin/preferred_replica_election          ElectionRequest

All encoding and decoding goes through this module; a payload that is not
valid JSON, or carries an unsupported version, raises OperationError with
MARSHALLING_ERROR.
"""

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from clustermeta.errors import OperationError
from clustermeta.status import NodeStatus

BROKER_IDS_PATH = "/brokers/ids"
TOPICS_PATH = "/brokers/topics"
CONSUMERS_PATH = "/consumers"
TOPIC_CONFIG_PATH = "/config/topics"
DELETE_TOPICS_PATH = "/admin/delete_topics"
PREFERRED_REPLICA_ELECTION_PATH = "/admin/preferred_replica_election"

SCHEMA_VERSION = 1


def encode_json(payload: Dict[str, Any]) -> bytes:
    """Serialise a payload for storage in a node."""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


def decode_json(path: str, data: Optional[bytes]) -> Dict[str, Any]:
    """
    Parse the JSON object stored at path.

    Raises:
        OperationError: If data is empty, not JSON, or not an object
    """
    if not data:
        raise OperationError("Node holds no payload", path=path, code=NodeStatus.MARSHALLING_ERROR)

    try:
        payload = json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise OperationError(
            f"Malformed JSON payload: {e}", path=path, code=NodeStatus.MARSHALLING_ERROR
        ) from e

    if not isinstance(payload, dict):
        raise OperationError(
            "Payload is not a JSON object", path=path, code=NodeStatus.MARSHALLING_ERROR
        )
    return payload


def _require(path: str, payload: Dict[str, Any], key: str) -> Any:
    try:
        return payload[key]
    except KeyError:
        raise OperationError(
            f"Payload is missing field {key!r}", path=path, code=NodeStatus.MARSHALLING_ERROR
        ) from None


@contextmanager
def _fields(path: str, what: str) -> Iterator[None]:
    """Turn a field of the wrong shape into a marshalling error."""
    try:
        yield
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise OperationError(
            f"Invalid {what}: {e}", path=path, code=NodeStatus.MARSHALLING_ERROR
        ) from e


def _check_version(path: str, payload: Dict[str, Any], supported: int = SCHEMA_VERSION) -> int:
    version = payload.get("version", supported)
    if not isinstance(version, int) or version > supported:
        raise OperationError(
            f"Unsupported payload version {version!r}",
            path=path,
            code=NodeStatus.MARSHALLING_ERROR,
        )
    return version


@dataclass(frozen=True)
class BrokerDescriptor:
    """
    Registration data a broker writes under /brokers/ids/{id}.

    Brokers have bumped this schema several times; only the fields used
    here are required and newer versions are accepted.
    """
    host: str
    port: int
    jmx_port: Optional[int] = None
    version: int = SCHEMA_VERSION
    endpoints: List[str] = field(default_factory=list)
    timestamp: Optional[str] = None

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "BrokerDescriptor":
        host = _require(path, payload, "host")
        port = _require(path, payload, "port")
        jmx_port = payload.get("jmx_port")

        with _fields(path, "broker registration"):
            return cls(
                host=str(host),
                port=int(port),
                jmx_port=int(jmx_port) if jmx_port not in (None, -1) else None,
                version=int(payload.get("version", SCHEMA_VERSION)),
                endpoints=list(payload.get("endpoints") or []),
                timestamp=payload.get("timestamp"),
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "host": self.host,
            "port": self.port,
            "jmx_port": self.jmx_port if self.jmx_port is not None else -1,
            "endpoints": list(self.endpoints),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TopicAssignment:
    """Replica assignment of a topic: partition index -> broker ids."""
    partitions: Dict[int, List[int]]
    version: int = SCHEMA_VERSION

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "TopicAssignment":
        _check_version(path, payload, supported=3)
        raw = _require(path, payload, "partitions")
        with _fields(path, "partition assignment"):
            partitions = {int(index): [int(r) for r in replicas] for index, replicas in raw.items()}
        return cls(partitions=dict(sorted(partitions.items())))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "partitions": {str(index): list(replicas) for index, replicas in self.partitions.items()},
        }


@dataclass(frozen=True)
class PartitionState:
    """Leader and in-sync replica set written by the controller."""
    leader: int
    isr: List[int]
    leader_epoch: int = 0
    controller_epoch: int = 0
    version: int = SCHEMA_VERSION

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "PartitionState":
        _check_version(path, payload)
        leader = _require(path, payload, "leader")
        isr = _require(path, payload, "isr")

        with _fields(path, "partition state"):
            return cls(
                leader=int(leader),
                isr=[int(r) for r in isr],
                leader_epoch=int(payload.get("leader_epoch", 0)),
                controller_epoch=int(payload.get("controller_epoch", 0)),
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "leader": self.leader,
            "isr": list(self.isr),
            "leader_epoch": self.leader_epoch,
            "controller_epoch": self.controller_epoch,
        }


@dataclass(frozen=True)
class TopicConfigPayload:
    """Per-topic configuration overrides."""
    config: Dict[str, str] = field(default_factory=dict)
    version: int = SCHEMA_VERSION

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "TopicConfigPayload":
        _check_version(path, payload)
        config = payload.get("config") or {}
        if not isinstance(config, dict):
            raise OperationError(
                "Topic config is not an object", path=path, code=NodeStatus.MARSHALLING_ERROR
            )
        return cls(config={str(k): str(v) for k, v in config.items()})

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "config": dict(self.config)}


@dataclass(frozen=True)
class ElectionRequest:
    """Partitions a preferred replica election should move leadership for."""
    partitions: List[Dict[str, Any]]
    version: int = SCHEMA_VERSION

    @classmethod
    def for_partitions(cls, partitions) -> "ElectionRequest":
        return cls(partitions=[partition.to_dict() for partition in partitions])

    @classmethod
    def from_payload(cls, path: str, payload: Dict[str, Any]) -> "ElectionRequest":
        _check_version(path, payload)
        raw = _require(path, payload, "partitions")

        with _fields(path, "election request"):
            return cls(
                partitions=[
                    {"topic": str(p["topic"]), "partition": int(p["partition"])}
                    for p in raw
                ]
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "partitions": list(self.partitions)}
