"""Shared fixtures: an in-memory, thread-safe stand-in for the kazoo client."""

import json
import posixpath
import threading
from types import SimpleNamespace

import pytest
from kazoo.exceptions import NodeExistsError, NoNodeError, NotEmptyError

from clustermeta.cluster import Cluster
from clustermeta.utils.config import reset_config


class FakeTimeoutError(Exception):
    """Raised by FakeAsyncResult.get() when a gated call does not finish in time."""
    pass


class FakeAsyncResult:
    """Deferred call mimicking kazoo's IAsyncResult.get()."""

    def __init__(self, fn, gate=None):
        self._fn = fn
        self._gate = gate

    def get(self, block=True, timeout=None):
        if self._gate is not None and not self._gate.wait(timeout):
            raise FakeTimeoutError()
        return self._fn()


class FakeKazooClient:
    """
    In-memory ZooKeeper tree with kazoo's async node API.

    Every API call is recorded in `calls` as (operation, path). Calls can
    be made to fail with `fail()` or to wait for an event with `gate()`.
    """

    def __init__(self):
        self.nodes = {"/": b""}
        self.calls = []
        self.starts = 0
        self.stops = 0
        self.factory_calls = 0
        self.handler = SimpleNamespace(timeout_exception=FakeTimeoutError)
        self._lock = threading.RLock()
        self._failures = {}
        self._gates = {}

    # ---------- Test controls ---------------------------------------------

    def factory(self, **kwargs):
        with self._lock:
            self.factory_calls += 1
        return self

    def fail(self, operation, path, exception):
        self._failures[(operation, path)] = exception

    def gate(self, operation, path, event):
        self._gates[(operation, path)] = event

    def seed(self, path, data=b""):
        """Create a node and its ancestors without recording calls."""
        if isinstance(data, dict):
            data = json.dumps(data).encode("utf-8")
        with self._lock:
            parts = path.strip("/").split("/")
            for i in range(1, len(parts)):
                self.nodes.setdefault("/" + "/".join(parts[:i]), b"")
            self.nodes[path] = data

    def add_broker(self, broker_id, host="localhost", port=9092):
        self.seed(f"/brokers/ids/{broker_id}", {
            "version": 4,
            "host": host,
            "port": port,
            "jmx_port": -1,
            "endpoints": [f"PLAINTEXT://{host}:{port}"],
            "timestamp": "1700000000000",
        })

    def add_topic(self, name, assignment, isr=None):
        """
        Register a topic.

        Args:
            assignment: partition index -> replica ids
            isr: partition index -> in-sync replica ids (defaults to all replicas)
        """
        isr = isr or {}
        self.seed(f"/brokers/topics/{name}", {
            "version": 1,
            "partitions": {str(p): replicas for p, replicas in assignment.items()},
        })
        for partition, replicas in assignment.items():
            in_sync = isr.get(partition, replicas)
            self.seed(f"/brokers/topics/{name}/partitions/{partition}/state", {
                "version": 1,
                "leader": in_sync[0] if in_sync else -1,
                "leader_epoch": 0,
                "controller_epoch": 1,
                "isr": in_sync,
            })

    def count(self, operation, path=None):
        return sum(
            1 for op, p in list(self.calls)
            if op == operation and (path is None or p == path)
        )

    def json(self, path):
        return json.loads(self.nodes[path].decode("utf-8"))

    # ---------- kazoo API -------------------------------------------------

    def start(self, timeout=15):
        self.starts += 1

    def stop(self):
        self.stops += 1

    def close(self):
        pass

    def _children_of(self, path):
        prefix = path.rstrip("/") + "/"
        return [
            p[len(prefix):] for p in self.nodes
            if p.startswith(prefix) and "/" not in p[len(prefix):] and p != path
        ]

    def _defer(self, operation, path, fn):
        with self._lock:
            self.calls.append((operation, path))

        def run():
            failure = self._failures.get((operation, path))
            if failure is not None:
                raise failure
            with self._lock:
                return fn()

        return FakeAsyncResult(run, self._gates.get((operation, path)))

    def get_children_async(self, path):
        def fn():
            if path not in self.nodes:
                raise NoNodeError()
            return self._children_of(path)
        return self._defer("get_children", path, fn)

    def get_async(self, path):
        def fn():
            if path not in self.nodes:
                raise NoNodeError()
            return self.nodes[path], SimpleNamespace(version=0)
        return self._defer("get", path, fn)

    def exists_async(self, path):
        def fn():
            if path not in self.nodes:
                return None
            return SimpleNamespace(version=0)
        return self._defer("exists", path, fn)

    def create_async(self, path, value=b""):
        def fn():
            if path in self.nodes:
                raise NodeExistsError()
            if posixpath.dirname(path) not in self.nodes:
                raise NoNodeError()
            self.nodes[path] = value
            return path
        return self._defer("create", path, fn)

    def set_async(self, path, value, version=-1):
        def fn():
            if path not in self.nodes:
                raise NoNodeError()
            self.nodes[path] = value
            return SimpleNamespace(version=1)
        return self._defer("set", path, fn)

    def delete_async(self, path):
        def fn():
            if path not in self.nodes:
                raise NoNodeError()
            if self._children_of(path):
                raise NotEmptyError()
            del self.nodes[path]
            return True
        return self._defer("delete", path, fn)


@pytest.fixture(autouse=True)
def clean_config():
    """Keep the process-wide configuration from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def fake_zk():
    """Create an empty in-memory ZooKeeper."""
    return FakeKazooClient()


@pytest.fixture
def cluster(fake_zk):
    """Create a cluster bound to the in-memory ZooKeeper."""
    cluster = Cluster("fake-zk:2181", max_workers=8, client_factory=fake_zk.factory)
    yield cluster
    cluster.close()


@pytest.fixture
def populated_zk(fake_zk):
    """Three brokers, two topics (one under-replicated) and a consumer group."""
    for broker_id, port in ((1, 9092), (2, 9093), (3, 9094)):
        fake_zk.add_broker(broker_id, port=port)

    fake_zk.add_topic("orders", {0: [1, 2], 1: [2, 3], 2: [3, 1]})
    fake_zk.add_topic("payments", {0: [1, 2, 3], 1: [2, 3, 1]}, isr={1: [2]})
    fake_zk.seed("/consumers/billing/ids/billing-1")
    fake_zk.seed("/consumers/billing/offsets/orders")
    fake_zk.seed("/admin")
    return fake_zk
