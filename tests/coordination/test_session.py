"""Tests for the ZooKeeper session wrapper."""

import threading

import pytest
from kazoo.exceptions import ConnectionLoss, NoAuthError, NodeExistsError, NoNodeError

from clustermeta.coordination.session import CoordinationSession, status_for_exception
from clustermeta.errors import OperationError
from clustermeta.status import NodeStatus


class TestStatusTranslation:
    """Test kazoo exception to result code translation."""

    def test_known_exceptions(self):
        """Test specific exceptions map to their codes."""
        assert status_for_exception(NoNodeError()) == NodeStatus.NO_NODE
        assert status_for_exception(NodeExistsError()) == NodeStatus.NODE_EXISTS
        assert status_for_exception(NoAuthError()) == NodeStatus.NO_AUTH
        assert status_for_exception(ConnectionLoss()) == NodeStatus.CONNECTION_LOSS

    def test_unknown_exception(self):
        """Test anything else is a system error."""
        assert status_for_exception(RuntimeError("boom")) == NodeStatus.SYSTEM_ERROR


class TestCoordinationSession:
    """Test CoordinationSession."""

    @pytest.fixture
    def session(self, fake_zk):
        """Create a session on the in-memory ZooKeeper."""
        return CoordinationSession("fake-zk:2181", client_factory=fake_zk.factory)

    def test_lazy_connect(self, session, fake_zk):
        """Test no client is built until first use."""
        assert not session.connected
        assert fake_zk.factory_calls == 0

        session.stat("/")

        assert session.connected
        assert fake_zk.factory_calls == 1
        assert fake_zk.starts == 1

    def test_concurrent_connect_creates_one_client(self, session, fake_zk):
        """Test racing first calls share a single client."""
        barrier = threading.Barrier(10)
        clients = []

        def connect():
            barrier.wait()
            clients.append(session.connect())

        threads = [threading.Thread(target=connect) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert fake_zk.factory_calls == 1
        assert fake_zk.starts == 1
        assert len(clients) == 10
        assert all(c is clients[0] for c in clients)

    def test_close_then_reconnect(self, session, fake_zk):
        """Test an operation after close starts a fresh client."""
        session.connect()
        session.close()

        assert not session.connected
        assert fake_zk.stops == 1

        session.get_children("/")

        assert fake_zk.factory_calls == 2
        assert fake_zk.starts == 2

    def test_close_without_connect(self, session, fake_zk):
        """Test closing an unused session is a no-op."""
        session.close()

        assert fake_zk.stops == 0

    def test_node_operations(self, session, fake_zk):
        """Test create, read, list, stat and delete results."""
        assert session.create("/a", b"payload").ok
        assert session.stat("/a").ok

        result = session.get("/a")
        assert result.ok
        assert result.payload == b"payload"

        assert session.set("/a", b"replaced").ok
        assert session.get("/a").payload == b"replaced"
        assert session.set("/missing", b"x").status == NodeStatus.NO_NODE

        assert session.get_children("/").payload == ["a"]
        assert session.delete("/a").ok
        assert session.stat("/a").status == NodeStatus.NO_NODE

    def test_status_codes_instead_of_exceptions(self, session, fake_zk):
        """Test failures are returned as status codes."""
        fake_zk.seed("/a/b")

        assert session.get("/missing").status == NodeStatus.NO_NODE
        assert session.create("/a").status == NodeStatus.NODE_EXISTS
        assert session.create("/x/y").status == NodeStatus.NO_NODE
        assert session.delete("/a").status == NodeStatus.NOT_EMPTY

    def test_injected_failure(self, session, fake_zk):
        """Test arbitrary kazoo failures become status codes."""
        fake_zk.fail("get_children", "/brokers", NoAuthError())

        result = session.get_children("/brokers")

        assert result.status == NodeStatus.NO_AUTH
        assert result.payload is None

    def test_request_timeout(self, fake_zk):
        """Test a hung call is reported as OPERATION_TIMEOUT."""
        session = CoordinationSession(
            "fake-zk:2181",
            request_timeout=0.05,
            client_factory=fake_zk.factory,
        )
        fake_zk.gate("get", "/slow", threading.Event())
        fake_zk.seed("/slow")

        result = session.get("/slow")

        assert result.status == NodeStatus.OPERATION_TIMEOUT

    def test_children_raises_on_failure(self, session):
        """Test children() converts a bad status into OperationError."""
        with pytest.raises(OperationError) as exc_info:
            session.children("/missing")

        assert exc_info.value.path == "/missing"
        assert exc_info.value.code == NodeStatus.NO_NODE
        assert "NO_NODE(-101)" in str(exc_info.value)

    def test_failed_start(self, fake_zk):
        """Test an unreachable ensemble raises OperationError."""
        def start(timeout=15):
            raise fake_zk.handler.timeout_exception()

        fake_zk.start = start
        session = CoordinationSession("fake-zk:2181", client_factory=fake_zk.factory)

        with pytest.raises(OperationError) as exc_info:
            session.connect()

        assert exc_info.value.code == NodeStatus.CONNECTION_LOSS
        assert not session.connected
