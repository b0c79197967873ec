"""ZooKeeper result codes interpreted by clustermeta."""

from enum import IntEnum


class NodeStatus(IntEnum):
    """
    Result codes as defined by the ZooKeeper protocol.

    Only OK, NO_NODE and NODE_EXISTS drive control flow; every other
    code ends up in an OperationError.
    """

    OK = 0
    SYSTEM_ERROR = -1
    CONNECTION_LOSS = -4
    MARSHALLING_ERROR = -5
    OPERATION_TIMEOUT = -7
    BAD_ARGUMENTS = -8
    NO_NODE = -101
    NO_AUTH = -102
    BAD_VERSION = -103
    NODE_EXISTS = -110
    NOT_EMPTY = -111
    SESSION_EXPIRED = -112

    @classmethod
    def describe(cls, code: int) -> str:
        """Render a raw code as NAME(code) when it is known."""
        try:
            return f"{cls(code).name}({int(code)})"
        except ValueError:
            return str(code)
