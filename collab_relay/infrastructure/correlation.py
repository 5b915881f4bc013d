"""
Connection correlation for logging.

Each WebSocket task sets the relay-assigned connection id in a context
variable; the logging filter copies it onto every record emitted from
that task, including records from the registry and router.
"""

from contextvars import ContextVar, Token

# Context variable for connection ID (task-local)
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_connection_id() -> str:
    """Get the connection ID bound to the current task."""
    return connection_id_var.get()


def bind_connection_id(connection_id: str) -> Token:
    """
    Bind a connection ID to the current task.

    Returns:
        Token to pass to reset_connection_id() when the connection ends.
    """
    return connection_id_var.set(connection_id)


def reset_connection_id(token: Token) -> None:
    """Restore the connection ID that was bound before bind_connection_id()."""
    connection_id_var.reset(token)


class ConnectionIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(ConnectionIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = get_connection_id() or "-"
        return True
