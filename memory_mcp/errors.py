"""Error taxonomy shared by the REST and tool-call surfaces."""


class GraphError(Exception):
    """Base for every error the graph store reports to a caller."""


class ValidationError(GraphError):
    """Malformed request: missing field, wrong type, empty query."""


class NotFoundError(GraphError):
    """Referenced entity or relation endpoint does not exist."""


class StorageError(GraphError):
    """The database rejected or failed a statement."""


class MethodNotFoundError(GraphError):
    """Unknown JSON-RPC method or tool name."""
