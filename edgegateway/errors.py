BUSY_SUFFIX = "is busy completing an operation."


class EdgeGatewayError(Exception):
    """Base class for every error raised by this client."""


class PreconditionError(EdgeGatewayError):
    """Raised when local state needed by an operation is missing."""


class TransportError(EdgeGatewayError):
    """Raised for connection failures and non-2xx responses.

    `status` is None when no response was received at all.
    """

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)

    def wrap(self, prefix: str) -> "TransportError":
        # keep the subclass so callers can still tell transient from permanent
        return type(self)(f"{prefix}: {self}", self.status)


class TransientError(TransportError):
    """The gateway is already running a reconfiguration task."""


class DecodeError(EdgeGatewayError):
    """Raised when a response body is not the expected document."""


class TaskFailedError(EdgeGatewayError):
    def __init__(self, task):
        self.task = task
        super().__init__(
            f"task {task.href} finished with status {task.status}: {task.error_message}"
        )
