from .errors import (
    DecodeError,
    EdgeGatewayError,
    PreconditionError,
    TaskFailedError,
    TransientError,
    TransportError,
)
from .gateway import EdgeGateway

__version__ = "0.1.0"
