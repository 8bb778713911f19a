"""
Nekoin SDK - read messages anchored by the Nekoin contract and sign
messages with the service wallet.
"""
from .block_tracker import BlockHeightTracker
from .client import NekoinClient
from .config import NekoinSettings
from .exceptions import (
    EnvelopeError,
    InvalidSignatureError,
    MalformedEnvelopeError,
    MalformedNotificationError,
    MessageResolutionError,
    NekoinError,
    NotFoundError,
    OperationCancelledError,
)
from .gateway.exceptions import (
    GatewayConnectionError,
    GatewayError,
    GatewayResponseError,
    GatewayTimeoutError,
)
from .models import (
    Execution,
    ExecutionReceipt,
    InvocationResult,
    NewBlock,
    Notification,
    SignedMessage,
    VMState,
)
from .resolver import MessageResolver
from .signing import SignatureCodec
from .version import __version__

__all__ = [
    "NekoinClient",
    "NekoinSettings",
    "BlockHeightTracker",
    "MessageResolver",
    "SignatureCodec",
    "SignedMessage",
    "NewBlock",
    "Notification",
    "Execution",
    "ExecutionReceipt",
    "InvocationResult",
    "VMState",
    "NekoinError",
    "NotFoundError",
    "MalformedNotificationError",
    "MessageResolutionError",
    "OperationCancelledError",
    "EnvelopeError",
    "MalformedEnvelopeError",
    "InvalidSignatureError",
    "GatewayError",
    "GatewayConnectionError",
    "GatewayResponseError",
    "GatewayTimeoutError",
    "__version__",
]
