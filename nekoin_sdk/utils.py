"""
Utility functions for the Nekoin SDK.
"""
import base64
import binascii
import re
from concurrent.futures import CancelledError, Future, TimeoutError as FutureTimeoutError
from typing import Optional, TypeVar, Union

from .exceptions import OperationCancelledError
from .gateway.exceptions import GatewayTimeoutError

T = TypeVar('T')

_HEX_32_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def normalize_tx_id(tx_id: Union[str, bytes, bytearray]) -> str:
    """
    Normalize a transaction id to a lowercase 0x-prefixed hex string.

    Args:
        tx_id: 32 byte hash, as bytes or hex string (0x prefix optional)

    Returns:
        Normalized transaction id

    Raises:
        ValueError: If tx_id is not a 32 byte hash
    """
    if isinstance(tx_id, (bytes, bytearray)):
        if len(tx_id) != 32:
            raise ValueError(f"Transaction id must be 32 bytes, got {len(tx_id)}")
        return "0x" + bytes(tx_id).hex()
    if not isinstance(tx_id, str) or not _HEX_32_RE.match(tx_id):
        raise ValueError(f"Invalid transaction id: {tx_id!r}")
    if tx_id.startswith("0x"):
        tx_id = tx_id[2:]
    return "0x" + tx_id.lower()


def to_hex(data: bytes) -> str:
    """Encode bytes as a 0x-prefixed lowercase hex string."""
    return "0x" + bytes(data).hex()


def base64_to_hex(value: str) -> str:
    """
    Convert a base64 string to 0x-prefixed hex.

    Raises:
        ValueError: If value is not valid base64
    """
    try:
        return to_hex(base64.b64decode(value, validate=True))
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 value: {e}")


def wait_for(future: "Future[T]", timeout: Optional[float], operation: str) -> T:
    """
    Wait for a future with an optional deadline.

    Raises:
        GatewayTimeoutError: If the deadline expires (the future is cancelled)
        OperationCancelledError: If the future was cancelled
    """
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        raise GatewayTimeoutError(f"{operation} timed out after {timeout}s")
    except CancelledError:
        raise OperationCancelledError(f"{operation} was cancelled")
