"""
Exceptions for the Nekoin SDK.
"""
from typing import Optional


class NekoinError(Exception):
    """Base exception for all Nekoin SDK errors."""
    pass


class NotFoundError(NekoinError):
    """Raised when the referenced transaction is unknown to the ledger node."""

    def __init__(self, message: str, tx_id: Optional[str] = None):
        self.tx_id = tx_id
        super().__init__(message)


class MalformedNotificationError(NekoinError):
    """Raised when a matching notification does not carry a content key."""
    pass


class MessageResolutionError(NekoinError):
    """
    Raised when a content key taken from a successful notification cannot be
    read back from the contract.

    The event log and the current contract state disagree, so the whole
    read fails.
    """

    def __init__(self, message: str, key: Optional[str] = None, vm_exception: Optional[str] = None):
        self.key = key
        self.vm_exception = vm_exception
        super().__init__(message)


class OperationCancelledError(NekoinError):
    """Raised when an in-flight operation is cancelled by a shutdown."""
    pass


class EnvelopeError(NekoinError):
    """Base exception for signed message envelope errors."""
    pass


class MalformedEnvelopeError(EnvelopeError):
    """Raised when envelope fields are missing or not valid encodings."""
    pass


class InvalidSignatureError(EnvelopeError):
    """Raised when a well-formed envelope fails the signature check."""
    pass
