"""
Exceptions for the Gateway module.
"""
from typing import Optional

from ..exceptions import NekoinError


class GatewayError(NekoinError):
    """Base exception for ledger gateway errors."""
    pass


class GatewayConnectionError(GatewayError):
    """Raised when the connection to the ledger node fails."""
    pass


class GatewayResponseError(GatewayError):
    """Raised when the ledger node returns an error response."""

    def __init__(self, message: str, error_code: Optional[int] = None):
        self.error_code = error_code
        super().__init__(message)


class GatewayTimeoutError(GatewayError):
    """Raised when a gateway operation exceeds its deadline."""
    pass
