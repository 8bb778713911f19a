"""
Gateway module for the Nekoin SDK.

This module provides the ledger gateway used by the SDK: an abstract
interface, a web3-backed implementation for real nodes and an in-memory
stub for tests and development.
"""
from .exceptions import (
    GatewayConnectionError, GatewayError, GatewayResponseError, GatewayTimeoutError
)
from .stub_transport import StubGateway
from .transport import LedgerGateway, Subscription
from .web3_transport import Web3Gateway

__all__ = [
    'LedgerGateway',
    'Subscription',
    'StubGateway',
    'Web3Gateway',
    'GatewayError',
    'GatewayConnectionError',
    'GatewayResponseError',
    'GatewayTimeoutError',
]
