"""
Transport layer for the ledger gateway.

This module provides the abstraction used by the Nekoin SDK to talk to a
ledger node: a handful of request/response calls plus one push-style
new block subscription. Implementations exist for a real web3 node and
for an in-memory stub.
"""
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Sequence

from ..models import ExecutionReceipt, InvocationResult, NewBlock

BlockCallback = Callable[[NewBlock], None]


class Subscription:
    """
    Handle for a long-lived new block subscription.

    ``dispose`` releases the subscription exactly once; later calls are
    no-ops.
    """

    def __init__(self, on_dispose: Optional[Callable[[], None]] = None):
        self._on_dispose = on_dispose
        self._lock = threading.Lock()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        if self._on_dispose is not None:
            self._on_dispose()


class LedgerGateway(ABC):
    """
    Abstract base class for ledger gateway implementations.

    Every call either returns a result or raises a ``GatewayError``
    subclass; ``get_execution_receipt`` raises ``NotFoundError`` for an
    unknown transaction.
    """

    @abstractmethod
    def get_block_count(self) -> int:
        """
        Get the block count of the node.

        Returns:
            Count one past the highest finalized block index

        Raises:
            GatewayError: If the query fails
        """
        pass

    @abstractmethod
    def subscribe_new_blocks(self, callback: BlockCallback) -> Subscription:
        """
        Subscribe to new block events.

        Args:
            callback: Called once per new block, from a background thread

        Returns:
            Subscription handle

        Raises:
            GatewayError: If the subscription cannot be opened
        """
        pass

    @abstractmethod
    def get_execution_receipt(self, tx_id: str) -> ExecutionReceipt:
        """
        Get the execution receipt of a transaction.

        Args:
            tx_id: 0x-prefixed transaction hash

        Returns:
            Execution receipt

        Raises:
            NotFoundError: If the transaction is unknown
            GatewayError: For transport or node errors
        """
        pass

    @abstractmethod
    def invoke_read_only(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any]
    ) -> InvocationResult:
        """
        Invoke a contract method without creating a transaction.

        Args:
            contract_address: Address of the contract
            method: Method name
            args: Positional method arguments

        Returns:
            Invocation result, with state FAULT if the VM faulted

        Raises:
            GatewayError: For transport or node errors
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close any open connections or resources."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
