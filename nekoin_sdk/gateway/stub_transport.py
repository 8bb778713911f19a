"""
Stub-based transport implementation for the ledger gateway.

This module provides an in-memory gateway that replays canned block
counts, execution receipts and read-only call results. Block events are
pushed explicitly with ``emit_block``. It is used for tests and for
local development without a node.
"""
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError
from ..models import ExecutionReceipt, InvocationResult, NewBlock, VMState
from .exceptions import GatewayConnectionError
from .transport import BlockCallback, LedgerGateway, Subscription

# Configure logger
logger = logging.getLogger(__name__)


def _call_key(contract_address: str, method: str, args: Sequence[Any]) -> Tuple[str, str, Tuple[Any, ...]]:
    return (contract_address.lower(), method, tuple(bytes(a) if isinstance(a, bytearray) else a for a in args))


class StubGateway(LedgerGateway):
    """
    In-memory ledger gateway.

    Failures are injected with ``fail``: the next calls of the named
    operation raise the given exception until ``fail`` is called again
    with ``None``.
    """

    def __init__(self, block_count: int = 0):
        self.block_count = block_count
        self.receipts: Dict[str, ExecutionReceipt] = {}
        self.read_results: Dict[Tuple[str, str, Tuple[Any, ...]], InvocationResult] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.closed = False
        self._failures: Dict[str, Exception] = {}
        self._subscribers: Dict[int, BlockCallback] = {}
        self._next_subscriber = 0
        self._lock = threading.Lock()

    # -- setup helpers ------------------------------------------------------

    def fail(self, operation: str, error: Optional[Exception]) -> None:
        """Make ``operation`` raise ``error`` (or stop failing with None)."""
        with self._lock:
            if error is None:
                self._failures.pop(operation, None)
            else:
                self._failures[operation] = error

    def add_receipt(self, receipt: ExecutionReceipt) -> None:
        self.receipts[receipt.tx_id.lower()] = receipt

    def set_read_result(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any],
        result: InvocationResult
    ) -> None:
        self.read_results[_call_key(contract_address, method, args)] = result

    def set_message(self, contract_address: str, key: bytes, content: bytes) -> None:
        """Shortcut for a successful ``readMessage`` lookup."""
        self.set_read_result(
            contract_address, "readMessage", [key],
            InvocationResult(state=VMState.HALT, stack=[content])
        )

    def emit_block(self, index: int, block_hash: Optional[str] = None) -> None:
        """Push a new block event to every live subscriber."""
        block = NewBlock(index=index, hash=block_hash or "0x" + format(index, "064x"))
        with self._lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            callback(block)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def call_count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for name, _ in self.calls if name == operation)

    # -- LedgerGateway ------------------------------------------------------

    def _enter(self, operation: str, *args: Any) -> None:
        with self._lock:
            if self.closed:
                raise GatewayConnectionError("Stub gateway is closed")
            self.calls.append((operation, args))
            error = self._failures.get(operation)
        if error is not None:
            raise error

    def get_block_count(self) -> int:
        self._enter("get_block_count")
        return self.block_count

    def subscribe_new_blocks(self, callback: BlockCallback) -> Subscription:
        self._enter("subscribe_new_blocks")
        with self._lock:
            subscriber_id = self._next_subscriber
            self._next_subscriber += 1
            self._subscribers[subscriber_id] = callback

        def _release():
            with self._lock:
                self._subscribers.pop(subscriber_id, None)
            logger.debug(f"Stub subscription {subscriber_id} disposed")

        return Subscription(_release)

    def get_execution_receipt(self, tx_id: str) -> ExecutionReceipt:
        self._enter("get_execution_receipt", tx_id)
        receipt = self.receipts.get(tx_id.lower())
        if receipt is None:
            raise NotFoundError(f"Unknown transaction {tx_id}", tx_id=tx_id)
        return receipt

    def invoke_read_only(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any]
    ) -> InvocationResult:
        self._enter("invoke_read_only", contract_address, method, tuple(args))
        result = self.read_results.get(_call_key(contract_address, method, args))
        if result is None:
            return InvocationResult(
                state=VMState.FAULT,
                exception=f"No stubbed result for {method}"
            )
        return result

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self._subscribers.clear()
