"""
Message resolution for the Nekoin SDK.

Messages written to the Nekoin contract are announced by ``WriteMessage``
notifications carrying a content key. The content itself is read back
with a read-only ``readMessage`` call.
"""
import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Union

from .exceptions import MalformedNotificationError, MessageResolutionError, OperationCancelledError
from .gateway.exceptions import GatewayTimeoutError
from .gateway.transport import LedgerGateway
from .models import ExecutionReceipt, VMState
from .utils import normalize_tx_id, to_hex, wait_for

WRITE_MESSAGE_EVENT = "WriteMessage"
READ_MESSAGE_METHOD = "readMessage"


def _wait_fail_fast(futures: List[Future], timeout: Optional[float]) -> None:
    """
    Block until every future is done, one fails or is cancelled, or the
    timeout expires.

    Done callbacks also fire for futures cancelled by an executor shutdown,
    which ``concurrent.futures.wait`` does not observe.
    """
    pending = set(futures)
    lock = threading.Lock()
    settled = threading.Event()

    def on_done(future: Future) -> None:
        with lock:
            pending.discard(future)
            if not pending or future.cancelled() or future.exception() is not None:
                settled.set()

    for future in futures:
        future.add_done_callback(on_done)
    settled.wait(timeout)


class MessageResolver:
    """
    Reads back the messages written by one transaction.

    Faulted executions inside the transaction are skipped. A content key
    that cannot be read back fails the whole call.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        contract_address: str,
        executor: Optional[Executor] = None,
        max_workers: int = 8,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the resolver

        Args:
            gateway: Ledger gateway
            contract_address: Address of the Nekoin contract
            executor: Executor for concurrent lookups (created if omitted)
            max_workers: Pool size when the executor is created here
            logger: Optional logger instance
        """
        self.gateway = gateway
        self.contract_address = contract_address
        self.logger = logger or logging.getLogger(__name__)
        self._contract_match = contract_address.lower()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="nekoin-resolver"
        )

    def read_messages(
        self,
        tx_id: Union[str, bytes],
        timeout: Optional[float] = None
    ) -> Dict[str, bytes]:
        """
        Fetch the messages written by a transaction.

        Args:
            tx_id: Transaction hash (32 bytes or hex string)
            timeout: Optional deadline for the whole call, in seconds

        Returns:
            Mapping of 0x-prefixed hex content key to message content

        Raises:
            ValueError: If tx_id is not a valid transaction hash
            NotFoundError: If the transaction is unknown
            GatewayError: If a gateway call fails
            MalformedNotificationError: If a notification has no content key
            MessageResolutionError: If a content key cannot be read back
            GatewayTimeoutError: If the deadline expires
        """
        tx_id = normalize_tx_id(tx_id)
        deadline = None if timeout is None else time.monotonic() + timeout

        if timeout is None:
            receipt = self.gateway.get_execution_receipt(tx_id)
        else:
            future = self._submit(self.gateway.get_execution_receipt, tx_id)
            receipt = wait_for(future, timeout, "Receipt lookup")

        keys = self._extract_keys(receipt)
        if not keys:
            self.logger.debug(f"No {WRITE_MESSAGE_EVENT} notifications in {tx_id[:10]}…")
            return {}

        futures = {hex_key: self._submit(self._resolve, hex_key, key) for hex_key, key in keys.items()}
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        _wait_fail_fast(list(futures.values()), remaining)

        cancelled = any(future.cancelled() for future in futures.values())
        not_done = [future for future in futures.values() if not future.done()]
        # A lookup failed, was cancelled or the deadline expired: drop the rest
        for future in not_done:
            future.cancel()
        for future in futures.values():
            if future.done() and not future.cancelled() and future.exception() is not None:
                raise future.exception()
        if cancelled:
            raise OperationCancelledError("Message lookup was cancelled")
        if not_done:
            raise GatewayTimeoutError(f"Message lookup timed out after {timeout}s")

        self.logger.debug(f"Resolved {len(futures)} message(s) from {tx_id[:10]}…")
        return {hex_key: future.result() for hex_key, future in futures.items()}

    def _submit(self, fn: Callable, *args) -> Future:
        try:
            return self.executor.submit(fn, *args)
        except RuntimeError as e:
            # Executor already shut down
            raise OperationCancelledError(f"Cannot schedule lookup: {e}") from e

    def _extract_keys(self, receipt: ExecutionReceipt) -> Dict[str, bytes]:
        keys: Dict[str, bytes] = {}
        for index, execution in enumerate(receipt.executions):
            if execution.state != VMState.HALT:
                self.logger.debug(
                    f"Skipping faulted execution {index} of {receipt.tx_id[:10]}…: {execution.exception}"
                )
                continue
            for notification in execution.notifications:
                if notification.contract.lower() != self._contract_match:
                    continue
                if notification.event_name != WRITE_MESSAGE_EVENT:
                    continue
                if not notification.state:
                    raise MalformedNotificationError(
                        f"{WRITE_MESSAGE_EVENT} notification in {receipt.tx_id} has no values"
                    )
                key = notification.state[0]
                if not isinstance(key, (bytes, bytearray)):
                    raise MalformedNotificationError(
                        f"{WRITE_MESSAGE_EVENT} notification in {receipt.tx_id} has a "
                        f"{type(key).__name__} content key, expected bytes"
                    )
                keys.setdefault(to_hex(key), bytes(key))
        return keys

    def _resolve(self, hex_key: str, key: bytes) -> bytes:
        result = self.gateway.invoke_read_only(self.contract_address, READ_MESSAGE_METHOD, [key])
        if result.has_state_fault:
            raise MessageResolutionError(
                f"{READ_MESSAGE_METHOD} faulted for key {hex_key}: {result.exception}",
                key=hex_key,
                vm_exception=result.exception
            )
        if not result.stack or not isinstance(result.stack[0], (bytes, bytearray)):
            raise MessageResolutionError(
                f"{READ_MESSAGE_METHOD} returned no byte content for key {hex_key}",
                key=hex_key
            )
        return bytes(result.stack[0])

    def close(self) -> None:
        """Shut down the executor if it was created by this resolver."""
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)
