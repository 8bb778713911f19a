"""
Block height tracking for the Nekoin SDK.
"""
import logging
import threading
from concurrent.futures import Executor
from typing import Optional

from .exceptions import OperationCancelledError
from .gateway.transport import LedgerGateway
from .models import NewBlock
from .utils import wait_for


class BlockHeightTracker:
    """
    Tracks the highest block index of the ledger.

    Two readings are available: the cached height, pushed by the new block
    subscription opened at construction, and the forced height, queried
    from the node on demand. The cached height may lag behind the node
    but never goes backwards.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        executor: Optional[Executor] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the tracker and open the block subscription

        Args:
            gateway: Ledger gateway
            executor: Executor used for forced reads with a timeout
            logger: Optional logger instance

        Raises:
            GatewayError: If the subscription cannot be opened
        """
        self.gateway = gateway
        self.executor = executor
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._highest = 0
        self._closed = False
        self._subscription = gateway.subscribe_new_blocks(self._on_new_block)

    def _on_new_block(self, block: NewBlock) -> None:
        with self._lock:
            if self._closed:
                return
            accepted = block.index >= self._highest
            if accepted:
                self._highest = block.index
        if accepted:
            self.logger.debug(f"Get new block: #{block.index}, {block.hash}")
        else:
            self.logger.debug(f"Ignoring out-of-order block #{block.index}")

    def cached_height(self) -> int:
        """
        Get the highest block index seen by the subscription.

        Returns 0 before the first event. Never touches the network.
        """
        with self._lock:
            return self._highest

    def forced_height(self, timeout: Optional[float] = None) -> int:
        """
        Query the node for the highest block index.

        Args:
            timeout: Optional deadline in seconds (requires an executor)

        Returns:
            Block count reported by the node minus one

        Raises:
            GatewayError: If the query fails
            GatewayTimeoutError: If the deadline expires
        """
        if timeout is None or self.executor is None:
            count = self.gateway.get_block_count()
        else:
            try:
                future = self.executor.submit(self.gateway.get_block_count)
            except RuntimeError as e:
                raise OperationCancelledError(f"Cannot schedule block count query: {e}") from e
            count = wait_for(future, timeout, "Block count query")
        return count - 1

    def is_present(self, height: int, force: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Check whether the block at ``height`` has been produced.

        Args:
            height: Block index to check
            force: Query the node instead of using the cached height
            timeout: Deadline for the node query, in seconds (force only)
        """
        highest = self.forced_height(timeout=timeout) if force else self.cached_height()
        return height <= highest

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Release the subscription. The cached height keeps its last value.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._subscription.dispose()
        self.logger.debug(f"Block subscription released at #{self.cached_height()}")
