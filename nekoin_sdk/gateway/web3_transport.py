"""
Web3-based transport implementation for the ledger gateway.

This module talks to an EVM JSON-RPC node through web3.py. Transaction
receipts are mapped onto the gateway's execution model (one execution
per receipt, one notification per log) and the new block subscription
is a background thread that polls the node for its block number.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from ..exceptions import NekoinError, NotFoundError
from ..models import (
    Execution, ExecutionReceipt, InvocationResult, NewBlock, Notification, VMState
)
from ._rate_limited_log import rate_limited_log
from .exceptions import (
    GatewayConnectionError, GatewayError, GatewayResponseError, GatewayTimeoutError
)
from .transport import BlockCallback, LedgerGateway, Subscription

# Configure logger
logger = logging.getLogger(__name__)

# Seconds to wait for a poller thread to exit once its subscription is disposed
POLLER_JOIN_TIMEOUT = 2.0


def _event_topic(event_abi: Dict[str, Any]) -> str:
    types = ",".join(item["type"] for item in event_abi.get("inputs", []))
    return Web3.to_hex(Web3.keccak(text=f"{event_abi['name']}({types})"))


def _rpc_error_code(error: Exception) -> Optional[int]:
    response = getattr(error, "rpc_response", None)
    if isinstance(response, dict):
        return (response.get("error") or {}).get("code")
    if error.args and isinstance(error.args[0], dict):
        return error.args[0].get("code")
    return None


class Web3Gateway(LedgerGateway):
    """
    Ledger gateway backed by a web3.py HTTP provider.

    The gateway does not retry: every transport or node error is raised
    as a ``GatewayError`` subclass.
    """

    def __init__(
        self,
        rpc_url: str,
        abi: Optional[List[Dict[str, Any]]] = None,
        timeout: float = 30,
        poll_interval: float = 1.0,
        pool_size: int = 10,
        session: Optional[requests.Session] = None,
        w3: Optional[Web3] = None
    ):
        """
        Initialize the web3 gateway

        Args:
            rpc_url: JSON-RPC endpoint of the node
            abi: Contract ABI used to decode logs and encode read-only calls
            timeout: HTTP request timeout in seconds
            poll_interval: Seconds between block number polls
            pool_size: HTTP connection pool size (concurrent lookups)
            session: Optional requests session to use
            w3: Optional preconfigured Web3 instance (session is ignored)
        """
        self.rpc_url = rpc_url
        self.abi = list(abi or [])
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._owns_session = False
        self.session = session

        if w3 is None:
            if self.session is None:
                self.session = requests.Session()
                self._owns_session = True
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)
            w3 = Web3(Web3.HTTPProvider(
                rpc_url,
                request_kwargs={"timeout": timeout},
                session=self.session,
                exception_retry_configuration=None
            ))
        self.w3 = w3

        # topic0 -> event ABI, for log decoding
        self._events = {
            _event_topic(item): item for item in self.abi if item.get("type") == "event"
        }
        self._event_contract = self.w3.eth.contract(abi=self.abi) if self._events else None

        self._subscriptions: Dict[Subscription, threading.Thread] = {}
        self._subscriptions_lock = threading.Lock()

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except NekoinError:
            raise
        except requests.exceptions.Timeout as e:
            raise GatewayTimeoutError(f"{operation} timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise GatewayConnectionError(f"Cannot reach ledger node for {operation}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"{operation} failed: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise GatewayResponseError(f"{operation} failed: {e}", _rpc_error_code(e)) from e

    def get_block_count(self) -> int:
        with self._translate_errors("Block count query"):
            return self.w3.eth.block_number + 1

    def subscribe_new_blocks(self, callback: BlockCallback) -> Subscription:
        with self._translate_errors("Block subscription"):
            head = self.w3.eth.block_number

        stop = threading.Event()
        thread = threading.Thread(
            target=self._poll_blocks,
            args=(callback, head, stop),
            name="nekoin-block-poller",
            daemon=True
        )

        def _release():
            stop.set()
            with self._subscriptions_lock:
                self._subscriptions.pop(subscription, None)
            if thread is not threading.current_thread():
                thread.join(POLLER_JOIN_TIMEOUT)
                if thread.is_alive():
                    logger.debug(f"Block poller still finishing a request after {POLLER_JOIN_TIMEOUT}s")

        subscription = Subscription(_release)
        with self._subscriptions_lock:
            self._subscriptions[subscription] = thread
        thread.start()
        logger.debug(f"Subscribed to new blocks from #{head} (poll interval {self.poll_interval}s)")
        return subscription

    def _poll_blocks(self, callback: BlockCallback, next_index: int, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                with self._translate_errors("Block polling"):
                    current = self.w3.eth.block_number
                    for index in range(next_index, current + 1):
                        if stop.is_set():
                            return
                        block = self.w3.eth.get_block(index)
                        self._deliver(callback, NewBlock(index=index, hash=Web3.to_hex(block["hash"])))
                        next_index = index + 1
            except GatewayError as e:
                rate_limited_log(f"Block polling failed: {e}", level="warning", logger_instance=logger)
            stop.wait(self.poll_interval)

    def _deliver(self, callback: BlockCallback, block: NewBlock) -> None:
        try:
            callback(block)
        except Exception:
            logger.exception(f"Block callback failed for #{block.index}")

    def get_execution_receipt(self, tx_id: str) -> ExecutionReceipt:
        with self._translate_errors("Receipt lookup"):
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_id)
            except TransactionNotFound as e:
                raise NotFoundError(f"Transaction {tx_id} not found", tx_id=tx_id) from e
        return self._to_receipt(tx_id, receipt)

    def _to_receipt(self, tx_id: str, receipt: Dict[str, Any]) -> ExecutionReceipt:
        success = receipt.get("status", 1) == 1
        execution = Execution(
            state=VMState.HALT if success else VMState.FAULT,
            exception=None if success else "Transaction reverted",
            notifications=[self._to_notification(log) for log in receipt.get("logs", [])]
        )
        return ExecutionReceipt(tx_id=tx_id, executions=[execution])

    def _to_notification(self, log: Dict[str, Any]) -> Notification:
        address = log["address"]
        topics = log.get("topics") or []
        if not topics:
            return Notification(contract=address, event_name="", state=[])

        topic = Web3.to_hex(topics[0])
        event_abi = self._events.get(topic)
        if event_abi is None:
            return Notification(contract=address, event_name=topic, state=[])

        try:
            decoded = self._event_contract.events[event_abi["name"]]().process_log(log)
        except Exception as e:
            # Undecodable payloads surface as a notification without values
            logger.warning(f"Cannot decode {event_abi['name']} log from {address}: {e}")
            return Notification(contract=address, event_name=event_abi["name"], state=[])

        args = decoded["args"]
        return Notification(
            contract=address,
            event_name=decoded["event"],
            state=[args[item["name"]] for item in event_abi.get("inputs", [])]
        )

    def invoke_read_only(
        self,
        contract_address: str,
        method: str,
        args: Sequence[Any]
    ) -> InvocationResult:
        with self._translate_errors(f"Read-only call {method}"):
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=self.abi
            )
            try:
                result = contract.functions[method](*args).call()
            except ContractLogicError as e:
                return InvocationResult(state=VMState.FAULT, exception=str(e))

        stack = list(result) if isinstance(result, (list, tuple)) else [result]
        return InvocationResult(state=VMState.HALT, stack=stack)

    def close(self) -> None:
        """Dispose every subscription and close the HTTP session if owned."""
        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.dispose()
        if self._owns_session and self.session is not None:
            self.session.close()
            logger.debug("HTTP session closed.")
