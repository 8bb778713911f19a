"""
NekoinClient - Main client for the Nekoin contract.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Union

from .block_tracker import BlockHeightTracker
from .config import NekoinSettings, validate_rpc_url
from .gateway.transport import LedgerGateway
from .gateway.web3_transport import Web3Gateway
from .models import SignedMessage
from .resolver import MessageResolver
from .signing import SignatureCodec


class NekoinClient:
    """
    Client for reading messages from the Nekoin contract.

    This client handles:
    1. Tracking the ledger's block height
    2. Reading back messages written by a transaction
    3. Signing and verifying text messages with the service wallet

    The block subscription is opened when the client is created and
    released by ``close``.
    """

    # ABI for the Nekoin contract (the parts this client uses)
    NEKOIN_ABI = [
        {
            "anonymous": False,
            "inputs": [
                {"indexed": False, "internalType": "bytes32", "name": "key", "type": "bytes32"}
            ],
            "name": "WriteMessage",
            "type": "event"
        },
        {
            "inputs": [
                {"internalType": "bytes32", "name": "key", "type": "bytes32"}
            ],
            "name": "readMessage",
            "outputs": [{"internalType": "bytes", "name": "", "type": "bytes"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    def __init__(
        self,
        contract_address: str,
        key_prefix: str,
        private_key: Union[str, bytes],
        rpc_url: Optional[str] = None,
        gateway: Optional[LedgerGateway] = None,
        timeout: float = 30,
        poll_interval: float = 1.0,
        max_workers: int = 8,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the NekoinClient

        Args:
            contract_address: Nekoin contract address
            key_prefix: Content key prefix (hex), passed through as is
            private_key: Private key of the service wallet
            rpc_url: Node RPC URL (ignored if gateway is provided)
            gateway: Ledger gateway to use instead of building one
            timeout: HTTP request timeout in seconds for the built gateway
            poll_interval: Block polling interval for the built gateway
            max_workers: Number of concurrent message lookups
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If neither rpc_url nor gateway is provided
            ValueError: If the RPC URL is insecure or the key invalid
            GatewayError: If the block subscription cannot be opened
        """
        if gateway is None and not rpc_url:
            raise ValueError("Either rpc_url or gateway must be provided")

        self.logger = logger or logging.getLogger(__name__)
        self.contract_address = contract_address
        self.key_prefix_hex = key_prefix
        self.codec = SignatureCodec(private_key)

        self._owns_gateway = gateway is None
        if gateway is None:
            gateway = Web3Gateway(
                validate_rpc_url(rpc_url),
                abi=self.NEKOIN_ABI,
                timeout=timeout,
                poll_interval=poll_interval,
                pool_size=max_workers
            )
        self.gateway = gateway

        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="nekoin")
        try:
            self.tracker = BlockHeightTracker(gateway, executor=self.executor, logger=self.logger)
        except Exception:
            self.executor.shutdown(wait=False)
            if self._owns_gateway:
                gateway.close()
            raise
        self.resolver = MessageResolver(
            gateway, contract_address, executor=self.executor, logger=self.logger
        )
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: NekoinSettings,
        gateway: Optional[LedgerGateway] = None,
        logger: Optional[logging.Logger] = None
    ) -> "NekoinClient":
        """
        Build a client from settings, logging the effective configuration.
        """
        log = logger or logging.getLogger(__name__)
        if gateway is None:
            log.info(f"Using node: {settings.rpc_url}")
        log.info(f"Nekoin contract: {settings.contract_address}")
        log.info(
            f"Content key prefix is: (Base64): {settings.key_prefix_base64}, "
            f"(Hex): {settings.key_prefix_hex}"
        )
        client = cls(
            contract_address=settings.contract_address,
            key_prefix=settings.key_prefix_hex,
            private_key=settings.private_key,
            rpc_url=settings.rpc_url,
            gateway=gateway,
            timeout=settings.rpc_timeout,
            poll_interval=settings.poll_interval,
            max_workers=settings.max_workers,
            logger=logger
        )
        log.info(f"Using wallet: {client.address}")
        return client

    @property
    def address(self) -> str:
        """
        Get the service wallet address

        Returns:
            Checksum address of the service key
        """
        return self.codec.address

    def cached_height(self) -> int:
        """Highest block index seen by the subscription (no network)."""
        return self.tracker.cached_height()

    def forced_height(self, timeout: Optional[float] = None) -> int:
        """Highest block index queried from the node."""
        return self.tracker.forced_height(timeout=timeout)

    def is_present(self, height: int, force: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Check if the given block is already produced.

        Args:
            height: Block index
            force: Query the node instead of the cached height
            timeout: Deadline for the node query, in seconds
        """
        return self.tracker.is_present(height, force=force, timeout=timeout)

    def read_messages(self, tx_id: Union[str, bytes], timeout: Optional[float] = None) -> Dict[str, bytes]:
        """
        Fetch the messages written by a transaction.

        Returns:
            Mapping of 0x-prefixed hex content key to message content
        """
        return self.resolver.read_messages(tx_id, timeout=timeout)

    def sign(self, message: str) -> SignedMessage:
        """Sign a text message with the service wallet."""
        return self.codec.sign(message)

    def verify_and_recover_address(self, envelope: Union[SignedMessage, Mapping[str, Any]]) -> str:
        """Verify a signed message and return the signer's address."""
        return self.codec.verify_and_recover_address(envelope)

    def close(self) -> None:
        """
        Release the block subscription, cancel pending lookups and close
        the gateway if this client created it. Safe to call twice.
        """
        if self._closed:
            return
        self._closed = True
        self.tracker.close()
        self.executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_gateway:
            self.gateway.close()
        self.logger.debug("Nekoin client closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
