"""
Tests for the web3-backed ledger gateway.

Node calls are mocked; log decoding runs against a real web3 contract
object built from the Nekoin ABI.
"""
import logging
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from nekoin_sdk import NekoinClient
from nekoin_sdk.exceptions import NotFoundError
from nekoin_sdk.gateway.exceptions import (
    GatewayConnectionError, GatewayError, GatewayResponseError, GatewayTimeoutError
)
from nekoin_sdk.gateway.web3_transport import Web3Gateway
from nekoin_sdk.models import VMState

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_ID = "0x" + "ef" * 32
WRITE_MESSAGE_TOPIC = HexBytes(Web3.keccak(text="WriteMessage(bytes32)"))


class FakeEth:
    """Stands in for ``w3.eth``"""

    def __init__(self, head=0):
        self.head = head
        self.error = None
        self.get_block = MagicMock(side_effect=lambda i: {"hash": HexBytes(i.to_bytes(32, "big"))})
        self.get_transaction_receipt = MagicMock()
        self.contract = MagicMock()

    @property
    def block_number(self):
        if self.error is not None:
            raise self.error
        return self.head


def _mock_gateway(head=0, **kwargs):
    w3 = MagicMock()
    w3.eth = FakeEth(head)
    return Web3Gateway("https://node.example.com", w3=w3, **kwargs)


@pytest.fixture
def abi_gateway():
    """Gateway with a real Web3 instance (never contacted) for log decoding"""
    gateway = Web3Gateway("http://localhost:8545", abi=NekoinClient.NEKOIN_ABI)
    yield gateway
    gateway.close()


def _log(data, topics=None, address=CONTRACT):
    return {
        "address": address,
        "topics": [WRITE_MESSAGE_TOPIC] if topics is None else topics,
        "data": HexBytes(data),
        "logIndex": 0,
        "transactionIndex": 0,
        "transactionHash": HexBytes(TX_ID),
        "blockHash": HexBytes("0x" + "00" * 32),
        "blockNumber": 1,
    }


class TestErrorTranslation:
    """Transport and node errors surface as gateway errors."""

    @pytest.mark.parametrize("error,expected", [
        (requests.exceptions.ReadTimeout("slow"), GatewayTimeoutError),
        (requests.exceptions.ConnectionError("refused"), GatewayConnectionError),
        (requests.exceptions.HTTPError("502"), GatewayError),
        (ValueError({"code": -32000, "message": "header not found"}), GatewayResponseError),
        (Web3Exception("bad response"), GatewayResponseError),
    ])
    def test_block_count_errors(self, error, expected):
        gateway = _mock_gateway()
        gateway.w3.eth.error = error
        with pytest.raises(expected):
            gateway.get_block_count()

    def test_rpc_error_code_from_args(self):
        gateway = _mock_gateway()
        gateway.w3.eth.error = ValueError({"code": -32000, "message": "header not found"})
        with pytest.raises(GatewayResponseError) as exc_info:
            gateway.get_block_count()
        assert exc_info.value.error_code == -32000

    def test_rpc_error_code_from_response(self):
        error = Web3Exception("method not found")
        error.rpc_response = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "nope"}}
        gateway = _mock_gateway()
        gateway.w3.eth.error = error
        with pytest.raises(GatewayResponseError) as exc_info:
            gateway.get_block_count()
        assert exc_info.value.error_code == -32601

    def test_error_without_code(self):
        gateway = _mock_gateway()
        gateway.w3.eth.error = Web3Exception("odd")
        with pytest.raises(GatewayResponseError) as exc_info:
            gateway.get_block_count()
        assert exc_info.value.error_code is None


class TestQueries:
    """Block count, receipts and read-only calls."""

    def test_block_count_is_head_plus_one(self):
        assert _mock_gateway(head=41).get_block_count() == 42

    def test_unknown_transaction(self):
        gateway = _mock_gateway()
        gateway.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        with pytest.raises(NotFoundError) as exc_info:
            gateway.get_execution_receipt(TX_ID)
        assert exc_info.value.tx_id == TX_ID

    def test_receipt_connection_error(self):
        gateway = _mock_gateway()
        gateway.w3.eth.get_transaction_receipt.side_effect = requests.exceptions.ConnectionError()
        with pytest.raises(GatewayConnectionError):
            gateway.get_execution_receipt(TX_ID)

    def test_reverted_receipt_is_fault(self):
        gateway = _mock_gateway()
        gateway.w3.eth.get_transaction_receipt.return_value = {"status": 0, "logs": []}
        receipt = gateway.get_execution_receipt(TX_ID)
        assert receipt.tx_id == TX_ID
        assert len(receipt.executions) == 1
        assert receipt.executions[0].state == VMState.FAULT
        assert receipt.executions[0].exception

    def test_read_only_call(self):
        gateway = _mock_gateway()
        function = gateway.w3.eth.contract.return_value.functions.__getitem__.return_value
        function.return_value.call.return_value = b"content"

        result = gateway.invoke_read_only(CONTRACT.lower(), "readMessage", [b"\x01" * 32])

        assert result.state == VMState.HALT
        assert result.stack == [b"content"]
        assert gateway.w3.eth.contract.call_args.kwargs["address"] == CONTRACT
        function.assert_called_once_with(b"\x01" * 32)

    def test_read_only_call_tuple_result(self):
        gateway = _mock_gateway()
        function = gateway.w3.eth.contract.return_value.functions.__getitem__.return_value
        function.return_value.call.return_value = (1, b"x")
        assert gateway.invoke_read_only(CONTRACT, "pair", []).stack == [1, b"x"]

    def test_read_only_call_revert_is_fault(self):
        gateway = _mock_gateway()
        function = gateway.w3.eth.contract.return_value.functions.__getitem__.return_value
        function.return_value.call.side_effect = ContractLogicError("execution reverted: no message")

        result = gateway.invoke_read_only(CONTRACT, "readMessage", [b"\x01" * 32])

        assert result.has_state_fault
        assert "no message" in result.exception

    def test_read_only_call_timeout(self):
        gateway = _mock_gateway()
        function = gateway.w3.eth.contract.return_value.functions.__getitem__.return_value
        function.return_value.call.side_effect = requests.exceptions.ReadTimeout()
        with pytest.raises(GatewayTimeoutError):
            gateway.invoke_read_only(CONTRACT, "readMessage", [b"\x01" * 32])


class TestLogDecoding:
    """Receipt logs become notifications."""

    def test_write_message_log(self, abi_gateway):
        key = bytes(range(32))
        notification = abi_gateway._to_notification(_log(key))
        assert notification.contract == CONTRACT
        assert notification.event_name == "WriteMessage"
        assert notification.state == [key]

    def test_receipt_with_logs(self, abi_gateway):
        key = b"\x07" * 32
        receipt = abi_gateway._to_receipt(TX_ID, {"status": 1, "logs": [_log(key), _log(b"", topics=[])]})
        execution = receipt.executions[0]
        assert execution.state == VMState.HALT
        assert execution.exception is None
        assert [n.event_name for n in execution.notifications] == ["WriteMessage", ""]

    def test_unknown_event(self, abi_gateway):
        topic = HexBytes(Web3.keccak(text="Transfer(address,address,uint256)"))
        notification = abi_gateway._to_notification(_log(b"", topics=[topic]))
        assert notification.event_name == Web3.to_hex(topic)
        assert notification.state == []

    def test_undecodable_payload(self, abi_gateway, caplog):
        with caplog.at_level(logging.WARNING):
            notification = abi_gateway._to_notification(_log(b"\x01"))
        assert notification.event_name == "WriteMessage"
        assert notification.state == []
        assert "Cannot decode WriteMessage" in caplog.text


class TestBlockSubscription:
    """The poller pushes every new block index in order."""

    def _collect(self, gateway, expected_count):
        blocks = []
        done = threading.Event()

        def callback(block):
            blocks.append(block)
            if len(blocks) >= expected_count:
                done.set()

        return blocks, done, callback

    def test_emits_head_then_new_blocks(self):
        gateway = _mock_gateway(head=5, poll_interval=0.01)
        blocks, done, callback = self._collect(gateway, 3)
        subscription = gateway.subscribe_new_blocks(callback)
        try:
            gateway.w3.eth.head = 7
            assert done.wait(5)
        finally:
            subscription.dispose()
        assert [b.index for b in blocks[:3]] == [5, 6, 7]
        assert blocks[0].hash == "0x" + (5).to_bytes(32, "big").hex()

    def test_subscribe_failure_raises(self):
        gateway = _mock_gateway()
        gateway.w3.eth.error = requests.exceptions.ConnectionError("refused")
        with pytest.raises(GatewayConnectionError):
            gateway.subscribe_new_blocks(MagicMock())

    def test_polling_errors_are_retried(self):
        gateway = _mock_gateway(head=1, poll_interval=0.01)
        blocks, done, callback = self._collect(gateway, 2)
        subscription = gateway.subscribe_new_blocks(callback)
        try:
            gateway.w3.eth.error = requests.exceptions.ConnectionError("refused")
            time.sleep(0.05)
            gateway.w3.eth.head = 2
            gateway.w3.eth.error = None
            assert done.wait(5)
        finally:
            subscription.dispose()
        assert [b.index for b in blocks[:2]] == [1, 2]

    def test_callback_error_does_not_stop_polling(self):
        gateway = _mock_gateway(head=0, poll_interval=0.01)
        seen = []
        done = threading.Event()

        def callback(block):
            seen.append(block.index)
            if block.index == 0:
                raise RuntimeError("subscriber bug")
            done.set()

        subscription = gateway.subscribe_new_blocks(callback)
        try:
            gateway.w3.eth.head = 1
            assert done.wait(5)
        finally:
            subscription.dispose()
        assert seen[:2] == [0, 1]

    def test_close_stops_polling(self):
        gateway = _mock_gateway(head=0, poll_interval=0.01)
        callback = MagicMock()
        subscription = gateway.subscribe_new_blocks(callback)
        gateway.close()
        assert subscription.disposed

        time.sleep(0.05)
        calls = callback.call_count
        gateway.w3.eth.head = 10
        time.sleep(0.05)
        assert callback.call_count == calls

    def test_dispose_joins_poller_and_forgets_subscription(self):
        gateway = _mock_gateway(head=0, poll_interval=0.01)
        subscription = gateway.subscribe_new_blocks(MagicMock())
        thread = gateway._subscriptions[subscription]
        assert thread.is_alive()

        subscription.dispose()

        assert not thread.is_alive()
        assert subscription not in gateway._subscriptions

    def test_close_joins_every_poller(self):
        gateway = _mock_gateway(head=0, poll_interval=0.01)
        for _ in range(3):
            gateway.subscribe_new_blocks(MagicMock())
        threads = list(gateway._subscriptions.values())

        gateway.close()

        assert not any(thread.is_alive() for thread in threads)
        assert gateway._subscriptions == {}


def test_owned_session_closed():
    gateway = Web3Gateway("http://localhost:8545")
    gateway.session = MagicMock(wraps=gateway.session)
    gateway.close()
    gateway.session.close.assert_called_once()


def test_caller_session_left_open():
    session = MagicMock(spec=requests.Session)
    gateway = Web3Gateway("http://localhost:8545", session=session)
    gateway.close()
    session.close.assert_not_called()


class TestJsonRpc:
    """Round trips through a real HTTP provider against a mocked node."""

    URL = "https://node.example.com"

    def _reply(self, **fields):
        def callback(request, context):
            return dict({"jsonrpc": "2.0", "id": request.json()["id"]}, **fields)
        return callback

    def test_block_count(self, requests_mock):
        requests_mock.post(self.URL, json=self._reply(result="0x29"))
        gateway = Web3Gateway(self.URL)
        try:
            assert gateway.get_block_count() == 42
        finally:
            gateway.close()
        assert requests_mock.last_request.json()["method"] == "eth_blockNumber"

    def test_node_error(self, requests_mock):
        requests_mock.post(self.URL, json=self._reply(error={"code": -32000, "message": "header not found"}))
        gateway = Web3Gateway(self.URL)
        try:
            with pytest.raises(GatewayResponseError) as exc_info:
                gateway.get_block_count()
        finally:
            gateway.close()
        assert exc_info.value.error_code == -32000
        assert "header not found" in str(exc_info.value)

    def test_request_timeout_setting(self, requests_mock):
        requests_mock.post(self.URL, json=self._reply(result="0x0"))
        gateway = Web3Gateway(self.URL, timeout=7)
        try:
            gateway.get_block_count()
        finally:
            gateway.close()
        assert requests_mock.last_request.timeout == 7

    def test_timeout_is_not_retried(self, requests_mock):
        requests_mock.post(self.URL, exc=requests.exceptions.ReadTimeout)
        gateway = Web3Gateway(self.URL, timeout=7)
        try:
            with pytest.raises(GatewayTimeoutError):
                gateway.get_block_count()
        finally:
            gateway.close()
        assert requests_mock.call_count == 1
