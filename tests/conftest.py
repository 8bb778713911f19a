"""
Pytest fixtures for the Nekoin SDK tests.
"""
import pytest

from nekoin_sdk.gateway.stub_transport import StubGateway
from nekoin_sdk.models import Execution, ExecutionReceipt, Notification, VMState

# Test constants
TEST_PRIV_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_OTHER_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TEST_OTHER_CONTRACT = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
TEST_TX_ID = "0x" + "ab" * 32
TEST_KEY_PREFIX = "0x6e656b6f"


def make_key(n: int) -> bytes:
    """32 byte content key whose last byte is n"""
    return n.to_bytes(32, "big")


def write_message(key: bytes, contract: str = TEST_CONTRACT) -> Notification:
    return Notification(contract=contract, event_name="WriteMessage", state=[key])


def make_receipt(*executions: Execution, tx_id: str = TEST_TX_ID) -> ExecutionReceipt:
    return ExecutionReceipt(tx_id=tx_id, executions=list(executions))


def halt(*notifications: Notification) -> Execution:
    return Execution(state=VMState.HALT, notifications=list(notifications))


def fault(*notifications: Notification, exception: str = "ABORT") -> Execution:
    return Execution(state=VMState.FAULT, exception=exception, notifications=list(notifications))


@pytest.fixture
def stub_gateway():
    """In-memory gateway reporting 100 blocks"""
    gateway = StubGateway(block_count=100)
    yield gateway
    gateway.close()

