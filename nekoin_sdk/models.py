"""
Data models for the Nekoin SDK.
"""
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VMState(str, Enum):
    """Final state of a contract execution."""
    HALT = "HALT"
    FAULT = "FAULT"


class NewBlock(BaseModel):
    """New block event pushed by the block subscription"""
    index: int = Field(..., ge=0)
    hash: str


class Notification(BaseModel):
    """Event emitted by contract code during an execution"""
    contract: str
    event_name: str
    state: List[Any] = Field(default_factory=list)


class Execution(BaseModel):
    """One execution outcome inside an execution receipt"""
    state: VMState
    exception: Optional[str] = None
    notifications: List[Notification] = Field(default_factory=list)


class ExecutionReceipt(BaseModel):
    """Execution receipt of a transaction"""
    tx_id: str
    executions: List[Execution] = Field(default_factory=list)


class InvocationResult(BaseModel):
    """Result of a read-only contract invocation"""
    state: VMState
    stack: List[Any] = Field(default_factory=list)
    exception: Optional[str] = None

    @property
    def has_state_fault(self) -> bool:
        return self.state == VMState.FAULT


class SignedMessage(BaseModel):
    """
    Signed message envelope.

    The four fields travel together. ``signature`` is the base64 encoded
    64 byte ``r || s`` value and ``public_key`` the base64 encoded
    compressed secp256k1 point of the signer.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    recovery_id: int = Field(..., alias="recoveryId", ge=0, le=255)
    signature: str
    public_key: str = Field(..., alias="publicKey")
