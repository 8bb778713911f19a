"""
Configuration for the Nekoin SDK.
"""
import os
import re
import urllib.parse
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from .utils import base64_to_hex

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


def validate_rpc_url(url: str, env: Optional[Mapping[str, str]] = None) -> str:
    """
    Validate that an RPC URL is secure.

    Plain http is only accepted for loopback hosts or when
    NEKOIN_INSECURE_RPC=1 is set.

    Raises:
        ValueError: If the URL is invalid or insecure
    """
    env = os.environ if env is None else env
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Invalid RPC URL '{url}'")
    is_local = parsed.hostname in LOCAL_HOSTS
    if parsed.scheme != "https" and not is_local and env.get("NEKOIN_INSECURE_RPC") != "1":
        raise ValueError(
            f"RPC URL must use https:// for security (got: {parsed.scheme}://). "
            "Set NEKOIN_INSECURE_RPC=1 to allow HTTP for development."
        )
    return url


class NekoinSettings(BaseModel):
    """Settings needed to build a NekoinClient"""
    rpc_url: str
    contract_address: str
    key_prefix_base64: str
    private_key: str = Field(..., repr=False)
    rpc_timeout: float = Field(30, gt=0)
    poll_interval: float = Field(1.0, gt=0)
    max_workers: int = Field(8, ge=1)

    @field_validator("contract_address")
    @classmethod
    def _check_contract_address(cls, value: str) -> str:
        if not _ADDRESS_RE.match(value):
            raise ValueError("contract_address must be a 0x-prefixed 20 byte hex address")
        return value

    @field_validator("key_prefix_base64")
    @classmethod
    def _check_key_prefix(cls, value: str) -> str:
        base64_to_hex(value)
        return value

    @property
    def key_prefix_hex(self) -> str:
        return base64_to_hex(self.key_prefix_base64)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "NekoinSettings":
        """
        Load settings from environment variables.

        Required: NEKOIN_RPC_URL, NEKOIN_CONTRACT_ADDRESS,
        NEKOIN_KEY_PREFIX_BASE64, NEKOIN_PRIVATE_KEY.
        Optional: NEKOIN_RPC_TIMEOUT, NEKOIN_POLL_INTERVAL, NEKOIN_MAX_WORKERS.

        Raises:
            ValueError: If a required variable is missing
            pydantic.ValidationError: If a value is invalid
        """
        env = os.environ if env is None else env
        required = {
            "rpc_url": "NEKOIN_RPC_URL",
            "contract_address": "NEKOIN_CONTRACT_ADDRESS",
            "key_prefix_base64": "NEKOIN_KEY_PREFIX_BASE64",
            "private_key": "NEKOIN_PRIVATE_KEY",
        }
        missing = [name for name in required.values() if not env.get(name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        values = {field: env[name] for field, name in required.items()}
        optional = {
            "rpc_timeout": "NEKOIN_RPC_TIMEOUT",
            "poll_interval": "NEKOIN_POLL_INTERVAL",
            "max_workers": "NEKOIN_MAX_WORKERS",
        }
        for field, name in optional.items():
            if env.get(name):
                values[field] = env[name]
        return cls(**values)
