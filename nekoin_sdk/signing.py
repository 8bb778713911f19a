"""
Message signing and verification for the Nekoin SDK.

Messages are signed with the service wallet using EIP-191 personal
message signing, so any Ethereum wallet can produce or check the same
signatures. The envelope carries the signer's compressed public key;
verification checks the signature against that key and returns its
wallet address.
"""
import base64
import binascii
import logging
from typing import Any, Mapping, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from pydantic import ValidationError

from .ec_constants import (
    COMPRESSED_PUBLIC_KEY_SIZE, RECOVERY_IDS, SECP256K1_B, SECP256K1_P, SIGNATURE_SIZE
)
from .exceptions import InvalidSignatureError, MalformedEnvelopeError
from .models import SignedMessage

logger = logging.getLogger(__name__)


def _decode_field(envelope: SignedMessage, name: str, size: int) -> bytes:
    value = getattr(envelope, name)
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Envelope {name} is not valid base64: {e}")
    if len(raw) != size:
        raise MalformedEnvelopeError(f"Envelope {name} must be {size} bytes, got {len(raw)}")
    return raw


def _load_public_key(raw: bytes) -> keys.PublicKey:
    if raw[0] not in (2, 3):
        raise MalformedEnvelopeError(f"Public key has invalid prefix 0x{raw[0]:02x}")
    try:
        public_key = keys.PublicKey.from_compressed_bytes(raw)
    except (BadSignature, KeyValidationError, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid public key: {e}")

    point = public_key.to_bytes()
    x = int.from_bytes(point[:32], "big")
    y = int.from_bytes(point[32:], "big")
    if x >= SECP256K1_P or (y * y - x * x * x - SECP256K1_B) % SECP256K1_P != 0:
        raise MalformedEnvelopeError("Public key is not a point on secp256k1")
    return public_key


def parse_envelope(envelope: Union[SignedMessage, Mapping[str, Any]]) -> SignedMessage:
    """
    Build a SignedMessage from a decoded wire record.

    Raises:
        MalformedEnvelopeError: If a field is missing or has the wrong type
    """
    if isinstance(envelope, SignedMessage):
        return envelope
    if not isinstance(envelope, Mapping):
        raise MalformedEnvelopeError(f"Envelope must be a mapping, got {type(envelope).__name__}")
    try:
        return SignedMessage.model_validate(dict(envelope))
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise MalformedEnvelopeError(f"Invalid envelope fields: {', '.join(missing)}")


class SignatureCodec:
    """
    Signs messages with the service key and recovers signers' addresses.

    The private key is read-only after construction, so one codec can be
    shared between threads.
    """

    def __init__(self, private_key: Union[str, bytes]):
        """
        Args:
            private_key: secp256k1 private key (hex string or 32 bytes)

        Raises:
            ValueError: If the key is not a valid private key
        """
        try:
            self._account = Account.from_key(private_key)
        except (KeyValidationError, ValueError) as e:
            raise ValueError(f"Invalid private key: {e}") from e
        self._public_key = keys.PrivateKey(bytes(self._account.key)).public_key

    @property
    def address(self) -> str:
        """Wallet address of the service key."""
        return self._account.address

    @property
    def public_key(self) -> bytes:
        """Compressed public key of the service key."""
        return self._public_key.to_compressed_bytes()

    def sign(self, message: str) -> SignedMessage:
        """
        Sign a text message with the service key.

        Args:
            message: Text to sign (UTF-8 encoded before hashing)

        Returns:
            Signed message envelope
        """
        signed = self._account.sign_message(encode_defunct(text=message))
        signature = signed.r.to_bytes(32, "big") + signed.s.to_bytes(32, "big")
        return SignedMessage(
            message=message,
            recovery_id=signed.v,
            signature=base64.b64encode(signature).decode("ascii"),
            public_key=base64.b64encode(self.public_key).decode("ascii"),
        )

    @staticmethod
    def verify_and_recover_address(envelope: Union[SignedMessage, Mapping[str, Any]]) -> str:
        """
        Verify a signed message envelope and return the signer's address.

        The declared public key is not trusted: the signature must recover
        to exactly that key for the declared message and recovery id.

        Args:
            envelope: SignedMessage or its decoded wire record

        Returns:
            Checksum wallet address of the signer

        Raises:
            MalformedEnvelopeError: If a field is missing or badly encoded
            InvalidSignatureError: If the signature does not match
        """
        envelope = parse_envelope(envelope)
        signature = _decode_field(envelope, "signature", SIGNATURE_SIZE)
        public_key = _load_public_key(
            _decode_field(envelope, "public_key", COMPRESSED_PUBLIC_KEY_SIZE)
        )
        if envelope.recovery_id not in RECOVERY_IDS:
            raise MalformedEnvelopeError(f"Unsupported recovery id {envelope.recovery_id}")

        v = envelope.recovery_id if envelope.recovery_id >= 27 else envelope.recovery_id + 27
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")
        expected = public_key.to_checksum_address()

        try:
            recovered = Account.recover_message(encode_defunct(text=envelope.message), vrs=(v, r, s))
        except (BadSignature, KeyValidationError, ValueError) as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}")
        if recovered != expected:
            logger.debug(f"Signature recovered {recovered[:10]}…, declared key is {expected[:10]}…")
            raise InvalidSignatureError("Signature didn't match the message or public key")
        return expected
