"""
HMAC-SHA256 signer for QR token payloads.

The key is validated and captured once at construction; the signer holds
no other state and is safe to share between threads.
"""

import hashlib
import hmac
from typing import Optional, Union

from pydantic import SecretStr

from ..config import AppConfig, get_config
from ..constants import SIGNING_KEY_PLACEHOLDER_MARKERS, Limits
from ..exceptions import SigningUnavailableError
from ..utils.logger import get_logger

SIGNATURE_BYTES = hashlib.sha256().digest_size


class TokenSigner:
    """Signs and verifies canonical payload bytes with a single secret key."""

    def __init__(self, key: Union[str, bytes, SecretStr, None]):
        """
        Args:
            key: Signing key; text keys are UTF-8 encoded

        Raises:
            SigningUnavailableError: If the key is absent, shorter than the
                minimum length, or still a template placeholder
        """
        self._key = self._validate_key(key)
        get_logger().info("QR token signer initialized", extra={"key_bytes": len(self._key)})

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "TokenSigner":
        config = config or get_config()
        return cls(config.security.qr_signing_key)

    @staticmethod
    def _validate_key(key: Union[str, bytes, SecretStr, None]) -> bytes:
        if isinstance(key, SecretStr):
            key = key.get_secret_value()
        if key is None or len(key) == 0:
            raise SigningUnavailableError("QR signing key is not configured")

        key_bytes = key.encode("utf-8") if isinstance(key, str) else bytes(key)

        if len(key_bytes) < Limits.MIN_SIGNING_KEY_BYTES:
            raise SigningUnavailableError(
                f"QR signing key must be at least {Limits.MIN_SIGNING_KEY_BYTES} bytes",
                key_bytes=len(key_bytes),
            )

        upper = key_bytes.decode("utf-8", errors="ignore").upper()
        if any(marker in upper for marker in SIGNING_KEY_PLACEHOLDER_MARKERS):
            raise SigningUnavailableError("QR signing key is a placeholder value")

        return key_bytes

    def sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()

    def verify(self, payload: bytes, signature: bytes) -> bool:
        """Constant-time check of ``signature`` against the payload."""
        return hmac.compare_digest(self.sign(payload), signature)

    def __repr__(self) -> str:
        return "TokenSigner(key='***')"
