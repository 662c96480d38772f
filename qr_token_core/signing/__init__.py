"""Token signing and encoding."""

from .codec import TokenCodec, b64url_decode, b64url_encode
from .signer import SIGNATURE_BYTES, TokenSigner

__all__ = ["SIGNATURE_BYTES", "TokenCodec", "TokenSigner", "b64url_decode", "b64url_encode"]
