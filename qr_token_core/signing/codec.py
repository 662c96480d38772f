"""
Codec for the externally visible QR token string.

Format::

    v1.<base64url(canonical payload)>.<base64url(signature)>

Segments are unpadded base64url. Decoding is strict: anything that is not
byte-for-byte what ``encode`` would have produced is rejected as malformed,
so a token has exactly one valid spelling and therefore exactly one hash.
"""

import base64
import binascii
import re
from typing import Tuple, Union

from ..constants import TOKEN_FORMAT_VERSION, Limits
from ..exceptions import MalformedTokenError
from ..schemas.token_schemas import TokenPayload
from .signer import SIGNATURE_BYTES

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_SEPARATOR = "."


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """
    Decode an unpadded base64url segment, rejecting non-canonical spellings.

    Raises:
        MalformedTokenError: On characters outside the alphabet, impossible
            lengths, or non-zero trailing bits
    """
    if not _SEGMENT_PATTERN.match(segment):
        raise MalformedTokenError("QR token segment contains invalid characters")

    padded = segment + "=" * (-len(segment) % 4)
    try:
        data = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError("QR token segment is not valid base64url", cause=e)

    if b64url_encode(data) != segment:
        raise MalformedTokenError("QR token segment is not canonically encoded")
    return data


class TokenCodec:
    """Encodes and decodes token strings. Knows nothing about persistence or keys."""

    version = TOKEN_FORMAT_VERSION

    def encode(self, payload: Union[TokenPayload, bytes], signature: bytes) -> str:
        raw = payload.to_canonical() if isinstance(payload, TokenPayload) else payload
        return _SEPARATOR.join([self.version, b64url_encode(raw), b64url_encode(signature)])

    def split(self, token: str) -> Tuple[bytes, bytes]:
        """
        Structural decode: return the signed payload bytes and the signature.

        The payload is not parsed, so a tampered payload still reaches the
        signature check and is reported as a signature failure.

        Raises:
            MalformedTokenError: If the token is not a well-formed v1 token
        """
        if not isinstance(token, str) or not token:
            raise MalformedTokenError("QR token is empty")
        if len(token) > Limits.MAX_TOKEN_LENGTH:
            raise MalformedTokenError("QR token is too long", length=len(token))

        parts = token.split(_SEPARATOR)
        if len(parts) != 3:
            raise MalformedTokenError("QR token must have three segments", segments=len(parts))

        version, payload_segment, signature_segment = parts
        if version != self.version:
            raise MalformedTokenError("Unsupported QR token version")

        payload = b64url_decode(payload_segment)
        signature = b64url_decode(signature_segment)

        if len(signature) != SIGNATURE_BYTES:
            raise MalformedTokenError(
                "QR token signature has the wrong length", signature_bytes=len(signature)
            )

        return payload, signature

    def decode(self, token: str) -> Tuple[TokenPayload, bytes]:
        """
        Full decode: split, then parse the canonical payload.

        Raises:
            MalformedTokenError: If the token or its payload is malformed
        """
        raw, signature = self.split(token)
        return TokenPayload.from_canonical(raw), signature
