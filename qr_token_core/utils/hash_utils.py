"""
Hash utilities for QR token storage and log correlation.

Only the SHA-256 digest of an encoded token is ever persisted or compared;
the raw token string never leaves the request that carries it.
"""

import hashlib

HASH_PREFIX_LENGTH = 12


def hash_token(token: str) -> str:
    """
    Calculate the lookup hash for an encoded token.

    Args:
        token: Encoded token string exactly as presented

    Returns:
        Lowercase SHA-256 hex digest (64 characters)
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_prefix(token_hash: str) -> str:
    """Short, non-reversible handle of a token hash that is safe to log."""
    return token_hash[:HASH_PREFIX_LENGTH]
