"""
TrustWrapper Hashing

All digests are lowercase hexadecimal. Structured values are hashed over
their canonical JSON form so that field order never changes a digest.
"""

import hashlib
from typing import Any, Iterable, Union

from .canonicalization import canonicalize

SUPPORTED_HASH_ALGORITHMS = ("sha256", "sha3-256")


def hex_digest(data: Union[bytes, str], algorithm: str = "sha256") -> str:
    """Plain hex digest using sha256 or sha3-256."""
    if isinstance(data, str):
        data = data.encode('utf-8')

    if algorithm == "sha256":
        return hashlib.sha256(data).hexdigest()
    elif algorithm == "sha3-256":
        return hashlib.sha3_256(data).hexdigest()
    raise ValueError(f"Unsupported hash algorithm: {algorithm}")


def sha256_hash(data: Union[bytes, str]) -> str:
    """
    Compute a prefixed SHA-256 hash.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    return f"sha256:{hex_digest(data)}"


def object_hash(obj: Any, algorithm: str = "sha256") -> str:
    """Hex digest of the canonical JSON encoding of obj."""
    return hex_digest(canonicalize(obj), algorithm)


def warnings_hash(warnings: Iterable[str]) -> str:
    """
    Hash of a warning list in its delivered order.

    The list is capped, so order decides which warnings survive and is
    covered by the signature.
    """
    return object_hash(list(warnings))


def text_digest(text: str, length: int = 16) -> str:
    """Short digest of free text, used wherever raw text must not appear."""
    return hex_digest(text or "")[:length]


def verification_id(action: str, asset: str, timestamp: str, trust_score: int, risk_level: str) -> str:
    """
    Deterministic verification identifier.

    Derived from the decision's action/asset and the aggregate result only,
    never from amounts or reasoning.
    """
    return object_hash({
        "action": action,
        "asset": asset,
        "timestamp": timestamp,
        "trust_score": trust_score,
        "risk_level": risk_level,
    })[:16]
