"""
TrustWrapper Cryptographic Provider

Uses Ed25519 (RFC 8032) for result signing, XChaCha20-Poly1305 for local
storage encryption and edwards25519 group operations for Pedersen
commitments, all through PyNaCl/libsodium.

Signatures bind only aggregated, non-sensitive result fields. The raw
decision never enters a signed payload.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Union

import nacl.utils
from nacl.bindings import (
    crypto_core_ed25519_add,
    crypto_core_ed25519_is_valid_point,
    crypto_core_ed25519_scalar_reduce,
    crypto_scalarmult_ed25519_base_noclamp,
    crypto_scalarmult_ed25519_noclamp,
)
from nacl.exceptions import BadSignatureError, CryptoError
from nacl.secret import Aead
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import canonicalize
from .errors import ConfigurationError, CryptographicError, ValidationError
from .hashing import SUPPORTED_HASH_ALGORITHMS, hex_digest, object_hash, warnings_hash
from .results import Signature, VerificationResult

SIGNATURE_ALGORITHM = "ed25519"
DEFAULT_KDF_SALT = b"trustwrapper-v2-salt"
KDF_ITERATIONS = 100000
MAX_POW_ITERATIONS = 1000000
MAX_CLOCK_SKEW_MS = 5000
STORAGE_AAD = b"trustwrapper-local-storage"
PEDERSEN_H_SEED = b"trustwrapper/pedersen/generator-h"


@dataclass
class CryptoConfig:
    key_size: int = 256
    hash_algorithm: str = "sha256"
    signature_algorithm: str = SIGNATURE_ALGORITHM
    nonce_size: int = 16
    timestamp_validation: bool = True
    max_timestamp_age: int = 3600  # seconds

    def validate(self) -> None:
        if self.key_size != 256:
            raise ConfigurationError("key_size must be 256")
        if self.hash_algorithm not in SUPPORTED_HASH_ALGORITHMS:
            raise ConfigurationError(f"Unsupported hash algorithm: {self.hash_algorithm}")
        if self.signature_algorithm != SIGNATURE_ALGORITHM:
            raise ConfigurationError(f"Unsupported signature algorithm: {self.signature_algorithm}")
        if not 8 <= self.nonce_size <= 64:
            raise ConfigurationError("nonce_size must be within 8-64 bytes")
        if self.max_timestamp_age <= 0:
            raise ConfigurationError("max_timestamp_age must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_size": self.key_size,
            "hash_algorithm": self.hash_algorithm,
            "signature_algorithm": self.signature_algorithm,
            "nonce_size": self.nonce_size,
            "timestamp_validation": self.timestamp_validation,
            "max_timestamp_age": self.max_timestamp_age,
        }


@dataclass
class ProofOfWork:
    nonce: int
    hash: str
    difficulty: int
    compute_time_ms: float
    valid: bool


@dataclass
class Commitment:
    """Pedersen commitment C = v*G + r*H, hex encoded."""
    commitment: str
    randomness: str
    timestamp: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode('utf-8') if isinstance(data, str) else data


@lru_cache(maxsize=1)
def pedersen_generator_h() -> bytes:
    """
    Second generator H for Pedersen commitments.

    Hash-to-point by try-and-increment over a fixed public seed, so no one
    knows log_G(H). libsodium only accepts canonical points of the
    prime-order subgroup, which is exactly the set we want.
    """
    counter = 0
    while True:
        candidate = hashlib.sha512(PEDERSEN_H_SEED + counter.to_bytes(4, "big")).digest()[:32]
        if crypto_core_ed25519_is_valid_point(candidate):
            return candidate
        counter += 1


def _scalar(data: bytes) -> bytes:
    return crypto_core_ed25519_scalar_reduce(hashlib.sha512(data).digest())


class CryptographicProvider:
    """
    Signing, hashing, MAC, encryption, commitment and proof-of-work
    primitives for the verification engine.

    A fresh Ed25519 key is generated when none is supplied; pass
    ``signing_key`` (32-byte seed) to keep signatures verifiable across
    process restarts.
    """

    def __init__(self, config: Optional[CryptoConfig] = None, signing_key: Optional[bytes] = None):
        self.config = config or CryptoConfig()
        self.config.validate()

        try:
            self._signing_key = SigningKey(signing_key) if signing_key else SigningKey.generate()
        except (TypeError, ValueError, CryptoError):
            raise CryptographicError("Invalid Ed25519 signing key") from None

        self._verify_key = self._signing_key.verify_key
        self._storage_key = nacl.utils.random(Aead.KEY_SIZE)

    # ------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------

    @property
    def fingerprint(self) -> str:
        return self.key_fingerprint(bytes(self._verify_key))

    @staticmethod
    def key_fingerprint(verify_key: bytes) -> str:
        """First 16 hex characters of SHA-256 over the raw public key."""
        return hashlib.sha256(verify_key).hexdigest()[:16]

    def export_public_key(self) -> str:
        return base64.b64encode(bytes(self._verify_key)).decode('utf-8')

    # ------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------

    def signing_payload(self, result: VerificationResult, signed_at: int) -> bytes:
        """Canonical bytes covered by a result signature."""
        try:
            return canonicalize({
                "algorithm": SIGNATURE_ALGORITHM,
                "verified": result.verified,
                "trust_score": result.trust_score,
                "risk_level": result.risk_level,
                "recommendation": result.recommendation,
                "timestamp": result.timestamp,
                "signed_at": signed_at,
                "warnings_hash": warnings_hash(result.warnings),
                "details_hash": object_hash(result.details),
            })
        except (TypeError, ValueError) as e:
            raise CryptographicError(f"Result cannot be canonicalized: {e}") from None

    def sign_result(self, result: VerificationResult) -> Signature:
        signed_at = _now_ms()
        return self._sign(self.signing_payload(result, signed_at), signed_at)

    def verify_signature(
        self,
        result: VerificationResult,
        signature: Signature,
        verify_key: Optional[bytes] = None
    ) -> bool:
        """
        Verify a result signature.

        Returns False on algorithm mismatch, public-key fingerprint
        mismatch, expired or future-dated signatures, and bad signatures.
        """
        try:
            payload = self.signing_payload(result, signature.timestamp)
        except CryptographicError:
            return False
        return self._verify(payload, signature, verify_key)

    def sign_statement(self, statement: Dict[str, Any]) -> Signature:
        """Sign an arbitrary canonical JSON statement (attestations)."""
        signed_at = _now_ms()
        try:
            payload = canonicalize({"signed_at": signed_at, "statement": statement})
        except (TypeError, ValueError) as e:
            raise CryptographicError(f"Statement cannot be canonicalized: {e}") from None
        return self._sign(payload, signed_at)

    def verify_statement(
        self,
        statement: Dict[str, Any],
        signature: Signature,
        verify_key: Optional[bytes] = None
    ) -> bool:
        try:
            payload = canonicalize({"signed_at": signature.timestamp, "statement": statement})
        except (TypeError, ValueError):
            return False
        return self._verify(payload, signature, verify_key)

    def _sign(self, payload: bytes, signed_at: int) -> Signature:
        try:
            sig = self._signing_key.sign(payload).signature
        except CryptoError as e:
            raise CryptographicError(f"Signing failed: {e}") from None

        return Signature(
            algorithm=SIGNATURE_ALGORITHM,
            signature=base64.b64encode(sig).decode('utf-8'),
            public_key=self.fingerprint,
            timestamp=signed_at,
        )

    def _verify(self, payload: bytes, signature: Signature, verify_key: Optional[bytes]) -> bool:
        if signature.algorithm != SIGNATURE_ALGORITHM:
            return False

        if self.config.timestamp_validation:
            age_ms = _now_ms() - signature.timestamp
            if age_ms > self.config.max_timestamp_age * 1000:
                return False
            if age_ms < -MAX_CLOCK_SKEW_MS:
                return False

        try:
            key = VerifyKey(verify_key) if verify_key else self._verify_key
            if not hmac.compare_digest(self.key_fingerprint(bytes(key)), signature.public_key):
                return False
            raw = base64.b64decode(signature.signature, validate=True)
            key.verify(payload, raw)
            return True
        except (BadSignatureError, ValueError, TypeError, binascii.Error):
            return False

    # ------------------------------------------------------------
    # Hashing, nonces, MACs
    # ------------------------------------------------------------

    def generate_nonce(self) -> str:
        return secrets.token_hex(self.config.nonce_size)

    def generate_secure_id(self) -> str:
        return secrets.token_hex(16)

    def hash_data(self, data: Union[bytes, str, Dict[str, Any]]) -> str:
        if isinstance(data, dict):
            return object_hash(data, self.config.hash_algorithm)
        return hex_digest(data, self.config.hash_algorithm)

    def hash_decision(self, decision) -> str:
        """Digest of a (sanitized) Decision model over its canonical JSON form."""
        return self.hash_data(decision.model_dump(mode="json", by_alias=False))

    def _digestmod(self):
        return hashlib.sha256 if self.config.hash_algorithm == "sha256" else hashlib.sha3_256

    def generate_hmac(self, data: Union[bytes, str], key: Union[bytes, str]) -> str:
        return hmac.new(_to_bytes(key), _to_bytes(data), self._digestmod()).hexdigest()

    def verify_hmac(self, data: Union[bytes, str], mac: str, key: Union[bytes, str]) -> bool:
        expected = self.generate_hmac(data, key)
        return hmac.compare_digest(expected, mac)

    def derive_key(
        self,
        secret: Union[bytes, str],
        salt: Union[bytes, str] = DEFAULT_KDF_SALT,
        length: int = 32
    ) -> bytes:
        """PBKDF2-HMAC-SHA256 key derivation."""
        if not secret:
            raise ValidationError("secret", "cannot be empty")
        return hashlib.pbkdf2_hmac("sha256", _to_bytes(secret), _to_bytes(salt), KDF_ITERATIONS, dklen=length)

    # ------------------------------------------------------------
    # Local storage encryption
    # ------------------------------------------------------------

    def _aead(self, key: Optional[bytes]) -> Aead:
        key = key or self._storage_key
        if len(key) != Aead.KEY_SIZE:
            raise CryptographicError(f"Encryption key must be {Aead.KEY_SIZE} bytes")
        return Aead(key)

    def encrypt_data(self, data: Union[bytes, str], key: Optional[bytes] = None) -> str:
        """Encrypt with XChaCha20-Poly1305. Returns base64(nonce || ciphertext)."""
        box = self._aead(key)
        try:
            sealed = box.encrypt(_to_bytes(data), STORAGE_AAD)
        except CryptoError as e:
            raise CryptographicError(f"Encryption failed: {e}") from None
        return base64.b64encode(bytes(sealed)).decode('utf-8')

    def decrypt_data(self, token: str, key: Optional[bytes] = None) -> bytes:
        box = self._aead(key)
        try:
            raw = base64.b64decode(token, validate=True)
            return box.decrypt(raw, STORAGE_AAD)
        except (binascii.Error, ValueError, CryptoError):
            raise CryptographicError("Decryption failed: ciphertext invalid or tampered") from None

    # ------------------------------------------------------------
    # Proof of work
    # ------------------------------------------------------------

    def generate_proof_of_work(self, data: str, difficulty: int = 4) -> ProofOfWork:
        if not 1 <= difficulty <= 8:
            raise ValidationError("difficulty", "must be within 1-8")

        target = "0" * difficulty
        start = time.perf_counter()
        for nonce in range(MAX_POW_ITERATIONS):
            digest = hex_digest(f"{data}{nonce}")
            if digest.startswith(target):
                return ProofOfWork(
                    nonce=nonce,
                    hash=digest,
                    difficulty=difficulty,
                    compute_time_ms=(time.perf_counter() - start) * 1000,
                    valid=True,
                )

        return ProofOfWork(
            nonce=-1,
            hash="",
            difficulty=difficulty,
            compute_time_ms=(time.perf_counter() - start) * 1000,
            valid=False,
        )

    def verify_proof_of_work(self, data: str, nonce: int, difficulty: int) -> bool:
        if nonce < 0 or difficulty < 1:
            return False
        return hex_digest(f"{data}{nonce}").startswith("0" * difficulty)

    # ------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------

    def _commit(self, value: bytes, r: bytes) -> bytes:
        v_point = crypto_scalarmult_ed25519_base_noclamp(_scalar(value))
        r_point = crypto_scalarmult_ed25519_noclamp(r, pedersen_generator_h())
        return crypto_core_ed25519_add(v_point, r_point)

    def generate_commitment(self, value: Union[bytes, str]) -> Commitment:
        r = crypto_core_ed25519_scalar_reduce(nacl.utils.random(64))
        try:
            point = self._commit(_to_bytes(value), r)
        except CryptoError as e:
            raise CryptographicError(f"Commitment failed: {e}") from None
        return Commitment(commitment=point.hex(), randomness=r.hex(), timestamp=_now_ms())

    def verify_commitment(self, value: Union[bytes, str], commitment: Commitment) -> bool:
        try:
            r = bytes.fromhex(commitment.randomness)
            expected = self._commit(_to_bytes(value), r)
        except (ValueError, CryptoError):
            return False
        return hmac.compare_digest(expected.hex(), commitment.commitment)
