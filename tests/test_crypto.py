"""
TrustWrapper Cryptographic Provider Test Suite

Result signing and tamper detection, signature age limits, MACs, key
derivation, local encryption, proof of work, Pedersen commitments and
attestations.
"""

import base64
import dataclasses
import unittest
from unittest import mock

from nacl.signing import SigningKey

from trustwrapper import (
    CommitmentAttestationGenerator,
    CryptoConfig,
    CryptographicError,
    CryptographicProvider,
    ConfigurationError,
    RiskLevel,
    Recommendation,
    ValidationError,
    VerificationResult,
)
from trustwrapper.crypto import pedersen_generator_h


def make_result(**kwargs):
    fields = {
        "verified": True,
        "trust_score": 92,
        "risk_level": RiskLevel.LOW,
        "recommendation": Recommendation.APPROVED,
        "warnings": ["Position exceeds US disclosure threshold"],
        "timestamp": "2026-05-01T12:00:00.000Z",
        "details": {"verification_method": "local-v2"},
    }
    fields.update(kwargs)
    return VerificationResult(**fields)


class TestSigning(unittest.TestCase):
    """Ed25519 result signatures."""

    def setUp(self):
        self.provider = CryptographicProvider()

    def test_sign_verify_round_trip(self):
        """An unmodified result verifies."""
        result = make_result()
        signature = self.provider.sign_result(result)

        self.assertEqual(signature.algorithm, "ed25519")
        self.assertEqual(signature.public_key, self.provider.fingerprint)
        self.assertTrue(self.provider.verify_signature(result, signature))

    def test_any_field_change_breaks_signature(self):
        """Mutating any signed field invalidates the signature."""
        result = make_result()
        signature = self.provider.sign_result(result)

        tampered = [
            dataclasses.replace(result, verified=False),
            dataclasses.replace(result, trust_score=93),
            dataclasses.replace(result, risk_level=RiskLevel.MEDIUM),
            dataclasses.replace(result, recommendation=Recommendation.WARNING),
            dataclasses.replace(result, timestamp="2026-05-01T12:00:01.000Z"),
            dataclasses.replace(result, warnings=[]),
            dataclasses.replace(result, details={"verification_method": "other"}),
        ]
        for candidate in tampered:
            self.assertFalse(self.provider.verify_signature(candidate, signature))

    def test_warning_order_is_signed(self):
        """Reordering the warnings invalidates the signature."""
        result = make_result(warnings=["a", "b", "c"])
        signature = self.provider.sign_result(result)

        self.assertTrue(self.provider.verify_signature(result, signature))
        reordered = dataclasses.replace(result, warnings=list(reversed(result.warnings)))
        self.assertFalse(self.provider.verify_signature(reordered, signature))

    def test_algorithm_mismatch_rejected(self):
        """Signatures claiming another algorithm are rejected."""
        result = make_result()
        signature = dataclasses.replace(self.provider.sign_result(result), algorithm="hmac-sha256")

        self.assertFalse(self.provider.verify_signature(result, signature))

    def test_expired_signature_rejected(self):
        """Signatures older than max_timestamp_age are rejected."""
        provider = CryptographicProvider(CryptoConfig(max_timestamp_age=60))
        result = make_result()
        signature = provider.sign_result(result)

        with mock.patch("trustwrapper.crypto._now_ms", return_value=signature.timestamp + 61000):
            self.assertFalse(provider.verify_signature(result, signature))
        with mock.patch("trustwrapper.crypto._now_ms", return_value=signature.timestamp + 59000):
            self.assertTrue(provider.verify_signature(result, signature))

    def test_future_signature_rejected(self):
        """Signatures dated beyond the allowed clock skew are rejected."""
        result = make_result()
        signature = self.provider.sign_result(result)

        with mock.patch("trustwrapper.crypto._now_ms", return_value=signature.timestamp - 60000):
            self.assertFalse(self.provider.verify_signature(result, signature))

    def test_other_key_rejected(self):
        """A signature does not verify under another engine's key."""
        result = make_result()
        signature = CryptographicProvider().sign_result(result)

        self.assertFalse(self.provider.verify_signature(result, signature))

    def test_explicit_verify_key(self):
        """Verification with an exported public key works across providers."""
        seed = bytes(range(32))
        signer = CryptographicProvider(signing_key=seed)
        verifier = CryptographicProvider()
        result = make_result()

        signature = signer.sign_result(result)
        verify_key = bytes(SigningKey(seed).verify_key)

        self.assertTrue(verifier.verify_signature(result, signature, verify_key))

    def test_exported_public_key_verifies(self):
        """The exported base64 key verifies signatures from another provider."""
        result = make_result()
        signature = self.provider.sign_result(result)
        verify_key = base64.b64decode(self.provider.export_public_key())

        self.assertEqual(CryptographicProvider.key_fingerprint(verify_key), self.provider.fingerprint)
        self.assertTrue(CryptographicProvider().verify_signature(result, signature, verify_key))

    def test_invalid_signing_key(self):
        """A malformed seed is a cryptographic error."""
        with self.assertRaises(CryptographicError):
            CryptographicProvider(signing_key=b"short")

    def test_payload_excludes_raw_inputs(self):
        """Only aggregate fields and digests are signed."""
        payload = self.provider.signing_payload(make_result(), 0).decode()

        self.assertNotIn("disclosure threshold", payload)
        self.assertNotIn("local-v2", payload)


class TestHashingAndMacs(unittest.TestCase):
    """Nonces, hashes, HMACs and key derivation."""

    def setUp(self):
        self.provider = CryptographicProvider()

    def test_nonces_unique(self):
        """Nonces are random and sized by configuration."""
        nonces = {self.provider.generate_nonce() for _ in range(50)}

        self.assertEqual(len(nonces), 50)
        self.assertEqual(len(next(iter(nonces))), 32)

    def test_secure_ids_unique(self):
        """Secure ids are 32 hex characters and never repeat."""
        ids = {self.provider.generate_secure_id() for _ in range(50)}

        self.assertEqual(len(ids), 50)
        self.assertTrue(all(len(i) == 32 for i in ids))

    def test_hash_data_is_order_independent(self):
        """Mappings hash over their canonical form."""
        self.assertEqual(
            self.provider.hash_data({"a": 1, "b": 2}),
            self.provider.hash_data({"b": 2, "a": 1}),
        )

    def test_hmac_round_trip(self):
        """HMACs verify with the right key only."""
        mac = self.provider.generate_hmac("payload", "key-1")

        self.assertTrue(self.provider.verify_hmac("payload", mac, "key-1"))
        self.assertFalse(self.provider.verify_hmac("payload", mac, "key-2"))
        self.assertFalse(self.provider.verify_hmac("payload!", mac, "key-1"))

    def test_derive_key(self):
        """Key derivation is deterministic per secret and salt."""
        a = self.provider.derive_key("secret")
        b = self.provider.derive_key("secret")
        c = self.provider.derive_key("secret", salt="other")

        self.assertEqual(a, b)
        self.assertNotEqual(a, c)
        self.assertEqual(len(a), 32)

    def test_derive_key_requires_secret(self):
        """Empty secrets are rejected."""
        with self.assertRaises(ValidationError):
            self.provider.derive_key("")

    def test_unsupported_hash_algorithm(self):
        """Configuration is validated at construction."""
        with self.assertRaises(ConfigurationError):
            CryptographicProvider(CryptoConfig(hash_algorithm="md5"))


class TestEncryption(unittest.TestCase):
    """XChaCha20-Poly1305 local storage encryption."""

    def setUp(self):
        self.provider = CryptographicProvider()

    def test_round_trip(self):
        """Encrypted data decrypts to the original bytes."""
        token = self.provider.encrypt_data("audit record")

        self.assertEqual(self.provider.decrypt_data(token), b"audit record")

    def test_tampered_ciphertext(self):
        """Any modification is detected."""
        token = self.provider.encrypt_data("audit record")
        flipped = ("A" if token[10] != "A" else "B")
        tampered = token[:10] + flipped + token[11:]

        with self.assertRaises(CryptographicError):
            self.provider.decrypt_data(tampered)

    def test_wrong_key_size(self):
        """Explicit keys must be 32 bytes."""
        with self.assertRaises(CryptographicError):
            self.provider.encrypt_data("x", key=b"too-short")

    def test_explicit_key(self):
        """A caller-held key decrypts across providers."""
        key = self.provider.derive_key("storage-secret")
        token = self.provider.encrypt_data("record", key=key)

        self.assertEqual(CryptographicProvider().decrypt_data(token, key=key), b"record")


class TestProofOfWorkAndCommitments(unittest.TestCase):
    """Proof of work and Pedersen commitments."""

    def setUp(self):
        self.provider = CryptographicProvider()

    def test_proof_of_work(self):
        """A found nonce verifies at its difficulty."""
        proof = self.provider.generate_proof_of_work("agent-1", difficulty=2)

        self.assertTrue(proof.valid)
        self.assertTrue(proof.hash.startswith("00"))
        self.assertTrue(self.provider.verify_proof_of_work("agent-1", proof.nonce, 2))
        self.assertFalse(self.provider.verify_proof_of_work("agent-2", -1, 2))

    def test_difficulty_bounds(self):
        """Difficulty outside 1-8 is rejected."""
        with self.assertRaises(ValidationError):
            self.provider.generate_proof_of_work("x", difficulty=9)

    def test_commitment_round_trip(self):
        """A commitment opens only to its own value."""
        commitment = self.provider.generate_commitment("decision-hash")

        self.assertTrue(self.provider.verify_commitment("decision-hash", commitment))
        self.assertFalse(self.provider.verify_commitment("other-hash", commitment))

    def test_commitments_are_hiding(self):
        """The same value commits differently each time."""
        a = self.provider.generate_commitment("value")
        b = self.provider.generate_commitment("value")

        self.assertNotEqual(a.commitment, b.commitment)

    def test_generator_h_is_stable(self):
        """The second generator is derived deterministically."""
        self.assertEqual(pedersen_generator_h(), pedersen_generator_h())
        self.assertEqual(len(pedersen_generator_h()), 32)


class TestAttestation(unittest.TestCase):
    """Signed commitment attestations."""

    def setUp(self):
        self.provider = CryptographicProvider()
        self.generator = CommitmentAttestationGenerator(self.provider, rules_hash="abc123")

    def test_generate_and_verify(self):
        """An attestation verifies and opens to its decision hash."""
        attestation = self.generator.generate(make_result(), "decision-hash")

        self.assertTrue(self.generator.verify(attestation))
        self.assertTrue(self.generator.open(attestation, "decision-hash"))
        self.assertFalse(self.generator.open(attestation, "other-hash"))
        self.assertEqual(attestation.statement["trust_score"], 92)
        self.assertEqual(attestation.statement["rules_hash"], "abc123")

    def test_opening_not_serialized(self):
        """The commitment randomness stays out of the serialized form."""
        attestation = self.generator.generate(make_result(), "decision-hash")

        self.assertNotIn("opening", attestation.to_dict())
        self.assertNotIn(attestation.opening, str(attestation.to_dict()))

    def test_tampered_statement(self):
        """Changing the statement breaks the signature."""
        attestation = self.generator.generate(make_result(), "decision-hash")
        attestation.statement["trust_score"] = 10

        self.assertFalse(self.generator.verify(attestation))


if __name__ == "__main__":
    unittest.main(verbosity=2)
