"""
Attestation module for TrustWrapper.

An attestation is a signed statement over a result's public aggregate
fields plus a Pedersen commitment to the decision hash. The commitment
binds the attestation to one decision without revealing it; opening it
requires the randomness held by the caller. This is a commitment scheme,
not a zero-knowledge proof.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .crypto import Commitment, CryptographicProvider
from .results import Attestation, VerificationResult

COMMITMENT_GENERATOR = "pedersen-commitment-v1"


class AttestationGenerator(ABC):
    """Abstract interface for producing attestations over verification results."""

    @abstractmethod
    def generate(self, result: VerificationResult, decision_hash: str) -> Attestation:
        """
        Attest to a result for the decision with the given hash.

        Args:
            result: The unsigned verification result
            decision_hash: Hex digest of the sanitized decision

        Returns:
            Signed Attestation
        """
        pass

    @abstractmethod
    def verify(self, attestation: Attestation) -> bool:
        """Check the attestation's signature and generator tag."""
        pass


class CommitmentAttestationGenerator(AttestationGenerator):
    """Pedersen commitment to the decision hash, signed with the engine's Ed25519 key."""

    def __init__(
        self,
        provider: CryptographicProvider,
        version: str = "2.0.0",
        rules_hash: Optional[str] = None
    ):
        self.provider = provider
        self.version = version
        self.rules_hash = rules_hash

    def generate(self, result: VerificationResult, decision_hash: str) -> Attestation:
        commitment = self.provider.generate_commitment(decision_hash)
        statement = {
            "trust_score": result.trust_score,
            "risk_level": result.risk_level.value,
            "verified": result.verified,
            "timestamp": result.timestamp,
            "version": self.version,
            "rules_hash": self.rules_hash,
            "commitment": commitment.commitment,
            "committed_at": commitment.timestamp,
        }
        return Attestation(
            generator=COMMITMENT_GENERATOR,
            statement=statement,
            signature=self.provider.sign_statement(statement),
            opening=commitment.randomness,
        )

    def verify(self, attestation: Attestation) -> bool:
        if attestation.generator != COMMITMENT_GENERATOR:
            return False
        return self.provider.verify_statement(attestation.statement, attestation.signature)

    def open(self, attestation: Attestation, decision_hash: str, opening: Optional[str] = None) -> bool:
        """
        Check that the attestation commits to decision_hash.

        Uses the attestation's own opening unless one is passed in.
        """
        randomness = opening or attestation.opening
        if not randomness or not self.verify(attestation):
            return False
        commitment = Commitment(
            commitment=attestation.statement.get("commitment", ""),
            randomness=randomness,
            timestamp=attestation.statement.get("committed_at", 0),
        )
        return self.provider.verify_commitment(decision_hash, commitment)
