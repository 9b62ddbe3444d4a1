"""Artifacts produced and consumed by the protocol phases."""

from dataclasses import dataclass
from typing import Optional, Tuple

from elgamal.elgamal_verifiable import (
    Ciphertext,
    DecryptionProof,
    DecryptionVerificationKey,
    EncryptionProof,
    PublicKey,
    SecretKey,
)
from zk.zk_proofs import CircuitKeypair, ProvingKey, VerificationKey

BitTuple = Tuple[bool, ...]


@dataclass(frozen=True)
class VoterKeyPair:
    index: int
    secret_key: BitTuple
    public_key: BitTuple

    def __repr__(self):
        return f"VoterKeyPair(index={self.index}, secret_key=<redacted>)"


@dataclass(frozen=True)
class ElectionArtifacts:
    """
    Everything ``init_admin`` produces. Holders that do not need a key see None:
    ``secret_key`` outside the tally authority, ``proving_key`` for auditors.
    """
    tree_depth: int
    verification_key: VerificationKey
    public_key: PublicKey
    eid: BitTuple
    root: BitTuple
    proving_key: Optional[ProvingKey] = None
    eid_verification_key: Optional[DecryptionVerificationKey] = None
    secret_key: Optional[SecretKey] = None

    @property
    def participants(self) -> int:
        return 2 ** self.tree_depth

    @property
    def circuit_keys(self) -> CircuitKeypair:
        return CircuitKeypair(self.proving_key, self.verification_key)

    def public_view(self) -> 'ElectionArtifacts':
        return ElectionArtifacts(
            tree_depth=self.tree_depth,
            proving_key=self.proving_key,
            verification_key=self.verification_key,
            public_key=self.public_key,
            eid_verification_key=self.eid_verification_key,
            eid=self.eid,
            root=self.root)


@dataclass(frozen=True)
class VoteArtifact:
    """A published ballot; ``primary_input`` is eid | serial number | root"""
    voter_index: int
    proof: EncryptionProof
    primary_input: Tuple[int, ...]
    ciphertext: Ciphertext
    serial_number: BitTuple
    eid: BitTuple
    root: BitTuple


@dataclass(frozen=True)
class TallyResult:
    plaintext: Tuple[int, ...]
    decryption_proof: DecryptionProof

    @property
    def total_votes(self) -> int:
        return sum(self.plaintext)
