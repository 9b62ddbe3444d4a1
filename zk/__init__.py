"""
Zero-Knowledge Proof Module for the anonymous voting protocol
Voting relation, Merkle membership and the reference proof engine
"""

from .merkle import DigestHash, MerklePath, MerkleTree, MerkleError
from .zk_proofs import (
    # Core classes
    ScalarField,
    PrimaryInputLayout,
    CircuitWitness,
    VotingCircuit,
    ProvingKey,
    VerificationKey,
    CircuitKeypair,
    RelationProof,
    ProofEngine,
    ReferenceProofEngine,
    field_vector,

    # Exceptions
    ZKError,
    CircuitCompilationError,
    TrustedSetupError,
    ProofGenerationError,
    UnsatisfiedRelation,
    ProofEncodingError,
)

__all__ = [
    # Classes
    'DigestHash',
    'MerklePath',
    'MerkleTree',
    'ScalarField',
    'PrimaryInputLayout',
    'CircuitWitness',
    'VotingCircuit',
    'ProvingKey',
    'VerificationKey',
    'CircuitKeypair',
    'RelationProof',
    'ProofEngine',
    'ReferenceProofEngine',
    'field_vector',

    # Exceptions
    'MerkleError',
    'ZKError',
    'CircuitCompilationError',
    'TrustedSetupError',
    'ProofGenerationError',
    'UnsatisfiedRelation',
    'ProofEncodingError',
]
