"""
Verifiable additively-homomorphic encryption for ballots
"""

from .elgamal_verifiable import (
    # Group and keys
    SAFE_PRIME_1024,
    SAFE_PRIME_2048,
    GroupParameters,
    PublicKey,
    SecretKey,
    DecryptionVerificationKey,

    # Ciphertexts and proofs
    Ciphertext,
    BitProof,
    EncryptionProof,
    EncryptionOpening,
    DecryptionProof,

    # Engine
    EncryptionEngine,
    VerifiableElGamal,

    # Exceptions
    ElGamalError,
    KeyMismatchError,
    DecryptionError,
    EncodingError,
)

__all__ = [
    'SAFE_PRIME_1024',
    'SAFE_PRIME_2048',
    'GroupParameters',
    'PublicKey',
    'SecretKey',
    'DecryptionVerificationKey',
    'Ciphertext',
    'BitProof',
    'EncryptionProof',
    'EncryptionOpening',
    'DecryptionProof',
    'EncryptionEngine',
    'VerifiableElGamal',
    'ElGamalError',
    'KeyMismatchError',
    'DecryptionError',
    'EncodingError',
]
