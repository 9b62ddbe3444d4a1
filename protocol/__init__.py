"""
Anonymous voting protocol
Roles, artifact encodings and the byte-oriented boundary API
"""

from .errors import (
    VotingError,
    StructuralError,
    ParticipantCountMismatch,
    IndexOutOfRange,
    RootMismatch,
    SizeMismatch,
    TallyLengthMismatch,
    CRSMismatch,
    MalformedArtifact,
    FileMissing,
    VerificationFailed,
    PhaseOrderError,
)
from .types import VoterKeyPair, ElectionArtifacts, VoteArtifact, TallyResult
from .codec import ArtifactCodec
from .roles import (
    ProtocolSuite,
    VoterKeyGenerator,
    ElectionInitializer,
    VoteCaster,
    VoteVerifier,
    TallyAdmin,
    TallyVoter,
    build_tree,
    compute_serial_number,
    one_hot_ballot,
    aggregate_ciphertexts,
)
from .boundary import BoundaryAPI, ByteBuffer, write_into

__all__ = [
    # Errors
    'VotingError',
    'StructuralError',
    'ParticipantCountMismatch',
    'IndexOutOfRange',
    'RootMismatch',
    'SizeMismatch',
    'TallyLengthMismatch',
    'CRSMismatch',
    'MalformedArtifact',
    'FileMissing',
    'VerificationFailed',
    'PhaseOrderError',

    # Artifacts
    'VoterKeyPair',
    'ElectionArtifacts',
    'VoteArtifact',
    'TallyResult',
    'ArtifactCodec',

    # Roles
    'ProtocolSuite',
    'VoterKeyGenerator',
    'ElectionInitializer',
    'VoteCaster',
    'VoteVerifier',
    'TallyAdmin',
    'TallyVoter',
    'build_tree',
    'compute_serial_number',
    'one_hot_ballot',
    'aggregate_ciphertexts',

    # Boundary
    'BoundaryAPI',
    'ByteBuffer',
    'write_into',
]
