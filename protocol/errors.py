"""
Protocol-level error taxonomy.

Structural errors abort the running phase. Verification failures are raised
only by producers checking their own output; consumers get ``False``.
Configuration errors live with the configuration (``config.ConfigurationError``).
"""


class VotingError(Exception):
    """Base exception for protocol errors"""
    pass


class StructuralError(VotingError):
    """Artifacts are inconsistent with each other or with the election"""
    pass


class ParticipantCountMismatch(StructuralError):
    """Number of public keys differs from the election capacity"""
    pass


class IndexOutOfRange(StructuralError):
    """Voter index or ballot option outside the election's range"""
    pass


class RootMismatch(StructuralError):
    """Recomputed Merkle root differs from the published root"""
    pass


class SizeMismatch(StructuralError):
    """Artifact or buffer length differs from the expected length"""
    pass


class TallyLengthMismatch(StructuralError):
    """Decrypted tally width differs from the ballot width"""
    pass


class CRSMismatch(StructuralError):
    """Circuit keys do not belong to the circuit or to each other"""
    pass


class MalformedArtifact(StructuralError):
    """Serialized artifact cannot be decoded"""
    pass


class FileMissing(VotingError):
    """Required artifact file does not exist"""
    pass


class VerificationFailed(VotingError):
    """Freshly produced artifact fails its own verification"""
    pass


class PhaseOrderError(VotingError):
    """Protocol phase invoked out of order"""
    pass
