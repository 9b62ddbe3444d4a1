"""
Anonymous-vote relation and reference proof engine.

``VotingCircuit`` describes the relation a voter proves: the leaf Hash(sk)
lies on a Merkle path to the published root, the serial number equals
Hash(eid || sk) and the ballot is one-hot. Assignments are vectors over the
BLS12-381 scalar field.

``ReferenceProofEngine`` compiles a circuit into a proving/verification key
pair. Proving checks the full assignment against the relation and attests to
the public part of the primary input, together with a caller-supplied
binding (the ballot ciphertext), with an Ed25519 key created at setup;
holders of the verification key alone cannot produce proofs. Holders of the
proving key are trusted not to attest unsatisfied statements, so adversarial
provers need a succinct-proof backend implementing ``ProofEngine``.
"""

import json
import logging
import struct
from dataclasses import dataclass
from typing import Dict, Protocol, Sequence, Tuple

import galois
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from utils.bits import Bits, as_bits, pack_bits
from utils.randomness import RandomSource
from zk.merkle import DigestHash, MerklePath

logger = logging.getLogger(__name__)

# ============================================================================
# SCALAR FIELD
# ============================================================================

BLS12_381_SCALAR_ORDER = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001

# 7 is the standard multiplicative generator of the BLS12-381 scalar field
ScalarField = galois.GF(BLS12_381_SCALAR_ORDER, primitive_element=7, verify=False)

RELATION_ID = "anonymous-vote/v1"

_PROVING_KEY_MAGIC = b"AVPK"
_VERIFICATION_KEY_MAGIC = b"AVVK"
_KEY_BODY = struct.Struct(">32sII32s")
SIGNATURE_SIZE = 64


class ZKError(Exception):
    """Base exception for proof engine errors"""
    pass


class CircuitCompilationError(ZKError):
    """Circuit parameters do not describe a valid relation"""
    pass


class TrustedSetupError(ZKError):
    """Proving and verification keys do not belong to the circuit"""
    pass


class ProofGenerationError(ZKError):
    """Proof generation failed"""
    pass


class UnsatisfiedRelation(ProofGenerationError):
    """Assignment does not satisfy the voting relation"""
    pass


class ProofEncodingError(ZKError):
    """Serialized key or proof has the wrong shape"""
    pass


def field_vector(values: Sequence[int]) -> galois.FieldArray:
    return ScalarField([int(v) for v in values])


# ============================================================================
# VOTING CIRCUIT
# ============================================================================


@dataclass(frozen=True)
class PrimaryInputLayout:
    """Fixed offsets of ballot | eid | serial number | root in the primary input"""
    msg_size: int
    eid_bits: int
    digest_bits: int

    @property
    def eid_offset(self) -> int:
        return self.msg_size

    @property
    def sn_offset(self) -> int:
        return self.eid_offset + self.eid_bits

    @property
    def rt_offset(self) -> int:
        return self.sn_offset + self.digest_bits

    @property
    def size(self) -> int:
        return self.rt_offset + self.digest_bits

    @property
    def public_size(self) -> int:
        return self.size - self.eid_offset

    def split_public(self, public: Sequence) -> Tuple[list, list, list]:
        """Split the exported primary input (eid | sn | rt) into its sub-fields"""
        if len(public) != self.public_size:
            raise ValueError(
                f"Public input has {len(public)} elements, expected {self.public_size}")
        public = list(public)
        sn_start = self.eid_bits
        rt_start = sn_start + self.digest_bits
        return public[:sn_start], public[sn_start:rt_start], public[rt_start:]

    @staticmethod
    def join_public(eid: Sequence, serial_number: Sequence, root: Sequence) -> list:
        return list(eid) + list(serial_number) + list(root)


@dataclass(frozen=True)
class CircuitWitness:
    ballot: Tuple[bool, ...]
    eid: Tuple[bool, ...]
    serial_number: Tuple[bool, ...]
    root: Tuple[bool, ...]
    secret_key: Tuple[bool, ...]
    path: MerklePath


class VotingCircuit:
    """The anonymous-vote relation for a fixed ballot width, eid length and tree depth"""

    def __init__(self, msg_size: int, eid_bits: int, tree_depth: int, hasher: DigestHash):
        if msg_size < 1:
            raise CircuitCompilationError(f"Ballot width must be positive, got {msg_size}")
        if eid_bits < 1:
            raise CircuitCompilationError(f"eid length must be positive, got {eid_bits}")
        if tree_depth < 0:
            raise CircuitCompilationError(f"Tree depth must be >= 0, got {tree_depth}")

        self.msg_size = msg_size
        self.eid_bits = eid_bits
        self.tree_depth = tree_depth
        self.hasher = hasher
        self.layout = PrimaryInputLayout(msg_size, eid_bits, hasher.digest_bits)

    @property
    def auxiliary_size(self) -> int:
        # address bits | co-path digests | secret key
        return self.tree_depth + (self.tree_depth + 1) * self.hasher.digest_bits

    @property
    def num_variables(self) -> int:
        return self.layout.size + self.auxiliary_size

    def describe(self) -> Dict:
        return {
            'relation': RELATION_ID,
            'msg_size': self.msg_size,
            'eid_bits': self.eid_bits,
            'tree_depth': self.tree_depth,
            'tree_arity': 2,
            'hash': self.hasher.name,
            'digest_bits': self.hasher.digest_bits,
            'constraints': ['merkle_path', 'serial_number', 'one_hot_ballot'],
        }

    def digest(self) -> bytes:
        h = hashes.Hash(hashes.SHA256())
        h.update(json.dumps(self.describe(), sort_keys=True).encode('utf-8'))
        return h.finalize()

    def primary_input(self, witness: CircuitWitness) -> galois.FieldArray:
        bits = (list(witness.ballot) + list(witness.eid)
                + list(witness.serial_number) + list(witness.root))
        return field_vector(bits)

    def auxiliary_input(self, witness: CircuitWitness) -> galois.FieldArray:
        bits = list(witness.path.address_bits())
        for node in witness.path.copath:
            bits.extend(node)
        bits.extend(witness.secret_key)
        return field_vector(bits)

    def assign(self, witness: CircuitWitness) -> Tuple[galois.FieldArray, galois.FieldArray]:
        if len(witness.ballot) != self.msg_size or witness.path.depth != self.tree_depth:
            raise UnsatisfiedRelation("Witness shape does not match the circuit")
        return self.primary_input(witness), self.auxiliary_input(witness)

    def is_satisfied(self, primary_input: Sequence, auxiliary_input: Sequence) -> bool:
        if len(primary_input) != self.layout.size:
            logger.debug("Primary input has the wrong length")
            return False
        if len(auxiliary_input) != self.auxiliary_size:
            logger.debug("Auxiliary input has the wrong length")
            return False
        try:
            primary = as_bits(primary_input)
            auxiliary = as_bits(auxiliary_input)
        except ValueError:
            logger.debug("Assignment contains non-boolean values")
            return False

        if sum(primary[:self.msg_size]) != 1:
            logger.debug("Ballot is not one-hot")
            return False

        eid, serial_number, root = self.layout.split_public(primary[self.msg_size:])

        d = self.hasher.digest_bits
        address_bits = auxiliary[:self.tree_depth]
        copath_start = self.tree_depth
        copath = [auxiliary[copath_start + i * d: copath_start + (i + 1) * d]
                  for i in range(self.tree_depth)]
        secret_key = auxiliary[copath_start + self.tree_depth * d:]

        leaf = self.hasher.hash_bits(secret_key)
        path = MerklePath.from_address_bits(address_bits, copath)
        if not path.verify(leaf, root, self.hasher):
            logger.debug("Merkle path does not reach the root")
            return False

        if self.hasher.hash_bits(eid + secret_key) != serial_number:
            logger.debug("Serial number does not match Hash(eid || sk)")
            return False

        return True


# ============================================================================
# KEYS AND PROOFS
# ============================================================================


@dataclass(frozen=True)
class VerificationKey:
    circuit_digest: bytes
    primary_input_size: int
    public_offset: int
    verifying_key: bytes

    @property
    def public_input_size(self) -> int:
        return self.primary_input_size - self.public_offset

    def to_bytes(self) -> bytes:
        return _VERIFICATION_KEY_MAGIC + _KEY_BODY.pack(
            self.circuit_digest, self.primary_input_size, self.public_offset, self.verifying_key)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'VerificationKey':
        return cls(*_unpack_key(data, _VERIFICATION_KEY_MAGIC, "verification key"))

    def fingerprint(self) -> bytes:
        h = hashes.Hash(hashes.SHA256())
        h.update(self.to_bytes())
        return h.finalize()


@dataclass(frozen=True)
class ProvingKey:
    circuit_digest: bytes
    primary_input_size: int
    public_offset: int
    signing_seed: bytes

    def to_bytes(self) -> bytes:
        return _PROVING_KEY_MAGIC + _KEY_BODY.pack(
            self.circuit_digest, self.primary_input_size, self.public_offset, self.signing_seed)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ProvingKey':
        return cls(*_unpack_key(data, _PROVING_KEY_MAGIC, "proving key"))

    def verification_key(self) -> VerificationKey:
        """The verification key produced alongside this proving key"""
        public = Ed25519PrivateKey.from_private_bytes(self.signing_seed).public_key()
        return VerificationKey(
            circuit_digest=self.circuit_digest,
            primary_input_size=self.primary_input_size,
            public_offset=self.public_offset,
            verifying_key=public.public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw))


def _unpack_key(data: bytes, magic: bytes, kind: str):
    if len(data) != len(magic) + _KEY_BODY.size or not data.startswith(magic):
        raise ProofEncodingError(f"Malformed {kind} ({len(data)} bytes)")
    return _KEY_BODY.unpack(data[len(magic):])


@dataclass(frozen=True)
class CircuitKeypair:
    proving_key: ProvingKey
    verification_key: VerificationKey


@dataclass(frozen=True)
class RelationProof:
    attestation: bytes

    def to_bytes(self) -> bytes:
        return self.attestation

    @classmethod
    def from_bytes(cls, data: bytes) -> 'RelationProof':
        if len(data) != SIGNATURE_SIZE:
            raise ProofEncodingError(
                f"Relation proof must be {SIGNATURE_SIZE} bytes, got {len(data)}")
        return cls(bytes(data))


# ============================================================================
# PROOF ENGINES
# ============================================================================


class ProofEngine(Protocol):
    name: str

    def generate(self, circuit: VotingCircuit) -> CircuitKeypair:
        ...

    def prove(self, proving_key: ProvingKey, circuit: VotingCircuit,
              primary_input: Sequence, auxiliary_input: Sequence,
              binding: bytes = b"") -> RelationProof:
        ...

    def verify(self, verification_key: VerificationKey, public_input: Sequence,
               proof: RelationProof, binding: bytes = b"") -> bool:
        ...


def _statement(circuit_digest: bytes, public_input: Bits, binding: bytes) -> bytes:
    return (RELATION_ID.encode('ascii') + b"|attest|" + circuit_digest
            + struct.pack(">I", len(public_input)) + pack_bits(public_input)
            + struct.pack(">I", len(binding)) + binding)


class ReferenceProofEngine:
    """Setup, proving and verification for ``VotingCircuit``"""

    name = "reference-attestation"

    def __init__(self, rng: RandomSource):
        self.rng = rng

    def generate(self, circuit: VotingCircuit) -> CircuitKeypair:
        """One-time setup producing the circuit's proving/verification key pair"""
        proving_key = ProvingKey(
            circuit_digest=circuit.digest(),
            primary_input_size=circuit.layout.size,
            public_offset=circuit.layout.eid_offset,
            signing_seed=self.rng.token_bytes(32))
        keypair = CircuitKeypair(proving_key, proving_key.verification_key())

        logger.info(
            f"Generated CRS for {RELATION_ID} "
            f"({circuit.num_variables} variables, depth {circuit.tree_depth})")
        return keypair

    def prove(self, proving_key: ProvingKey, circuit: VotingCircuit,
              primary_input: Sequence, auxiliary_input: Sequence,
              binding: bytes = b"") -> RelationProof:
        """Attest to the public input and ``binding`` once the assignment satisfies the relation"""
        if proving_key.circuit_digest != circuit.digest():
            raise TrustedSetupError("Proving key was generated for a different circuit")
        if not circuit.is_satisfied(primary_input, auxiliary_input):
            raise UnsatisfiedRelation("Assignment does not satisfy the voting relation")

        public = as_bits(list(primary_input)[proving_key.public_offset:])
        signer = Ed25519PrivateKey.from_private_bytes(proving_key.signing_seed)
        statement = _statement(proving_key.circuit_digest, public, bytes(binding))
        return RelationProof(signer.sign(statement))

    def verify(self, verification_key: VerificationKey, public_input: Sequence,
               proof: RelationProof, binding: bytes = b"") -> bool:
        if len(public_input) != verification_key.public_input_size:
            logger.warning(
                f"Public input has {len(public_input)} elements, "
                f"expected {verification_key.public_input_size}")
            return False
        try:
            public = as_bits(public_input)
        except ValueError:
            logger.warning("Public input contains non-boolean values")
            return False

        verifier = Ed25519PublicKey.from_public_bytes(verification_key.verifying_key)
        try:
            verifier.verify(proof.attestation,
                            _statement(verification_key.circuit_digest, public, bytes(binding)))
        except InvalidSignature:
            logger.warning("Relation proof does not verify")
            return False
        return True
