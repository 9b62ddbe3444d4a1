"""
Byte-oriented entry points for mobile and embedded callers.

Every argument and result is a serialized artifact. Results are returned as
``ByteBuffer`` objects owned by the caller from the moment the call returns;
the library keeps no reference to them. Callers that pre-allocate their own
storage copy results in with ``write_into``, which fails unless every
destination has exactly the producer's length.
"""

import logging
from typing import Optional, Sequence, Tuple

from config.config import ElectionPolicy
from protocol.codec import ArtifactCodec
from protocol.errors import SizeMismatch
from protocol.roles import ElectionInitializer, ProtocolSuite, VoteCaster, VoteVerifier, VoterKeyGenerator
from protocol.types import ElectionArtifacts, VoteArtifact
from utils.bits import as_bits
from utils.randomness import RandomSource, SecureRandomSource

logger = logging.getLogger(__name__)


class ByteBuffer:
    """Immutable, length-checked byte sequence"""

    __slots__ = ('_data',)

    def __init__(self, data: bytes):
        self._data = bytes(data)

    def __len__(self):
        return len(self._data)

    def __bytes__(self):
        return self._data

    def __eq__(self, other):
        if isinstance(other, ByteBuffer):
            return self._data == other._data
        if isinstance(other, (bytes, bytearray)):
            return self._data == bytes(other)
        return NotImplemented

    def __hash__(self):
        return hash(self._data)

    def __repr__(self):
        return f"ByteBuffer({len(self._data)} bytes)"

    def expect_length(self, length: int) -> 'ByteBuffer':
        if len(self._data) != length:
            raise SizeMismatch(f"Buffer holds {len(self._data)} bytes, expected {length}")
        return self

    def write_into(self, target: bytearray):
        """Copy into caller-allocated storage of exactly this length"""
        if len(target) != len(self._data):
            raise SizeMismatch(
                f"Buffer size {len(target)} does not match blob size {len(self._data)}")
        target[:] = self._data


def write_into(buffers: Sequence[ByteBuffer], targets: Sequence[bytearray]):
    """Copy several results at once; nothing is copied if any length differs"""
    if len(buffers) != len(targets):
        raise SizeMismatch(f"{len(buffers)} results but {len(targets)} destinations")
    for index, (buffer, target) in enumerate(zip(buffers, targets)):
        if len(buffer) != len(target):
            raise SizeMismatch(
                f"Destination {index} holds {len(target)} bytes, result has {len(buffer)}")
    for buffer, target in zip(buffers, targets):
        buffer.write_into(target)


class BoundaryAPI:
    def __init__(self, policy: Optional[ElectionPolicy] = None,
                 rng: Optional[RandomSource] = None):
        self.policy = policy or ElectionPolicy()
        self.suite = ProtocolSuite.from_policy(self.policy, rng or SecureRandomSource())
        self.codec = ArtifactCodec()

    def _key_bits(self, data: bytes):
        return self.codec.deserialize_fixed_bits(bytes(data), self.policy.digest_bits)

    def _key_bytes(self, bits) -> ByteBuffer:
        return ByteBuffer(self.codec.serialize_fixed_bits(bits, self.policy.digest_bits))

    def generate_voter_keypair(self) -> Tuple[ByteBuffer, ByteBuffer]:
        """Returns (public key, secret key)"""
        keypair = VoterKeyGenerator(self.suite).generate(voter_index=0)
        return self._key_bytes(keypair.public_key), self._key_bytes(keypair.secret_key)

    def init_election(self, tree_depth: int, eid_bits: int, public_keys: Sequence[bytes]
                      ) -> Tuple[ByteBuffer, ...]:
        """Returns (proving key, verification key, pk_eid, sk_eid, vk_eid, eid, rt)"""
        keys = [self._key_bits(key) for key in public_keys]
        election = ElectionInitializer(self.suite).initialize(tree_depth, eid_bits, keys)
        return (
            ByteBuffer(election.proving_key.to_bytes()),
            ByteBuffer(election.verification_key.to_bytes()),
            ByteBuffer(election.public_key.to_bytes()),
            ByteBuffer(election.secret_key.to_bytes()),
            ByteBuffer(election.eid_verification_key.to_bytes()),
            ByteBuffer(self.codec.serialize_bit_vector(election.eid)),
            ByteBuffer(self.codec.serialize_bit_vector(election.root)),
        )

    def _election(self, tree_depth: int, rt: bytes, eid: bytes, pk_eid: bytes,
                  verification_key: bytes,
                  proving_key: Optional[bytes] = None) -> ElectionArtifacts:
        codec = self.codec
        return ElectionArtifacts(
            tree_depth=tree_depth,
            proving_key=(codec.deserialize_proving_key(bytes(proving_key))
                         if proving_key is not None else None),
            verification_key=codec.deserialize_verification_key(bytes(verification_key)),
            public_key=codec.deserialize_public_key(bytes(pk_eid)),
            eid=tuple(codec.deserialize_bit_vector(bytes(eid))),
            root=tuple(codec.deserialize_bit_vector(bytes(rt))))

    def cast_vote(self, tree_depth: int, voter_idx: int, public_keys: Sequence[bytes],
                  rt: bytes, eid: bytes, secret_key: bytes, pk_eid: bytes,
                  proving_key: bytes, verification_key: bytes,
                  vote: Optional[int] = None) -> Tuple[ByteBuffer, ...]:
        """Returns (proof, primary input, ciphertext, serial number); a random option when ``vote`` is None"""
        election = self._election(tree_depth, rt, eid, pk_eid, verification_key, proving_key)
        if vote is None:
            vote = self.suite.rng.randbelow(self.policy.msg_size)

        artifact = VoteCaster(self.suite).cast_vote(
            voter_idx, self._key_bits(secret_key), election,
            [self._key_bits(key) for key in public_keys], vote)

        return (
            ByteBuffer(artifact.proof.to_bytes()),
            ByteBuffer(self.codec.serialize_scalar_vector(artifact.primary_input)),
            ByteBuffer(artifact.ciphertext.to_bytes()),
            ByteBuffer(self.codec.serialize_bit_vector(artifact.serial_number)),
        )

    def verify_vote(self, tree_depth: int, proof: bytes, primary_input: bytes,
                    ciphertext: bytes, rt: bytes, eid: bytes, pk_eid: bytes,
                    verification_key: bytes) -> bool:
        """Check a published ballot against the election's public artifacts"""
        codec = self.codec
        election = self._election(tree_depth, rt, eid, pk_eid, verification_key)
        layout = self.suite.layout(len(election.eid))

        public_input = codec.deserialize_scalar_vector(bytes(primary_input))
        try:
            vote_eid, serial_number, root = layout.split_public(public_input)
            vote_eid, serial_number, root = as_bits(vote_eid), as_bits(serial_number), as_bits(root)
        except ValueError as e:
            logger.warning(f"Primary input rejected: {e}")
            return False

        vote = VoteArtifact(
            voter_index=-1,
            proof=codec.deserialize_encryption_proof(bytes(proof)),
            primary_input=tuple(public_input),
            ciphertext=codec.deserialize_ciphertext(bytes(ciphertext)),
            serial_number=tuple(serial_number),
            eid=tuple(vote_eid),
            root=tuple(root))
        return VoteVerifier(self.suite).verify_vote(vote, election)
