"""
Binary encodings of protocol artifacts and their file layout.

Engine objects (keys, ciphertexts, proofs) pack their own fields; this
module frames scalar and bit vectors, names the files each phase reads and
writes, and assembles the concatenated verifier inputs.
"""

import logging
import struct
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from config.config import ArtifactPaths
from elgamal.elgamal_verifiable import (
    Ciphertext,
    DecryptionProof,
    DecryptionVerificationKey,
    ElGamalError,
    EncryptionProof,
    PublicKey,
    SecretKey,
)
from protocol.errors import FileMissing, MalformedArtifact, SizeMismatch
from protocol.types import ElectionArtifacts, TallyResult, VoteArtifact, VoterKeyPair
from utils.bits import Bits, as_bits, pack_bits, unpack_bits
from zk.zk_proofs import (
    BLS12_381_SCALAR_ORDER,
    PrimaryInputLayout,
    ProvingKey,
    VerificationKey,
    ZKError,
    field_vector,
)

logger = logging.getLogger(__name__)

SCALAR_SIZE = 32
_COUNT = struct.Struct(">I")

T = TypeVar('T')


class ArtifactCodec:
    """Serializes artifacts and persists them under ``paths`` without overwriting"""

    def __init__(self, paths: Optional[ArtifactPaths] = None):
        self.paths = paths

    # ------------------------------------------------------------------
    # Vector encodings
    # ------------------------------------------------------------------

    @staticmethod
    def serialize_scalar_vector(values: Sequence[int]) -> bytes:
        """Element count followed by 32-byte big-endian scalar field elements"""
        if len(values) == 0:
            return _COUNT.pack(0)
        try:
            elements = field_vector(values)
        except (TypeError, ValueError) as e:
            raise MalformedArtifact(f"Value outside the scalar field: {e}") from e
        return _COUNT.pack(len(values)) + b"".join(
            int(v).to_bytes(SCALAR_SIZE, 'big') for v in elements)

    @staticmethod
    def deserialize_scalar_vector(data: bytes) -> List[int]:
        if len(data) < _COUNT.size:
            raise SizeMismatch(f"Scalar vector needs a {_COUNT.size}-byte header")
        count = _COUNT.unpack_from(data)[0]
        expected = _COUNT.size + count * SCALAR_SIZE
        if len(data) != expected:
            raise SizeMismatch(
                f"Scalar vector of {count} elements needs {expected} bytes, got {len(data)}")

        values = [int.from_bytes(data[offset:offset + SCALAR_SIZE], 'big')
                  for offset in range(_COUNT.size, expected, SCALAR_SIZE)]
        if any(v >= BLS12_381_SCALAR_ORDER for v in values):
            raise MalformedArtifact("Scalar vector element outside the field")
        return values

    @classmethod
    def serialize_bit_vector(cls, bits: Sequence[bool]) -> bytes:
        return cls.serialize_scalar_vector([int(bool(b)) for b in bits])

    @classmethod
    def deserialize_bit_vector(cls, data: bytes) -> Bits:
        try:
            return as_bits(cls.deserialize_scalar_vector(data))
        except ValueError as e:
            raise MalformedArtifact(f"Bit vector holds a non-bit value: {e}") from e

    @staticmethod
    def serialize_fixed_bits(bits: Sequence[bool], width: int) -> bytes:
        """Pack exactly ``width`` bits big-endian, zero-padding the last octet"""
        if len(bits) != width:
            raise SizeMismatch(f"Expected {width} bits, got {len(bits)}")
        return pack_bits([bool(b) for b in bits])

    @staticmethod
    def deserialize_fixed_bits(data: bytes, width: int) -> Bits:
        expected = (width + 7) // 8
        if len(data) != expected:
            raise SizeMismatch(f"{width}-bit value needs {expected} bytes, got {len(data)}")
        bits = unpack_bits(data)
        if any(bits[width:]):
            raise MalformedArtifact(f"{width}-bit value has non-zero padding bits")
        return bits[:width]

    @classmethod
    def serialize_255_bit_array(cls, bits: Sequence[bool]) -> bytes:
        # One zero bit of padding brings 255 bits to 32 octets
        return cls.serialize_fixed_bits(bits, 255)

    @classmethod
    def deserialize_255_bit_array(cls, data: bytes) -> Bits:
        return cls.deserialize_fixed_bits(data, 255)

    # ------------------------------------------------------------------
    # Engine objects
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(parse: Callable[[bytes], T], data: bytes, kind: str) -> T:
        try:
            return parse(data)
        except (ZKError, ElGamalError) as e:
            raise MalformedArtifact(f"Cannot decode {kind}: {e}") from e

    def deserialize_proving_key(self, data: bytes) -> ProvingKey:
        return self._decode(ProvingKey.from_bytes, data, "proving key")

    def deserialize_verification_key(self, data: bytes) -> VerificationKey:
        return self._decode(VerificationKey.from_bytes, data, "verification key")

    def deserialize_public_key(self, data: bytes) -> PublicKey:
        return self._decode(PublicKey.from_bytes, data, "pk_eid")

    def deserialize_secret_key(self, data: bytes) -> SecretKey:
        return self._decode(SecretKey.from_bytes, data, "sk_eid")

    def deserialize_eid_verification_key(self, data: bytes) -> DecryptionVerificationKey:
        return self._decode(DecryptionVerificationKey.from_bytes, data, "vk_eid")

    def deserialize_ciphertext(self, data: bytes) -> Ciphertext:
        return self._decode(Ciphertext.from_bytes, data, "ciphertext")

    def deserialize_encryption_proof(self, data: bytes) -> EncryptionProof:
        return self._decode(EncryptionProof.from_bytes, data, "encryption proof")

    def deserialize_decryption_proof(self, data: bytes) -> DecryptionProof:
        return self._decode(DecryptionProof.from_bytes, data, "decryption proof")

    # ------------------------------------------------------------------
    # Verifier inputs
    # ------------------------------------------------------------------

    @classmethod
    def verifier_input(cls, proof: EncryptionProof, verification_key: VerificationKey,
                       public_key: PublicKey, ciphertext: Ciphertext,
                       primary_input: Sequence[int]) -> bytes:
        """proof | vk_crs | pk_eid | ciphertext | primary input"""
        return b"".join([
            proof.to_bytes(),
            verification_key.to_bytes(),
            public_key.to_bytes(),
            ciphertext.to_bytes(),
            cls.serialize_scalar_vector(primary_input),
        ])

    @classmethod
    def verifier_input_chunked(cls, proof: EncryptionProof, verification_key: VerificationKey,
                               public_key: PublicKey, ciphertext: Ciphertext,
                               eid: Sequence[bool], serial_number: Sequence[bool],
                               root: Sequence[bool]) -> bytes:
        """proof | vk_crs | pk_eid | ciphertext | eid | serial number | root"""
        return b"".join([
            proof.to_bytes(),
            verification_key.to_bytes(),
            public_key.to_bytes(),
            ciphertext.to_bytes(),
            cls.serialize_bit_vector(eid),
            cls.serialize_bit_vector(serial_number),
            cls.serialize_bit_vector(root),
        ])

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def write_obj(self, path: Path, data: bytes) -> bool:
        """Write ``data`` unless ``path`` already exists; returns whether it was written"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, 'xb') as f:
                f.write(data)
        except FileExistsError:
            logger.warning(f"File {path} exists and won't be overwritten.")
            return False
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return True

    def read_obj(self, path: Path) -> bytes:
        path = Path(path)
        if not path.exists():
            raise FileMissing(f"Required artifact {path} does not exist")
        return path.read_bytes()

    # init_voter

    def write_voter_keypair(self, keypair: VoterKeyPair) -> Dict[str, bool]:
        width = len(keypair.secret_key)
        p = self.paths
        return {
            'public_key': self.write_obj(
                p.per_voter(p.voter_public_key, keypair.index),
                self.serialize_fixed_bits(keypair.public_key, width)),
            'secret_key': self.write_obj(
                p.per_voter(p.voter_secret_key, keypair.index),
                self.serialize_fixed_bits(keypair.secret_key, width)),
        }

    def read_voter_public_key(self, index: int, width: int) -> Bits:
        return self.deserialize_fixed_bits(
            self.read_obj(self.paths.per_voter(self.paths.voter_public_key, index)), width)

    def read_voter_secret_key(self, index: int, width: int) -> Bits:
        return self.deserialize_fixed_bits(
            self.read_obj(self.paths.per_voter(self.paths.voter_secret_key, index)), width)

    def read_voters_public_keys(self, count: int, width: int) -> List[Bits]:
        keys: List[Optional[Bits]] = [None] * count
        for index in range(count):
            keys[index] = self.read_voter_public_key(index, width)
        return keys

    # init_admin

    def write_election(self, election: ElectionArtifacts) -> Dict[str, bool]:
        p = self.paths
        written = {
            'proving_key': self.write_obj(p.singleton(p.proving_key), election.proving_key.to_bytes()),
            'verification_key': self.write_obj(
                p.singleton(p.verification_key), election.verification_key.to_bytes()),
            'public_key': self.write_obj(p.singleton(p.public_key), election.public_key.to_bytes()),
            'eid_verification_key': self.write_obj(
                p.singleton(p.eid_verification_key), election.eid_verification_key.to_bytes()),
            'eid': self.write_obj(p.singleton(p.eid), self.serialize_bit_vector(election.eid)),
            'root': self.write_obj(p.singleton(p.root), self.serialize_bit_vector(election.root)),
        }
        if election.secret_key is not None:
            written['secret_key'] = self.write_obj(
                p.singleton(p.secret_key), election.secret_key.to_bytes())
        return written

    def read_election(self, tree_depth: int, include_secret: bool = False,
                      include_proving_key: bool = True) -> ElectionArtifacts:
        """Load the published election; auditors skip the proving key, only the tally authority reads sk_eid"""
        p = self.paths
        secret_key = proving_key = None
        if include_secret:
            secret_key = self.deserialize_secret_key(self.read_obj(p.singleton(p.secret_key)))
        if include_proving_key:
            proving_key = self.deserialize_proving_key(self.read_obj(p.singleton(p.proving_key)))

        return ElectionArtifacts(
            tree_depth=tree_depth,
            proving_key=proving_key,
            verification_key=self.deserialize_verification_key(
                self.read_obj(p.singleton(p.verification_key))),
            public_key=self.deserialize_public_key(self.read_obj(p.singleton(p.public_key))),
            eid_verification_key=self.deserialize_eid_verification_key(
                self.read_obj(p.singleton(p.eid_verification_key))),
            eid=tuple(self.deserialize_bit_vector(self.read_obj(p.singleton(p.eid)))),
            root=tuple(self.deserialize_bit_vector(self.read_obj(p.singleton(p.root)))),
            secret_key=secret_key)

    # vote

    def write_vote(self, vote: VoteArtifact, election: ElectionArtifacts) -> Dict[str, bool]:
        p = self.paths
        i = vote.voter_index
        return {
            'proof': self.write_obj(p.per_voter(p.proof, i), vote.proof.to_bytes()),
            'primary_input': self.write_obj(
                p.per_voter(p.primary_input, i), self.serialize_scalar_vector(vote.primary_input)),
            'cipher_text': self.write_obj(p.per_voter(p.cipher_text, i), vote.ciphertext.to_bytes()),
            'serial_number': self.write_obj(
                p.per_voter(p.serial_number, i), self.serialize_bit_vector(vote.serial_number)),
            'verifier_input': self.write_obj(p.verifier(i), self.verifier_input(
                vote.proof, election.verification_key, election.public_key,
                vote.ciphertext, vote.primary_input)),
            'verifier_input_chunked': self.write_obj(p.verifier_chunked(i), self.verifier_input_chunked(
                vote.proof, election.verification_key, election.public_key,
                vote.ciphertext, vote.eid, vote.serial_number, vote.root)),
        }

    def read_vote(self, index: int, layout: PrimaryInputLayout) -> VoteArtifact:
        p = self.paths
        primary_input = self.deserialize_scalar_vector(self.read_obj(p.per_voter(p.primary_input, index)))
        try:
            eid, serial_number, root = layout.split_public(primary_input)
        except ValueError as e:
            raise SizeMismatch(f"Primary input of voter {index}: {e}") from e

        try:
            eid, serial_number, root = as_bits(eid), as_bits(serial_number), as_bits(root)
        except ValueError as e:
            raise MalformedArtifact(
                f"Primary input of voter {index} holds a non-bit value: {e}") from e

        stored_sn = self.deserialize_bit_vector(self.read_obj(p.per_voter(p.serial_number, index)))
        if stored_sn != serial_number:
            raise MalformedArtifact(
                f"Serial number file of voter {index} disagrees with its primary input")

        return VoteArtifact(
            voter_index=index,
            proof=self.deserialize_encryption_proof(self.read_obj(p.per_voter(p.proof, index))),
            primary_input=tuple(primary_input),
            ciphertext=self.read_ciphertext(index),
            serial_number=tuple(stored_sn),
            eid=tuple(eid),
            root=tuple(root))

    def read_ciphertext(self, index: int) -> Ciphertext:
        return self.deserialize_ciphertext(
            self.read_obj(self.paths.per_voter(self.paths.cipher_text, index)))

    def read_ciphertexts(self, count: int) -> List[Ciphertext]:
        ciphertexts: List[Optional[Ciphertext]] = [None] * count
        for index in range(count):
            ciphertexts[index] = self.read_ciphertext(index)
        return ciphertexts

    # tally

    def write_tally(self, result: TallyResult) -> Dict[str, bool]:
        p = self.paths
        return {
            'voting_result': self.write_obj(
                p.singleton(p.voting_result), self.serialize_scalar_vector(result.plaintext)),
            'decryption_proof': self.write_obj(
                p.singleton(p.decryption_proof), result.decryption_proof.to_bytes()),
        }

    def read_tally(self) -> TallyResult:
        p = self.paths
        return TallyResult(
            plaintext=tuple(self.deserialize_scalar_vector(self.read_obj(p.singleton(p.voting_result)))),
            decryption_proof=self.deserialize_decryption_proof(
                self.read_obj(p.singleton(p.decryption_proof))))
