"""
Verifiable exponential ElGamal over safe-prime subgroups.

A ballot coordinate m in {0, 1} is encrypted as (g^r, g^m h^r), so
ciphertexts multiply into encryptions of the per-option vote counts.

Proof of correct encryption: for every coordinate a disjunctive
Chaum-Pedersen proof that it encrypts 0 or 1, plus a Chaum-Pedersen proof
that the product of all coordinates encrypts 1, plus the proof engine's
relation proof binding the ballot to the voter's eid, serial number and root.
The relation proof attests to the ciphertext bytes and the Fiat-Shamir
challenge covers the public key, the relation statement, the ciphertext and
every commitment, so neither proof can be moved onto another ciphertext.
``rerandomize`` therefore needs the ``EncryptionOpening``: it multiplies in
an encryption of zero and proves the result afresh with randomness r + s.

Proof of correct decryption: per coordinate, a Chaum-Pedersen proof that
log_g(h) == log_alpha(beta / g^m).
"""

import logging
import struct
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from cryptography.hazmat.primitives import hashes

from utils.bits import as_bits, pack_bits
from utils.randomness import RandomSource
from zk.zk_proofs import (
    SIGNATURE_SIZE,
    CircuitKeypair,
    ProofEngine,
    ProofEncodingError,
    RelationProof,
    VerificationKey,
    VotingCircuit,
)

logger = logging.getLogger(__name__)

# ============================================================================
# GROUP PARAMETERS
# ============================================================================

# RFC 3526 2048-bit MODP group (safe prime p = 2q + 1)
SAFE_PRIME_2048 = int("""
32317006071311007300338913926423828248817941241140239112842009751400741706634354222619689417363569347117901737909704191754605873209195028853758986185622153212175412514901774520270235796078236248884246189477587641105928646099411723245426622522193230540919037680524235519125679715870117001058055877651038861847280257976054903569732561526167081339361799541336476559160368317896729073178384589680639671900977202194168647225871031411336429319536193471636533209717077448227988588565369208645296636077250268955505928362751121174096972998068410554359584866583291642136218231078990999448652468262416972035911852507045361090559
""".replace('\n', ''))

# RFC 2409 1024-bit MODP group, used by tests and quick demos
SAFE_PRIME_1024 = int("""
179769313486231590770839156793787453197860296048756011706444423684197180216158519368947833795864925541502180565485980503646440548199239100050792877003355816639229553136239076508735759914822574862575007425302077447712589550957937778424442426617334727629299387668709205606050270810842907692932019128194467627007
""".replace('\n', ''))

# 4 = 2^2 is a quadratic residue, so it generates the subgroup of order q
SUBGROUP_GENERATOR = 4

_SAFE_PRIMES = {1024: SAFE_PRIME_1024, 2048: SAFE_PRIME_2048}


class ElGamalError(Exception):
    """Base exception for encryption engine errors"""
    pass


class KeyMismatchError(ElGamalError):
    """Keys do not belong together or to the circuit's CRS"""
    pass


class DecryptionError(ElGamalError):
    """Ciphertext cannot be decrypted within the plaintext bound"""
    pass


class EncodingError(ElGamalError):
    """Serialized key, ciphertext or proof has the wrong shape"""
    pass


class _Reader:
    """Sequential big-endian reader over a serialized artifact"""

    def __init__(self, data: bytes, kind: str):
        self.data = bytes(data)
        self.kind = kind
        self.offset = 0

    def take(self, count: int) -> bytes:
        end = self.offset + count
        if count < 0 or end > len(self.data):
            raise EncodingError(f"Truncated {self.kind}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def magic(self, expected: bytes):
        if self.take(len(expected)) != expected:
            raise EncodingError(f"Not a {self.kind}")

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def integer(self, size: int) -> int:
        return int.from_bytes(self.take(size), 'big')

    def done(self):
        if self.offset != len(self.data):
            raise EncodingError(
                f"{len(self.data) - self.offset} trailing bytes after {self.kind}")


def _encode_int(value: int, size: int) -> bytes:
    return value.to_bytes(size, 'big')


@dataclass(frozen=True)
class GroupParameters:
    p: int
    g: int = SUBGROUP_GENERATOR

    @property
    def q(self) -> int:
        return (self.p - 1) // 2

    @property
    def element_size(self) -> int:
        return (self.p.bit_length() + 7) // 8

    @classmethod
    def for_bits(cls, bits: int) -> 'GroupParameters':
        if bits not in _SAFE_PRIMES:
            raise ElGamalError(f"No safe-prime group of {bits} bits")
        return cls(_SAFE_PRIMES[bits])

    def is_element(self, x: int) -> bool:
        return 1 <= x < self.p and pow(x, self.q, self.p) == 1

    def is_exponent(self, x: int) -> bool:
        return 0 <= x < self.q

    def random_exponent(self, rng: RandomSource) -> int:
        return 1 + rng.randbelow(self.q - 1)

    def encode(self, value: int) -> bytes:
        return _encode_int(value, self.element_size)

    def to_bytes(self) -> bytes:
        return struct.pack(">H", self.element_size) + self.encode(self.p) + self.encode(self.g)

    @classmethod
    def read(cls, reader: _Reader) -> 'GroupParameters':
        size = reader.u16()
        group = cls(reader.integer(size), reader.integer(size))
        if group.element_size != size:
            raise EncodingError("Group modulus does not match its declared size")
        return group


# ============================================================================
# KEYS, CIPHERTEXTS AND PROOFS
# ============================================================================


@dataclass(frozen=True)
class PublicKey:
    group: GroupParameters
    h: int
    msg_size: int
    crs_fingerprint: bytes

    MAGIC = b"EGPK"

    def to_bytes(self) -> bytes:
        return (self.MAGIC + self.group.to_bytes() + self.group.encode(self.h)
                + struct.pack(">I", self.msg_size) + self.crs_fingerprint)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PublicKey':
        reader = _Reader(data, "encryption public key")
        reader.magic(cls.MAGIC)
        group = GroupParameters.read(reader)
        key = cls(group, reader.integer(group.element_size), reader.u32(), reader.take(32))
        reader.done()
        return key


@dataclass(frozen=True)
class SecretKey:
    group: GroupParameters
    x: int
    msg_size: int

    MAGIC = b"EGSK"

    def to_bytes(self) -> bytes:
        return (self.MAGIC + self.group.to_bytes() + self.group.encode(self.x)
                + struct.pack(">I", self.msg_size))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'SecretKey':
        reader = _Reader(data, "encryption secret key")
        reader.magic(cls.MAGIC)
        group = GroupParameters.read(reader)
        key = cls(group, reader.integer(group.element_size), reader.u32())
        reader.done()
        return key

    def __repr__(self):
        return f"SecretKey(msg_size={self.msg_size}, x=<redacted>)"


@dataclass(frozen=True)
class DecryptionVerificationKey:
    """Public data needed to check decryption proofs (vk_eid)"""
    group: GroupParameters
    h: int
    msg_size: int
    crs_fingerprint: bytes

    MAGIC = b"EGVK"

    def to_bytes(self) -> bytes:
        return (self.MAGIC + self.group.to_bytes() + self.group.encode(self.h)
                + struct.pack(">I", self.msg_size) + self.crs_fingerprint)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'DecryptionVerificationKey':
        reader = _Reader(data, "decryption verification key")
        reader.magic(cls.MAGIC)
        group = GroupParameters.read(reader)
        key = cls(group, reader.integer(group.element_size), reader.u32(), reader.take(32))
        reader.done()
        return key


@dataclass(frozen=True)
class Ciphertext:
    pairs: Tuple[Tuple[int, int], ...]
    element_size: int

    MAGIC = b"EGCT"

    def __len__(self):
        return len(self.pairs)

    def to_bytes(self) -> bytes:
        out = [self.MAGIC, struct.pack(">IH", len(self.pairs), self.element_size)]
        for alpha, beta in self.pairs:
            out.append(_encode_int(alpha, self.element_size))
            out.append(_encode_int(beta, self.element_size))
        return b"".join(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Ciphertext':
        reader = _Reader(data, "ciphertext")
        reader.magic(cls.MAGIC)
        count = reader.u32()
        size = reader.u16()
        pairs = tuple((reader.integer(size), reader.integer(size)) for _ in range(count))
        reader.done()
        return cls(pairs, size)


@dataclass(frozen=True)
class BitProof:
    """Disjunctive Chaum-Pedersen proof that one coordinate encrypts 0 or 1"""
    commitments: Tuple[int, int, int, int]  # a0, b0, a1, b1
    challenges: Tuple[int, int]
    responses: Tuple[int, int]


@dataclass(frozen=True)
class EncryptionProof:
    relation_proof: RelationProof
    bit_proofs: Tuple[BitProof, ...]
    sum_commitment: Tuple[int, int]
    sum_response: int
    element_size: int

    MAGIC = b"EGEP"

    def to_bytes(self) -> bytes:
        size = self.element_size
        out = [self.MAGIC, self.relation_proof.to_bytes(),
               struct.pack(">IH", len(self.bit_proofs), size)]
        for proof in self.bit_proofs:
            for value in proof.commitments + proof.challenges + proof.responses:
                out.append(_encode_int(value, size))
        for value in self.sum_commitment + (self.sum_response,):
            out.append(_encode_int(value, size))
        return b"".join(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'EncryptionProof':
        reader = _Reader(data, "encryption proof")
        reader.magic(cls.MAGIC)
        try:
            relation_proof = RelationProof.from_bytes(reader.take(SIGNATURE_SIZE))
        except ProofEncodingError as e:
            raise EncodingError(str(e)) from e
        count = reader.u32()
        size = reader.u16()
        bit_proofs = []
        for _ in range(count):
            values = [reader.integer(size) for _ in range(8)]
            bit_proofs.append(BitProof(tuple(values[:4]), tuple(values[4:6]), tuple(values[6:])))
        sum_commitment = (reader.integer(size), reader.integer(size))
        sum_response = reader.integer(size)
        reader.done()
        return cls(relation_proof, tuple(bit_proofs), sum_commitment, sum_response, size)


@dataclass(frozen=True)
class EncryptionOpening:
    """Ballot and per-coordinate randomness behind a ciphertext; kept by the voter"""
    ballot: Tuple[int, ...]
    randomness: Tuple[int, ...]

    def __repr__(self):
        return f"EncryptionOpening(width={len(self.ballot)}, randomness=<redacted>)"


@dataclass(frozen=True)
class DecryptionProof:
    commitments: Tuple[Tuple[int, int], ...]
    responses: Tuple[int, ...]
    element_size: int

    MAGIC = b"EGDP"

    def to_bytes(self) -> bytes:
        size = self.element_size
        out = [self.MAGIC, struct.pack(">IH", len(self.responses), size)]
        for (a, b), z in zip(self.commitments, self.responses):
            out.extend((_encode_int(a, size), _encode_int(b, size), _encode_int(z, size)))
        return b"".join(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'DecryptionProof':
        reader = _Reader(data, "decryption proof")
        reader.magic(cls.MAGIC)
        count = reader.u32()
        size = reader.u16()
        commitments = []
        responses = []
        for _ in range(count):
            commitments.append((reader.integer(size), reader.integer(size)))
            responses.append(reader.integer(size))
        reader.done()
        return cls(tuple(commitments), tuple(responses), size)


# ============================================================================
# ENGINE
# ============================================================================


class EncryptionEngine(Protocol):
    def generate_keypair(self, keypair: CircuitKeypair, msg_size: int):
        ...

    def encrypt(self, public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit,
                primary_input: Sequence, auxiliary_input: Sequence):
        ...

    def rerandomize(self, ciphertext: Ciphertext, opening: EncryptionOpening,
                    public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit,
                    primary_input: Sequence, auxiliary_input: Sequence):
        ...

    def verify_encryption(self, ciphertext: Ciphertext, public_key: PublicKey,
                          verification_key: VerificationKey, proof: EncryptionProof,
                          public_input: Sequence) -> bool:
        ...

    def aggregate(self, ciphertexts: Sequence[Ciphertext], group: GroupParameters) -> Ciphertext:
        ...

    def decrypt(self, ciphertext: Ciphertext, secret_key: SecretKey,
                verification_key: DecryptionVerificationKey, crs: VerificationKey,
                max_value: int):
        ...

    def verify_decryption(self, ciphertext: Ciphertext, plaintext: Sequence[int],
                          verification_key: DecryptionVerificationKey, crs: VerificationKey,
                          proof: DecryptionProof) -> bool:
        ...


def _challenge(group: GroupParameters, label: bytes, blobs: Sequence[bytes],
               values: Sequence[int]) -> int:
    h = hashes.Hash(hashes.SHA256())
    h.update(label)
    for blob in blobs:
        h.update(struct.pack(">I", len(blob)))
        h.update(blob)
    for value in values:
        h.update(group.encode(value))
    return int.from_bytes(h.finalize(), 'big') % group.q


def _public_statement(public_input: Sequence) -> bytes:
    bits = as_bits(public_input)
    return struct.pack(">I", len(bits)) + pack_bits(bits)


class VerifiableElGamal:
    """Exponential ElGamal with proofs of correct encryption and decryption"""

    name = "exponential-elgamal"

    def __init__(self, group: GroupParameters, proof_engine: ProofEngine, rng: RandomSource):
        self.group = group
        self.proof_engine = proof_engine
        self.rng = rng

    def generate_keypair(self, keypair: CircuitKeypair, msg_size: int
                         ) -> Tuple[PublicKey, SecretKey, DecryptionVerificationKey]:
        """Generate (pk_eid, sk_eid, vk_eid) bound to the circuit's CRS"""
        if keypair.proving_key.verification_key() != keypair.verification_key:
            raise KeyMismatchError("Proving and verification keys are not a pair")
        if msg_size < 1:
            raise ElGamalError(f"Plaintext width must be positive, got {msg_size}")

        group = self.group
        x = group.random_exponent(self.rng)
        h = pow(group.g, x, group.p)
        fingerprint = keypair.verification_key.fingerprint()

        logger.info(f"Generated {group.p.bit_length()}-bit encryption keypair for {msg_size} options")
        return (PublicKey(group, h, msg_size, fingerprint),
                SecretKey(group, x, msg_size),
                DecryptionVerificationKey(group, h, msg_size, fingerprint))

    def _encryption_challenge(self, public_key: PublicKey, public_input: Sequence,
                              ciphertext: Ciphertext, relation_proof: RelationProof,
                              bit_commitments: Sequence[int],
                              sum_commitment: Tuple[int, int]) -> int:
        return _challenge(
            public_key.group, b"anonymous-vote/encrypt",
            [public_key.to_bytes(), _public_statement(public_input), ciphertext.to_bytes(),
             relation_proof.to_bytes()],
            list(bit_commitments) + list(sum_commitment))

    def _check_keys(self, public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit):
        if public_key.crs_fingerprint != keypair.verification_key.fingerprint():
            raise KeyMismatchError("Encryption key is bound to a different CRS")
        if circuit.msg_size != public_key.msg_size:
            raise KeyMismatchError(
                f"Circuit ballot width {circuit.msg_size} != key width {public_key.msg_size}")

    def _prove_ballot(self, public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit,
                      primary_input: Sequence, auxiliary_input: Sequence,
                      opening: EncryptionOpening) -> Tuple[Ciphertext, EncryptionProof]:
        group = public_key.group
        p, q, g, h = group.p, group.q, group.g, public_key.h
        primary = [int(v) for v in primary_input]
        ballot = primary[:public_key.msg_size]
        public_input = primary[keypair.proving_key.public_offset:]
        if tuple(ballot) != opening.ballot or len(opening.randomness) != len(ballot):
            raise ElGamalError("Opening does not belong to this ballot")

        randomness = opening.randomness
        pairs = tuple((pow(g, r, p), pow(g, m, p) * pow(h, r, p) % p)
                      for m, r in zip(ballot, randomness))
        ciphertext = Ciphertext(pairs, group.element_size)

        relation_proof = self.proof_engine.prove(
            keypair.proving_key, circuit, primary_input, auxiliary_input,
            binding=ciphertext.to_bytes())

        pending = []
        bit_commitments = []
        for (alpha, beta), m in zip(pairs, ballot):
            w = group.random_exponent(self.rng)
            c_sim = self.rng.randbelow(q)
            z_sim = self.rng.randbelow(q)
            sim = 1 - m
            a = [0, 0]
            b = [0, 0]
            a[m] = pow(g, w, p)
            b[m] = pow(h, w, p)
            a[sim] = pow(g, z_sim, p) * pow(alpha, -c_sim, p) % p
            shifted = beta * pow(g, -sim, p) % p
            b[sim] = pow(h, z_sim, p) * pow(shifted, -c_sim, p) % p
            pending.append((m, w, c_sim, z_sim, a, b))
            bit_commitments.extend((a[0], b[0], a[1], b[1]))

        w_sum = group.random_exponent(self.rng)
        sum_commitment = (pow(g, w_sum, p), pow(h, w_sum, p))

        e = self._encryption_challenge(
            public_key, public_input, ciphertext, relation_proof, bit_commitments, sum_commitment)

        bit_proofs = []
        for (m, w, c_sim, z_sim, a, b), r in zip(pending, randomness):
            c = [0, 0]
            z = [0, 0]
            c[m] = (e - c_sim) % q
            z[m] = (w + c[m] * r) % q
            c[1 - m] = c_sim
            z[1 - m] = z_sim
            bit_proofs.append(BitProof((a[0], b[0], a[1], b[1]), (c[0], c[1]), (z[0], z[1])))

        sum_response = (w_sum + e * sum(randomness)) % q

        proof = EncryptionProof(relation_proof, tuple(bit_proofs), sum_commitment,
                                sum_response, group.element_size)
        return ciphertext, proof

    def encrypt(self, public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit,
                primary_input: Sequence, auxiliary_input: Sequence
                ) -> Tuple[Ciphertext, EncryptionProof, EncryptionOpening]:
        """Encrypt the ballot part of the primary input and prove it well formed"""
        self._check_keys(public_key, keypair, circuit)

        group = public_key.group
        ballot = tuple(int(v) for v in list(primary_input)[:public_key.msg_size])
        opening = EncryptionOpening(
            ballot, tuple(group.random_exponent(self.rng) for _ in ballot))

        ciphertext, proof = self._prove_ballot(
            public_key, keypair, circuit, primary_input, auxiliary_input, opening)
        return ciphertext, proof, opening

    def rerandomize(self, ciphertext: Ciphertext, opening: EncryptionOpening,
                    public_key: PublicKey, keypair: CircuitKeypair, circuit: VotingCircuit,
                    primary_input: Sequence, auxiliary_input: Sequence
                    ) -> Tuple[Ciphertext, EncryptionProof, EncryptionOpening]:
        """Multiply in a fresh encryption of zero and prove the result with randomness r + s"""
        self._check_keys(public_key, keypair, circuit)
        if len(ciphertext) != public_key.msg_size or len(opening.randomness) != len(ciphertext):
            raise ElGamalError("Ciphertext and opening do not match the public key")

        group = public_key.group
        p, q, g, h = group.p, group.q, group.g, public_key.h
        shifts = [group.random_exponent(self.rng) for _ in ciphertext.pairs]

        pairs = tuple((alpha * pow(g, s, p) % p, beta * pow(h, s, p) % p)
                      for (alpha, beta), s in zip(ciphertext.pairs, shifts))
        refreshed = EncryptionOpening(
            opening.ballot, tuple((r + s) % q for r, s in zip(opening.randomness, shifts)))

        fresh, proof = self._prove_ballot(
            public_key, keypair, circuit, primary_input, auxiliary_input, refreshed)
        if fresh.pairs != pairs:
            raise ElGamalError("Opening does not open the ciphertext")
        return fresh, proof, refreshed

    def verify_encryption(self, ciphertext: Ciphertext, public_key: PublicKey,
                          verification_key: VerificationKey, proof: EncryptionProof,
                          public_input: Sequence) -> bool:
        """Check the relation proof and the well-formedness proofs of a ballot ciphertext"""
        group = public_key.group
        p, q, g, h = group.p, group.q, group.g, public_key.h

        if public_key.crs_fingerprint != verification_key.fingerprint():
            logger.warning("Encryption key is bound to a different CRS")
            return False
        if len(ciphertext) != public_key.msg_size or len(proof.bit_proofs) != public_key.msg_size:
            logger.warning(
                f"Ciphertext has {len(ciphertext)} coordinates, expected {public_key.msg_size}")
            return False
        if not self.proof_engine.verify(verification_key, public_input, proof.relation_proof,
                                        binding=ciphertext.to_bytes()):
            return False

        elements = [v for pair in ciphertext.pairs for v in pair]
        elements.extend(v for bp in proof.bit_proofs for v in bp.commitments)
        elements.extend(proof.sum_commitment)
        if not all(group.is_element(v) for v in elements):
            logger.warning("Ciphertext or proof contains values outside the group")
            return False
        scalars = [v for bp in proof.bit_proofs for v in bp.challenges + bp.responses]
        scalars.append(proof.sum_response)
        if not all(group.is_exponent(v) for v in scalars):
            logger.warning("Proof contains out-of-range scalars")
            return False

        bit_commitments = [v for bp in proof.bit_proofs for v in bp.commitments]
        e = self._encryption_challenge(
            public_key, [int(v) for v in public_input], ciphertext, proof.relation_proof,
            bit_commitments, proof.sum_commitment)

        g_inv = pow(g, -1, p)
        for index, ((alpha, beta), bit_proof) in enumerate(zip(ciphertext.pairs, proof.bit_proofs)):
            a0, b0, a1, b1 = bit_proof.commitments
            c0, c1 = bit_proof.challenges
            z0, z1 = bit_proof.responses
            if (c0 + c1) % q != e:
                logger.warning(f"Coordinate {index}: challenge split does not match")
                return False
            for a, b, c, z, shifted in ((a0, b0, c0, z0, beta),
                                        (a1, b1, c1, z1, beta * g_inv % p)):
                if pow(g, z, p) != a * pow(alpha, c, p) % p:
                    logger.warning(f"Coordinate {index}: 0/1 proof fails")
                    return False
                if pow(h, z, p) != b * pow(shifted, c, p) % p:
                    logger.warning(f"Coordinate {index}: 0/1 proof fails")
                    return False

        total_alpha = 1
        total_beta = 1
        for alpha, beta in ciphertext.pairs:
            total_alpha = total_alpha * alpha % p
            total_beta = total_beta * beta % p
        total_beta = total_beta * g_inv % p

        a, b = proof.sum_commitment
        z = proof.sum_response
        if pow(g, z, p) != a * pow(total_alpha, e, p) % p or \
                pow(h, z, p) != b * pow(total_beta, e, p) % p:
            logger.warning("Ballot does not encrypt exactly one choice")
            return False

        return True

    def aggregate(self, ciphertexts: Sequence[Ciphertext], group: GroupParameters) -> Ciphertext:
        """Pointwise product of ciphertexts, i.e. an encryption of the plaintext sum"""
        if not ciphertexts:
            raise ElGamalError("Nothing to aggregate")
        width = len(ciphertexts[0])
        if any(len(ct) != width for ct in ciphertexts):
            raise ElGamalError("Ciphertexts have different lengths")

        p = group.p
        alphas = [1] * width
        betas = [1] * width
        for ct in ciphertexts:
            for i, (alpha, beta) in enumerate(ct.pairs):
                alphas[i] = alphas[i] * alpha % p
                betas[i] = betas[i] * beta % p
        return Ciphertext(tuple(zip(alphas, betas)), group.element_size)

    def _discrete_log(self, group: GroupParameters, target: int, max_value: int) -> int:
        acc = 1
        for m in range(max_value + 1):
            if acc == target:
                return m
            acc = acc * group.g % group.p
        raise DecryptionError(f"Plaintext exceeds the bound {max_value}")

    def _decryption_challenge(self, verification_key: DecryptionVerificationKey,
                              ciphertext: Ciphertext, plaintext: Sequence[int],
                              commitments: Sequence[Tuple[int, int]]) -> int:
        values = list(plaintext) + [v for pair in commitments for v in pair]
        return _challenge(
            verification_key.group, b"anonymous-vote/decrypt",
            [verification_key.to_bytes(), ciphertext.to_bytes()], values)

    def decrypt(self, ciphertext: Ciphertext, secret_key: SecretKey,
                verification_key: DecryptionVerificationKey, crs: VerificationKey,
                max_value: int) -> Tuple[List[int], DecryptionProof]:
        """Decrypt small plaintexts and prove the decryption correct"""
        group = secret_key.group
        p, g = group.p, group.g

        if verification_key.group != group or pow(g, secret_key.x, p) != verification_key.h:
            raise KeyMismatchError("Secret key does not match the verification key")
        if verification_key.crs_fingerprint != crs.fingerprint():
            raise KeyMismatchError("Verification key is bound to a different CRS")
        if not all(group.is_element(v) for pair in ciphertext.pairs for v in pair):
            raise DecryptionError("Ciphertext contains values outside the group")

        plaintext = []
        for alpha, beta in ciphertext.pairs:
            g_m = beta * pow(alpha, -secret_key.x, p) % p
            plaintext.append(self._discrete_log(group, g_m, max_value))

        nonces = [group.random_exponent(self.rng) for _ in ciphertext.pairs]
        commitments = tuple((pow(g, w, p), pow(alpha, w, p))
                            for w, (alpha, _) in zip(nonces, ciphertext.pairs))
        e = self._decryption_challenge(verification_key, ciphertext, plaintext, commitments)
        responses = tuple((w + e * secret_key.x) % group.q for w in nonces)

        return plaintext, DecryptionProof(commitments, responses, group.element_size)

    def verify_decryption(self, ciphertext: Ciphertext, plaintext: Sequence[int],
                          verification_key: DecryptionVerificationKey, crs: VerificationKey,
                          proof: DecryptionProof) -> bool:
        group = verification_key.group
        p, q, g, h = group.p, group.q, group.g, verification_key.h

        if verification_key.crs_fingerprint != crs.fingerprint():
            logger.warning("Verification key is bound to a different CRS")
            return False
        n = len(ciphertext)
        if len(plaintext) != n or len(proof.commitments) != n or len(proof.responses) != n:
            logger.warning("Plaintext, ciphertext and proof lengths differ")
            return False
        plaintext = [int(m) for m in plaintext]
        if not all(group.is_exponent(m) for m in plaintext):
            logger.warning("Plaintext values out of range")
            return False
        elements = [v for pair in ciphertext.pairs for v in pair]
        elements.extend(v for pair in proof.commitments for v in pair)
        if not all(group.is_element(v) for v in elements):
            logger.warning("Ciphertext or proof contains values outside the group")
            return False
        if not all(group.is_exponent(z) for z in proof.responses):
            logger.warning("Proof contains out-of-range responses")
            return False

        e = self._decryption_challenge(verification_key, ciphertext, plaintext, proof.commitments)
        h_e = pow(h, e, p)
        for index, ((alpha, beta), m, (a, b), z) in enumerate(
                zip(ciphertext.pairs, plaintext, proof.commitments, proof.responses)):
            shared = beta * pow(g, -m, p) % p
            if pow(g, z, p) != a * h_e % p or pow(alpha, z, p) != b * pow(shared, e, p) % p:
                logger.warning(f"Decryption proof fails at coordinate {index}")
                return False

        return True
