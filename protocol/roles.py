"""
Protocol roles: voter key generation, election setup, vote casting, vote
auditing, tallying and tally verification.

Every role receives a ``ProtocolSuite`` carrying the election policy, the
hash, the engines and the random source; roles never read files.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

from config.config import ElectionPolicy
from elgamal.elgamal_verifiable import (
    Ciphertext,
    DecryptionProof,
    DecryptionVerificationKey,
    EncryptionEngine,
    GroupParameters,
    SecretKey,
    VerifiableElGamal,
)
from protocol.errors import (
    CRSMismatch,
    IndexOutOfRange,
    ParticipantCountMismatch,
    RootMismatch,
    SizeMismatch,
    TallyLengthMismatch,
    VerificationFailed,
)
from protocol.types import ElectionArtifacts, TallyResult, VoteArtifact, VoterKeyPair
from utils.bits import Bits, as_bits
from utils.randomness import RandomSource
from zk.merkle import DigestHash, MerkleTree
from zk.zk_proofs import (
    CircuitWitness,
    PrimaryInputLayout,
    ProofEngine,
    ReferenceProofEngine,
    UnsatisfiedRelation,
    VerificationKey,
    VotingCircuit,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProtocolSuite:
    """Policy, hash, engines and random source shared by every role"""
    policy: ElectionPolicy
    hasher: DigestHash
    proof_engine: ProofEngine
    encryption_engine: EncryptionEngine
    rng: RandomSource

    @classmethod
    def from_policy(cls, policy: ElectionPolicy, rng: RandomSource) -> 'ProtocolSuite':
        hasher = DigestHash(policy.hash_name, policy.digest_bits)
        proof_engine = ReferenceProofEngine(rng)
        encryption_engine = VerifiableElGamal(
            GroupParameters.for_bits(policy.group_bits), proof_engine, rng)
        return cls(policy, hasher, proof_engine, encryption_engine, rng)

    def circuit(self, tree_depth: int, eid_bits: int) -> VotingCircuit:
        return VotingCircuit(self.policy.msg_size, eid_bits, tree_depth, self.hasher)

    def layout(self, eid_bits: int) -> PrimaryInputLayout:
        return PrimaryInputLayout(self.policy.msg_size, eid_bits, self.hasher.digest_bits)


# ============================================================================
# SHARED COMPUTATIONS
# ============================================================================


def build_tree(public_keys: Sequence[Sequence[bool]], tree_depth: int,
               hasher: DigestHash) -> MerkleTree:
    """Membership tree over the public keys in index order"""
    expected = 2 ** tree_depth
    if len(public_keys) != expected:
        raise ParticipantCountMismatch(
            f"Tree depth {tree_depth} needs {expected} public keys, got {len(public_keys)}")
    for index, key in enumerate(public_keys):
        if len(key) != hasher.digest_bits:
            raise SizeMismatch(
                f"Public key {index} has {len(key)} bits, expected {hasher.digest_bits}")
    return MerkleTree(public_keys, tree_depth, hasher)


def compute_serial_number(eid: Sequence[bool], secret_key: Sequence[bool],
                          hasher: DigestHash) -> Bits:
    """Hash(eid || sk): one-time per voter and election"""
    return hasher.hash_bits(list(eid) + list(secret_key))


def one_hot_ballot(option: int, msg_size: int) -> List[bool]:
    if not 0 <= option < msg_size:
        raise IndexOutOfRange(f"Option {option} outside [0, {msg_size})")
    return [i == option for i in range(msg_size)]


def aggregate_ciphertexts(ciphertexts: Sequence[Ciphertext], engine: EncryptionEngine,
                          group: GroupParameters) -> Ciphertext:
    """Homomorphic sum of all ciphertexts; the order does not matter"""
    if not ciphertexts:
        raise SizeMismatch("No ciphertexts to aggregate")
    width = len(ciphertexts[0])
    for index, ct in enumerate(ciphertexts):
        if len(ct) != width:
            raise SizeMismatch(
                f"Ciphertext {index} has {len(ct)} coordinates, expected {width}")
        if ct.element_size != group.element_size:
            raise SizeMismatch(f"Ciphertext {index} was produced in a different group")
    return engine.aggregate(ciphertexts, group)


# ============================================================================
# ROLES
# ============================================================================


class VoterKeyGenerator:
    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def generate(self, voter_index: int) -> VoterKeyPair:
        """Sample a secret key and commit to it with public key Hash(sk)"""
        secret_key = self.suite.rng.random_bits(self.suite.policy.secret_key_bits)
        public_key = self.suite.hasher.hash_bits(secret_key)
        logger.info(f"Generated keypair for voter {voter_index}")
        return VoterKeyPair(voter_index, tuple(secret_key), tuple(public_key))


class ElectionInitializer:
    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def initialize(self, tree_depth: int, eid_bits: int,
                   public_keys: Sequence[Sequence[bool]]) -> ElectionArtifacts:
        """Build the voter tree, run circuit setup and generate the election keys"""
        tree = build_tree(public_keys, tree_depth, self.suite.hasher)
        eid = self.suite.rng.random_bits(eid_bits)

        circuit = self.suite.circuit(tree_depth, eid_bits)
        keypair = self.suite.proof_engine.generate(circuit)
        pk_eid, sk_eid, vk_eid = self.suite.encryption_engine.generate_keypair(
            keypair, self.suite.policy.msg_size)

        logger.info(
            f"Initialized election for {len(public_keys)} voters "
            f"(depth {tree_depth}, {eid_bits}-bit eid)")

        return ElectionArtifacts(
            tree_depth=tree_depth,
            proving_key=keypair.proving_key,
            verification_key=keypair.verification_key,
            public_key=pk_eid,
            eid_verification_key=vk_eid,
            eid=tuple(eid),
            root=tuple(tree.root),
            secret_key=sk_eid)


class VoteCaster:
    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def cast_vote(self, voter_index: int, secret_key: Sequence[bool],
                  election: ElectionArtifacts, public_keys: Sequence[Sequence[bool]],
                  option: int) -> VoteArtifact:
        """
        Produce a rerandomized, self-verified encrypted ballot for ``option``.

        Raises IndexOutOfRange, RootMismatch or CRSMismatch when the inputs
        disagree with the published election, UnsatisfiedRelation when the
        witness is inconsistent and VerificationFailed when the final
        artifact does not verify.
        """
        suite = self.suite
        hasher = suite.hasher

        if not 0 <= voter_index < election.participants:
            raise IndexOutOfRange(
                f"Voter index {voter_index} outside [0, {election.participants})")
        if len(secret_key) != suite.policy.secret_key_bits:
            raise SizeMismatch(
                f"Secret key has {len(secret_key)} bits, expected {suite.policy.secret_key_bits}")

        tree = build_tree(public_keys, election.tree_depth, hasher)
        if tree.root != list(election.root):
            raise RootMismatch("Voter list does not reproduce the published root")

        circuit = suite.circuit(election.tree_depth, len(election.eid))
        if election.proving_key is None:
            raise CRSMismatch("Casting a vote requires the proving key")
        if election.proving_key.circuit_digest != circuit.digest():
            raise CRSMismatch("Proving key was generated for a different circuit")
        if election.proving_key.verification_key() != election.verification_key:
            raise CRSMismatch("Proving and verification keys are not a pair")

        serial_number = compute_serial_number(election.eid, secret_key, hasher)
        witness = CircuitWitness(
            ballot=tuple(one_hot_ballot(option, suite.policy.msg_size)),
            eid=tuple(election.eid),
            serial_number=tuple(serial_number),
            root=tuple(election.root),
            secret_key=tuple(bool(b) for b in secret_key),
            path=tree.path(voter_index))

        primary_input, auxiliary_input = circuit.assign(witness)
        if not circuit.is_satisfied(primary_input, auxiliary_input):
            logger.critical(f"Voting relation unsatisfied for voter {voter_index}")
            raise UnsatisfiedRelation(
                f"Witness of voter {voter_index} does not satisfy the voting relation")

        engine = suite.encryption_engine
        ciphertext, proof, opening = engine.encrypt(
            election.public_key, election.circuit_keys, circuit, primary_input, auxiliary_input)
        ciphertext, proof, _ = engine.rerandomize(
            ciphertext, opening, election.public_key, election.circuit_keys, circuit,
            primary_input, auxiliary_input)

        public_input = [int(v) for v in primary_input][circuit.layout.eid_offset:]
        if not engine.verify_encryption(ciphertext, election.public_key,
                                        election.verification_key, proof, public_input):
            raise VerificationFailed(f"Ballot of voter {voter_index} fails verification")

        eid, sn, rt = circuit.layout.split_public(public_input)
        logger.info(f"Voter {voter_index} cast a verified ballot")

        return VoteArtifact(
            voter_index=voter_index,
            proof=proof,
            primary_input=tuple(public_input),
            ciphertext=ciphertext,
            serial_number=tuple(as_bits(sn)),
            eid=tuple(as_bits(eid)),
            root=tuple(as_bits(rt)))


class VoteVerifier:
    """Checks published ballots against the election using public data only"""

    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def verify_vote(self, vote: VoteArtifact, election: ElectionArtifacts) -> bool:
        if vote.eid != tuple(election.eid):
            logger.warning(f"Vote {vote.voter_index} was cast for a different election")
            return False
        if vote.root != tuple(election.root):
            logger.warning(f"Vote {vote.voter_index} was cast against a different voter tree")
            return False
        expected = PrimaryInputLayout.join_public(vote.eid, vote.serial_number, vote.root)
        if [int(v) for v in vote.primary_input] != [int(v) for v in expected]:
            logger.warning(f"Vote {vote.voter_index} primary input disagrees with its fields")
            return False

        valid = self.suite.encryption_engine.verify_encryption(
            vote.ciphertext, election.public_key, election.verification_key,
            vote.proof, vote.primary_input)
        if not valid:
            logger.warning(f"Vote {vote.voter_index} fails verification")
        return valid

    def verify_all(self, votes: Sequence[VoteArtifact],
                   election: ElectionArtifacts) -> Dict[int, bool]:
        """Verify every vote and reject repeated serial numbers

        Only a vote that verifies claims its serial number, so an invalid
        copy of a published vote cannot get the original rejected.
        """
        results = {}
        seen: Dict[tuple, int] = {}
        for vote in votes:
            valid = self.verify_vote(vote, election)
            first = seen.get(vote.serial_number)
            if valid and first is not None:
                logger.warning(
                    f"Vote {vote.voter_index} repeats the serial number of vote {first}")
                valid = False
            elif valid:
                seen[vote.serial_number] = vote.voter_index
            results[vote.voter_index] = valid
        return results


class TallyAdmin:
    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def tally(self, ciphertexts: Sequence[Ciphertext], secret_key: SecretKey,
              verification_key: DecryptionVerificationKey,
              circuit_verification_key: VerificationKey) -> TallyResult:
        """Decrypt the aggregate ballot and prove the decryption correct"""
        engine = self.suite.encryption_engine
        aggregate = aggregate_ciphertexts(ciphertexts, engine, verification_key.group)

        plaintext, proof = engine.decrypt(
            aggregate, secret_key, verification_key, circuit_verification_key,
            max_value=len(ciphertexts))
        if len(plaintext) != self.suite.policy.msg_size:
            raise TallyLengthMismatch(
                f"Tally has {len(plaintext)} entries, expected {self.suite.policy.msg_size}")

        logger.info(f"Tallied {len(ciphertexts)} ballots: {plaintext}")
        return TallyResult(tuple(plaintext), proof)


class TallyVoter:
    """Independent tally audit; needs no secret material"""

    def __init__(self, suite: ProtocolSuite):
        self.suite = suite

    def verify_tally(self, ciphertexts: Sequence[Ciphertext],
                     verification_key: DecryptionVerificationKey,
                     circuit_verification_key: VerificationKey,
                     claimed_plaintext: Sequence[int],
                     decryption_proof: DecryptionProof) -> bool:
        engine = self.suite.encryption_engine
        aggregate = aggregate_ciphertexts(ciphertexts, engine, verification_key.group)

        valid = engine.verify_decryption(
            aggregate, claimed_plaintext, verification_key, circuit_verification_key,
            decryption_proof)
        if valid:
            logger.info(f"Tally {list(claimed_plaintext)} verified")
        else:
            logger.warning(f"Tally {list(claimed_plaintext)} REJECTED")
        return valid
