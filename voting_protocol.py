"""
Anonymous Verifiable Voting - Protocol Orchestration
====================================================
Runs one protocol phase per invocation against the artifact files, or the
whole election in a single in-memory session for demonstrations.

File phases hand off through ``ArtifactCodec``: each reads the artifacts of
the phases before it and publishes its own without overwriting anything.
"""

import logging
from contextlib import nullcontext
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from config.config import ConfigurationError, SystemConfig
from protocol.codec import ArtifactCodec
from protocol.errors import PhaseOrderError
from protocol.roles import (
    ElectionInitializer,
    ProtocolSuite,
    TallyAdmin,
    TallyVoter,
    VoteCaster,
    VoteVerifier,
    VoterKeyGenerator,
)
from protocol.types import ElectionArtifacts, TallyResult, VoteArtifact, VoterKeyPair
from utils.randomness import RandomSource, make_random_source
from utils.utils import PerformanceMonitor

logger = logging.getLogger(__name__)


class Phase(Enum):
    INIT_VOTER = "init_voter"
    INIT_ADMIN = "init_admin"
    VOTE = "vote"
    VOTE_VERIFY = "vote_verify"
    TALLY_ADMIN = "tally_admin"
    TALLY_VOTER = "tally_voter"


class ProtocolState(Enum):
    CREATED = "created"
    VOTER_KEYS_READY = "voter_keys_ready"
    ELECTION_INITIALIZED = "election_initialized"
    VOTES_CAST = "votes_cast"
    TALLIED = "tallied"
    TALLY_VERIFIED = "tally_verified"


def parse_phase(name) -> Phase:
    if isinstance(name, Phase):
        return name
    try:
        return Phase(name)
    except ValueError as e:
        choices = ", ".join(p.value for p in Phase)
        raise ConfigurationError(f"Unknown phase {name!r}; expected one of: {choices}") from e


# ============================================================================
# FILE-BASED PHASES
# ============================================================================


class ProtocolOrchestrator:
    def __init__(self, config: SystemConfig, rng: Optional[RandomSource] = None):
        self.config = config
        self.rng = rng or make_random_source(config.seed)
        self.suite = ProtocolSuite.from_policy(config.policy, self.rng)
        self.codec = ArtifactCodec(config.paths)
        self.performance_monitor = PerformanceMonitor()

        self._handlers = {
            Phase.INIT_VOTER: self.init_voter,
            Phase.INIT_ADMIN: self.init_admin,
            Phase.VOTE: self.vote,
            Phase.VOTE_VERIFY: self.vote_verify,
            Phase.TALLY_ADMIN: self.tally_admin,
            Phase.TALLY_VOTER: self.tally_voter,
        }

        logger.info(f"Initialized protocol orchestrator (output: {config.paths.output_dir})")

    def _measure(self, operation: str):
        if self.config.enable_benchmarking:
            return self.performance_monitor.start_operation(operation)
        return nullcontext()

    def run_phase(self, phase) -> Any:
        phase = parse_phase(phase)
        logger.info(f"Running phase {phase.value}")
        with self._measure(phase.value):
            return self._handlers[phase]()

    @property
    def _key_width(self) -> int:
        return self.config.policy.secret_key_bits

    def init_voter(self) -> VoterKeyPair:
        keypair = VoterKeyGenerator(self.suite).generate(self.config.voter_idx)
        self.codec.write_voter_keypair(keypair)
        return keypair

    def init_admin(self) -> ElectionArtifacts:
        tree_depth = self.config.require_tree_depth()
        eid_bits = self.config.require_eid_bits()
        public_keys = self.codec.read_voters_public_keys(2 ** tree_depth, self._key_width)

        election = ElectionInitializer(self.suite).initialize(tree_depth, eid_bits, public_keys)
        self.codec.write_election(election)
        return election

    def vote(self) -> VoteArtifact:
        tree_depth = self.config.require_tree_depth()
        voter_idx = self.config.voter_idx
        election = self.codec.read_election(tree_depth)
        public_keys = self.codec.read_voters_public_keys(election.participants, self._key_width)
        secret_key = self.codec.read_voter_secret_key(voter_idx, self._key_width)

        option = self.config.vote
        if option is None:
            option = self.rng.randbelow(self.config.policy.msg_size)
            logger.info(f"No vote given for voter {voter_idx}; picked option {option}")

        artifact = VoteCaster(self.suite).cast_vote(
            voter_idx, secret_key, election, public_keys, option)
        self.codec.write_vote(artifact, election)
        return artifact

    def vote_verify(self) -> Dict[int, bool]:
        """Audit every published ballot; returns validity per voter index"""
        tree_depth = self.config.require_tree_depth()
        election = self.codec.read_election(tree_depth, include_proving_key=False)
        layout = self.suite.layout(len(election.eid))
        votes = [self.codec.read_vote(index, layout) for index in range(election.participants)]

        results = VoteVerifier(self.suite).verify_all(votes, election)
        accepted = sum(results.values())
        logger.info(f"{accepted}/{len(results)} ballots verified")
        return results

    def tally_admin(self) -> TallyResult:
        tree_depth = self.config.require_tree_depth()
        election = self.codec.read_election(
            tree_depth, include_secret=True, include_proving_key=False)
        ciphertexts = self.codec.read_ciphertexts(election.participants)

        result = TallyAdmin(self.suite).tally(
            ciphertexts, election.secret_key, election.eid_verification_key,
            election.verification_key)
        self.codec.write_tally(result)
        return result

    def tally_voter(self) -> bool:
        tree_depth = self.config.require_tree_depth()
        election = self.codec.read_election(tree_depth, include_proving_key=False)
        ciphertexts = self.codec.read_ciphertexts(election.participants)
        published = self.codec.read_tally()

        return TallyVoter(self.suite).verify_tally(
            ciphertexts, election.eid_verification_key, election.verification_key,
            published.plaintext, published.decryption_proof)

    def run_demo(self, choices: Optional[Sequence[int]] = None) -> Dict[str, Any]:
        """Run every phase in one session, then audit a tampered tally"""
        session = ProtocolSession(
            self.suite, self.config.require_tree_depth(), self.config.require_eid_bits())
        return session.run(choices, self._measure)


# ============================================================================
# SINGLE-PROCESS SESSION
# ============================================================================


class ProtocolSession:
    """
    All phases of one election held in memory.

    Enforces the phase order that file-based runs get from artifact
    availability: every voter registers before the election is set up,
    every voter votes before the tally, and audits follow the tally.
    """

    def __init__(self, suite: ProtocolSuite, tree_depth: int, eid_bits: int):
        self.suite = suite
        self.tree_depth = tree_depth
        self.eid_bits = eid_bits
        self.state = ProtocolState.CREATED

        self.voters: Dict[int, VoterKeyPair] = {}
        self.election: Optional[ElectionArtifacts] = None
        self.votes: Dict[int, VoteArtifact] = {}
        self.result: Optional[TallyResult] = None

    @property
    def participants(self) -> int:
        return 2 ** self.tree_depth

    def _require(self, action: str, *states: ProtocolState):
        if self.state not in states:
            raise PhaseOrderError(f"Cannot {action} in state {self.state.value}")

    def _public_keys(self) -> List:
        return [self.voters[index].public_key for index in range(self.participants)]

    def init_voter(self, voter_index: int) -> VoterKeyPair:
        self._require("register a voter", ProtocolState.CREATED, ProtocolState.VOTER_KEYS_READY)
        if not 0 <= voter_index < self.participants:
            raise PhaseOrderError(
                f"Voter index {voter_index} outside [0, {self.participants})")
        if voter_index in self.voters:
            raise PhaseOrderError(f"Voter {voter_index} is already registered")

        keypair = VoterKeyGenerator(self.suite).generate(voter_index)
        self.voters[voter_index] = keypair
        self.state = ProtocolState.VOTER_KEYS_READY
        return keypair

    def init_admin(self) -> ElectionArtifacts:
        self._require("initialize the election", ProtocolState.VOTER_KEYS_READY)
        if len(self.voters) != self.participants:
            raise PhaseOrderError(
                f"{len(self.voters)} of {self.participants} voters registered")

        self.election = ElectionInitializer(self.suite).initialize(
            self.tree_depth, self.eid_bits, self._public_keys())
        self.state = ProtocolState.ELECTION_INITIALIZED
        return self.election

    def vote(self, voter_index: int, option: int) -> VoteArtifact:
        self._require("cast a vote", ProtocolState.ELECTION_INITIALIZED, ProtocolState.VOTES_CAST)
        if voter_index in self.votes:
            raise PhaseOrderError(f"Voter {voter_index} has already voted")
        if voter_index not in self.voters:
            raise PhaseOrderError(f"Voter {voter_index} is not registered")

        artifact = VoteCaster(self.suite).cast_vote(
            voter_index, self.voters[voter_index].secret_key, self.election,
            self._public_keys(), option)
        self.votes[voter_index] = artifact
        self.state = ProtocolState.VOTES_CAST
        return artifact

    def verify_votes(self) -> Dict[int, bool]:
        self._require("verify votes", ProtocolState.VOTES_CAST)
        votes = [self.votes[index] for index in sorted(self.votes)]
        return VoteVerifier(self.suite).verify_all(votes, self.election.public_view())

    def _ciphertexts(self):
        return [self.votes[index].ciphertext for index in range(self.participants)]

    def tally_admin(self) -> TallyResult:
        self._require("tally", ProtocolState.VOTES_CAST)
        if len(self.votes) != self.participants:
            raise PhaseOrderError(f"{len(self.votes)} of {self.participants} votes cast")

        self.result = TallyAdmin(self.suite).tally(
            self._ciphertexts(), self.election.secret_key,
            self.election.eid_verification_key, self.election.verification_key)
        self.state = ProtocolState.TALLIED
        return self.result

    def tally_voter(self, claimed_plaintext: Optional[Sequence[int]] = None) -> bool:
        """Audit the published tally, or ``claimed_plaintext`` against the published proof"""
        self._require("audit the tally", ProtocolState.TALLIED, ProtocolState.TALLY_VERIFIED)
        if claimed_plaintext is None:
            claimed_plaintext = self.result.plaintext

        valid = TallyVoter(self.suite).verify_tally(
            self._ciphertexts(), self.election.eid_verification_key,
            self.election.verification_key, claimed_plaintext, self.result.decryption_proof)
        self.state = ProtocolState.TALLY_VERIFIED
        return valid

    def run(self, choices: Optional[Sequence[int]] = None, measure=None) -> Dict[str, Any]:
        """Drive every phase in order and report the outcome of each check"""
        measure = measure or (lambda operation: nullcontext())
        msg_size = self.suite.policy.msg_size

        if choices is None:
            choices = [self.suite.rng.randbelow(msg_size) for _ in range(self.participants)]
        choices = list(choices)
        if len(choices) != self.participants:
            raise ConfigurationError(
                f"Got {len(choices)} choices for {self.participants} voters")

        logger.info(f"Starting demo election with {self.participants} voters")

        with measure(Phase.INIT_VOTER.value):
            for index in range(self.participants):
                self.init_voter(index)
        with measure(Phase.INIT_ADMIN.value):
            self.init_admin()
        with measure(Phase.VOTE.value):
            for index, option in enumerate(choices):
                self.vote(index, option)
        with measure(Phase.VOTE_VERIFY.value):
            vote_checks = self.verify_votes()
        with measure(Phase.TALLY_ADMIN.value):
            result = self.tally_admin()
        with measure(Phase.TALLY_VOTER.value):
            tally_verified = self.tally_voter()

        tampered = list(result.plaintext)
        tampered[0] += 1
        tampered_rejected = not self.tally_voter(tampered)

        expected = [choices.count(option) for option in range(msg_size)]

        checks = {
            'all_votes_verified': all(vote_checks.values()),
            'tally_matches_choices': list(result.plaintext) == expected,
            'tally_proof_verified': tally_verified,
            'tampered_tally_rejected': tampered_rejected,
        }
        checks['all_checks_passed'] = all(checks.values())

        logger.info(f"Demo election finished: tally {list(result.plaintext)}")

        return {
            'election': {
                'participants': self.participants,
                'tree_depth': self.tree_depth,
                'eid_bits': self.eid_bits,
                'msg_size': msg_size,
                'group_bits': self.suite.policy.group_bits,
                'hash': self.suite.policy.hash_name,
            },
            'choices': choices,
            'tally': list(result.plaintext),
            'votes': {str(index): valid for index, valid in vote_checks.items()},
            'checks': checks,
        }
