"""Tests for verifiable exponential ElGamal"""

from dataclasses import replace

import pytest

from elgamal.elgamal_verifiable import (
    BitProof,
    Ciphertext,
    DecryptionError,
    DecryptionProof,
    DecryptionVerificationKey,
    ElGamalError,
    EncodingError,
    EncryptionOpening,
    EncryptionProof,
    GroupParameters,
    KeyMismatchError,
    PublicKey,
    SecretKey,
    VerifiableElGamal,
)
from protocol.roles import (
    VoteCaster,
    VoteVerifier,
    build_tree,
    compute_serial_number,
    one_hot_ballot,
)
from zk.zk_proofs import CircuitKeypair, CircuitWitness


@pytest.fixture
def engine(suite):
    return suite.encryption_engine


@pytest.fixture
def ballots(suite, voters, election):
    """Voter i votes for option i"""
    caster = VoteCaster(suite)
    public_keys = [v.public_key for v in voters]
    return [caster.cast_vote(i, voters[i].secret_key, election, public_keys, i)
            for i in range(len(voters))]


@pytest.fixture
def assignment(suite, voters, election):
    """Circuit, primary and auxiliary input of voter 1 voting for option 3"""
    circuit = suite.circuit(2, 64)
    tree = build_tree([v.public_key for v in voters], 2, suite.hasher)
    witness = CircuitWitness(
        ballot=tuple(one_hot_ballot(3, 7)),
        eid=tuple(election.eid),
        serial_number=tuple(
            compute_serial_number(election.eid, voters[1].secret_key, suite.hasher)),
        root=tuple(election.root),
        secret_key=tuple(voters[1].secret_key),
        path=tree.path(1))
    primary, auxiliary = circuit.assign(witness)
    return circuit, primary, auxiliary


def public_part(circuit, primary):
    return [int(v) for v in primary][circuit.layout.eid_offset:]


def test_group_parameters():
    group = GroupParameters.for_bits(1024)
    assert group.p == 2 * group.q + 1
    assert group.is_element(group.g)
    assert not group.is_element(group.p - 1)
    assert group.element_size == 128
    with pytest.raises(ElGamalError):
        GroupParameters.for_bits(512)


def test_keys_bound_to_crs(election):
    fingerprint = election.verification_key.fingerprint()
    assert election.public_key.crs_fingerprint == fingerprint
    assert election.eid_verification_key.crs_fingerprint == fingerprint
    assert election.public_key.h == election.eid_verification_key.h


def test_generate_keypair_rejects_unpaired_circuit_keys(suite, election):
    other = suite.proof_engine.generate(suite.circuit(2, 64))
    mixed = CircuitKeypair(other.proving_key, election.verification_key)
    with pytest.raises(KeyMismatchError):
        suite.encryption_engine.generate_keypair(mixed, 7)


def test_cast_ballots_verify(engine, election, ballots):
    for ballot in ballots:
        assert engine.verify_encryption(
            ballot.ciphertext, election.public_key, election.verification_key,
            ballot.proof, ballot.primary_input)


def test_ballot_rejected_under_other_public_input(engine, election, ballots):
    public = list(ballots[0].primary_input)
    public[0] ^= 1
    assert not engine.verify_encryption(
        ballots[0].ciphertext, election.public_key, election.verification_key,
        ballots[0].proof, public)


def test_ballot_rejected_under_other_crs(suite, engine, election, ballots):
    other = suite.proof_engine.generate(suite.circuit(2, 64))
    assert not engine.verify_encryption(
        ballots[0].ciphertext, election.public_key, other.verification_key,
        ballots[0].proof, ballots[0].primary_input)


def test_rerandomized_ballot_still_verifies(engine, election, assignment):
    circuit, primary, auxiliary = assignment
    ciphertext, proof, opening = engine.encrypt(
        election.public_key, election.circuit_keys, circuit, primary, auxiliary)
    fresh, fresh_proof, fresh_opening = engine.rerandomize(
        ciphertext, opening, election.public_key, election.circuit_keys, circuit,
        primary, auxiliary)

    public = public_part(circuit, primary)
    assert fresh != ciphertext
    assert fresh_opening.ballot == opening.ballot
    assert engine.verify_encryption(
        fresh, election.public_key, election.verification_key, fresh_proof, public)
    # Proofs of the original ciphertext do not carry over
    assert not engine.verify_encryption(
        fresh, election.public_key, election.verification_key, proof, public)


def test_rerandomize_with_wrong_opening(engine, election, assignment):
    circuit, primary, auxiliary = assignment
    ciphertext, _, opening = engine.encrypt(
        election.public_key, election.circuit_keys, circuit, primary, auxiliary)
    wrong = EncryptionOpening(opening.ballot, tuple(r + 1 for r in opening.randomness))

    with pytest.raises(ElGamalError):
        engine.rerandomize(ciphertext, wrong, election.public_key, election.circuit_keys,
                           circuit, primary, auxiliary)
    assert str(opening.randomness[0]) not in repr(opening)


def test_aggregation_is_order_independent(engine, election, ballots):
    group = election.public_key.group
    cts = [b.ciphertext for b in ballots]
    forward = engine.aggregate(cts, group)
    backward = engine.aggregate(list(reversed(cts)), group)
    assert forward == backward


def test_aggregate_rejects_empty_or_ragged(engine, election, ballots):
    group = election.public_key.group
    with pytest.raises(ElGamalError):
        engine.aggregate([], group)
    short = Ciphertext(ballots[0].ciphertext.pairs[:3], group.element_size)
    with pytest.raises(ElGamalError):
        engine.aggregate([ballots[0].ciphertext, short], group)


def test_decrypt_and_verify_tally(engine, election, ballots):
    aggregate = engine.aggregate([b.ciphertext for b in ballots], election.public_key.group)
    plaintext, proof = engine.decrypt(
        aggregate, election.secret_key, election.eid_verification_key,
        election.verification_key, max_value=len(ballots))

    assert plaintext == [1, 1, 1, 1, 0, 0, 0]
    assert engine.verify_decryption(
        aggregate, plaintext, election.eid_verification_key, election.verification_key, proof)


@pytest.mark.parametrize("coordinate", [0, 4, 6])
def test_mutated_tally_rejected(engine, election, ballots, coordinate):
    aggregate = engine.aggregate([b.ciphertext for b in ballots], election.public_key.group)
    plaintext, proof = engine.decrypt(
        aggregate, election.secret_key, election.eid_verification_key,
        election.verification_key, max_value=len(ballots))

    mutated = list(plaintext)
    mutated[coordinate] += 1
    assert not engine.verify_decryption(
        aggregate, mutated, election.eid_verification_key, election.verification_key, proof)
    assert not engine.verify_decryption(
        aggregate, plaintext[:-1], election.eid_verification_key,
        election.verification_key, proof)


def test_decrypt_with_wrong_secret_key(engine, election, ballots):
    wrong = SecretKey(election.secret_key.group, election.secret_key.x + 1, 7)
    with pytest.raises(KeyMismatchError):
        engine.decrypt(ballots[0].ciphertext, wrong, election.eid_verification_key,
                       election.verification_key, max_value=1)


def test_decrypt_beyond_bound(engine, election, ballots):
    aggregate = engine.aggregate([b.ciphertext for b in ballots[:1]] * 3,
                                 election.public_key.group)
    with pytest.raises(DecryptionError):
        engine.decrypt(aggregate, election.secret_key, election.eid_verification_key,
                       election.verification_key, max_value=2)


def test_serialization_round_trip(election, ballots):
    ballot = ballots[0]
    assert PublicKey.from_bytes(election.public_key.to_bytes()) == election.public_key
    assert SecretKey.from_bytes(election.secret_key.to_bytes()) == election.secret_key
    assert DecryptionVerificationKey.from_bytes(
        election.eid_verification_key.to_bytes()) == election.eid_verification_key
    assert Ciphertext.from_bytes(ballot.ciphertext.to_bytes()) == ballot.ciphertext
    assert EncryptionProof.from_bytes(ballot.proof.to_bytes()) == ballot.proof


def test_truncated_encodings_rejected(election, ballots):
    with pytest.raises(EncodingError):
        Ciphertext.from_bytes(ballots[0].ciphertext.to_bytes()[:-1])
    with pytest.raises(EncodingError):
        PublicKey.from_bytes(b"EGSK" + election.public_key.to_bytes()[4:])
    with pytest.raises(EncodingError):
        DecryptionProof.from_bytes(b"EGDP")


def test_secret_key_repr_is_redacted(election):
    assert str(election.secret_key.x) not in repr(election.secret_key)


# ============================================================================
# Ballots assembled without a valid opening
# ============================================================================


def fit_ballot_to_challenge(engine, election, public_input, relation_proof, hashed_ciphertext,
                            rng):
    """
    Commit first, take the challenge e over ``hashed_ciphertext``, then pick
    coordinates 0 and 1 to encrypt 1 + t/e and -t/e. Every bit proof and the
    sum proof hold for e although neither coordinate is 0 or 1.
    """
    public_key = election.public_key
    group = public_key.group
    p, q, g, h = group.p, group.q, group.g, public_key.h
    width = public_key.msg_size

    r = [group.random_exponent(rng) for _ in range(width)]
    w = [group.random_exponent(rng) for _ in range(width)]
    free = [rng.randbelow(q) for _ in range(width)]
    c_sim = [rng.randbelow(q) for _ in range(width)]
    t = group.random_exponent(rng)

    commitments = [
        (pow(g, free[0], p), pow(h, free[0], p),
         pow(g, w[0], p), pow(h, w[0], p) * pow(g, -t, p) % p),
        (pow(g, w[1], p), pow(h, w[1], p) * pow(g, t, p) % p,
         pow(g, free[1], p), pow(h, free[1], p)),
    ]
    for i in range(2, width):
        alpha, beta = pow(g, r[i], p), pow(h, r[i], p)
        shifted = beta * pow(g, -1, p) % p
        commitments.append((pow(g, w[i], p), pow(h, w[i], p),
                            pow(g, free[i], p) * pow(alpha, -c_sim[i], p) % p,
                            pow(h, free[i], p) * pow(shifted, -c_sim[i], p) % p))
    w_sum = group.random_exponent(rng)
    sum_commitment = (pow(g, w_sum, p), pow(h, w_sum, p))

    e = engine._encryption_challenge(
        public_key, public_input, hashed_ciphertext, relation_proof,
        [v for c in commitments for v in c], sum_commitment)
    e_inv = pow(e, -1, q)
    m = [(1 + t * e_inv) % q, (-t * e_inv) % q] + [0] * (width - 2)

    pairs = tuple((pow(g, r[i], p), pow(g, m[i], p) * pow(h, r[i], p) % p)
                  for i in range(width))
    bit_proofs = [
        BitProof(commitments[0], (0, e), (free[0], (w[0] + r[0] * e) % q)),
        BitProof(commitments[1], (e, 0), ((w[1] + r[1] * e) % q, free[1])),
    ]
    for i in range(2, width):
        c0 = (e - c_sim[i]) % q
        bit_proofs.append(BitProof(commitments[i], (c0, c_sim[i]),
                                   ((w[i] + c0 * r[i]) % q, free[i])))

    proof = EncryptionProof(relation_proof, tuple(bit_proofs), sum_commitment,
                            (w_sum + e * sum(r)) % q, group.element_size)
    return Ciphertext(pairs, group.element_size), proof


class BorrowedProofEngine:
    """Returns a relation proof copied from a published vote instead of proving"""

    name = "borrowed"

    def __init__(self, relation_proof):
        self.relation_proof = relation_proof

    def prove(self, proving_key, circuit, primary_input, auxiliary_input, binding=b""):
        return self.relation_proof


def test_mutated_coordinate_rejected(engine, election, ballots):
    ballot = ballots[1]
    p, g = election.public_key.group.p, election.public_key.group.g
    pairs = list(ballot.ciphertext.pairs)
    alpha, beta = pairs[2]
    pairs[2] = (alpha, beta * g % p)
    mutated = Ciphertext(tuple(pairs), ballot.ciphertext.element_size)

    assert not engine.verify_encryption(
        mutated, election.public_key, election.verification_key,
        ballot.proof, ballot.primary_input)


def test_swapped_ciphertexts_rejected(engine, election, ballots):
    first, second = ballots[0], ballots[1]
    assert not engine.verify_encryption(
        second.ciphertext, election.public_key, election.verification_key,
        first.proof, first.primary_input)
    assert not engine.verify_encryption(
        first.ciphertext, election.public_key, election.verification_key,
        second.proof, second.primary_input)


def test_ciphertext_chosen_after_challenge_rejected(suite, engine, election, ballots,
                                                   assignment, rng):
    victim = ballots[0]
    forged, proof = fit_ballot_to_challenge(
        engine, election, victim.primary_input, victim.proof.relation_proof,
        victim.ciphertext, rng)

    assert not engine.verify_encryption(
        forged, election.public_key, election.verification_key, proof, victim.primary_input)
    vote = replace(victim, ciphertext=forged, proof=proof)
    assert not VoteVerifier(suite).verify_vote(vote, election.public_view())

    # A holder of the proving key may attest to the forged ciphertext itself,
    # but the attestation changes the challenge the ballot was fitted to
    circuit, primary, auxiliary = assignment
    public = public_part(circuit, primary)
    forged, proof = fit_ballot_to_challenge(
        engine, election, public, victim.proof.relation_proof, victim.ciphertext, rng)
    attested = suite.proof_engine.prove(
        election.proving_key, circuit, primary, auxiliary, binding=forged.to_bytes())
    assert suite.proof_engine.verify(
        election.verification_key, public, attested, binding=forged.to_bytes())
    assert not engine.verify_encryption(
        forged, election.public_key, election.verification_key,
        replace(proof, relation_proof=attested), public)


def test_relation_proof_does_not_transfer_to_other_ciphertext(suite, election, ballots, rng):
    victim = ballots[0]
    circuit = suite.circuit(2, 64)
    attacker = VerifiableElGamal(
        election.public_key.group, BorrowedProofEngine(victim.proof.relation_proof), rng)

    # Well-formed 0/1 proofs for a ballot of the attacker's choosing
    ballot = one_hot_ballot(6, 7)
    primary = [int(b) for b in ballot] + [int(v) for v in victim.primary_input]
    ciphertext, proof, _ = attacker.encrypt(
        election.public_key, election.circuit_keys, circuit, primary, [])
    grafted = replace(victim, ciphertext=ciphertext, proof=proof)

    verifier = VoteVerifier(suite)
    assert not verifier.verify_vote(grafted, election.public_view())

    # The copy cannot claim the victim's serial number first
    results = verifier.verify_all([replace(grafted, voter_index=3), victim],
                                  election.public_view())
    assert results == {3: False, 0: True}


def test_keypair_mismatch_on_encrypt(suite, engine, election, assignment):
    circuit, primary, auxiliary = assignment
    other = suite.proof_engine.generate(circuit)
    with pytest.raises(KeyMismatchError):
        engine.encrypt(election.public_key,
                       CircuitKeypair(other.proving_key, other.verification_key),
                       circuit, primary, auxiliary)
