"""Tests for artifact encodings and file persistence"""

import pytest

from config.config import ArtifactPaths
from protocol.codec import ArtifactCodec
from protocol.errors import FileMissing, MalformedArtifact, SizeMismatch
from protocol.roles import VoteCaster
from zk.zk_proofs import BLS12_381_SCALAR_ORDER


@pytest.fixture
def codec(tmp_path):
    return ArtifactCodec(ArtifactPaths(output_dir=tmp_path))


def test_scalar_vector_layout():
    data = ArtifactCodec.serialize_scalar_vector([1, 2, BLS12_381_SCALAR_ORDER - 1])
    assert len(data) == 4 + 3 * 32
    assert data[:4] == b"\x00\x00\x00\x03"
    assert data[4:36] == (1).to_bytes(32, 'big')
    assert ArtifactCodec.deserialize_scalar_vector(data) == [1, 2, BLS12_381_SCALAR_ORDER - 1]


def test_empty_scalar_vector():
    data = ArtifactCodec.serialize_scalar_vector([])
    assert data == b"\x00\x00\x00\x00"
    assert ArtifactCodec.deserialize_scalar_vector(data) == []


def test_scalar_vector_rejects_bad_input():
    with pytest.raises(MalformedArtifact):
        ArtifactCodec.serialize_scalar_vector([BLS12_381_SCALAR_ORDER])

    data = ArtifactCodec.serialize_scalar_vector([5, 6])
    with pytest.raises(SizeMismatch):
        ArtifactCodec.deserialize_scalar_vector(data[:-1])
    with pytest.raises(SizeMismatch):
        ArtifactCodec.deserialize_scalar_vector(b"\x00")

    out_of_field = b"\x00\x00\x00\x01" + BLS12_381_SCALAR_ORDER.to_bytes(32, 'big')
    with pytest.raises(MalformedArtifact):
        ArtifactCodec.deserialize_scalar_vector(out_of_field)


def test_bit_vector_rejects_non_bits():
    data = ArtifactCodec.serialize_scalar_vector([0, 1, 2])
    with pytest.raises(MalformedArtifact):
        ArtifactCodec.deserialize_bit_vector(data)


def test_bit_vector_round_trip():
    bits = [True, False, False, True, True]
    assert ArtifactCodec.deserialize_bit_vector(ArtifactCodec.serialize_bit_vector(bits)) == bits


def test_255_bit_array_is_32_bytes(rng):
    bits = rng.random_bits(255)
    data = ArtifactCodec.serialize_255_bit_array(bits)
    assert len(data) == 32
    # Padding bit is zero
    assert data[-1] & 1 == 0
    assert ArtifactCodec.deserialize_255_bit_array(data) == bits


def test_255_bit_array_wrong_sizes():
    with pytest.raises(SizeMismatch):
        ArtifactCodec.serialize_255_bit_array([True] * 256)
    with pytest.raises(SizeMismatch):
        ArtifactCodec.deserialize_255_bit_array(b"\x00" * 31)


def test_255_bit_array_rejects_set_padding_bit(rng):
    data = bytearray(ArtifactCodec.serialize_255_bit_array(rng.random_bits(255)))
    data[-1] |= 1
    with pytest.raises(MalformedArtifact):
        ArtifactCodec.deserialize_255_bit_array(bytes(data))


def test_engine_objects_wrap_decode_errors(codec):
    with pytest.raises(MalformedArtifact):
        codec.deserialize_ciphertext(b"garbage")
    with pytest.raises(MalformedArtifact):
        codec.deserialize_proving_key(b"AVPK")
    with pytest.raises(MalformedArtifact):
        codec.deserialize_decryption_proof(b"")


def test_write_obj_does_not_clobber(codec, tmp_path):
    path = tmp_path / "nested" / "blob.bin"
    assert codec.write_obj(path, b"first")
    assert not codec.write_obj(path, b"second")
    assert path.read_bytes() == b"first"


def test_read_obj_missing(codec, tmp_path):
    with pytest.raises(FileMissing):
        codec.read_obj(tmp_path / "absent.bin")


def test_file_names(tmp_path):
    paths = ArtifactPaths(output_dir=tmp_path, cipher_text="ct")
    assert paths.per_voter(paths.cipher_text, 3) == tmp_path / "ct3.bin"
    assert paths.singleton(paths.root) == tmp_path / "rt.bin"
    assert paths.verifier(1) == tmp_path / "r1cs_verification_input1.bin"
    assert paths.verifier_chunked(1) == tmp_path / "r1cs_verification_input_chunked1.bin"


def test_voter_keys_on_disk(codec, voters, tmp_path):
    written = codec.write_voter_keypair(voters[2])
    assert written == {'public_key': True, 'secret_key': True}
    assert (tmp_path / "voter_public_key2.bin").stat().st_size == 32

    assert codec.read_voter_public_key(2, 255) == list(voters[2].public_key)
    assert codec.read_voter_secret_key(2, 255) == list(voters[2].secret_key)


def test_read_all_public_keys(codec, voters):
    for voter in voters:
        codec.write_voter_keypair(voter)
    keys = codec.read_voters_public_keys(4, 255)
    assert keys == [list(v.public_key) for v in voters]

    with pytest.raises(FileMissing):
        codec.read_voters_public_keys(5, 255)


def test_election_on_disk(codec, election, tmp_path):
    written = codec.write_election(election)
    assert all(written.values())
    assert (tmp_path / "rt.bin").exists()
    assert (tmp_path / "sk_eid.bin").exists()

    public = codec.read_election(2, include_proving_key=False)
    assert public.secret_key is None
    assert public.proving_key is None
    assert public.root == election.root
    assert public.eid == election.eid
    assert public.verification_key == election.verification_key

    full = codec.read_election(2, include_secret=True)
    assert full == election


def test_vote_on_disk(codec, suite, voters, election, tmp_path):
    vote = VoteCaster(suite).cast_vote(
        1, voters[1].secret_key, election, [v.public_key for v in voters], 5)
    written = codec.write_vote(vote, election)
    assert all(written.values())

    assert (tmp_path / "r1cs_verification_input1.bin").read_bytes() == codec.verifier_input(
        vote.proof, election.verification_key, election.public_key,
        vote.ciphertext, vote.primary_input)
    assert (tmp_path / "r1cs_verification_input_chunked1.bin").exists()

    loaded = codec.read_vote(1, suite.layout(64))
    assert loaded == vote


def test_vote_with_inconsistent_serial_number(codec, suite, voters, election, tmp_path):
    vote = VoteCaster(suite).cast_vote(
        0, voters[0].secret_key, election, [v.public_key for v in voters], 0)
    codec.write_vote(vote, election)

    (tmp_path / "sn0.bin").unlink()
    codec.write_obj(tmp_path / "sn0.bin", codec.serialize_bit_vector(
        [not b for b in vote.serial_number]))
    with pytest.raises(MalformedArtifact):
        codec.read_vote(0, suite.layout(64))


def test_ciphertexts_need_every_voter(codec, suite, voters, election):
    vote = VoteCaster(suite).cast_vote(
        0, voters[0].secret_key, election, [v.public_key for v in voters], 0)
    codec.write_vote(vote, election)

    assert codec.read_ciphertexts(1) == [vote.ciphertext]
    with pytest.raises(FileMissing):
        codec.read_ciphertexts(4)


def test_vote_with_non_bit_primary_input(codec, suite, voters, election, tmp_path):
    vote = VoteCaster(suite).cast_vote(
        0, voters[0].secret_key, election, [v.public_key for v in voters], 3)
    codec.write_vote(vote, election)

    tampered = [int(v) for v in vote.primary_input]
    tampered[10] = 2  # inside the eid field
    (tmp_path / "r1cs_primary_input0.bin").unlink()
    codec.write_obj(tmp_path / "r1cs_primary_input0.bin",
                    codec.serialize_scalar_vector(tampered))
    with pytest.raises(MalformedArtifact):
        codec.read_vote(0, suite.layout(64))
