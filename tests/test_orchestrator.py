"""End-to-end runs of the file-based phases and the in-memory session"""

from dataclasses import replace

import pytest

from config.config import ConfigurationError
from main import main
from protocol.errors import FileMissing, PhaseOrderError
from voting_protocol import Phase, ProtocolOrchestrator, ProtocolSession, ProtocolState, parse_phase


def run(make_config, phase, **overrides):
    return ProtocolOrchestrator(make_config(**overrides)).run_phase(phase)


def test_parse_phase():
    assert parse_phase("tally_voter") is Phase.TALLY_VOTER
    assert parse_phase(Phase.VOTE) is Phase.VOTE
    with pytest.raises(ConfigurationError):
        parse_phase("recount")


def test_file_phases_end_to_end(make_config):
    out = make_config().paths.output_dir

    for index in range(4):
        run(make_config, "init_voter", voter_idx=index, seed=index)
    assert (out / "voter_secret_key3.bin").exists()

    election = run(make_config, "init_admin")
    for name in ("r1cs_proving_key", "r1cs_verification_key", "pk_eid", "sk_eid", "vk_eid",
                 "eid", "rt"):
        assert (out / f"{name}.bin").exists()

    choices = [6, 1, 1, 3]
    for index, option in enumerate(choices):
        vote = run(make_config, "vote", voter_idx=index, vote=option, seed=10 + index)
        assert vote.root == election.root

    assert run(make_config, "vote_verify") == {0: True, 1: True, 2: True, 3: True}

    result = run(make_config, "tally_admin")
    assert list(result.plaintext) == [0, 2, 0, 1, 0, 0, 1]
    assert (out / "voting_result.bin").exists()
    assert (out / "decryption_proof.bin").exists()

    assert run(make_config, "tally_voter") is True


def test_tally_voter_rejects_tampered_result_file(make_config):
    for index in range(4):
        run(make_config, "init_voter", voter_idx=index, seed=index)
    run(make_config, "init_admin")
    for index in range(4):
        run(make_config, "vote", voter_idx=index, vote=0, seed=20 + index)
    run(make_config, "tally_admin")

    config = make_config()
    codec = ProtocolOrchestrator(config).codec
    result_path = config.paths.singleton(config.paths.voting_result)
    published = codec.deserialize_scalar_vector(result_path.read_bytes())
    assert published == [4, 0, 0, 0, 0, 0, 0]

    result_path.unlink()
    codec.write_obj(result_path, codec.serialize_scalar_vector([3, 1, 0, 0, 0, 0, 0]))
    assert run(make_config, "tally_voter") is False


def test_init_admin_needs_every_voter(make_config):
    run(make_config, "init_voter", voter_idx=0)
    with pytest.raises(FileMissing):
        run(make_config, "init_admin")


def test_missing_tree_depth(make_config):
    config = replace(make_config(), tree_depth=None)
    with pytest.raises(ConfigurationError):
        ProtocolOrchestrator(config).run_phase("init_admin")


def test_existing_artifacts_are_kept(make_config):
    config = make_config(voter_idx=0)
    first = ProtocolOrchestrator(config).run_phase("init_voter")
    ProtocolOrchestrator(config.with_overrides(seed=5)).run_phase("init_voter")

    codec = ProtocolOrchestrator(config).codec
    assert codec.read_voter_secret_key(0, 255) == list(first.secret_key)


def test_benchmarking_records_phases(make_config):
    orchestrator = ProtocolOrchestrator(make_config())
    orchestrator.run_phase("init_voter")
    summary = orchestrator.performance_monitor.get_summary()
    assert summary['operations']['init_voter']['count'] == 1

    quiet = ProtocolOrchestrator(make_config(enable_benchmarking=False))
    quiet.run_phase("init_voter")
    assert quiet.performance_monitor.get_summary()['total_operations'] == 0


def test_session_enforces_phase_order(suite):
    session = ProtocolSession(suite, tree_depth=1, eid_bits=16)
    assert session.state is ProtocolState.CREATED

    with pytest.raises(PhaseOrderError):
        session.init_admin()
    session.init_voter(0)
    with pytest.raises(PhaseOrderError):
        session.init_admin()
    with pytest.raises(PhaseOrderError):
        session.init_voter(0)
    session.init_voter(1)
    with pytest.raises(PhaseOrderError):
        session.vote(0, 1)

    session.init_admin()
    with pytest.raises(PhaseOrderError):
        session.init_voter(1)
    session.vote(0, 1)
    with pytest.raises(PhaseOrderError):
        session.vote(0, 2)
    with pytest.raises(PhaseOrderError):
        session.tally_admin()
    with pytest.raises(PhaseOrderError):
        session.tally_voter()

    session.vote(1, 1)
    result = session.tally_admin()
    assert list(result.plaintext) == [0, 2, 0, 0, 0, 0, 0]
    assert session.tally_voter()
    assert session.state is ProtocolState.TALLY_VERIFIED
    assert session.tally_voter()


def test_demo_report(make_config):
    orchestrator = ProtocolOrchestrator(make_config())
    report = orchestrator.run_demo(choices=[3, 3, 0, 6])

    assert report['tally'] == [1, 0, 0, 2, 0, 0, 1]
    assert report['checks'] == {
        'all_votes_verified': True,
        'tally_matches_choices': True,
        'tally_proof_verified': True,
        'tampered_tally_rejected': True,
        'all_checks_passed': True,
    }
    assert report['election']['participants'] == 4


def test_demo_rejects_wrong_number_of_choices(make_config):
    with pytest.raises(ConfigurationError):
        ProtocolOrchestrator(make_config()).run_demo(choices=[1, 2])


def test_cli_runs_phase_and_demo(tmp_path):
    common = ["--config", str(tmp_path / "none.yaml"), "--output-dir", str(tmp_path / "out"),
              "--results-dir", str(tmp_path / "results"), "--log-file", str(tmp_path / "cli.log"),
              "--group-bits", "1024", "--tree-depth", "1", "--eid-bits", "16", "--seed", "7"]

    assert main(["init_voter", "--voter-idx", "0", "--sn-output", "serial"] + common) == 0
    assert (tmp_path / "out" / "voter_public_key0.bin").exists()
    assert (tmp_path / "results" / "performance_report.txt").exists()

    assert main(["init_admin"] + common) == 1

    assert main(common) == 0
    assert (tmp_path / "results" / "demo_report.json").exists()
    assert (tmp_path / "results" / "demo_report_summary.txt").exists()


def test_cli_rejects_invalid_vote(tmp_path):
    args = ["vote", "--config", str(tmp_path / "none.yaml"), "--vote", "9",
            "--log-file", str(tmp_path / "cli.log")]
    assert main(args) == 1
