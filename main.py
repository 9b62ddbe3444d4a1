import argparse
import logging
import sys
from pathlib import Path

from config.config import ConfigurationError, SystemConfig, load_config
from elgamal.elgamal_verifiable import ElGamalError
from protocol.errors import VotingError
from utils.utils import create_performance_report, save_results, setup_logging
from voting_protocol import Phase, ProtocolOrchestrator
from zk.zk_proofs import ZKError

logger = logging.getLogger(__name__)

# CLI option -> ArtifactPaths field
ARTIFACT_OPTIONS = {
    'voter-public-key-output': 'voter_public_key',
    'voter-secret-key-output': 'voter_secret_key',
    'r1cs-proof-output': 'proof',
    'r1cs-primary-input-output': 'primary_input',
    'r1cs-proving-key-output': 'proving_key',
    'r1cs-verification-key-output': 'verification_key',
    'r1cs-verifier-input-output': 'verifier_input',
    'public-key-output': 'public_key',
    'verification-key-output': 'eid_verification_key',
    'secret-key-output': 'secret_key',
    'cipher-text-output': 'cipher_text',
    'decryption-proof-output': 'decryption_proof',
    'voting-result-output': 'voting_result',
    'eid-output': 'eid',
    'sn-output': 'serial_number',
    'rt-output': 'root',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Anonymous verifiable voting. Runs one protocol phase, '
                    'or the full demo election when no phase is given.')
    parser.add_argument('phase', nargs='?', choices=[p.value for p in Phase],
                        help='Protocol phase to run')
    parser.add_argument('--config', type=Path, default=Path('config.yaml'),
                        help='Config file path')
    parser.add_argument('--tree-depth', type=int,
                        help='Depth of the voter tree (2^depth participants)')
    parser.add_argument('--eid-bits', type=int, help='Length of the election id in bits')
    parser.add_argument('--voter-idx', type=int, help='Index of the voter running the phase')
    parser.add_argument('--vote', type=int, help='Option to vote for (random when omitted)')
    parser.add_argument('--msg-size', type=int, help='Number of ballot options')
    parser.add_argument('--group-bits', type=int, choices=[1024, 2048],
                        help='Size of the encryption group')
    parser.add_argument('--output-dir', type=Path, help='Directory for artifact files')
    parser.add_argument('--results-dir', type=Path, help='Directory for demo reports')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--log-file', type=Path, help='Log file (default: logs/anonvote_<time>.log)')
    parser.add_argument('--seed', type=int,
                        help='Seed a deterministic random source (testing only)')
    parser.add_argument('--no-benchmark', action='store_true',
                        help='Disable per-phase performance monitoring')

    artifacts = parser.add_argument_group('artifact file prefixes')
    for option, field_name in ARTIFACT_OPTIONS.items():
        artifacts.add_argument(f'--{option}', dest=field_name, metavar='PREFIX')

    return parser


def build_config(args: argparse.Namespace) -> SystemConfig:
    overrides = {
        'tree_depth': args.tree_depth,
        'eid_bits': args.eid_bits,
        'voter_idx': args.voter_idx,
        'vote': args.vote,
        'seed': args.seed,
        'msg_size': args.msg_size,
        'group_bits': args.group_bits,
        'output_dir': args.output_dir,
        'results_dir': args.results_dir,
        'log_level': args.log_level,
    }
    if args.no_benchmark:
        overrides['enable_benchmarking'] = False
    for field_name in ARTIFACT_OPTIONS.values():
        overrides[field_name] = getattr(args, field_name)

    return load_config(args.config).with_overrides(**overrides)


def run_demo(orchestrator: ProtocolOrchestrator) -> bool:
    config = orchestrator.config
    results = orchestrator.run_demo()

    print("=" * 80)
    print("ANONYMOUS VERIFIABLE VOTING - DEMO ELECTION")
    print("=" * 80)
    election = results['election']
    print(f"\nVoters: {election['participants']} (tree depth {election['tree_depth']})")
    print(f"Options: {election['msg_size']}, election id: {election['eid_bits']} bits")
    print(f"Encryption group: {election['group_bits']} bits, hash: {election['hash']}")

    print("\nFinal Tally:")
    for option, count in enumerate(results['tally']):
        print(f"  Option {option}: {count} votes")

    print("\nVerification Checks:")
    for check, passed in results['checks'].items():
        status = "PASSED" if passed else "FAILED"
        print(f"  {check}: {status}")

    report_path = config.results_dir / "demo_report.json"
    save_results(results, report_path)
    print(f"\nFull results saved to: {report_path}")

    return results['checks']['all_checks_passed']


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, args.log_file, config.log_dir)

    try:
        orchestrator = ProtocolOrchestrator(config)
        if args.phase is None:
            success = run_demo(orchestrator)
        else:
            outcome = orchestrator.run_phase(args.phase)
            # Audit phases report failure through their result
            if isinstance(outcome, bool):
                success = outcome
            elif isinstance(outcome, dict):
                success = all(outcome.values())
            else:
                success = True
    except (VotingError, ConfigurationError, ZKError, ElGamalError) as e:
        logger.error(f"Phase {args.phase or 'demo'} failed: {e}")
        return 1

    if config.enable_benchmarking:
        report_path = config.results_dir / "performance_report.txt"
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w") as f:
            f.write(create_performance_report(orchestrator.performance_monitor))
        orchestrator.performance_monitor.save_metrics(config.results_dir / "performance_metrics.json")
        logger.info(f"Performance report: {report_path}")

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
