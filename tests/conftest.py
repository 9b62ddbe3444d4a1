import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.config import ArtifactPaths, ElectionPolicy, SystemConfig  # noqa: E402
from protocol.roles import ElectionInitializer, ProtocolSuite, VoterKeyGenerator  # noqa: E402
from utils.randomness import SeededRandomSource  # noqa: E402


@pytest.fixture
def policy():
    # 1024-bit group keeps proofs fast
    return ElectionPolicy(msg_size=7, group_bits=1024)


@pytest.fixture
def rng():
    return SeededRandomSource(1234)


@pytest.fixture
def suite(policy, rng):
    return ProtocolSuite.from_policy(policy, rng)


@pytest.fixture
def make_config(tmp_path, policy):
    def factory(**overrides):
        config = SystemConfig(
            tree_depth=2,
            eid_bits=64,
            seed=99,
            policy=policy,
            paths=ArtifactPaths(output_dir=tmp_path / "artifacts"),
            log_dir=tmp_path / "logs",
            results_dir=tmp_path / "results",
        )
        return config.with_overrides(**overrides)
    return factory


@pytest.fixture
def voters(suite):
    generator = VoterKeyGenerator(suite)
    return [generator.generate(index) for index in range(4)]


@pytest.fixture
def election(suite, voters):
    return ElectionInitializer(suite).initialize(
        tree_depth=2, eid_bits=64, public_keys=[v.public_key for v in voters])
