from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SUPPORTED_HASHES = ("sha256", "sha512", "sha3_256")
SUPPORTED_GROUP_BITS = (1024, 2048)


class ConfigurationError(ValueError):
    """Missing or invalid election parameter"""
    pass


@dataclass(frozen=True)
class ElectionPolicy:
    """Cryptographic choices shared by every protocol component"""
    msg_size: int = 7
    hash_name: str = "sha256"
    digest_bits: int = 255
    group_bits: int = 2048
    tree_arity: int = 2

    def __post_init__(self):
        if self.msg_size < 1:
            raise ConfigurationError(f"msg_size must be positive, got {self.msg_size}")
        if self.hash_name not in SUPPORTED_HASHES:
            raise ConfigurationError(
                f"Unsupported hash {self.hash_name!r}; expected one of {SUPPORTED_HASHES}")
        if not 8 <= self.digest_bits <= 256:
            raise ConfigurationError(f"digest_bits must be in [8, 256], got {self.digest_bits}")
        if self.group_bits not in SUPPORTED_GROUP_BITS:
            raise ConfigurationError(
                f"group_bits must be one of {SUPPORTED_GROUP_BITS}, got {self.group_bits}")
        if self.tree_arity != 2:
            raise ConfigurationError("Only binary Merkle trees are supported")

    @property
    def secret_key_bits(self) -> int:
        return self.digest_bits


@dataclass(frozen=True)
class ArtifactPaths:
    """File prefixes for every artifact exchanged between phases"""
    output_dir: Path = field(default_factory=lambda: Path("."))
    voter_public_key: str = "voter_public_key"
    voter_secret_key: str = "voter_secret_key"
    proof: str = "r1cs_proof"
    primary_input: str = "r1cs_primary_input"
    proving_key: str = "r1cs_proving_key"
    verification_key: str = "r1cs_verification_key"
    verifier_input: str = "r1cs_verification_input"
    public_key: str = "pk_eid"
    eid_verification_key: str = "vk_eid"
    secret_key: str = "sk_eid"
    cipher_text: str = "cipher_text"
    decryption_proof: str = "decryption_proof"
    voting_result: str = "voting_result"
    eid: str = "eid"
    serial_number: str = "sn"
    root: str = "rt"

    def __post_init__(self):
        object.__setattr__(self, 'output_dir', Path(self.output_dir))

    def per_voter(self, prefix: str, index: int) -> Path:
        return self.output_dir / f"{prefix}{index}.bin"

    def singleton(self, prefix: str) -> Path:
        return self.output_dir / f"{prefix}.bin"

    def verifier(self, index: int) -> Path:
        return self.per_voter(self.verifier_input, index)

    def verifier_chunked(self, index: int) -> Path:
        return self.per_voter(f"{self.verifier_input}_chunked", index)


@dataclass(frozen=True)
class SystemConfig:
    tree_depth: Optional[int] = 2
    eid_bits: Optional[int] = 64
    voter_idx: int = 0
    vote: Optional[int] = None
    seed: Optional[int] = None

    policy: ElectionPolicy = field(default_factory=ElectionPolicy)
    paths: ArtifactPaths = field(default_factory=ArtifactPaths)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_level: str = "INFO"
    results_dir: Path = field(default_factory=lambda: Path("results"))
    enable_benchmarking: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'log_dir', Path(self.log_dir))
        object.__setattr__(self, 'results_dir', Path(self.results_dir))

        if self.tree_depth is not None and self.tree_depth < 0:
            raise ConfigurationError(f"tree_depth must be >= 0, got {self.tree_depth}")
        if self.eid_bits is not None and self.eid_bits < 1:
            raise ConfigurationError(f"eid_bits must be >= 1, got {self.eid_bits}")
        if self.voter_idx < 0:
            raise ConfigurationError(f"voter_idx must be >= 0, got {self.voter_idx}")
        if self.vote is not None and not 0 <= self.vote < self.policy.msg_size:
            raise ConfigurationError(
                f"vote must be in [0, {self.policy.msg_size}), got {self.vote}")

    @property
    def participants(self) -> int:
        return 2 ** self.require_tree_depth()

    def require_tree_depth(self) -> int:
        if self.tree_depth is None:
            raise ConfigurationError("Tree depth is not specified")
        return self.tree_depth

    def require_eid_bits(self) -> int:
        if self.eid_bits is None:
            raise ConfigurationError("Election id length is not specified")
        return self.eid_bits

    def with_overrides(self, **overrides) -> 'SystemConfig':
        """Return a copy with the given fields replaced (None values are ignored)"""
        policy_fields = {k: overrides.pop(k) for k in list(overrides)
                         if k in ElectionPolicy.__dataclass_fields__}
        path_fields = {k: overrides.pop(k) for k in list(overrides)
                       if k in ArtifactPaths.__dataclass_fields__}

        policy_fields = {k: v for k, v in policy_fields.items() if v is not None}
        path_fields = {k: v for k, v in path_fields.items() if v is not None}
        overrides = {k: v for k, v in overrides.items() if v is not None}

        unknown = set(overrides) - set(SystemConfig.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown configuration fields: {sorted(unknown)}")

        return replace(
            self,
            policy=replace(self.policy, **policy_fields),
            paths=replace(self.paths, **path_fields),
            **overrides
        )


def _config_from_dict(config_data: Dict[str, Any]) -> SystemConfig:
    policy_data = config_data.get('policy', {}) or {}
    paths_data = dict(config_data.get('artifacts', {}) or {})
    if 'output_dir' in paths_data:
        paths_data['output_dir'] = Path(paths_data['output_dir'])

    try:
        return SystemConfig(
            tree_depth=config_data.get('tree_depth', 2),
            eid_bits=config_data.get('eid_bits', 64),
            voter_idx=config_data.get('voter_idx', 0),
            vote=config_data.get('vote'),
            seed=config_data.get('seed'),
            policy=ElectionPolicy(**policy_data),
            paths=ArtifactPaths(**paths_data),
            log_dir=Path(config_data.get('log_dir', 'logs')),
            log_level=config_data.get('log_level', 'INFO'),
            results_dir=Path(config_data.get('results_dir', 'results')),
            enable_benchmarking=config_data.get('enable_benchmarking', True)
        )
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not load config file {config_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    return _config_from_dict(config_data)


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    paths_data = asdict(config.paths)
    paths_data['output_dir'] = str(config.paths.output_dir)

    config_data = {
        'tree_depth': config.tree_depth,
        'eid_bits': config.eid_bits,
        'voter_idx': config.voter_idx,
        'vote': config.vote,
        'seed': config.seed,
        'policy': asdict(config.policy),
        'artifacts': paths_data,
        'log_dir': str(config.log_dir),
        'log_level': config.log_level,
        'results_dir': str(config.results_dir),
        'enable_benchmarking': config.enable_benchmarking
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
