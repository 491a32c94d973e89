import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

VERIFIER_BACKENDS = ("accept_all", "reject_all", "proof_server", "sunspot")
STORE_BACKENDS = ("memory", "file")


@dataclass
class VerifierConfig:
    backend: str = "accept_all"
    program_id: str = "sunspot-groth16-vote-verifier"
    proof_server_url: str = "http://localhost:3001"
    sunspot_path: str = "sunspot"
    verifying_key: Path = field(default_factory=lambda: Path(
        "circuits/target/vote_circuit.vk"))
    timeout: float = 60.0

    def __post_init__(self):
        self.verifying_key = Path(self.verifying_key)
        if self.backend not in VERIFIER_BACKENDS:
            raise ValueError(
                f"Unknown verifier backend {self.backend!r}, expected one of {VERIFIER_BACKENDS}")


@dataclass
class StoreConfig:
    backend: str = "memory"
    path: Path = field(default_factory=lambda: Path("data/voting_store.json"))

    def __post_init__(self):
        self.path = Path(self.path)
        if self.backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown store backend {self.backend!r}, expected one of {STORE_BACKENDS}")


@dataclass
class SystemConfig:
    program_id: str = "token-gated-voting"

    verifier_config: VerifierConfig = field(default_factory=VerifierConfig)
    store_config: StoreConfig = field(default_factory=StoreConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    log_level: str = "INFO"
    enable_benchmarking: bool = True
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)
        if self.enable_debug_mode:
            self.log_level = "DEBUG"


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

        verifier_data = config_data.get('verifier', {})
        verifier_config = VerifierConfig(
            backend=verifier_data.get('backend', 'accept_all'),
            program_id=verifier_data.get(
                'program_id', 'sunspot-groth16-vote-verifier'),
            proof_server_url=verifier_data.get(
                'proof_server_url', 'http://localhost:3001'),
            sunspot_path=verifier_data.get('sunspot_path', 'sunspot'),
            verifying_key=Path(verifier_data.get(
                'verifying_key', 'circuits/target/vote_circuit.vk')),
            timeout=float(verifier_data.get('timeout', 60.0))
        )

        store_data = config_data.get('store', {})
        store_config = StoreConfig(
            backend=store_data.get('backend', 'memory'),
            path=Path(store_data.get('path', 'data/voting_store.json'))
        )

        return SystemConfig(
            program_id=config_data.get('program_id', 'token-gated-voting'),
            verifier_config=verifier_config,
            store_config=store_config,
            log_dir=Path(config_data.get('log_dir', 'logs')),
            results_dir=Path(config_data.get('results_dir', 'results')),
            log_level=config_data.get('log_level', 'INFO'),
            enable_benchmarking=config_data.get('enable_benchmarking', True),
            enable_debug_mode=config_data.get('enable_debug_mode', False)
        )
    except (OSError, yaml.YAMLError, AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Could not load config file {config_path}: {e}")
        logger.warning("Using default configuration")

    return SystemConfig()


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    config_data = {
        'program_id': config.program_id,
        'verifier': {
            'backend': config.verifier_config.backend,
            'program_id': config.verifier_config.program_id,
            'proof_server_url': config.verifier_config.proof_server_url,
            'sunspot_path': config.verifier_config.sunspot_path,
            'verifying_key': str(config.verifier_config.verifying_key),
            'timeout': config.verifier_config.timeout
        },
        'store': {
            'backend': config.store_config.backend,
            'path': str(config.store_config.path)
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'log_level': config.log_level,
        'enable_benchmarking': config.enable_benchmarking,
        'enable_debug_mode': config.enable_debug_mode
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
