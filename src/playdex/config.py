import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from playdex.errors import ValidationError
from playdex.persistence.gateway import MemoryGateway, StateGateway
from playdex.persistence.json_file import JsonFileGateway
from playdex.persistence.sqlite import SqliteGateway

logger = logging.getLogger(__name__)

BACKENDS = ('sqlite', 'json', 'memory')
DEFAULT_DATA_DIR = Path.home() / '.local' / 'share' / 'playdex'


@dataclass
class Config:
    storage_backend: str = 'sqlite'
    db_path: Path = DEFAULT_DATA_DIR / 'playdex.db'
    json_path: Path = DEFAULT_DATA_DIR / 'playdex.json'
    shuffle_seed: Optional[int] = None
    log_file: Optional[Path] = None

    def __post_init__(self):
        if self.storage_backend not in BACKENDS:
            raise ValidationError(
                f"Unknown storage backend {self.storage_backend!r}; expected one of {', '.join(BACKENDS)}"
            )
        self.db_path = Path(self.db_path).expanduser()
        self.json_path = Path(self.json_path).expanduser()
        if self.log_file is not None:
            self.log_file = Path(self.log_file).expanduser()

    @classmethod
    def load_config(cls, config_path: Path) -> 'Config':
        """Load configuration from YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found at {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        storage = config_data.get('storage') or {}
        playback = config_data.get('playback') or {}
        logging_section = config_data.get('logging') or {}
        defaults = cls()

        return cls(
            storage_backend=storage.get('backend', defaults.storage_backend),
            db_path=Path(storage.get('db_path', defaults.db_path)),
            json_path=Path(storage.get('json_path', defaults.json_path)),
            shuffle_seed=playback.get('shuffle_seed'),
            log_file=logging_section.get('file'),
        )

    def save_config(self, config_path: Path):
        """Save configuration to YAML file."""
        config_data = {
            'storage': {
                'backend': self.storage_backend,
                'db_path': str(self.db_path),
                'json_path': str(self.json_path),
            },
            'playback': {
                'shuffle_seed': self.shuffle_seed,
            },
            'logging': {
                'file': str(self.log_file) if self.log_file else None,
            },
        }

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.dump(config_data, f, default_flow_style=False)

    def create_gateway(self) -> StateGateway:
        """Build the storage gateway selected by storage_backend."""
        if self.storage_backend == 'sqlite':
            return SqliteGateway(self.db_path)
        if self.storage_backend == 'json':
            return JsonFileGateway(self.json_path)
        return MemoryGateway()

    def create_rng(self) -> random.Random:
        return random.Random(self.shuffle_seed)


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from the given path or standard locations.

    Falls back to defaults when no file is found.
    """
    config_locations = [
        config_path,
        Path.home() / '.config' / 'playdex' / 'config.yml',
        Path.cwd() / 'config.yaml',
    ]

    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")

    for path in config_locations:
        if path and path.exists():
            config = Config.load_config(path)
            logger.info(f"Loaded configuration from {path}")
            return config

    logger.info("No configuration file found, using defaults")
    return Config()
