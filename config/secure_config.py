#!/usr/bin/env python3
"""
Secure Configuration Manager for the keyspace migrator
Handles environment variables, secrets, and paths centrally
"""

import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

def _split_hosts(value: str) -> List[str]:
    return [host.strip() for host in value.split(',') if host.strip()]

@dataclass
class MigratorConfig:
    """Migrator configuration settings"""

    # Base paths - use environment or defaults
    base_dir: Path = None
    log_dir: Path = None

    # Source cluster
    source_hosts: List[str] = field(default_factory=lambda: ['127.0.0.1'])
    source_port: int = 9042
    source_keyspace: str = "oae"
    source_username: str = None

    # Target cluster
    target_hosts: List[str] = field(default_factory=lambda: ['127.0.0.1'])
    target_port: int = 9042
    target_keyspace: str = "oae"
    target_username: str = None

    # Secrets (environment only)
    source_password: str = None
    target_password: str = None

    # Copy settings
    insert_mode: str = "batch"
    batch_size: int = 100
    row_limit: int = 999999
    chain_timeout: float = 3600.0
    request_timeout: float = 60.0
    consistency: str = "LOCAL_QUORUM"

    # Runtime settings
    log_level: str = "INFO"

    # Profile settings
    profile: str = "dev"  # dev, prod

    def __post_init__(self):
        """Initialize paths and load environment variables"""
        # Load profile from environment
        self.profile = os.environ.get('MIGRATOR_PROFILE', 'dev')

        # Set base directory
        if self.base_dir is None:
            # Default to project root relative to this file
            default_root = Path(__file__).parent.parent
            self.base_dir = Path(os.environ.get('MIGRATOR_HOME', default_root))
        else:
            self.base_dir = Path(self.base_dir)

        if self.log_dir is None:
            self.log_dir = self.base_dir / 'logs'

        # Load secrets from environment
        self.source_password = os.environ.get('MIGRATOR_SOURCE_PASSWORD')
        self.target_password = os.environ.get('MIGRATOR_TARGET_PASSWORD')

        # Cluster settings from environment
        if os.environ.get('MIGRATOR_SOURCE_HOSTS'):
            self.source_hosts = _split_hosts(os.environ['MIGRATOR_SOURCE_HOSTS'])
        if os.environ.get('MIGRATOR_TARGET_HOSTS'):
            self.target_hosts = _split_hosts(os.environ['MIGRATOR_TARGET_HOSTS'])
        self.source_port = int(os.environ.get('MIGRATOR_SOURCE_PORT', str(self.source_port)))
        self.target_port = int(os.environ.get('MIGRATOR_TARGET_PORT', str(self.target_port)))
        self.source_keyspace = os.environ.get('MIGRATOR_SOURCE_KEYSPACE', self.source_keyspace)
        self.target_keyspace = os.environ.get('MIGRATOR_TARGET_KEYSPACE', self.target_keyspace)
        self.source_username = os.environ.get('MIGRATOR_SOURCE_USERNAME', self.source_username)
        self.target_username = os.environ.get('MIGRATOR_TARGET_USERNAME', self.target_username)

        # Copy settings from environment
        self.insert_mode = os.environ.get('MIGRATOR_INSERT_MODE', self.insert_mode).lower()
        self.batch_size = int(os.environ.get('MIGRATOR_BATCH_SIZE', str(self.batch_size)))
        self.row_limit = int(os.environ.get('MIGRATOR_ROW_LIMIT', str(self.row_limit)))
        self.chain_timeout = float(os.environ.get('MIGRATOR_CHAIN_TIMEOUT', str(self.chain_timeout)))
        self.request_timeout = float(os.environ.get('MIGRATOR_REQUEST_TIMEOUT', str(self.request_timeout)))
        self.consistency = os.environ.get('MIGRATOR_CONSISTENCY', self.consistency)
        self.log_level = os.environ.get('MIGRATOR_LOG_LEVEL', 'INFO')

        # Apply profile defaults if not overridden
        if self.profile == 'prod':
            self.insert_mode = 'batch'
            if 'MIGRATOR_LOG_LEVEL' not in os.environ:
                self.log_level = 'WARNING'

    def validate_secrets(self) -> bool:
        """A username without its password is a misconfiguration"""
        if self.source_username and not self.source_password:
            return False
        if self.target_username and not self.target_password:
            return False
        return True

    def backend_config(self, side: str) -> Dict[str, Any]:
        """DatabaseManager backend entry for ``source`` or ``target``"""
        return {
            'type': 'cassandra',
            'hosts': list(getattr(self, f'{side}_hosts')),
            'port': getattr(self, f'{side}_port'),
            'keyspace': getattr(self, f'{side}_keyspace'),
            'username': getattr(self, f'{side}_username'),
            'password': getattr(self, f'{side}_password'),
            'consistency': self.consistency,
            'request_timeout': self.request_timeout,
        }

    def database_config(self) -> Dict[str, Any]:
        return {'backends': {'source': self.backend_config('source'),
                             'target': self.backend_config('target')}}

    def get_safe_dict(self) -> Dict[str, Any]:
        """Get configuration as dict without sensitive values (side-effect free)"""
        return {
            'base_dir': str(self.base_dir),
            'log_dir': str(self.log_dir),
            'source_hosts': self.source_hosts,
            'source_keyspace': self.source_keyspace,
            'source_username': self.source_username,
            'target_hosts': self.target_hosts,
            'target_keyspace': self.target_keyspace,
            'target_username': self.target_username,
            'insert_mode': self.insert_mode,
            'batch_size': self.batch_size,
            'row_limit': self.row_limit,
            'chain_timeout': self.chain_timeout,
            'log_level': self.log_level,
            'profile': self.profile,
            'secrets_configured': self.validate_secrets(),
        }

class ConfigManager:
    """Singleton configuration manager"""

    _instance: Optional['ConfigManager'] = None
    _config: Optional[MigratorConfig] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self.load_config()

    def load_config(self):
        """Load configuration from the environment.

        Priority (highest to lowest):
        1. Environment variables (MIGRATOR_*)
        2. .env file (loaded into os.environ before config creation)
        3. MigratorConfig dataclass defaults
        """
        default_base = Path(__file__).parent.parent
        base_dir = Path(os.environ.get('MIGRATOR_HOME', default_base))
        env_file = base_dir / '.env'
        if env_file.exists():
            self._load_env_file(env_file)

        self._config = MigratorConfig()

    def _load_env_file(self, env_file: Path):
        """Load environment variables from .env file.

        Only sets values for keys not already in os.environ,
        ensuring exported env vars take precedence over .env file.
        """
        try:
            with open(env_file, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        key = key.strip()
                        if key not in os.environ:
                            os.environ[key] = value.strip().strip('"').strip("'")
        except OSError as e:
            print(f"Warning: Could not load .env file: {e}")

    @property
    def config(self) -> MigratorConfig:
        """Get the current configuration"""
        if self._config is None:
            self.load_config()
        return self._config

    @classmethod
    def reset(cls):
        """Drop the cached configuration so the next access re-reads the environment"""
        cls._instance = None
        cls._config = None


# Global config instance
def get_config() -> MigratorConfig:
    """Get the global configuration instance"""
    return ConfigManager().config


if __name__ == "__main__":
    config = get_config()
    print("Migrator Configuration Status:")
    print("-" * 40)
    for key, value in config.get_safe_dict().items():
        print(f"{key}: {value}")
