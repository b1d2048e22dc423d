#!/usr/bin/env python3
"""
Configuration Management
Anonymizer settings loaded from YAML files or environment variables, with
encrypted connection strings and environment protection.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from cryptography.fernet import Fernet, InvalidToken

from .errors import ConfigurationError


DEFAULT_ALLOWED_ENVIRONMENTS = ['dev', 'test', 'sandbox']

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


@dataclass
class DatabaseConfig:
    """Database to anonymize."""
    name: str
    connection_string: str
    environment: str = "dev"

    # Security
    encrypted: bool = False

    def get_connection_string(self, encryption_key: Optional[str] = None) -> str:
        """Get decrypted connection string."""
        if not self.encrypted:
            return self.connection_string

        if not encryption_key:
            raise ConfigurationError(f"Connection string of database '{self.name}' is encrypted but no key is configured")
        return decrypt_connection_string(self.connection_string, encryption_key)


@dataclass
class AnonymizerConfig:
    """Main anonymizer configuration."""
    database: DatabaseConfig

    # Rules
    rules_path: Optional[str] = None

    # Generation
    locale: str = "en_US"
    seed: Optional[int] = None

    # Processing
    batch_size: int = 100
    progress_interval: int = 1
    max_workers: int = 1
    marker_column: str = "anonymized"

    # Safety
    allowed_environments: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ENVIRONMENTS))
    encryption_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_file(cls, config_path: str) -> 'AnonymizerConfig':
        """Load configuration from YAML file."""
        try:
            with open(config_path, 'r') as file:
                data = yaml.safe_load(file)
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnonymizerConfig':
        """Create configuration from dictionary."""
        db_config = data.get('database')
        if not isinstance(db_config, dict):
            raise ConfigurationError("Configuration must define a 'database' mapping")

        try:
            database = DatabaseConfig(**db_config)
        except TypeError as e:
            raise ConfigurationError(f"Invalid database configuration: {e}") from e

        seed = data.get('seed')
        return cls(
            database=database,
            rules_path=data.get('rules_path'),
            locale=data.get('locale', 'en_US'),
            seed=int(seed) if seed is not None else None,
            batch_size=int(data.get('batch_size', 100)),
            progress_interval=int(data.get('progress_interval', 1)),
            max_workers=int(data.get('max_workers', 1)),
            marker_column=data.get('marker_column', 'anonymized'),
            allowed_environments=list(data.get('allowed_environments', DEFAULT_ALLOWED_ENVIRONMENTS)),
            encryption_key=data.get('encryption_key'),
            log_level=str(data.get('log_level', 'INFO')).upper()
        )

    @classmethod
    def from_environment(cls) -> 'AnonymizerConfig':
        """Create configuration from ANONYMIZER_* environment variables."""
        connection_string = os.getenv('ANONYMIZER_DATABASE_URL')
        if not connection_string:
            raise ConfigurationError("Required environment variable not set: ANONYMIZER_DATABASE_URL")

        allowed = os.getenv('ANONYMIZER_ALLOWED_ENVIRONMENTS')
        seed = os.getenv('ANONYMIZER_SEED')

        return cls(
            database=DatabaseConfig(
                name=os.getenv('ANONYMIZER_DATABASE_NAME', 'default'),
                connection_string=connection_string,
                environment=os.getenv('ANONYMIZER_ENVIRONMENT', 'dev'),
                encrypted=os.getenv('ANONYMIZER_DATABASE_ENCRYPTED', 'false').lower() == 'true'
            ),
            rules_path=os.getenv('ANONYMIZER_RULES_PATH'),
            locale=os.getenv('ANONYMIZER_LOCALE', 'en_US'),
            seed=int(seed) if seed else None,
            batch_size=int(os.getenv('ANONYMIZER_BATCH_SIZE', '100')),
            progress_interval=int(os.getenv('ANONYMIZER_PROGRESS_INTERVAL', '1')),
            max_workers=int(os.getenv('ANONYMIZER_MAX_WORKERS', '1')),
            marker_column=os.getenv('ANONYMIZER_MARKER_COLUMN', 'anonymized'),
            allowed_environments=[env.strip() for env in allowed.split(',')] if allowed else list(DEFAULT_ALLOWED_ENVIRONMENTS),
            encryption_key=os.getenv('ANONYMIZER_ENCRYPTION_KEY'),
            log_level=os.getenv('ANONYMIZER_LOG_LEVEL', 'INFO').upper()
        )

    def connection_string(self) -> str:
        return self.database.get_connection_string(self.encryption_key)

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        connection_string = self.database.connection_string
        if mask_secrets:
            connection_string = mask_connection_string(connection_string)

        return {
            'database': {
                'name': self.database.name,
                'connection_string': connection_string,
                'environment': self.database.environment,
                'encrypted': self.database.encrypted
            },
            'rules_path': self.rules_path,
            'locale': self.locale,
            'seed': self.seed,
            'batch_size': self.batch_size,
            'progress_interval': self.progress_interval,
            'max_workers': self.max_workers,
            'marker_column': self.marker_column,
            'allowed_environments': list(self.allowed_environments),
            'encryption_key': '***' if mask_secrets and self.encryption_key else self.encryption_key,
            'log_level': self.log_level
        }


class ConfigManager:
    """Configuration loading with validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config_path = config_path
        self.config: Optional[AnonymizerConfig] = None

    def load_config(self) -> AnonymizerConfig:
        """Load configuration from file or environment."""
        if self.config_path and os.path.exists(self.config_path):
            self.logger.info(f"Loading configuration from file: {self.config_path}")
            self.config = AnonymizerConfig.from_file(self.config_path)
        else:
            self.logger.info("Loading configuration from environment variables")
            self.config = AnonymizerConfig.from_environment()

        self._validate_config()

        return self.config

    def _validate_config(self) -> None:
        """Validate configuration completeness and consistency."""
        if not self.config:
            raise ConfigurationError("Configuration not loaded")

        config = self.config
        if not config.database.connection_string:
            raise ConfigurationError(f"Empty connection string for database: {config.database.name}")

        if config.database.encrypted and not config.encryption_key:
            raise ConfigurationError(f"Database '{config.database.name}' is encrypted but no encryption_key is set")

        if config.batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {config.batch_size}")

        if config.progress_interval < 1:
            raise ConfigurationError(f"progress_interval must be positive, got {config.progress_interval}")

        if config.max_workers < 1:
            raise ConfigurationError(f"max_workers must be positive, got {config.max_workers}")

        if not config.marker_column:
            raise ConfigurationError("marker_column must not be empty")

        if config.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log_level '{config.log_level}', expected one of {', '.join(LOG_LEVELS)}")

        if config.rules_path and not os.path.exists(config.rules_path):
            raise ConfigurationError(f"Rules file not found: {config.rules_path}")

        self.logger.info("Configuration validation passed")


def ensure_safe_environment(config: AnonymizerConfig) -> None:
    """Refuse to anonymize a database whose environment is not explicitly allowed."""
    environment = config.database.environment
    if environment not in config.allowed_environments:
        raise ConfigurationError(
            f"Refusing to anonymize database '{config.database.name}' in environment '{environment}'; "
            f"allowed environments: {', '.join(config.allowed_environments)}"
        )


def create_default_config_file(output_path: str) -> None:
    """Create default configuration file template."""

    config_template = {
        'database': {
            'name': 'local_sandbox',
            'connection_string': 'sqlite:///sandbox.db',
            'environment': 'sandbox',
            'encrypted': False
        },
        'rules_path': 'anonymizer_rules.yaml',
        'locale': 'en_US',
        'batch_size': 100,
        'progress_interval': 1,
        'max_workers': 1,
        'marker_column': 'anonymized',
        'allowed_environments': list(DEFAULT_ALLOWED_ENVIRONMENTS),
        'log_level': 'INFO'
    }

    with open(output_path, 'w') as file:
        yaml.dump(config_template, file, default_flow_style=False, indent=2, sort_keys=False)


def mask_connection_string(connection_string: str) -> str:
    """Hide the password part of a database URL."""
    if '://' not in connection_string or '@' not in connection_string:
        return connection_string

    scheme, rest = connection_string.split('://', 1)
    credentials, host = rest.rsplit('@', 1)
    if ':' in credentials:
        credentials = f"{credentials.split(':', 1)[0]}:***"
    return f"{scheme}://{credentials}@{host}"


def encrypt_connection_string(connection_string: str, key: Optional[str] = None) -> Tuple[str, str]:
    """Encrypt connection string for secure storage."""
    if key is None:
        key_bytes = Fernet.generate_key()
    else:
        key_bytes = key.encode()

    f = Fernet(key_bytes)
    encrypted = f.encrypt(connection_string.encode())

    return encrypted.decode(), key_bytes.decode()


def decrypt_connection_string(encrypted_string: str, key: str) -> str:
    """Decrypt connection string."""
    try:
        f = Fernet(key.encode())
        return f.decrypt(encrypted_string.encode()).decode()
    except (InvalidToken, ValueError) as e:
        raise ConfigurationError("Cannot decrypt connection string with the configured key") from e
