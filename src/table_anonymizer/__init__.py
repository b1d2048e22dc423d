"""
Table Anonymizer

Replaces sensitive values in relational tables with realistic synthetic data:
- Declarative per-field rules loaded from YAML
- Pluggable value generators backed by Faker
- Conditional filtering across related tables
- Batched updates through SQLAlchemy
"""

from .core import (
    AnonymizationResult,
    AnonymizationRunner,
    AnonymizationStatistics,
    AnonymizerError,
    ConfigurationError,
    EntityAnonymizer,
    PatternMatcher,
    SchemaProvider,
    SqlStorage,
    StorageError,
    YamlRuleSource
)
from .fakers import FakerInterface, FakerRegistry

__all__ = [
    'AnonymizationResult',
    'AnonymizationRunner',
    'AnonymizationStatistics',
    'AnonymizerError',
    'ConfigurationError',
    'EntityAnonymizer',
    'PatternMatcher',
    'SchemaProvider',
    'SqlStorage',
    'StorageError',
    'YamlRuleSource',
    'FakerInterface',
    'FakerRegistry'
]

__version__ = '1.0.0'
