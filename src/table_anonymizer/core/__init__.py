"""
Anonymization Engine Core

Rule-driven anonymization of relational tables:
- Pattern matching for row and field eligibility, including related-table fields
- Weighted field rule ordering so derived fields see anonymized sources
- Batched, transactional row updates with dry-run and cancellation
- Per-entity and per-field statistics
"""

from .anonymizer import AnonymizationRunner, EntityAnonymizer, FieldEvent, RunSummary, coerce_value
from .config import AnonymizerConfig, ConfigManager, DatabaseConfig, ensure_safe_environment
from .errors import AnonymizerError, ConfigurationError, FieldAnonymizationError, StorageError
from .pattern_matcher import PatternMatcher
from .rules import DictRuleSource, EntityRule, EntityRuleSet, FieldRule, RuleSource, YamlRuleSource, order_rules
from .schema import ColumnDescriptor, MappedRecordType, Relation, SchemaProvider
from .statistics import AnonymizationResult, AnonymizationStatistics, FieldFailure
from .storage import JoinSpec, SqlStorage

__all__ = [
    'AnonymizationRunner',
    'EntityAnonymizer',
    'FieldEvent',
    'RunSummary',
    'coerce_value',
    'AnonymizerConfig',
    'ConfigManager',
    'DatabaseConfig',
    'ensure_safe_environment',
    'AnonymizerError',
    'ConfigurationError',
    'FieldAnonymizationError',
    'StorageError',
    'PatternMatcher',
    'DictRuleSource',
    'EntityRule',
    'EntityRuleSet',
    'FieldRule',
    'RuleSource',
    'YamlRuleSource',
    'order_rules',
    'ColumnDescriptor',
    'MappedRecordType',
    'Relation',
    'SchemaProvider',
    'AnonymizationResult',
    'AnonymizationStatistics',
    'FieldFailure',
    'JoinSpec',
    'SqlStorage'
]
