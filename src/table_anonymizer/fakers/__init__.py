"""
Value Generators
Pluggable fakers producing replacement values and the registry resolving them by name.
"""

from .base import FakerInterface, FakerType, create_faker
from .composite import (
    ConstantFaker,
    CopyFaker,
    EnumFaker,
    HashPreserveFaker,
    MapFaker,
    MaskingFaker,
    NameFallbackFaker,
    NullFaker,
    PatternBasedFaker,
    ServiceFaker,
    ShuffleFaker
)
from .providers import AnonymizerProvider
from .registry import BUILTIN_GENERATORS, FakerRegistry

__all__ = [
    'FakerInterface',
    'FakerType',
    'FakerRegistry',
    'BUILTIN_GENERATORS',
    'AnonymizerProvider',
    'create_faker',
    'ConstantFaker',
    'CopyFaker',
    'EnumFaker',
    'HashPreserveFaker',
    'MapFaker',
    'MaskingFaker',
    'NameFallbackFaker',
    'NullFaker',
    'PatternBasedFaker',
    'ServiceFaker',
    'ShuffleFaker'
]
