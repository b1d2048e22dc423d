#!/usr/bin/env python3
"""
Value Generator Contract
Base class shared by every faker and the canonical generator type names.
"""

import logging
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

import faker

from ..core.errors import ConfigurationError
from .providers import AnonymizerProvider

if TYPE_CHECKING:
    from .registry import FakerRegistry


class FakerType(str, Enum):
    """Built-in generator type names."""
    # Composite generators
    COPY = "copy"
    PATTERN_BASED = "pattern_based"
    HASH_PRESERVE = "hash_preserve"
    CONSTANT = "constant"
    NULL = "null"
    MAP = "map"
    SHUFFLE = "shuffle"
    ENUM = "enum"
    SERVICE = "service"
    MASKING = "masking"
    NAME_FALLBACK = "name_fallback"

    # Concrete generators
    EMAIL = "email"
    NAME = "name"
    SURNAME = "surname"
    AGE = "age"
    PHONE = "phone"
    IBAN = "iban"
    CREDIT_CARD = "credit_card"
    ADDRESS = "address"
    DATE = "date"
    USERNAME = "username"
    URL = "url"
    COMPANY = "company"
    PASSWORD = "password"
    IP_ADDRESS = "ip_address"
    MAC_ADDRESS = "mac_address"
    UUID = "uuid"
    HASH = "hash"
    COORDINATE = "coordinate"
    COLOR = "color"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    FILE = "file"
    JSON = "json"
    TEXT = "text"
    COUNTRY = "country"
    LANGUAGE = "language"
    DNI_CIF = "dni_cif"
    UTM = "utm"
    HTML = "html"


def create_faker(locale: str = "en_US", seed: Optional[int] = None) -> faker.Faker:
    """Faker instance with the anonymizer provider installed."""
    fake = faker.Faker(locale)
    fake.add_provider(AnonymizerProvider)
    if seed is not None:
        fake.seed_instance(seed)
    return fake


class FakerInterface(ABC):
    """
    A value generator.

    ``generate`` receives the rule's options merged with ``original_value``
    and, when called by the orchestrator, ``record`` (a copy of the row as
    mutated so far) and ``rng`` (the run's random source). Generators never
    mutate ``record``.
    """

    # Options that must be present in the rule's configuration
    required_options: Tuple[str, ...] = ()

    def __init__(self, registry: Optional['FakerRegistry'] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.registry = registry
        if registry is not None:
            self.fake = registry.fake
            self._random = registry.random
        else:
            self.fake = create_faker()
            self._random = random.Random()

    @abstractmethod
    def generate(self, options: Dict[str, Any]) -> Any:
        """Produce a replacement value."""

    def validate_options(self, options: Dict[str, Any]) -> None:
        """Raise ConfigurationError when a required option is missing."""
        missing = [name for name in self.required_options if options.get(name) in (None, '')]
        if missing:
            raise ConfigurationError(
                f"Generator '{self.__class__.__name__}' requires option(s): {', '.join(missing)}"
            )

    def rng(self, options: Dict[str, Any]) -> random.Random:
        """Random source for this call: the injected one when present."""
        return options.get('rng') or self._random


def lookup_field(record: Dict[str, Any], field_name: str) -> Any:
    """Read a sibling field, tolerating case differences in column names."""
    for candidate in (field_name, field_name.lower(), field_name.upper(), field_name[:1].upper() + field_name[1:]):
        if record.get(candidate) is not None:
            return record[candidate]
    return None
