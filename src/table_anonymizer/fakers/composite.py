#!/usr/bin/env python3
"""
Composite Generators
Generators that derive values from sibling fields, the original value,
lookup tables, other generators or externally registered services.
"""

import hashlib
import random
import re
from typing import Any, Callable, Dict, Optional

from ..core.errors import ConfigurationError
from .base import FakerInterface, lookup_field


HASH_ALGORITHMS = ('md5', 'sha1', 'sha256', 'sha512')

# Default pattern_based extraction: a "(N)" suffix such as "john(15)"
DEFAULT_SUFFIX_PATTERN = r'(\(\d+\))$'


class _FallbackMixin:
    """Resolves and invokes a fallback generator through the owning registry."""

    def validate_options(self, options: Dict[str, Any]) -> None:
        super().validate_options(options)
        if self.registry is not None and options.get('fallback_faker'):
            fallback = self.registry.create(options['fallback_faker'])
            fallback.validate_options(dict(options.get('fallback_options') or {}))

    def _fallback(self, options: Dict[str, Any], default_type: str) -> Any:
        if self.registry is None:
            from .registry import FakerRegistry
            self.registry = FakerRegistry()

        fallback_type = options.get('fallback_faker') or default_type
        fallback_options = dict(options.get('fallback_options') or {})
        fallback_options.setdefault('original_value', options.get('original_value'))
        if 'rng' in options:
            fallback_options.setdefault('rng', options['rng'])

        self.logger.debug(f"Source field empty, falling back to '{fallback_type}'")
        return self.registry.create(fallback_type).generate(fallback_options)


class CopyFaker(_FallbackMixin, FakerInterface):
    """Copies the (already anonymized) value of a sibling field."""

    required_options = ('source_field',)

    def generate(self, options: Dict[str, Any]) -> Any:
        record = options.get('record') or {}
        source_value = lookup_field(record, options['source_field'])

        if source_value is not None and source_value != '':
            return source_value

        return self._fallback(options, 'email')


class PatternBasedFaker(_FallbackMixin, FakerInterface):
    """
    Sibling value plus a fragment extracted from the original value.

    With the defaults, username ``john(15)`` and an anonymized email
    ``ana@example.org`` become ``ana@example.org(15)``.
    """

    required_options = ('source_field',)

    def generate(self, options: Dict[str, Any]) -> str:
        record = options.get('record') or {}
        separator = options.get('separator', '')
        extracted = self._extract(
            options.get('original_value'),
            options.get('pattern', DEFAULT_SUFFIX_PATTERN),
            options.get('pattern_replacement', '$1')
        )

        source_value = lookup_field(record, options['source_field'])
        if source_value is None or source_value == '':
            source_value = self._fallback(options, 'username')

        return f"{source_value}{separator}{extracted}"

    @staticmethod
    def _extract(original_value: Any, pattern: str, replacement: str) -> str:
        if not isinstance(original_value, str):
            return ''

        match = re.search(_strip_delimiters(pattern), original_value)
        if match is None:
            return ''

        result = replacement
        # Replace higher group numbers first so '$1' does not clobber '$10'
        for index in range(len(match.groups()), 0, -1):
            result = result.replace(f"${index}", match.group(index) or '')
        return result.replace('$0', match.group(0))


def _strip_delimiters(pattern: str) -> str:
    """Accept '/regex/' style patterns as well as bare ones."""
    if len(pattern) >= 2 and pattern[0] == '/' and pattern.rfind('/') > 0:
        return pattern[1:pattern.rfind('/')]
    return pattern


class HashPreserveFaker(FakerInterface):
    """Deterministic one-way hash of the original value."""

    def generate(self, options: Dict[str, Any]) -> str:
        value = options.get('original_value')
        if value is None:
            value = options.get('value')
        if value is None:
            raise ValueError("hash_preserve requires an original value to hash")

        algorithm = str(options.get('algorithm', 'sha256')).lower()
        if algorithm not in HASH_ALGORITHMS:
            algorithm = 'sha256'

        text = f"{value}{options.get('salt', '')}"
        digest = hashlib.new(algorithm, text.encode('utf-8')).hexdigest()

        length = options.get('length')
        if length:
            digest = digest[:int(length)]

        if options.get('preserve_format') and _is_numeric(value):
            digest = re.sub(r'[^0-9]', '', digest)[:20] or '0'

        return digest

    def validate_options(self, options: Dict[str, Any]) -> None:
        algorithm = str(options.get('algorithm', 'sha256')).lower()
        if algorithm not in HASH_ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported hash algorithm '{algorithm}', expected one of {', '.join(HASH_ALGORITHMS)}"
            )


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
        return True
    except ValueError:
        return False


class ConstantFaker(FakerInterface):
    """Always the configured value."""

    def generate(self, options: Dict[str, Any]) -> Any:
        return options['value']

    def validate_options(self, options: Dict[str, Any]) -> None:
        # None is a legitimate constant
        if 'value' not in options:
            raise ConfigurationError("Generator 'ConstantFaker' requires option(s): value")


class NullFaker(FakerInterface):
    """Always null."""

    def generate(self, options: Dict[str, Any]) -> None:
        return None


class MapFaker(FakerInterface):
    """Lookup-table substitution; unmapped values keep their original unless a default is given."""

    required_options = ('map',)

    def generate(self, options: Dict[str, Any]) -> Any:
        mapping = options['map']
        original_value = options.get('original_value')

        for key in (original_value, str(original_value)):
            try:
                if key in mapping:
                    return mapping[key]
            except TypeError:
                continue

        if 'default' in options:
            return options['default']
        return original_value

    def validate_options(self, options: Dict[str, Any]) -> None:
        if not isinstance(options.get('map'), dict) or not options['map']:
            raise ConfigurationError("Generator 'MapFaker' requires a non-empty 'map' option")


class ShuffleFaker(FakerInterface):
    """Picks a value from a pool; a seed makes the pick reproducible."""

    required_options = ('values',)

    def generate(self, options: Dict[str, Any]) -> Any:
        values = list(options['values'])
        if 'exclude' in options and options['exclude'] is not None:
            values = [value for value in values if value != options['exclude']]
            if not values:
                raise ValueError("shuffle excluded every value in the pool")

        seed = options.get('seed')
        source = random.Random(seed) if seed is not None else self.rng(options)

        source.shuffle(values)
        return values[0]

    def validate_options(self, options: Dict[str, Any]) -> None:
        if not isinstance(options.get('values'), list) or not options['values']:
            raise ConfigurationError("Generator 'ShuffleFaker' requires a non-empty 'values' list")


class EnumFaker(FakerInterface):
    """Categorical sampling, optionally weighted."""

    required_options = ('values',)

    def generate(self, options: Dict[str, Any]) -> Any:
        source = self.rng(options)
        weighted = options.get('weighted')

        if weighted:
            choices = list(weighted.keys())
            weights = [float(weight) for weight in weighted.values()]
            return source.choices(choices, weights=weights, k=1)[0]

        return source.choice(list(options['values']))

    def validate_options(self, options: Dict[str, Any]) -> None:
        if not isinstance(options.get('values'), list) or not options['values']:
            raise ConfigurationError("Generator 'EnumFaker' requires a non-empty 'values' list")

        weighted = options.get('weighted')
        if weighted is not None and not isinstance(weighted, dict):
            raise ConfigurationError("Generator 'EnumFaker' option 'weighted' must map values to weights")


class ServiceFaker(FakerInterface):
    """
    Adapter for an externally registered capability.

    The capability is used, in order, as a FakerInterface, as an object
    exposing ``generate(options)``, or as a plain callable taking the
    options mapping.
    """

    def __init__(self, capability: Any, service_name: str = 'service', registry=None):
        super().__init__(registry)
        self.service_name = service_name
        self._delegate = self.adapt(capability, service_name)

    @staticmethod
    def adapt(capability: Any, service_name: str) -> Callable[[Dict[str, Any]], Any]:
        if isinstance(capability, FakerInterface):
            return capability.generate

        generate = getattr(capability, 'generate', None)
        if callable(generate):
            return generate

        if callable(capability):
            return capability

        raise ConfigurationError(
            f"Service '{service_name}' must implement FakerInterface, "
            f"have a generate() method or be callable"
        )

    def generate(self, options: Dict[str, Any]) -> Any:
        return self._delegate(options)


class MaskingFaker(FakerInterface):
    """Partial masking that keeps a prefix and suffix of the original value."""

    def generate(self, options: Dict[str, Any]) -> str:
        value = options.get('original_value')
        if value is None:
            value = options.get('value')
        if value is None:
            raise ValueError("masking requires an original value to mask")

        value = str(value)
        preserve_start = int(options.get('preserve_start', 1))
        preserve_end = int(options.get('preserve_end', 0))
        mask_char = str(options.get('mask_char', '*'))

        if len(value) <= preserve_start + preserve_end:
            return mask_char * len(value)

        mask_length = options.get('mask_length')
        if mask_length is None:
            mask_length = len(value) - preserve_start - preserve_end

        start = value[:preserve_start]
        end = value[-preserve_end:] if preserve_end > 0 else ''
        return f"{start}{mask_char * int(mask_length)}{end}"


class NameFallbackFaker(FakerInterface):
    """
    First name generator for paired name columns.

    Always yields a name, so a row whose related name field
    (``fallback_field``) is set never ends up with this one empty.
    """

    def generate(self, options: Dict[str, Any]) -> str:
        related: Optional[Any] = None
        if options.get('fallback_field'):
            related = lookup_field(options.get('record') or {}, options['fallback_field'])
        if related is not None and related != '' and options.get('original_value') in (None, ''):
            self.logger.debug("Filling empty name because its related field is set")

        gender = str(options.get('gender', 'random')).lower()
        if gender == 'male':
            return self.fake.first_name_male()
        if gender == 'female':
            return self.fake.first_name_female()
        return self.fake.first_name()
