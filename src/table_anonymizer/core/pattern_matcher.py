#!/usr/bin/env python3
"""
Record Pattern Matching
Decides whether a flat record satisfies inclusion/exclusion conditions.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError


Condition = Union[str, int, float, bool]
ConditionSpec = Union[Condition, List[Condition]]
PatternGroup = Dict[str, ConditionSpec]
Patterns = Union[PatternGroup, List[PatternGroup], None]

# Longest operators first so '>=' is not read as '>'
NUMERIC_OPERATORS = ('>=', '<=', '>', '<')
NEGATION_OPERATORS = ('!=', '<>')
LIKE_WILDCARDS = {'%': '.*', '_': '.'}

_MISSING = object()


class PatternMatcher:
    """
    Matches records against include/exclude patterns.

    A pattern group maps field names to conditions and matches when every
    field matches. A list of groups matches when any group matches. A list
    of conditions for one field matches when any condition matches.

    Conditions:
        '>N' '>=N' '<N' '<=N'   numeric comparison
        '=V' '!=V' '<>V'        equality / inequality on string values
        'a%b' 'a_b%'            SQL LIKE ('%' any run, '_' one character), case-insensitive, anchored
        'a|b'                   any alternative: a LIKE, or a substring of the value
        anything else           exact match

    Exclusion takes precedence over inclusion.
    """

    def __init__(self):
        self._like_cache: Dict[str, re.Pattern] = {}

    def matches(
        self,
        record: Mapping[str, Any],
        include_patterns: Patterns = None,
        exclude_patterns: Patterns = None
    ) -> bool:
        """Check if a record passes the inclusion patterns and matches no exclusion pattern."""
        if exclude_patterns and self._matches_any_group(record, exclude_patterns):
            return False

        if include_patterns:
            return self._matches_any_group(record, include_patterns)

        return True

    def field_names(self, patterns: Patterns) -> List[str]:
        """List every field referenced by a pattern set, in first-seen order."""
        names: List[str] = []
        for group in self._groups(patterns):
            for field_name in group:
                if field_name not in names:
                    names.append(field_name)
        return names

    def validate(self, patterns: Patterns) -> None:
        """Raise ConfigurationError if a pattern set is malformed."""
        if patterns is None:
            return

        if not isinstance(patterns, (dict, list)):
            raise ConfigurationError(f"Patterns must be a mapping or a list of mappings, got {type(patterns).__name__}")

        for group in self._groups(patterns):
            for field_name, spec in group.items():
                if not isinstance(field_name, str) or not field_name:
                    raise ConfigurationError(f"Invalid pattern field name: {field_name!r}")

                conditions = spec if isinstance(spec, list) else [spec]
                if not conditions:
                    raise ConfigurationError(f"Empty condition list for pattern field '{field_name}'")

                for condition in conditions:
                    self._validate_condition(field_name, condition)

    # ------------------------------------------------------------------

    def _groups(self, patterns: Patterns) -> List[PatternGroup]:
        if not patterns:
            return []
        if isinstance(patterns, dict):
            return [patterns]

        groups = []
        for group in patterns:
            if not isinstance(group, dict):
                raise ConfigurationError(f"Pattern list entries must be mappings, got {type(group).__name__}")
            groups.append(group)
        return groups

    def _matches_any_group(self, record: Mapping[str, Any], patterns: Patterns) -> bool:
        return any(self._matches_group(record, group) for group in self._groups(patterns))

    def _matches_group(self, record: Mapping[str, Any], group: PatternGroup) -> bool:
        if not group:
            return False

        for field_name, spec in group.items():
            value = self.get_value(record, field_name)
            if value is _MISSING or value is None:
                return False

            conditions = spec if isinstance(spec, list) else [spec]
            if not any(self._matches_condition(value, condition) for condition in conditions):
                return False

        return True

    def _matches_condition(self, value: Any, condition: Condition) -> bool:
        if not isinstance(condition, str):
            return self._as_string(value) == self._as_string(condition)

        for operator in NUMERIC_OPERATORS:
            if condition.startswith(operator):
                return self._compare_numeric(value, operator, condition[len(operator):])

        for operator in NEGATION_OPERATORS:
            if condition.startswith(operator):
                return self._as_string(value) != condition[len(operator):].strip()

        if condition.startswith('='):
            return self._as_string(value) == condition[1:].strip()

        text = self._as_string(value)

        if '|' in condition:
            for option in condition.split('|'):
                option = option.strip()
                if '%' in option and self._like(text, option):
                    return True
                # Plain alternatives match anywhere in the value (e.g. email domains)
                if option and option in text:
                    return True
            return False

        if '%' in condition:
            return self._like(text, condition)

        return text == condition

    def _compare_numeric(self, value: Any, operator: str, threshold_text: str) -> bool:
        number = self._as_number(value)
        if number is None:
            return False
        try:
            threshold = float(threshold_text.strip())
        except ValueError:
            raise ConfigurationError(f"Malformed numeric condition '{operator}{threshold_text}'") from None

        if operator == '>=':
            return number >= threshold
        if operator == '<=':
            return number <= threshold
        if operator == '>':
            return number > threshold
        return number < threshold

    def _like(self, text: str, pattern: str) -> bool:
        regex = self._like_cache.get(pattern)
        if regex is None:
            regex = re.compile(
                '^' + ''.join(LIKE_WILDCARDS.get(char, re.escape(char)) for char in pattern) + '$',
                re.IGNORECASE | re.DOTALL
            )
            self._like_cache[pattern] = regex
        return regex.match(text) is not None

    def _validate_condition(self, field_name: str, condition: Any) -> None:
        if isinstance(condition, (int, float, bool)):
            return
        if not isinstance(condition, str):
            raise ConfigurationError(
                f"Unsupported condition {condition!r} for pattern field '{field_name}'"
            )

        for operator in NUMERIC_OPERATORS:
            if condition.startswith(operator):
                try:
                    float(condition[len(operator):].strip())
                except ValueError:
                    raise ConfigurationError(
                        f"Malformed numeric condition '{condition}' for pattern field '{field_name}'"
                    ) from None
                return

    @staticmethod
    def get_value(record: Mapping[str, Any], field_name: str) -> Any:
        """Look up a field, resolving 'relation.column' as a flat key or a nested mapping."""
        if field_name in record:
            return record[field_name]

        if '.' in field_name:
            relation, related_field = field_name.split('.', 1)
            nested = record.get(relation)
            if isinstance(nested, Mapping) and related_field in nested:
                return nested[related_field]

        return _MISSING

    @staticmethod
    def _as_string(value: Any) -> str:
        if isinstance(value, bool):
            return '1' if value else '0'
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    @staticmethod
    def _as_number(value: Any) -> Optional[float]:
        if isinstance(value, bool):
            return float(value)
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


def split_relation_field(field_name: str) -> Tuple[Optional[str], str]:
    """Split 'relation.column' into its parts; plain fields have no relation."""
    if '.' not in field_name:
        return None, field_name
    relation, column = field_name.split('.', 1)
    return relation, column
