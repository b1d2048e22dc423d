#!/usr/bin/env python3
"""
Anonymization Rules
Field and entity rules, their execution order, and the sources they are loaded from.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .schema import Relation


PatternSpec = Union[Dict[str, Any], List[Dict[str, Any]]]


class FieldRule(BaseModel):
    """Binds one column to a generator and its activation conditions."""
    model_config = ConfigDict(extra='forbid')

    column: str
    type: str
    options: Dict[str, Any] = Field(default_factory=dict)
    weight: Optional[int] = None
    include_patterns: PatternSpec = Field(default_factory=dict)
    exclude_patterns: PatternSpec = Field(default_factory=dict)
    service: Optional[str] = None

    @field_validator('type')
    @classmethod
    def _type_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("generator type must not be empty")
        return value.strip()

    @field_validator('include_patterns', 'exclude_patterns', mode='before')
    @classmethod
    def _none_means_no_patterns(cls, value: Any) -> Any:
        return {} if value is None else value


class EntityRule(BaseModel):
    """Row-level gate and marker settings for a whole record type."""
    model_config = ConfigDict(extra='forbid')

    include_patterns: PatternSpec = Field(default_factory=dict)
    exclude_patterns: PatternSpec = Field(default_factory=dict)
    track_anonymized: bool = False
    marker_column: str = "anonymized"

    @field_validator('include_patterns', 'exclude_patterns', mode='before')
    @classmethod
    def _none_means_no_patterns(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def has_patterns(self) -> bool:
        return bool(self.include_patterns or self.exclude_patterns)


class RelationSpec(BaseModel):
    """Explicit join path declared in a rule file."""
    model_config = ConfigDict(extra='forbid')

    table: str
    source_column: str
    target_column: str = "id"


class EntityRuleSet(BaseModel):
    """Everything needed to anonymize one record type."""
    entity: str
    table: str
    fields: List[FieldRule] = Field(default_factory=list)
    entity_rule: Optional[EntityRule] = None
    relations: Dict[str, RelationSpec] = Field(default_factory=dict)
    discriminator: Optional[Dict[str, Any]] = None

    def declared_relations(self) -> Dict[str, Relation]:
        return {
            name: Relation(
                name=name,
                target_table=spec.table,
                source_column=spec.source_column,
                target_column=spec.target_column
            )
            for name, spec in self.relations.items()
        }


def order_rules(rules: List[FieldRule]) -> List[FieldRule]:
    """
    Execution order for a record type's field rules.

    Weighted rules run first, ascending by weight; ties keep declaration
    order. Unweighted rules follow in declaration order.
    """
    weighted = [rule for rule in rules if rule.weight is not None]
    unweighted = [rule for rule in rules if rule.weight is None]

    # sorted() is stable
    return sorted(weighted, key=lambda rule: rule.weight) + unweighted


class RuleSource:
    """Supplies deserialized rules per entity."""

    def entities(self) -> List[str]:
        raise NotImplementedError

    def get(self, entity: str) -> EntityRuleSet:
        raise NotImplementedError

    def field_rules(self, entity: str) -> List[FieldRule]:
        return list(self.get(entity).fields)

    def entity_rule(self, entity: str) -> Optional[EntityRule]:
        return self.get(entity).entity_rule


class DictRuleSource(RuleSource):
    """
    Rule source backed by a plain mapping.

    Expected layout::

        entities:
          users:
            table: users
            include_patterns: {status: active}
            track_anonymized: true
            relations:
              type: {table: user_types, source_column: type_id}
            fields:
              email: {type: email, weight: 1}
              username: {type: pattern_based, weight: 2, options: {source_field: email}}
    """

    ENTITY_RULE_KEYS = ('include_patterns', 'exclude_patterns', 'track_anonymized', 'marker_column')

    def __init__(self, data: Dict[str, Any]):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._rule_sets: Dict[str, EntityRuleSet] = {}

        entities = (data or {}).get('entities')
        if not isinstance(entities, dict) or not entities:
            raise ConfigurationError("Rule source must define a non-empty 'entities' mapping")

        for entity, entity_data in entities.items():
            self._rule_sets[entity] = self._parse_entity(entity, entity_data or {})

        self.logger.debug(f"Loaded rules for {len(self._rule_sets)} entities")

    def entities(self) -> List[str]:
        return list(self._rule_sets)

    def get(self, entity: str) -> EntityRuleSet:
        if entity not in self._rule_sets:
            raise ConfigurationError("No rules defined", entity=entity)
        return self._rule_sets[entity]

    def _parse_entity(self, entity: str, entity_data: Dict[str, Any]) -> EntityRuleSet:
        if not isinstance(entity_data, dict):
            raise ConfigurationError("Entity rules must be a mapping", entity=entity)

        fields = []
        raw_fields = entity_data.get('fields') or {}
        if isinstance(raw_fields, dict):
            # 'email: email' is shorthand for 'email: {type: email}'
            items = [
                dict({'type': rule} if isinstance(rule, str) else (rule or {}), column=column)
                for column, rule in raw_fields.items()
            ]
        elif isinstance(raw_fields, list):
            items = raw_fields
        else:
            raise ConfigurationError("'fields' must be a mapping or a list", entity=entity)

        for item in items:
            try:
                fields.append(FieldRule(**item))
            except (TypeError, ValidationError) as e:
                column = item.get('column') if isinstance(item, dict) else None
                raise ConfigurationError(f"Invalid field rule: {e}", entity=entity, field=column) from e

        entity_rule = None
        if any(key in entity_data for key in self.ENTITY_RULE_KEYS):
            try:
                entity_rule = EntityRule(**{key: entity_data[key] for key in self.ENTITY_RULE_KEYS if key in entity_data})
            except ValidationError as e:
                raise ConfigurationError(f"Invalid entity rule: {e}", entity=entity) from e

        try:
            return EntityRuleSet(
                entity=entity,
                table=entity_data.get('table', entity),
                fields=fields,
                entity_rule=entity_rule,
                relations=entity_data.get('relations') or {},
                discriminator=entity_data.get('discriminator')
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid entity definition: {e}", entity=entity) from e


class YamlRuleSource(DictRuleSource):
    """Rule source loaded from a YAML file."""

    def __init__(self, rules_path: Union[str, Path]):
        try:
            with open(rules_path, 'r') as file:
                data = yaml.safe_load(file)
        except OSError as e:
            raise ConfigurationError(f"Cannot read rules file {rules_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in rules file {rules_path}: {e}") from e

        self.rules_path = str(rules_path)
        super().__init__(data or {})
