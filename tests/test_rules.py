"""Tests for field rules, ordering and rule sources."""

import pytest

from table_anonymizer.core.errors import ConfigurationError
from table_anonymizer.core.rules import DictRuleSource, FieldRule, YamlRuleSource, order_rules


class TestOrderRules:
    """Execution order of field rules."""

    def test_weighted_before_unweighted(self):
        rules = [
            FieldRule(column='c3', type='email', weight=3),
            FieldRule(column='c1', type='email', weight=1),
            FieldRule(column='c2', type='email', weight=2),
            FieldRule(column='none', type='email')
        ]
        assert [rule.column for rule in order_rules(rules)] == ['c1', 'c2', 'c3', 'none']

    def test_ties_and_unweighted_keep_declaration_order(self):
        rules = [
            FieldRule(column='u1', type='email'),
            FieldRule(column='a', type='email', weight=5),
            FieldRule(column='u2', type='email'),
            FieldRule(column='b', type='email', weight=5),
            FieldRule(column='c', type='email', weight=-1)
        ]
        assert [rule.column for rule in order_rules(rules)] == ['c', 'a', 'b', 'u1', 'u2']

    def test_empty(self):
        assert order_rules([]) == []


class TestFieldRule:
    def test_blank_type_rejected(self):
        with pytest.raises(ValueError):
            FieldRule(column='email', type='  ')

    def test_null_patterns_mean_none(self):
        rule = FieldRule(column='email', type='email', include_patterns=None)
        assert rule.include_patterns == {}


class TestDictRuleSource:
    """Rule deserialization from mappings."""

    def test_mapping_fields_and_shorthand(self):
        source = DictRuleSource({
            'entities': {
                'users': {
                    'fields': {
                        'email': 'email',
                        'username': {'type': 'pattern_based', 'weight': 2, 'options': {'source_field': 'email'}}
                    }
                }
            }
        })

        rule_set = source.get('users')
        assert rule_set.table == 'users'
        assert [rule.column for rule in rule_set.fields] == ['email', 'username']
        assert rule_set.fields[0].type == 'email'
        assert rule_set.fields[1].options == {'source_field': 'email'}
        assert rule_set.entity_rule is None

    def test_list_fields(self):
        source = DictRuleSource({
            'entities': {
                'people': {
                    'table': 'users',
                    'fields': [{'column': 'email', 'type': 'email', 'weight': 1}]
                }
            }
        })

        assert source.entities() == ['people']
        assert source.get('people').table == 'users'
        assert source.field_rules('people')[0].weight == 1

    def test_entity_rule_and_relations(self):
        source = DictRuleSource({
            'entities': {
                'users': {
                    'include_patterns': {'status': 'active'},
                    'track_anonymized': True,
                    'relations': {'type': {'table': 'user_types', 'source_column': 'type_id'}},
                    'discriminator': {'column': 'kind', 'value': 'customer'},
                    'fields': {'email': 'email'}
                }
            }
        })

        rule_set = source.get('users')
        entity_rule = source.entity_rule('users')
        assert entity_rule.include_patterns == {'status': 'active'}
        assert entity_rule.track_anonymized is True
        assert entity_rule.marker_column == 'anonymized'

        relation = rule_set.declared_relations()['type']
        assert relation.target_table == 'user_types'
        assert relation.source_column == 'type_id'
        assert relation.target_column == 'id'
        assert rule_set.discriminator == {'column': 'kind', 'value': 'customer'}

    def test_missing_entities(self):
        with pytest.raises(ConfigurationError):
            DictRuleSource({})

    def test_unknown_field_rule_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            DictRuleSource({'entities': {'users': {'fields': {'email': {'type': 'email', 'wieght': 1}}}}})
        assert exc_info.value.field == 'email'
        assert exc_info.value.entity == 'users'

    def test_invalid_fields_container(self):
        with pytest.raises(ConfigurationError):
            DictRuleSource({'entities': {'users': {'fields': 'email'}}})

    def test_unknown_entity(self):
        source = DictRuleSource({'entities': {'users': {'fields': {'email': 'email'}}}})
        with pytest.raises(ConfigurationError):
            source.get('orders')


class TestYamlRuleSource:
    def test_load(self, tmp_path):
        rules_file = tmp_path / 'rules.yaml'
        rules_file.write_text(
            "entities:\n"
            "  users:\n"
            "    exclude_patterns:\n"
            "      - {email: '%@corp.com'}\n"
            "    fields:\n"
            "      email: {type: email, weight: 1}\n"
        )

        source = YamlRuleSource(rules_file)
        assert source.rules_path == str(rules_file)
        assert source.entity_rule('users').exclude_patterns == [{'email': '%@corp.com'}]

    def test_invalid_yaml(self, tmp_path):
        rules_file = tmp_path / 'rules.yaml'
        rules_file.write_text("entities: [unclosed\n")
        with pytest.raises(ConfigurationError):
            YamlRuleSource(rules_file)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            YamlRuleSource(tmp_path / 'missing.yaml')
