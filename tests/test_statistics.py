"""Tests for anonymization statistics."""

import json

import pytest

from table_anonymizer.core.statistics import AnonymizationResult, AnonymizationStatistics, format_duration


@pytest.fixture
def statistics():
    return AnonymizationStatistics()


class TestAnonymizationResult:
    def test_counts(self):
        result = AnonymizationResult(entity='users', processed=5, updated=3)
        result.count_field('email')
        result.count_field('email')
        result.record_failure('age', 'boom', {'id': 1})

        assert result.skipped == 2
        assert result.field_counts == {'email': 2}
        assert result.failures[0].row_id == {'id': 1}
        assert result.to_dict()['failures'] == 1


class TestAnonymizationStatistics:
    """Aggregation across entities."""

    def test_record_entity(self, statistics):
        statistics.record_entity('users', 'db', processed=10, updated=7, field_counts={'email': 7})
        statistics.record_entity('orders', 'db', processed=4, updated=0)

        summary = statistics.get_summary()
        assert summary['total_entities'] == 2
        assert summary['total_processed'] == 14
        assert summary['total_updated'] == 7
        assert summary['total_skipped'] == 7
        assert summary['success_rate'] == 50.0

        entities = statistics.get_entities()
        assert entities['users@db']['fields'] == {'email': 7}
        assert entities['orders@db']['skipped'] == 4

    def test_same_entity_counted_once(self, statistics):
        statistics.record_entity('users', 'db', processed=1, updated=1)
        statistics.record_entity('users', 'db', processed=1, updated=0)

        assert statistics.get_global()['total_entities'] == 1
        assert statistics.get_entities()['users@db']['processed'] == 2

    def test_record_field(self, statistics):
        statistics.record_field('users', 'db', 'email', 3)
        assert statistics.get_entities()['users@db']['fields'] == {'email': 3}

    def test_record_result(self, statistics):
        result = AnonymizationResult(entity='users', processed=2, updated=1, field_counts={'email': 1})
        result.record_failure('age', 'bad')
        statistics.record_result(result, 'db')

        entry = statistics.get_entities()['users@db']
        assert entry['failures'] == 1
        assert entry['fields'] == {'email': 1}

    def test_to_json(self, statistics):
        statistics.record_entity('users', 'db', processed=1, updated=1, field_counts={'email': 1})
        data = json.loads(statistics.to_json())

        assert data['global']['total_processed'] == 1
        assert data['entities']['users@db']['fields'] == {'email': 1}

    def test_to_csv(self, statistics):
        statistics.record_entity('users', 'db', processed=2, updated=1, field_counts={'email': 1})
        lines = statistics.to_csv().splitlines()

        assert lines[0] == 'Section,Key,Value'
        assert 'Global,Total Entities,1' in lines
        assert 'users,db,2,1,1,0,50.0' in lines
        assert 'users,db,email,1' in lines

    def test_duration(self, statistics):
        statistics.start()
        statistics.stop()
        assert statistics.get_global()['duration'] >= 0

    def test_reset(self, statistics):
        statistics.record_entity('users', 'db', processed=1, updated=1)
        statistics.reset()
        assert statistics.get_summary()['total_processed'] == 0
        assert statistics.get_entities() == {}


class TestFormatDuration:
    def test_ranges(self):
        assert format_duration(0.5) == '500.0 ms'
        assert format_duration(12.5) == '12.5 s'
        assert format_duration(125) == '2 m 5 s'
        assert format_duration(3725) == '1 h 2 m 5 s'
