"""Tests for schema reflection and SQL row storage."""

import pytest
from sqlalchemy import text

from table_anonymizer.core.errors import ConfigurationError, StorageError
from table_anonymizer.core.schema import ColumnDescriptor, MappedRecordType, Relation, normalize_storage_type

from .conftest import USERS, fetch_users


class TestSchemaProvider:
    """Reflection of mapped record types."""

    def test_describe_users(self, users_type):
        assert users_type.name == 'users'
        assert users_type.identifier_columns == ['id']
        assert users_type.column_type('age') == 'integer'
        assert users_type.column_type('email') == 'string'
        assert users_type.column_type('anonymized') == 'boolean'
        assert users_type.get_column('anonymized').nullable is False

    def test_relations_from_foreign_keys(self, users_type):
        relation = users_type.get_relation('type')
        assert relation.target_table == 'user_types'
        assert relation.source_column == 'type_id'
        assert relation.target_column == 'id'

    def test_declared_relations_and_discriminator(self, schema_provider):
        record_type = schema_provider.describe(
            'users',
            name='customers',
            relations={'role': Relation(name='role', target_table='user_types', source_column='type_id')},
            discriminator={'column': 'kind', 'value': 'customer'}
        )
        assert record_type.name == 'customers'
        assert record_type.get_relation('role') is not None
        assert record_type.is_polymorphic

    def test_unknown_table(self, schema_provider):
        with pytest.raises(ConfigurationError):
            schema_provider.describe('orders')

    def test_column_exists(self, schema_provider):
        assert schema_provider.column_exists('users', 'email')
        assert not schema_provider.column_exists('users', 'nope')
        assert not schema_provider.column_exists('orders', 'id')

    def test_identifier_required(self):
        with pytest.raises(ConfigurationError):
            MappedRecordType(name='t', table_name='t', columns=[ColumnDescriptor('a')], identifier_columns=[])

    def test_normalize_storage_type(self):
        assert normalize_storage_type('VARCHAR(255)') == 'string'
        assert normalize_storage_type('BIGINT') == 'integer'
        assert normalize_storage_type('NUMERIC(10, 2)') == 'decimal'
        assert normalize_storage_type('DOUBLE PRECISION') == 'float'
        assert normalize_storage_type('TIMESTAMP') == 'datetime'
        assert normalize_storage_type('TEXT') == 'text'
        assert normalize_storage_type('BOOLEAN') == 'boolean'


class TestPlanJoins:
    def test_one_join_per_relation(self, storage, users_type):
        joins = storage.plan_joins(users_type, ['status', 'type.name', 'type.id', 'type.name'])

        assert len(joins) == 1
        assert joins[0].name == 'type'
        assert joins[0].columns == ['name', 'id']
        assert joins[0].labels() == ['type.name', 'type.id']

    def test_unknown_relation_is_not_joined(self, storage, users_type):
        assert storage.plan_joins(users_type, ['company.name']) == []


class TestIterBatches:
    """Paged reads."""

    def test_pages_cover_every_row(self, storage, users_type):
        batches = list(storage.iter_batches(users_type, batch_size=3))

        assert [len(batch) for batch in batches] == [3, 1]
        assert [row['id'] for batch in batches for row in batch] == [1, 2, 3, 4]

    def test_exact_multiple_of_batch_size(self, storage, users_type):
        batches = list(storage.iter_batches(users_type, batch_size=2))
        assert [len(batch) for batch in batches] == [2, 2]

    def test_joined_columns(self, storage, users_type):
        joins = storage.plan_joins(users_type, ['type.name'])
        rows = [row for batch in storage.iter_batches(users_type, joins, batch_size=10) for row in batch]

        names = {row['id']: row['type.name'] for row in rows}
        assert names == {1: 'customer', 2: 'admin', 3: 'admin', 4: None}

    def test_discriminator(self, storage, schema_provider):
        customers = schema_provider.describe('users', discriminator={'column': 'kind', 'value': 'customer'})
        rows = [row for batch in storage.iter_batches(customers, batch_size=10) for row in batch]

        assert [row['id'] for row in rows] == [1, 2, 4]
        assert storage.count(customers) == 3

    def test_invalid_batch_size(self, storage, users_type):
        with pytest.raises(ConfigurationError):
            list(storage.iter_batches(users_type, batch_size=0))

    def test_count(self, storage, users_type):
        assert storage.count(users_type) == len(USERS)


class TestWrites:
    def test_update(self, engine, storage):
        assert storage.update('users', {'id': 1}, {'email': 'new@example.org'}) == 1
        assert storage.update('users', {'id': 99}, {'email': 'new@example.org'}) == 0
        assert storage.update('users', {'id': 1}, {}) == 0

        assert fetch_users(engine)[1]['email'] == 'new@example.org'

    def test_write_batch(self, engine, storage):
        written = storage.write_batch('users', [
            ({'id': 1}, {'email': 'a@example.org'}),
            ({'id': 2}, {'email': 'b@example.org', 'anonymized': True})
        ])

        rows = fetch_users(engine)
        assert written == 2
        assert rows[1]['email'] == 'a@example.org'
        assert rows[2]['anonymized'] is True

    def test_failed_batch_rolls_back(self, engine, storage):
        with pytest.raises(StorageError) as exc_info:
            storage.write_batch('users', [
                ({'id': 1}, {'email': 'a@example.org'}),
                ({'id': 2}, {'anonymized': None})
            ])

        assert exc_info.value.row_id == {'id': 2}
        assert fetch_users(engine)[1]['email'] == 'john@example.com'

    def test_unknown_table(self, storage):
        with pytest.raises(ConfigurationError):
            storage.update('orders', {'id': 1}, {'a': 1})


# =============================================================================
# Relation shape and composite identifiers
# =============================================================================

class TestRelationShape:
    """Only joins that yield at most one related row per record are allowed."""

    def test_one_to_many_relation_rejected(self, storage, schema_provider, related_tables):
        users = schema_provider.describe('users', relations={
            'orders': Relation(name='orders', target_table='orders', source_column='id', target_column='user_id')
        })

        with pytest.raises(ConfigurationError) as exc_info:
            storage.plan_joins(users, ['orders.status'])

        assert exc_info.value.field == 'orders'
        assert 'unique' in str(exc_info.value)

    def test_unique_target_column_accepted(self, storage, schema_provider, related_tables):
        users = schema_provider.describe('users', relations={
            'profile': Relation(name='profile', target_table='profiles', source_column='id', target_column='user_id')
        })

        joins = storage.plan_joins(users, ['profile.country'])
        rows = [row for batch in storage.iter_batches(users, joins, batch_size=2) for row in batch]

        assert [row['id'] for row in rows] == [1, 2, 3, 4]
        assert {row['id']: row['profile.country'] for row in rows} == {1: 'ES', 2: None, 3: 'FR', 4: None}

    def test_missing_related_table(self, storage, schema_provider):
        users = schema_provider.describe('users', relations={
            'company': Relation(name='company', target_table='companies', source_column='type_id')
        })

        with pytest.raises(ConfigurationError):
            storage.plan_joins(users, ['company.name'])


class TestCompositeIdentifiers:
    def test_offset_pages_cover_every_row_once(self, storage, membership_type):
        assert membership_type.identifier_columns == ['group_id', 'user_id']

        batches = list(storage.iter_batches(membership_type, batch_size=2))

        assert [len(batch) for batch in batches] == [2, 2, 1]
        assert [(row['group_id'], row['user_id']) for batch in batches for row in batch] == [
            (1, 1), (1, 2), (2, 1), (2, 3), (3, 1)
        ]

    def test_update_by_composite_identifier(self, engine, storage, membership_type):
        assert storage.update('memberships', {'group_id': 2, 'user_id': 1}, {'nickname': 'x'}) == 1

        with engine.connect() as conn:
            rows = conn.execute(text("SELECT group_id, user_id, nickname FROM memberships")).all()
        assert {(row[0], row[1]): row[2] for row in rows}[(2, 1)] == 'x'
        assert sum(1 for row in rows if row[2] == 'x') == 1
