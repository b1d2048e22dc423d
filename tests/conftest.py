"""Shared fixtures: an in-memory SQLite database with users and user types."""

import pytest
from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.pool import StaticPool

from table_anonymizer.core.schema import SchemaProvider
from table_anonymizer.core.storage import SqlStorage
from table_anonymizer.fakers import FakerRegistry


USER_TYPES = [
    {'id': 1, 'name': 'admin'},
    {'id': 2, 'name': 'customer'}
]

USERS = [
    {'id': 1, 'email': 'john@example.com', 'username': 'john(15)', 'first_name': 'John',
     'status': 'active', 'age': 30, 'kind': 'customer', 'type_id': 2, 'anonymized': False},
    {'id': 2, 'email': 'jane@example.com', 'username': 'jane', 'first_name': 'Jane',
     'status': 'inactive', 'age': 45, 'kind': 'customer', 'type_id': 1, 'anonymized': False},
    {'id': 3, 'email': 'root@corp.com', 'username': 'root(1)', 'first_name': 'Root',
     'status': 'active', 'age': 60, 'kind': 'staff', 'type_id': 1, 'anonymized': False},
    {'id': 4, 'email': 'bob@example.com', 'username': 'bob', 'first_name': None,
     'status': 'active', 'age': 22, 'kind': 'customer', 'type_id': None, 'anonymized': False}
]

ORIGINAL_EMAILS = {user['id']: user['email'] for user in USERS}


def create_schema(engine):
    """Create and populate the users and user_types tables."""
    metadata = MetaData()
    user_types = Table(
        'user_types', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(50))
    )
    users = Table(
        'users', metadata,
        Column('id', Integer, primary_key=True),
        Column('email', String(255)),
        Column('username', String(100)),
        Column('first_name', String(100)),
        Column('status', String(20)),
        Column('age', Integer),
        Column('kind', String(20)),
        Column('type_id', Integer, ForeignKey('user_types.id')),
        Column('anonymized', Boolean, nullable=False, default=False)
    )
    metadata.create_all(engine)

    with engine.begin() as conn:
        conn.execute(user_types.insert(), USER_TYPES)
        conn.execute(users.insert(), USERS)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={'check_same_thread': False},
        poolclass=StaticPool
    )
    create_schema(engine)

    yield engine
    engine.dispose()


@pytest.fixture
def storage(engine):
    return SqlStorage(engine)


@pytest.fixture
def schema_provider(engine):
    return SchemaProvider(engine)


@pytest.fixture
def users_type(schema_provider):
    return schema_provider.describe('users')


@pytest.fixture
def registry():
    return FakerRegistry(seed=1234)


def fetch_users(engine):
    """Current users rows keyed by id."""
    table = Table('users', MetaData(), autoload_with=engine)
    with engine.connect() as conn:
        return {row['id']: dict(row) for row in conn.execute(select(table)).mappings()}


@pytest.fixture
def related_tables(engine):
    """orders (many per user) and profiles (at most one per user)."""
    metadata = MetaData()
    orders = Table(
        'orders', metadata,
        Column('id', Integer, primary_key=True),
        Column('user_id', Integer),
        Column('status', String(20))
    )
    profiles = Table(
        'profiles', metadata,
        Column('id', Integer, primary_key=True),
        Column('user_id', Integer, unique=True),
        Column('country', String(2))
    )
    metadata.create_all(engine)

    with engine.begin() as conn:
        conn.execute(orders.insert(), [
            {'id': 1, 'user_id': 1, 'status': 'paid'},
            {'id': 2, 'user_id': 1, 'status': 'paid'},
            {'id': 3, 'user_id': 2, 'status': 'open'}
        ])
        conn.execute(profiles.insert(), [
            {'id': 1, 'user_id': 1, 'country': 'ES'},
            {'id': 2, 'user_id': 3, 'country': 'FR'}
        ])


@pytest.fixture
def membership_type(engine, schema_provider):
    """A table keyed by (group_id, user_id) with five rows."""
    metadata = MetaData()
    memberships = Table(
        'memberships', metadata,
        Column('group_id', Integer, primary_key=True),
        Column('user_id', Integer, primary_key=True),
        Column('nickname', String(50))
    )
    metadata.create_all(engine)

    with engine.begin() as conn:
        conn.execute(memberships.insert(), [
            {'group_id': group_id, 'user_id': user_id, 'nickname': f"g{group_id}u{user_id}"}
            for group_id, user_id in [(2, 1), (1, 2), (1, 1), (2, 3), (3, 1)]
        ])

    return schema_provider.describe('memberships')
