#!/usr/bin/env python3
"""
Row Storage
Paged reads with relation joins and per-row updates against a SQL database.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import MetaData, Table, and_, create_engine, func, inspect, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from .errors import ConfigurationError, StorageError
from .pattern_matcher import split_relation_field
from .schema import MappedRecordType, Relation


StagedUpdate = Tuple[Dict[str, Any], Dict[str, Any]]


@dataclass
class JoinSpec:
    """One LEFT OUTER JOIN exposing related columns as 'relation.column'."""
    relation: Relation
    columns: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.relation.name

    def labels(self) -> List[str]:
        return [f"{self.name}.{column}" for column in self.columns]


class SqlStorage:
    """
    Storage reader/writer on SQLAlchemy Core.

    Reads are paged: keyset pagination on a single identifier column,
    offset pagination for composite identifiers. Writes are conditioned on
    the identifier columns only.
    """

    def __init__(self, engine: Engine):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.engine = engine
        self._metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str, **engine_options: Any) -> 'SqlStorage':
        return cls(create_engine(url, **engine_options))

    @property
    def connection_name(self) -> str:
        """Database name used to key statistics."""
        return self.engine.url.database or self.engine.url.get_backend_name()

    # ------------------------------------------------------------------
    # Planning

    def plan_joins(self, record_type: MappedRecordType, pattern_fields: Iterable[str]) -> List[JoinSpec]:
        """
        Minimal set of joins exposing every related column referenced by patterns.

        Each relation is joined once however many rules reference it.
        References to undeclared relations are not joined; groups using them
        will not match.
        """
        joins: Dict[str, JoinSpec] = {}

        for field_name in pattern_fields:
            relation_name, column = split_relation_field(field_name)
            if relation_name is None:
                continue

            relation = record_type.get_relation(relation_name)
            if relation is None:
                if record_type.has_column(field_name):
                    continue
                self.logger.warning(
                    f"Pattern field '{field_name}' references unknown relation '{relation_name}' "
                    f"on {record_type.name}; it will not match"
                )
                continue

            if relation_name not in joins:
                self._check_many_to_one(record_type, relation)
                joins[relation_name] = JoinSpec(relation=relation)

            join = joins[relation_name]
            if column not in join.columns:
                join.columns.append(column)

        planned = list(joins.values())
        self.logger.debug(
            f"Planned {len(planned)} join(s) for {record_type.name}: "
            f"{[label for join in planned for label in join.labels()]}"
        )
        return planned

    def _check_many_to_one(self, record_type: MappedRecordType, relation: Relation) -> None:
        """A join must not fan out: the target column has to be a primary or unique key on its own."""
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(relation.target_table):
                raise ConfigurationError(
                    f"Related table {relation.target_table} does not exist",
                    entity=record_type.name,
                    field=relation.name
                )

            unique_keys = [inspector.get_pk_constraint(relation.target_table).get('constrained_columns') or []]
            unique_keys.extend(
                constraint['column_names'] for constraint in inspector.get_unique_constraints(relation.target_table)
            )
            unique_keys.extend(
                index['column_names'] for index in inspector.get_indexes(relation.target_table) if index.get('unique')
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to inspect table {relation.target_table}: {e}", entity=record_type.name) from e

        if [relation.target_column] not in [list(key) for key in unique_keys]:
            raise ConfigurationError(
                f"Relation '{relation.name}' joins {relation.target_table}.{relation.target_column}, "
                f"which is not a primary or unique key; only many-to-one relations are supported",
                entity=record_type.name,
                field=relation.name
            )

    # ------------------------------------------------------------------
    # Reading

    def count(self, record_type: MappedRecordType) -> int:
        """Number of rows belonging to the record type."""
        try:
            table = self._table(record_type.table_name)
            statement = select(func.count()).select_from(table)
            condition = self._discriminator_condition(record_type, table)
            if condition is not None:
                statement = statement.where(condition)

            with self.engine.connect() as conn:
                return int(conn.execute(statement).scalar() or 0)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to count rows of {record_type.table_name}: {e}", entity=record_type.name) from e

    def iter_batches(
        self,
        record_type: MappedRecordType,
        joins: Optional[List[JoinSpec]] = None,
        batch_size: int = 100
    ) -> Iterator[List[Dict[str, Any]]]:
        """Yield pages of rows as dicts; joined columns appear under 'relation.column'."""
        if batch_size < 1:
            raise ConfigurationError(f"Batch size must be positive, got {batch_size}", entity=record_type.name)

        try:
            statement, identifiers, renames = self._build_select(record_type, joins or [])
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to prepare query for {record_type.table_name}: {e}", entity=record_type.name) from e

        keyset = len(identifiers) == 1
        last_id: Any = None
        offset = 0

        while True:
            page = statement.order_by(*identifiers).limit(batch_size)
            if keyset and last_id is not None:
                page = page.where(identifiers[0] > last_id)
            elif not keyset:
                page = page.offset(offset)

            try:
                with self.engine.connect() as conn:
                    rows = [
                        {renames.get(key, key): value for key, value in row.items()}
                        for row in conn.execute(page).mappings()
                    ]
            except SQLAlchemyError as e:
                raise StorageError(
                    f"Failed to fetch rows of {record_type.table_name}: {e}",
                    entity=record_type.name,
                    row_id={identifiers[0].name: last_id} if keyset and last_id is not None else None
                ) from e

            if not rows:
                return

            yield rows

            if len(rows) < batch_size:
                return

            if keyset:
                last_id = rows[-1][identifiers[0].name]
            else:
                offset += len(rows)

    def _build_select(self, record_type: MappedRecordType, joins: List[JoinSpec]):
        table = self._table(record_type.table_name)
        columns = list(table.c)
        from_clause = table
        # Dotted labels are not portable across dialects
        renames: Dict[str, str] = {}

        for join in joins:
            relation = join.relation
            target = self._table(relation.target_table).alias(f"rel_{relation.name}")

            for column in (relation.target_column, *join.columns):
                if column not in target.c:
                    raise ConfigurationError(
                        f"Related table {relation.target_table} has no column '{column}'",
                        entity=record_type.name,
                        field=f"{relation.name}.{column}"
                    )
            if relation.source_column not in table.c:
                raise ConfigurationError(
                    f"Table {record_type.table_name} has no column '{relation.source_column}'",
                    entity=record_type.name
                )

            from_clause = from_clause.outerjoin(
                target, table.c[relation.source_column] == target.c[relation.target_column]
            )
            for index, (column, label) in enumerate(zip(join.columns, join.labels())):
                sql_label = f"rel_{relation.name}_{index}"
                renames[sql_label] = label
                columns.append(target.c[column].label(sql_label))

        statement = select(*columns).select_from(from_clause)
        condition = self._discriminator_condition(record_type, table)
        if condition is not None:
            statement = statement.where(condition)

        identifiers = [table.c[name] for name in record_type.identifier_columns]
        return statement, identifiers, renames

    @staticmethod
    def _discriminator_condition(record_type: MappedRecordType, table: Table):
        if not record_type.is_polymorphic:
            return None
        if record_type.discriminator_column not in table.c:
            raise ConfigurationError(
                f"Discriminator column '{record_type.discriminator_column}' not found",
                entity=record_type.name
            )
        return table.c[record_type.discriminator_column] == record_type.discriminator_value

    # ------------------------------------------------------------------
    # Writing

    def update(
        self,
        table_name: str,
        id_values: Dict[str, Any],
        changes: Dict[str, Any],
        connection: Optional[Connection] = None
    ) -> int:
        """Update one row identified by its identifier columns; returns affected rows."""
        if not changes:
            return 0

        table = self._table(table_name)
        statement = (
            update(table)
            .where(and_(*[table.c[column] == value for column, value in id_values.items()]))
            .values(changes)
        )

        try:
            if connection is not None:
                return connection.execute(statement).rowcount
            with self.engine.begin() as conn:
                return conn.execute(statement).rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update {table_name}: {e}", row_id=id_values) from e

    def write_batch(self, table_name: str, staged: List[StagedUpdate]) -> int:
        """Apply a page of staged row updates in a single transaction."""
        if not staged:
            return 0

        current_id: Optional[Dict[str, Any]] = None
        try:
            with self.engine.begin() as conn:
                written = 0
                for id_values, changes in staged:
                    current_id = id_values
                    written += self.update(table_name, id_values, changes, connection=conn)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write batch to {table_name}: {e}", row_id=current_id) from e

        self.logger.debug(f"Wrote {written} row(s) to {table_name}")
        return written

    # ------------------------------------------------------------------
    # Metadata

    def column_exists(self, table_name: str, column_name: str) -> bool:
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(table_name):
                return False
            return any(column['name'] == column_name for column in inspector.get_columns(table_name))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to inspect table {table_name}: {e}") from e

    def _table(self, table_name: str) -> Table:
        with self._lock:
            if table_name not in self._tables:
                try:
                    self._tables[table_name] = Table(table_name, self._metadata, autoload_with=self.engine)
                except NoSuchTableError as e:
                    raise ConfigurationError(f"Table {table_name} does not exist") from e
            return self._tables[table_name]
