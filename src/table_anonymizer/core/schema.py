#!/usr/bin/env python3
"""
Mapped Record Types
Storage layout of anonymizable tables and reflection of that layout from a live database.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import ConfigurationError, StorageError


INTEGER_TYPES = {"integer"}
NUMERIC_TYPES = {"integer", "float", "decimal"}
STRING_TYPES = {"string", "text"}


@dataclass
class ColumnDescriptor:
    """One column of a mapped table."""
    name: str
    storage_type: str = "string"
    nullable: bool = True


@dataclass
class Relation:
    """Many-to-one join path from the mapped table to a related table."""
    name: str
    target_table: str
    source_column: str
    target_column: str = "id"


@dataclass
class MappedRecordType:
    """Table name, columns, identifier and relations of one anonymizable record type."""
    name: str
    table_name: str
    columns: List[ColumnDescriptor]
    identifier_columns: List[str]
    relations: Dict[str, Relation] = field(default_factory=dict)

    # Polymorphic tables: only rows with this discriminator value belong to the type
    discriminator_column: Optional[str] = None
    discriminator_value: Optional[Any] = None

    def __post_init__(self):
        self._columns_by_name = {column.name: column for column in self.columns}
        if not self.identifier_columns:
            raise ConfigurationError(
                f"Record type has no identifier column on table {self.table_name}",
                entity=self.name
            )

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        return self._columns_by_name.get(name)

    def has_column(self, name: str) -> bool:
        return name in self._columns_by_name

    def column_type(self, name: str) -> str:
        column = self.get_column(name)
        return column.storage_type if column else "other"

    def get_relation(self, name: str) -> Optional[Relation]:
        return self.relations.get(name)

    @property
    def is_polymorphic(self) -> bool:
        return self.discriminator_column is not None and self.discriminator_value is not None


def normalize_storage_type(source_type: str) -> str:
    """Map a database column type name to a storage type understood by the anonymizer."""
    source_type_lower = source_type.lower()

    if 'bool' in source_type_lower or source_type_lower in ('bit', 'tinyint(1)'):
        return "boolean"
    elif 'int' in source_type_lower:
        return "integer"
    elif 'numeric' in source_type_lower or 'decimal' in source_type_lower or 'money' in source_type_lower:
        return "decimal"
    elif 'float' in source_type_lower or 'real' in source_type_lower or 'double' in source_type_lower:
        return "float"
    elif 'json' in source_type_lower:
        return "json"
    elif 'datetime' in source_type_lower or 'timestamp' in source_type_lower:
        return "datetime"
    elif 'date' in source_type_lower:
        return "date"
    elif 'time' in source_type_lower:
        return "other"
    elif 'text' in source_type_lower or 'clob' in source_type_lower:
        return "text"
    elif 'char' in source_type_lower or 'string' in source_type_lower or 'uuid' in source_type_lower:
        return "string"
    elif 'blob' in source_type_lower or 'binary' in source_type_lower or 'bytea' in source_type_lower:
        return "binary"
    else:
        return "other"


class SchemaProvider:
    """
    Reflects mapped record types from a live database.

    Relations are derived from foreign keys: a foreign key on ``type_id``
    yields a relation named ``type``. Explicitly declared relations take
    precedence over reflected ones.
    """

    def __init__(self, engine: Engine):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.engine = engine

    def describe(
        self,
        table_name: str,
        name: Optional[str] = None,
        relations: Optional[Dict[str, Relation]] = None,
        discriminator: Optional[Dict[str, Any]] = None
    ) -> MappedRecordType:
        """Build the MappedRecordType for a table."""
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(table_name):
                raise ConfigurationError(f"Table {table_name} does not exist", entity=name or table_name)

            columns = []
            for column in inspector.get_columns(table_name):
                columns.append(ColumnDescriptor(
                    name=column['name'],
                    storage_type=normalize_storage_type(str(column['type'])),
                    nullable=column.get('nullable', True)
                ))

            primary_keys = inspector.get_pk_constraint(table_name).get('constrained_columns') or []
            reflected = self._relations_from_foreign_keys(inspector.get_foreign_keys(table_name))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to reflect table {table_name}: {e}", entity=name or table_name) from e

        reflected.update(relations or {})

        discriminator = discriminator or {}
        record_type = MappedRecordType(
            name=name or table_name,
            table_name=table_name,
            columns=columns,
            identifier_columns=list(primary_keys),
            relations=reflected,
            discriminator_column=discriminator.get('column'),
            discriminator_value=discriminator.get('value')
        )

        self.logger.debug(
            f"Described {record_type.name}: {len(columns)} columns, "
            f"identifier {record_type.identifier_columns}, relations {sorted(reflected)}"
        )
        return record_type

    def column_exists(self, table_name: str, column_name: str) -> bool:
        """Check whether a column physically exists in storage."""
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(table_name):
                return False
            return any(column['name'] == column_name for column in inspector.get_columns(table_name))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to inspect table {table_name}: {e}") from e

    @staticmethod
    def _relations_from_foreign_keys(foreign_keys: List[Dict[str, Any]]) -> Dict[str, Relation]:
        relations = {}
        for fk in foreign_keys:
            constrained = fk.get('constrained_columns') or []
            referred = fk.get('referred_columns') or []
            # Composite foreign keys cannot be expressed as a single equality join
            if len(constrained) != 1 or not fk.get('referred_table'):
                continue

            source_column = constrained[0]
            relation_name = source_column[:-3] if source_column.endswith('_id') else source_column
            relations[relation_name] = Relation(
                name=relation_name,
                target_table=fk['referred_table'],
                source_column=source_column,
                target_column=referred[0] if referred else 'id'
            )
        return relations
