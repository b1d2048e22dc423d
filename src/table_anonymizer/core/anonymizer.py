#!/usr/bin/env python3
"""
Anonymization Orchestrator
Applies ordered field rules to every eligible row of a mapped table and writes
the replacements back in batches.
"""

import json
import logging
import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .errors import AnonymizerError, ConfigurationError, FieldAnonymizationError, StorageError
from .pattern_matcher import PatternMatcher
from .rules import EntityRule, FieldRule, RuleSource, order_rules
from .schema import ColumnDescriptor, MappedRecordType, SchemaProvider
from .statistics import AnonymizationResult, AnonymizationStatistics
from .storage import SqlStorage

if TYPE_CHECKING:
    from ..fakers import FakerInterface, FakerRegistry


ProgressCallback = Callable[[int, int, str], None]

TRUE_VALUES = {'1', 'true', 'yes', 'y', 'on', 't'}
FALSE_VALUES = {'0', 'false', 'no', 'n', 'off', 'f', ''}


@dataclass
class FieldEvent:
    """
    Pre-write notification for one field of one row.

    Handlers may call ``skip()`` to leave the field unchanged or assign
    ``value`` to replace the generated value. ``record`` is a copy.
    """
    entity: str
    field: str
    row_id: Dict[str, Any]
    original_value: Any
    value: Any
    record: Dict[str, Any]
    skipped: bool = False

    def skip(self) -> None:
        self.skipped = True


PreWriteHook = Callable[[FieldEvent], None]


@dataclass
class PreparedRule:
    """A field rule with its resolved generator and column, ready to run."""
    rule: FieldRule
    generator: 'FakerInterface'
    column: ColumnDescriptor

    @property
    def options(self) -> Dict[str, Any]:
        return self.rule.options

    @property
    def preserve_null(self) -> bool:
        return bool(self.options.get('preserve_null', False))

    @property
    def null_probability(self) -> int:
        if not self.options.get('nullable', False):
            return 0
        return int(self.options.get('null_probability', 0))

    @property
    def bypass_entity_exclusion(self) -> bool:
        return bool(self.options.get('bypass_entity_exclusion', False))


class EntityAnonymizer:
    """
    Anonymizes one mapped record type.

    Rules are ordered once per run. Each row is gated by the entity rule,
    then every rule whose own patterns match receives the row as mutated by
    the rules before it. All changes to a row are staged into one update;
    each page of updates is written in one transaction.
    """

    def __init__(
        self,
        storage: SqlStorage,
        registry: 'FakerRegistry',
        pattern_matcher: Optional[PatternMatcher] = None,
        pre_write_hook: Optional[PreWriteHook] = None,
        progress_interval: int = 1,
        rng: Optional[random.Random] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.storage = storage
        self.registry = registry
        self.matcher = pattern_matcher or PatternMatcher()
        self.pre_write_hook = pre_write_hook
        self.progress_interval = max(1, progress_interval)
        self.rng = rng or getattr(registry, 'random', None) or random.Random()

    def run(
        self,
        record_type: MappedRecordType,
        field_rules: List[FieldRule],
        batch_size: int = 100,
        dry_run: bool = False,
        statistics: Optional[AnonymizationStatistics] = None,
        progress_callback: Optional[ProgressCallback] = None,
        entity_rule: Optional[EntityRule] = None,
        cancel_event: Optional[Any] = None,
        connection_name: str = 'default'
    ) -> AnonymizationResult:
        """
        Anonymize every eligible row of ``record_type``.

        Configuration problems raise ConfigurationError before any row is
        read. Storage failures raise StorageError carrying the partial
        result. Per-field generator, hook or coercion failures are recorded on
        the result and leave that field unchanged.
        """
        prepared = self._prepare_rules(record_type, field_rules)
        self._validate_entity_rule(record_type, entity_rule)
        joins = self.storage.plan_joins(record_type, self._pattern_fields(prepared, entity_rule))
        marker_column = self._marker_column(record_type, entity_rule)

        result = AnonymizationResult(entity=record_type.name, dry_run=dry_run)
        batches = 0

        try:
            total = self.storage.count(record_type)
            self.logger.info(
                f"Anonymizing {record_type.name}: {total} row(s), {len(prepared)} rule(s)"
                f"{' [dry run]' if dry_run else ''}"
            )

            for batch in self.storage.iter_batches(record_type, joins, batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    self.logger.info(f"Cancelled {record_type.name} after {result.processed} row(s)")
                    break

                staged = []
                changed_fields = []
                for row in batch:
                    result.processed += 1
                    changes = self._anonymize_row(record_type, row, prepared, entity_rule, result)
                    if not changes:
                        continue

                    changed_fields.append(list(changes))
                    if marker_column:
                        changes[marker_column] = True
                    staged.append(({column: row[column] for column in record_type.identifier_columns}, changes))

                if staged and not dry_run:
                    result.written += self.storage.write_batch(record_type.table_name, staged)

                # Counted once the page is committed; a failed page counts as skipped
                for fields in changed_fields:
                    result.updated += 1
                    for field_name in fields:
                        result.count_field(field_name)

                batches += 1
                if progress_callback is not None and batches % self.progress_interval == 0:
                    progress_callback(result.processed, total, f"{record_type.name}: batch {batches}")

            if progress_callback is not None and batches % self.progress_interval != 0:
                progress_callback(result.processed, total, f"{record_type.name}: batch {batches}")

        except StorageError as e:
            self.logger.error(f"Storage failure on {record_type.name} after {result.written} written row(s): {e}")
            raise StorageError(str(e), entity=record_type.name, row_id=e.row_id, result=result) from e

        finally:
            if statistics is not None:
                statistics.record_result(result, connection_name)

        self.logger.info(
            f"Finished {record_type.name}: processed={result.processed} updated={result.updated} "
            f"failures={len(result.failures)}"
        )
        return result

    # ------------------------------------------------------------------
    # Setup

    def _prepare_rules(self, record_type: MappedRecordType, field_rules: List[FieldRule]) -> List[PreparedRule]:
        prepared = []

        for rule in order_rules(field_rules):
            column = record_type.get_column(rule.column)
            if column is None:
                raise ConfigurationError("Unknown column", entity=record_type.name, field=rule.column)
            if rule.column in record_type.identifier_columns:
                raise ConfigurationError("Identifier columns cannot be anonymized", entity=record_type.name, field=rule.column)

            try:
                self.matcher.validate(rule.include_patterns)
                self.matcher.validate(rule.exclude_patterns)
                generator = self.registry.create(rule.type, rule.service or rule.options.get('service'))
                generator.validate_options(rule.options)
            except ConfigurationError as e:
                raise ConfigurationError(str(e), entity=record_type.name, field=rule.column) from e

            prepared_rule = PreparedRule(rule=rule, generator=generator, column=column)
            if not 0 <= prepared_rule.null_probability <= 100:
                raise ConfigurationError(
                    "null_probability must be between 0 and 100", entity=record_type.name, field=rule.column
                )
            prepared.append(prepared_rule)

        self.logger.debug(
            f"Execution order for {record_type.name}: "
            f"{[(item.rule.column, item.rule.weight) for item in prepared]}"
        )
        return prepared

    def _validate_entity_rule(self, record_type: MappedRecordType, entity_rule: Optional[EntityRule]) -> None:
        if entity_rule is None:
            return
        try:
            self.matcher.validate(entity_rule.include_patterns)
            self.matcher.validate(entity_rule.exclude_patterns)
        except ConfigurationError as e:
            raise ConfigurationError(f"Invalid entity patterns: {e}", entity=record_type.name) from e

    def _pattern_fields(self, prepared: List[PreparedRule], entity_rule: Optional[EntityRule]) -> List[str]:
        fields: List[str] = []
        pattern_sets = []
        if entity_rule is not None:
            pattern_sets.extend([entity_rule.include_patterns, entity_rule.exclude_patterns])
        for item in prepared:
            pattern_sets.extend([item.rule.include_patterns, item.rule.exclude_patterns])

        for patterns in pattern_sets:
            for name in self.matcher.field_names(patterns):
                if name not in fields:
                    fields.append(name)
        return fields

    def _marker_column(self, record_type: MappedRecordType, entity_rule: Optional[EntityRule]) -> Optional[str]:
        if entity_rule is None or not entity_rule.track_anonymized:
            return None

        marker = entity_rule.marker_column
        if self.storage.column_exists(record_type.table_name, marker):
            return marker

        self.logger.info(f"Marker column '{marker}' not present on {record_type.table_name}, not tracking")
        return None

    # ------------------------------------------------------------------
    # Per row

    def _anonymize_row(
        self,
        record_type: MappedRecordType,
        row: Dict[str, Any],
        prepared: List[PreparedRule],
        entity_rule: Optional[EntityRule],
        result: AnonymizationResult
    ) -> Dict[str, Any]:
        gate_passed = True
        if entity_rule is not None and entity_rule.has_patterns:
            gate_passed = self.matcher.matches(row, entity_rule.include_patterns, entity_rule.exclude_patterns)

        row_id = {column: row.get(column) for column in record_type.identifier_columns}
        working = dict(row)
        changes: Dict[str, Any] = {}

        for item in prepared:
            if not gate_passed and not item.bypass_entity_exclusion:
                continue

            rule = item.rule
            if not self.matcher.matches(row, rule.include_patterns, rule.exclude_patterns):
                continue

            current_value = working.get(rule.column)
            if item.preserve_null and current_value is None:
                continue

            if item.null_probability and self.rng.random() * 100 < item.null_probability:
                value = None
            else:
                try:
                    value = item.generator.generate(self._generator_options(item, current_value, working))
                except Exception as e:
                    self._field_failed(
                        record_type, result,
                        FieldAnonymizationError(f"Generator '{rule.type}' failed: {e}", rule.column, row_id)
                    )
                    continue

            if self.pre_write_hook is not None:
                event = FieldEvent(
                    entity=record_type.name,
                    field=rule.column,
                    row_id=dict(row_id),
                    original_value=current_value,
                    value=value,
                    record=dict(working)
                )
                try:
                    self.pre_write_hook(event)
                except Exception as e:
                    self._field_failed(
                        record_type, result,
                        FieldAnonymizationError(f"Pre-write hook failed: {e}", rule.column, row_id)
                    )
                    continue
                if event.skipped:
                    continue
                value = event.value

            try:
                value = coerce_value(value, item.column)
            except (TypeError, ValueError, InvalidOperation) as e:
                self._field_failed(
                    record_type, result,
                    FieldAnonymizationError(f"Cannot store value: {e}", rule.column, row_id)
                )
                continue

            if value == current_value and type(value) is type(current_value):
                continue

            working[rule.column] = value
            changes[rule.column] = value

        return changes

    def _field_failed(
        self,
        record_type: MappedRecordType,
        result: AnonymizationResult,
        error: FieldAnonymizationError
    ) -> None:
        self.logger.warning(f"{record_type.name}.{error.field} {error.row_id}: {error}")
        result.record_failure(error.field, str(error), error.row_id)

    def _generator_options(self, item: PreparedRule, current_value: Any, working: Dict[str, Any]) -> Dict[str, Any]:
        options = dict(item.options)
        options['original_value'] = current_value
        options['record'] = dict(working)
        options['rng'] = self.rng
        return options


def coerce_value(value: Any, column: ColumnDescriptor) -> Any:
    """Convert a generated value to the column's storage type."""
    if value is None:
        if not column.nullable:
            raise ValueError(f"column '{column.name}' is not nullable")
        return None

    storage_type = column.storage_type

    if storage_type == 'integer':
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        number = Decimal(str(value).strip())
        if number != number.to_integral_value():
            raise ValueError(f"{value!r} is not an integer")
        return int(number)

    if storage_type == 'decimal':
        return Decimal(str(value).strip())

    if storage_type == 'float':
        return float(value)

    if storage_type == 'boolean':
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ValueError(f"{value!r} is not a boolean")

    if storage_type in ('string', 'text'):
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)

    return value


@dataclass
class RunSummary:
    """Outcome of a multi-entity run."""
    results: Dict[str, AnonymizationResult] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class AnonymizationRunner:
    """
    Runs several mapped record types.

    A failure on one entity is recorded and does not stop the others.
    With ``max_workers > 1`` entities run concurrently, each with its own
    EntityAnonymizer and a forked FakerRegistry.
    """

    def __init__(
        self,
        storage: SqlStorage,
        schema_provider: SchemaProvider,
        registry: 'FakerRegistry',
        rule_source: RuleSource,
        pre_write_hook: Optional[PreWriteHook] = None,
        batch_size: int = 100,
        progress_interval: int = 1,
        max_workers: int = 1,
        marker_column: Optional[str] = None,
        connection_name: Optional[str] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.storage = storage
        self.schema_provider = schema_provider
        self.registry = registry
        self.rule_source = rule_source
        self.pre_write_hook = pre_write_hook
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.max_workers = max(1, max_workers)
        self.marker_column = marker_column
        self.connection_name = connection_name or storage.connection_name

    def run(
        self,
        entities: Optional[List[str]] = None,
        dry_run: bool = False,
        statistics: Optional[AnonymizationStatistics] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[Any] = None
    ) -> RunSummary:
        """Anonymize the given entities (all entities of the rule source by default)."""
        available = self.rule_source.entities()
        selected = list(entities) if entities else available
        unknown = [name for name in selected if name not in available]
        if unknown:
            raise ConfigurationError(f"No rules defined for: {', '.join(unknown)}")

        summary = RunSummary()
        if statistics is not None:
            statistics.start()

        self.logger.info(f"Starting anonymization of {len(selected)} entities with {self.max_workers} worker(s)")

        try:
            if self.max_workers == 1 or len(selected) == 1:
                for entity in selected:
                    self._collect(summary, entity, self._run_entity, entity, self.registry,
                                  dry_run, statistics, progress_callback, cancel_event)
            else:
                self._run_concurrently(summary, selected, dry_run, statistics, progress_callback, cancel_event)
        finally:
            if statistics is not None:
                statistics.stop()

        self.logger.info(f"Anonymization finished: {len(summary.results)} succeeded, {len(summary.errors)} failed")
        return summary

    def _run_concurrently(self, summary, selected, dry_run, statistics, progress_callback, cancel_event) -> None:
        # One registry (Faker instance, random source, generators) per entity,
        # seeded in a fixed order so seeded runs stay reproducible
        registries = {entity: self.registry.fork(self.registry.random.getrandbits(64)) for entity in selected}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(
                    self._run_entity, entity, registries[entity], dry_run, statistics, progress_callback, cancel_event
                ): entity
                for entity in selected
            }
            for future in as_completed(futures):
                self._collect(summary, futures[future], future.result)

    def _collect(self, summary: RunSummary, entity: str, call: Callable, *args) -> None:
        try:
            summary.results[entity] = call(*args)
        except StorageError as e:
            summary.errors[entity] = str(e)
            if e.result is not None:
                summary.results[entity] = e.result
        except ConfigurationError as e:
            self.logger.error(f"Configuration error on {entity}: {e}")
            summary.errors[entity] = str(e)
        except AnonymizerError as e:
            self.logger.error(f"Anonymization of {entity} failed: {e}")
            summary.errors[entity] = str(e)

    def _run_entity(
        self,
        entity: str,
        registry: 'FakerRegistry',
        dry_run: bool,
        statistics: Optional[AnonymizationStatistics],
        progress_callback: Optional[ProgressCallback],
        cancel_event: Optional[Any]
    ) -> AnonymizationResult:
        rule_set = self.rule_source.get(entity)
        record_type = self.schema_provider.describe(
            rule_set.table,
            name=entity,
            relations=rule_set.declared_relations(),
            discriminator=rule_set.discriminator
        )

        entity_rule = rule_set.entity_rule
        if entity_rule is not None and self.marker_column and 'marker_column' not in entity_rule.model_fields_set:
            entity_rule = entity_rule.model_copy(update={'marker_column': self.marker_column})

        anonymizer = EntityAnonymizer(
            self.storage,
            registry,
            pre_write_hook=self.pre_write_hook,
            progress_interval=self.progress_interval,
            rng=registry.random
        )
        return anonymizer.run(
            record_type,
            rule_set.fields,
            batch_size=self.batch_size,
            dry_run=dry_run,
            statistics=statistics,
            progress_callback=progress_callback,
            entity_rule=entity_rule,
            cancel_event=cancel_event,
            connection_name=self.connection_name
        )

