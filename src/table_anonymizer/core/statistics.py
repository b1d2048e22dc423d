#!/usr/bin/env python3
"""
Anonymization Statistics
Per-run, per-entity and per-field counts of processed, updated and skipped values.
"""

import csv
import io
import json
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class FieldFailure:
    """A field left unchanged because its value could not be generated or coerced."""
    field: str
    error: str
    row_id: Optional[Dict[str, Any]] = None


@dataclass
class AnonymizationResult:
    """Outcome of anonymizing one record type."""
    entity: str
    processed: int = 0
    updated: int = 0
    written: int = 0
    field_counts: Dict[str, int] = field(default_factory=dict)
    failures: List[FieldFailure] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False

    @property
    def skipped(self) -> int:
        return self.processed - self.updated

    def count_field(self, field_name: str) -> None:
        self.field_counts[field_name] = self.field_counts.get(field_name, 0) + 1

    def record_failure(self, field_name: str, error: str, row_id: Optional[Dict[str, Any]] = None) -> None:
        self.failures.append(FieldFailure(field=field_name, error=error, row_id=row_id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity': self.entity,
            'processed': self.processed,
            'updated': self.updated,
            'written': self.written,
            'skipped': self.skipped,
            'field_counts': dict(self.field_counts),
            'failures': len(self.failures),
            'dry_run': self.dry_run,
            'cancelled': self.cancelled
        }


class AnonymizationStatistics:
    """
    Aggregates anonymization statistics across entities.

    Entities are keyed by ``entity@connection``. Safe to share between
    concurrently running entities.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self.reset()

    def start(self) -> None:
        self.global_stats['start_time'] = time.time()

    def stop(self) -> None:
        self.global_stats['end_time'] = time.time()
        if self.global_stats['start_time'] > 0:
            self.global_stats['duration'] = self.global_stats['end_time'] - self.global_stats['start_time']

    def record_entity(
        self,
        entity: str,
        connection: str,
        processed: int,
        updated: int,
        field_counts: Optional[Dict[str, int]] = None,
        failures: int = 0
    ) -> None:
        """Add one entity's run totals."""
        with self._lock:
            entry = self._entry(entity, connection, count_entity=True)
            skipped = processed - updated

            entry['processed'] += processed
            entry['updated'] += updated
            entry['skipped'] += skipped
            entry['failures'] += failures
            for field_name, count in (field_counts or {}).items():
                entry['fields'][field_name] += count

            self.global_stats['total_processed'] += processed
            self.global_stats['total_updated'] += updated
            self.global_stats['total_skipped'] += skipped
            self.global_stats['total_failures'] += failures

    def record_field(self, entity: str, connection: str, field_name: str, count: int = 1) -> None:
        with self._lock:
            entry = self._entry(entity, connection)
            entry['fields'][field_name] += count

    def record_result(self, result: Any, connection: str = 'default') -> None:
        """Record an AnonymizationResult."""
        self.record_entity(
            result.entity,
            connection,
            result.processed,
            result.updated,
            result.field_counts,
            len(result.failures)
        )

    def _entry(self, entity: str, connection: str, count_entity: bool = False) -> Dict[str, Any]:
        key = f"{entity}@{connection}"
        if key not in self.entity_stats:
            self.entity_stats[key] = {
                'entity': entity,
                'connection': connection,
                'processed': 0,
                'updated': 0,
                'skipped': 0,
                'failures': 0,
                'fields': defaultdict(int)
            }
            if count_entity:
                self.global_stats['total_entities'] += 1
        return self.entity_stats[key]

    def get_all(self) -> Dict[str, Any]:
        return {
            'global': self.get_global(),
            'entities': self.get_entities()
        }

    def get_global(self) -> Dict[str, Any]:
        return dict(self.global_stats)

    def get_entities(self) -> Dict[str, Dict[str, Any]]:
        entities = {}
        for key, entry in self.entity_stats.items():
            entities[key] = dict(entry, fields=dict(entry['fields']))
        return entities

    def get_summary(self) -> Dict[str, Any]:
        stats = self.global_stats
        return {
            'total_entities': stats['total_entities'],
            'total_processed': stats['total_processed'],
            'total_updated': stats['total_updated'],
            'total_skipped': stats['total_skipped'],
            'total_failures': stats['total_failures'],
            'duration_seconds': round(stats['duration'], 2),
            'duration_formatted': format_duration(stats['duration']),
            'average_per_second': round(stats['total_processed'] / stats['duration'], 2)
            if stats['duration'] > 0 else 0,
            'success_rate': round(stats['total_updated'] / stats['total_processed'] * 100, 2)
            if stats['total_processed'] > 0 else 0
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.get_all(), indent=indent, default=str)

    def to_csv(self) -> str:
        """Global, entity and field statistics as three CSV sections."""
        output = io.StringIO()
        writer = csv.writer(output, lineterminator='\n')
        summary = self.get_summary()

        writer.writerow(['Section', 'Key', 'Value'])
        writer.writerow(['Global', 'Total Entities', summary['total_entities']])
        writer.writerow(['Global', 'Total Processed', summary['total_processed']])
        writer.writerow(['Global', 'Total Updated', summary['total_updated']])
        writer.writerow(['Global', 'Total Skipped', summary['total_skipped']])
        writer.writerow(['Global', 'Total Failures', summary['total_failures']])
        writer.writerow(['Global', 'Duration (seconds)', summary['duration_seconds']])
        writer.writerow(['Global', 'Duration (formatted)', summary['duration_formatted']])
        writer.writerow(['Global', 'Average per Second', summary['average_per_second']])
        writer.writerow(['Global', 'Success Rate (%)', summary['success_rate']])

        writer.writerow([])
        writer.writerow(['Entity', 'Connection', 'Processed', 'Updated', 'Skipped', 'Failures', 'Success Rate (%)'])
        for entry in self.entity_stats.values():
            success_rate = round(entry['updated'] / entry['processed'] * 100, 2) if entry['processed'] > 0 else 0
            writer.writerow([
                entry['entity'], entry['connection'], entry['processed'],
                entry['updated'], entry['skipped'], entry['failures'], success_rate
            ])

        if any(entry['fields'] for entry in self.entity_stats.values()):
            writer.writerow([])
            writer.writerow(['Entity', 'Connection', 'Field', 'Anonymized Count'])
            for entry in self.entity_stats.values():
                for field_name, count in entry['fields'].items():
                    writer.writerow([entry['entity'], entry['connection'], field_name, count])

        return output.getvalue()

    def reset(self) -> None:
        self.entity_stats: Dict[str, Dict[str, Any]] = {}
        self.global_stats: Dict[str, Any] = {
            'total_entities': 0,
            'total_processed': 0,
            'total_updated': 0,
            'total_skipped': 0,
            'total_failures': 0,
            'start_time': 0.0,
            'end_time': 0.0,
            'duration': 0.0
        }


def format_duration(seconds: float) -> str:
    """Human readable duration."""
    if seconds < 1:
        return f"{round(seconds * 1000, 2)} ms"

    if seconds < 60:
        return f"{round(seconds, 2)} s"

    minutes, remaining_seconds = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes} m {remaining_seconds} s"

    hours, remaining_minutes = divmod(minutes, 60)
    return f"{hours} h {remaining_minutes} m {remaining_seconds} s"
