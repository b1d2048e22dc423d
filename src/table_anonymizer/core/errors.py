#!/usr/bin/env python3
"""
Anonymizer Error Taxonomy
Configuration, field-level and storage errors raised by the anonymization engine.
"""

from typing import Any, Dict, Optional


class AnonymizerError(Exception):
    """Base class for all anonymizer errors."""


class ConfigurationError(AnonymizerError):
    """Invalid rule, generator or configuration detected before any row is read."""

    def __init__(self, message: str, entity: Optional[str] = None, field: Optional[str] = None):
        self.entity = entity
        self.field = field

        location = []
        if entity:
            location.append(f"entity '{entity}'")
        if field:
            location.append(f"field '{field}'")

        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class FieldAnonymizationError(AnonymizerError):
    """A single field of a single row could not be anonymized."""

    def __init__(
        self,
        message: str,
        field: str,
        row_id: Optional[Dict[str, Any]] = None
    ):
        self.field = field
        self.row_id = row_id
        super().__init__(message)


class StorageError(AnonymizerError):
    """
    Storage failure while reading or writing rows.

    When raised by the orchestrator, ``result`` holds the partial
    AnonymizationResult accumulated before the failure.
    """

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        row_id: Optional[Dict[str, Any]] = None,
        result: Optional[Any] = None
    ):
        self.entity = entity
        self.row_id = row_id
        self.result = result
        super().__init__(message)

    @property
    def rows_updated(self) -> int:
        """Rows successfully written before the failure."""
        return self.result.written if self.result is not None else 0
