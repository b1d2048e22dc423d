"""
Command-line interface for the table anonymizer.
"""

from .anonymize_cli import cli, main

__all__ = ['cli', 'main']
