#!/usr/bin/env python3
"""
Table Anonymizer CLI Tool
Command-line interface for configuring and running rule-driven table anonymization.
"""

import logging
import signal
import sys
import threading
from typing import Any, Dict, List

import click
import yaml
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from tabulate import tabulate

from ..core.anonymizer import AnonymizationRunner
from ..core.config import (
    AnonymizerConfig,
    ConfigManager,
    create_default_config_file,
    encrypt_connection_string,
    ensure_safe_environment
)
from ..core.errors import AnonymizerError
from ..core.rules import YamlRuleSource, order_rules
from ..core.schema import SchemaProvider
from ..core.statistics import AnonymizationStatistics
from ..core.storage import SqlStorage
from ..fakers import BUILTIN_GENERATORS, FakerRegistry, FakerType


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """Table Anonymizer - Replace sensitive column values with realistic fakes."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose


# Configuration Commands
@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command('create-default')
@click.option('--output', '-o', default='anonymizer_config.yaml', help='Output file path')
def create_default_config(output):
    """Create default configuration file."""
    try:
        create_default_config_file(output)
        click.echo(f"✅ Default configuration created: {output}")
    except OSError as e:
        click.echo(f"❌ Error creating configuration: {e}", err=True)
        sys.exit(1)


@config.command('validate')
@click.argument('config_file', type=click.Path(exists=True))
def validate_config(config_file):
    """Validate configuration file."""
    try:
        ConfigManager(config_file).load_config()
        click.echo(f"✅ Configuration is valid: {config_file}")
    except AnonymizerError as e:
        click.echo(f"❌ Configuration validation failed: {e}", err=True)
        sys.exit(1)


@config.command('show')
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--section', help='Show specific section only')
def show_config(config_file, section):
    """Display configuration with secrets masked."""
    try:
        config_data = AnonymizerConfig.from_file(config_file).to_dict(mask_secrets=True)
    except AnonymizerError as e:
        click.echo(f"❌ Error reading configuration: {e}", err=True)
        sys.exit(1)

    if section:
        if section not in config_data:
            click.echo(f"❌ Section '{section}' not found in configuration", err=True)
            sys.exit(1)
        config_data = {section: config_data[section]}

    click.echo(yaml.dump(config_data, default_flow_style=False, sort_keys=False))


@config.command('encrypt')
@click.argument('connection_string')
@click.option('--key', help='Existing Fernet key (a new one is generated otherwise)')
def encrypt_config_value(connection_string, key):
    """Encrypt a connection string for the configuration file."""
    try:
        encrypted, encryption_key = encrypt_connection_string(connection_string, key)
    except ValueError as e:
        click.echo(f"❌ Invalid encryption key: {e}", err=True)
        sys.exit(1)

    click.echo(f"Encrypted: {encrypted}")
    click.echo(f"Key: {encryption_key}")


# Rule Commands
@cli.group()
def rules():
    """Anonymization rule commands."""
    pass


@rules.command('show')
@click.argument('rules_file', type=click.Path(exists=True))
@click.option('--entity', '-e', multiple=True, help='Only show these entities')
def show_rules(rules_file, entity):
    """Show field rules per entity in execution order."""
    try:
        rule_source = YamlRuleSource(rules_file)
    except AnonymizerError as e:
        click.echo(f"❌ Invalid rules file: {e}", err=True)
        sys.exit(1)

    for name in rule_source.entities():
        if entity and name not in entity:
            continue

        rule_set = rule_source.get(name)
        click.echo(f"\n📋 {name} (table: {rule_set.table})")

        entity_rule = rule_set.entity_rule
        if entity_rule is not None:
            if entity_rule.include_patterns:
                click.echo(f"  include: {entity_rule.include_patterns}")
            if entity_rule.exclude_patterns:
                click.echo(f"  exclude: {entity_rule.exclude_patterns}")
            if entity_rule.track_anonymized:
                click.echo(f"  marker column: {entity_rule.marker_column}")

        table_data = []
        for position, rule in enumerate(order_rules(rule_set.fields), start=1):
            table_data.append([
                position,
                rule.column,
                rule.type,
                rule.weight if rule.weight is not None else '-',
                _describe_patterns(rule.include_patterns),
                _describe_patterns(rule.exclude_patterns)
            ])

        headers = ['#', 'Column', 'Generator', 'Weight', 'Include', 'Exclude']
        click.echo(tabulate(table_data, headers=headers, tablefmt='grid'))


def _describe_patterns(patterns: Any) -> str:
    if not patterns:
        return '-'
    return yaml.dump(patterns, default_flow_style=True).strip()


# Generator Commands
@cli.group()
def fakers():
    """Value generator commands."""
    pass


@fakers.command('list')
def list_fakers():
    """List available generator types."""
    composite_types = {
        FakerType.COPY, FakerType.PATTERN_BASED, FakerType.HASH_PRESERVE, FakerType.CONSTANT,
        FakerType.NULL, FakerType.MAP, FakerType.SHUFFLE, FakerType.ENUM, FakerType.SERVICE,
        FakerType.MASKING, FakerType.NAME_FALLBACK
    }

    table_data = []
    for name in FakerRegistry().available_types():
        factory = BUILTIN_GENERATORS.get(name)
        doc = (factory.__doc__ if factory is not None else None) or ''
        description = doc.strip().splitlines()[0] if doc.strip() else ''
        kind = 'composite' if name in {faker_type.value for faker_type in composite_types} else 'concrete'
        table_data.append([name, kind, description])

    click.echo(tabulate(table_data, headers=['Type', 'Kind', 'Description'], tablefmt='grid'))


# Run Command
@cli.command('run')
@click.option('--rules', 'rules_path', type=click.Path(exists=True), help='Rules file (overrides configuration)')
@click.option('--entity', '-e', multiple=True, help='Entity to anonymize (repeatable, default: all)')
@click.option('--dry-run', is_flag=True, help='Compute replacements without writing them')
@click.option('--batch-size', type=int, help='Rows per batch (overrides configuration)')
@click.option('--stats-format', type=click.Choice(['table', 'json', 'csv']), default='table',
              help='Statistics output format')
@click.option('--stats-output', type=click.Path(), help='Write statistics to this file')
@click.pass_context
def run(ctx, rules_path, entity, dry_run, batch_size, stats_format, stats_output):
    """Anonymize the configured database."""
    try:
        anonymizer_config = ConfigManager(ctx.obj.get('config_path')).load_config()
        if not ctx.obj.get('verbose'):
            logging.getLogger().setLevel(anonymizer_config.log_level)

        ensure_safe_environment(anonymizer_config)

        rules_path = rules_path or anonymizer_config.rules_path
        if not rules_path:
            click.echo("❌ No rules file given (use --rules or set rules_path)", err=True)
            sys.exit(1)

        rule_source = YamlRuleSource(rules_path)
        engine = create_engine(anonymizer_config.connection_string())
    except (AnonymizerError, SQLAlchemyError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    runner = AnonymizationRunner(
        SqlStorage(engine),
        SchemaProvider(engine),
        FakerRegistry(anonymizer_config.locale, anonymizer_config.seed),
        rule_source,
        batch_size=batch_size or anonymizer_config.batch_size,
        progress_interval=anonymizer_config.progress_interval,
        max_workers=anonymizer_config.max_workers,
        marker_column=anonymizer_config.marker_column,
        connection_name=anonymizer_config.database.name
    )

    if dry_run:
        click.echo("🔍 Dry run: no changes will be written")

    statistics = AnonymizationStatistics()
    cancel_event = threading.Event()
    previous_handler = _install_interrupt_handler(cancel_event)

    try:
        summary = runner.run(
            entities=list(entity) or None,
            dry_run=dry_run,
            statistics=statistics,
            progress_callback=_echo_progress,
            cancel_event=cancel_event
        )
    except AnonymizerError as e:
        click.echo(f"❌ Anonymization failed: {e}", err=True)
        sys.exit(1)
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
        engine.dispose()

    _output_statistics(statistics, stats_format, stats_output)

    if any(result.cancelled for result in summary.results.values()):
        click.echo("⚠️  Run cancelled; partial results above")

    if summary.errors:
        for name, error in summary.errors.items():
            click.echo(f"❌ {name}: {error}", err=True)
        sys.exit(1)

    click.echo("✅ Anonymization completed" + (" (dry run)" if dry_run else ""))


def _install_interrupt_handler(cancel_event: threading.Event):
    """Turn Ctrl-C into a cancellation checked between batches."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame):
        click.echo("\n⏹️  Cancelling after the current batch...", err=True)
        cancel_event.set()

    return signal.signal(signal.SIGINT, _handler)


def _echo_progress(processed: int, total: int, message: str) -> None:
    percentage = f"{processed / total * 100:.0f}%" if total else "-"
    click.echo(f"  ⏳ {message}: {processed:,}/{total:,} ({percentage})")


def _output_statistics(statistics: AnonymizationStatistics, stats_format: str, stats_output: str) -> None:
    if stats_format == 'json':
        content = statistics.to_json()
    elif stats_format == 'csv':
        content = statistics.to_csv()
    else:
        content = _statistics_table(statistics)

    if stats_output:
        with open(stats_output, 'w') as file:
            file.write(content)
        click.echo(f"📊 Statistics written to {stats_output}")
    else:
        click.echo(content)


def _statistics_table(statistics: AnonymizationStatistics) -> str:
    entities: Dict[str, Dict[str, Any]] = statistics.get_entities()
    rows: List[List[Any]] = []
    for entry in entities.values():
        rows.append([
            entry['entity'],
            entry['connection'],
            f"{entry['processed']:,}",
            f"{entry['updated']:,}",
            f"{entry['skipped']:,}",
            entry['failures'],
            ', '.join(f"{name}={count}" for name, count in entry['fields'].items()) or '-'
        ])

    summary = statistics.get_summary()
    table = tabulate(
        rows,
        headers=['Entity', 'Connection', 'Processed', 'Updated', 'Skipped', 'Failures', 'Fields'],
        tablefmt='grid'
    )
    return (
        f"{table}\n\n"
        f"📊 {summary['total_entities']} entities, {summary['total_processed']:,} processed, "
        f"{summary['total_updated']:,} updated in {summary['duration_formatted']}"
    )


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
