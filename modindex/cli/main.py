"""Main CLI entry point for modindex."""

import json
import os
import sys
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..core.configuration import load_config, store_config
from ..core.engine import IngestionEngine, IngestionScheduler
from ..core.exceptions import MalformedManifestError, ModIndexError
from ..core.interfaces import CycleReport, IndexerConfig
from ..core.store import PackageIndex
from ..fetcher import adapter_registry
from ..manifest.migrator import load_manifest
from ..search.engine import PackageSearchService
from ..search.query import compile_query

# Initialize rich console for better output formatting
console = Console()
error_console = Console(stderr=True)


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    # Check environment variable for log level override
    env_log_level = os.getenv('MODINDEX_LOG_LEVEL', '').upper()
    if env_log_level in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
        level = getattr(logging, env_log_level)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    # Check environment variable for log format override
    log_format = os.getenv('MODINDEX_LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    logging.basicConfig(
        level=level,
        format=log_format
    )


def format_document(document: Dict[str, Any], output_format: str = "yaml") -> str:
    """Format a document for output."""
    if output_format == "json":
        return json.dumps(document, indent=2, ensure_ascii=False)
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)


def fail(ctx, error: Exception):
    """Report a library error on stderr and exit with status 1."""
    error_console.print(f"[red]Error:[/red] {error}")
    if isinstance(error, MalformedManifestError):
        for issue in error.issues:
            error_console.print(f"  {issue.path or '<root>'}: {issue.message}")
    if ctx.obj.get('verbose'):
        error_console.print_exception()
    sys.exit(1)


def open_index(config: IndexerConfig, background_cleanup: bool = False) -> PackageIndex:
    """Open the configured package index."""
    if not background_cleanup:
        config = replace(config, cleanup_interval=0)
    return PackageIndex(store_config(config))


def display_cycle_report(report: CycleReport):
    """Display a crawl cycle report."""
    table = Table(title="Crawl Cycle")
    table.add_column("Ecosystem", style="cyan", no_wrap=True)
    table.add_column("Discovered", justify="right")
    table.add_column("Published", style="green", justify="right")
    table.add_column("Withheld", style="yellow", justify="right")
    table.add_column("Failed", style="red", justify="right")

    for name, ecosystem in report.ecosystems.items():
        table.add_row(
            name + (" [red](discovery failed)[/red]" if ecosystem.discovery_error else ""),
            str(ecosystem.discovered),
            str(ecosystem.published),
            str(ecosystem.withheld),
            str(ecosystem.failed),
        )

    console.print(table)
    console.print(f"Elapsed: {report.elapsed:.1f}s" + (" [yellow](cancelled)[/yellow]" if report.cancelled else ""))


def display_search_results(response: Dict[str, Any], query: str):
    """Display search results in a formatted table."""
    data = response["data"]
    items = data["items"]

    if not items:
        console.print(f"[yellow]No packages found for:[/yellow] {query or '(all)'}")
        return

    table = Table(title=f"Search Results for '{query}'" if query else "All Packages")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Author")
    table.add_column("Hotness", style="yellow", justify="right")
    table.add_column("Updated", style="green")
    table.add_column("Tags", style="blue")

    for item in items:
        table.add_row(
            item["key"],
            item["name"],
            item["author"],
            str(item["hotness"]),
            item["updated"],
            ", ".join(item["tags"][:4]) + (" ..." if len(item["tags"]) > 4 else ""),
        )

    console.print(table)
    console.print(f"Page {data['pageIndex']} of {data['totalPages']}")


@click.group()
@click.option('--config', '-c', type=click.Path(),
              default=lambda: os.getenv('MODINDEX_CONFIG'),
              help='Path to configuration file (env: MODINDEX_CONFIG)')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose logging (env: MODINDEX_VERBOSE)')
@click.pass_context
def cli(ctx, config, verbose):
    """
    Crawl, index and search Bedrock server mods and plugins.

    \b
    Examples:

      # Run one crawl cycle over every ecosystem
      modindex crawl --once

      # Keep crawling on the configured interval
      modindex crawl

      # Search the index
      modindex search "+essentials platform:endstone"

      # Show one package
      modindex show github:owner/repo
    """
    ctx.ensure_object(dict)
    ctx.obj['config'] = config

    # Apply environment variable for verbose if not provided via CLI
    if not verbose and os.getenv('MODINDEX_VERBOSE', '').lower() in ['true', '1', 'yes']:
        verbose = True

    ctx.obj['verbose'] = verbose
    setup_logging(verbose)


@cli.command()
@click.option('--once', is_flag=True, help='Run a single crawl cycle and exit')
@click.option('--ecosystem', '-e', 'ecosystems', multiple=True,
              help='Ecosystem to crawl (repeatable, defaults to all configured)')
@click.option('--interval', type=int, help='Seconds between cycles (overrides fetch_interval)')
@click.pass_context
def crawl(ctx, once, ecosystems, interval):
    """
    Crawl ecosystems and update the index.

    Examples:

      # One cycle over LeviLamina only
      modindex crawl --once --ecosystem levilamina
    """
    try:
        config = load_config(ctx.obj['config'])
        if ecosystems:
            config = replace(config, ecosystems=list(ecosystems))

        with open_index(config, background_cleanup=not once) as index:
            engine = IngestionEngine(config, index)

            if once:
                display_cycle_report(engine.run_cycle())
                return

            scheduler = IngestionScheduler(engine, interval=interval)
            scheduler.start()
            try:
                while not scheduler.wait(1.0):
                    pass
            except KeyboardInterrupt:
                console.print("\n[yellow]Stopping after the current package fetches...[/yellow]")
            finally:
                scheduler.stop(timeout=60)

            if scheduler.last_report is not None:
                display_cycle_report(scheduler.last_report)

    except ModIndexError as e:
        fail(ctx, e)


@cli.command()
@click.argument('query', default='')
@click.option('--page', '-p', default='1', help='Page number, starting at 1')
@click.option('--per-page', '-n', default='10', help='Results per page (1-100)')
@click.option('--sort', '-s', default='hotness', type=click.Choice(['hotness', 'updated']),
              help='Sort key')
@click.option('--order', '-o', default='desc', type=click.Choice(['asc', 'desc']),
              help='Sort order')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw API response')
@click.pass_context
def search(ctx, query, page, per_page, sort, order, as_json):
    """
    Search the index.

    \b
    Query language:
      word            matches name, description, author or tags
      +word           the term is required
      category:value  matches tags; values of one category are alternatives

    Examples:

      modindex search "teleport type:mod" --sort updated
    """
    try:
        config = load_config(ctx.obj['config'])
        with open_index(config) as index:
            response = PackageSearchService(index).search(
                q=query, per_page=per_page, page=page, sort=sort, order=order
            )

        if as_json:
            click.echo(json.dumps(response, indent=2, ensure_ascii=False))
        else:
            display_search_results(response, query)

    except ModIndexError as e:
        fail(ctx, e)


@cli.command()
@click.argument('key')
@click.option('--format', '-f', 'output_format', default='yaml', type=click.Choice(['yaml', 'json']),
              help='Output format')
@click.pass_context
def show(ctx, key, output_format):
    """
    Show one package by key, e.g. github:owner/repo or pypi:endstone-foo.
    """
    try:
        config = load_config(ctx.obj['config'])
        with open_index(config) as index:
            response = PackageSearchService(index).get_package(key)

        if output_format == 'json':
            click.echo(format_document(response["data"], 'json'))
        else:
            syntax = Syntax(format_document(response["data"]), "yaml", theme="monokai")
            console.print(Panel(syntax, title=key, border_style="green"))

    except ModIndexError as e:
        fail(ctx, e)


@cli.command()
@click.argument('query')
def explain(query):
    """
    Print the filter tree a query compiles to.
    """
    click.echo(str(compile_query(query)))


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', default='yaml', type=click.Choice(['yaml', 'json']),
              help='Output format')
@click.pass_context
def migrate(ctx, file_path, output_format):
    """
    Migrate a tooth.json manifest to format version 3.
    """
    try:
        manifest = load_manifest(Path(file_path).read_text(encoding='utf-8'))
        click.echo(format_document(manifest.to_dict(), output_format))
    except ModIndexError as e:
        fail(ctx, e)


@cli.command(name='list-ecosystems')
def list_ecosystems():
    """
    List the registered ecosystems.
    """
    table = Table(title="Ecosystems")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Source", style="magenta")
    table.add_column("Package Manager", style="green")

    for name, adapter_class in adapter_registry.get_registered_adapters().items():
        table.add_row(name, adapter_class.source, adapter_class.package_manager or "-")

    console.print(table)


@cli.command()
@click.pass_context
def cleanup(ctx):
    """
    Remove expired packages from the index.
    """
    try:
        config = load_config(ctx.obj['config'])
        with open_index(config) as index:
            removed = index.cleanup_expired()
            info = index.get_info()

        console.print(Panel(
            f"Removed: {removed}\nRemaining: {info['stats']['size']}\nDatabase: {info['database_path']}",
            title="Index Cleanup",
            border_style="blue"
        ))

    except ModIndexError as e:
        fail(ctx, e)


def main() -> int:
    """Main CLI entry point."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        return 130
    except SystemExit as e:
        return e.code


if __name__ == '__main__':
    sys.exit(main())
