"""Main CLI entry point for GitLab Transfer."""

import sys
import asyncio
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..utils.logging import setup_logging
from ..migration.engine import TransferEngine
from ..migration.pipeline import TransferResult

console = Console()

DEFAULT_CONFIG_PATHS = ['gitlab-transfer.yaml', 'gitlab-transfer.yml']


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name='gitlab-transfer')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """GitLab Transfer - Move a project from a self-managed GitLab to another GitLab instance."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'INFO')

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Export, import and archive the configured project."""
    console.print(
        Panel.fit(
            '[bold blue]GitLab Transfer[/bold blue]\n'
            'Starting project transfer...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)
        result = asyncio.run(TransferEngine(config).run())
    except Exception as e:
        console.print(f'[red]✗[/red] Transfer failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _display_transfer_summary(result)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='gitlab-transfer.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]GitLab Transfer[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Configuration template created at: {output}')
    console.print(
        f'[yellow]Please edit {output} with your GitLab instance details[/yellow]'
    )


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the resolved transfer configuration."""
    try:
        config = _load_config(ctx)
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load configuration: {e}')
        sys.exit(1)

    transfer = config.transfer

    table = Table(title='Transfer Configuration')
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')

    table.add_row('Source URL', config.source.url)
    table.add_row('Source Project', transfer.source_project)
    table.add_row('Destination URL', config.destination.url)
    table.add_row('Destination Project', transfer.destination_path)
    table.add_row('Export File', str(transfer.export_path))
    table.add_row('Poll Interval', f'{transfer.poll_interval:g}s')
    table.add_row('Retry Delay', f'{transfer.retry_delay:g}s')
    table.add_row('Max Retries', str(transfer.max_retries))
    table.add_row(
        'Reset Retries On Success', '✓' if transfer.reset_retries_on_success else '✗'
    )
    table.add_row('Source Token', _mask(config.source.token))
    table.add_row('Destination Token', _mask(config.destination.token))

    console.print(table)


def _mask(token: str) -> str:
    return f'{token[:4]}…' if len(token) > 8 else '****'


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _display_transfer_summary(result: TransferResult) -> None:
    """Display transfer summary results."""
    table = Table(title='Transfer Summary')
    table.add_column('Step', style='cyan')
    table.add_column('Result')

    for step in result.steps_completed:
        table.add_row(step, '[green]✓[/green]')
    if result.failed_step:
        table.add_row(result.failed_step, f'[red]✗ {result.error_message}[/red]')

    console.print(table)

    if result.started_at and result.completed_at:
        duration = result.completed_at - result.started_at
        console.print(f'\n[blue]Transfer Duration:[/blue] {duration}')

    if result.warnings:
        console.print(f'\n[yellow]Warnings ({len(result.warnings)}):[/yellow]')
        for warning in result.warnings:
            console.print(f'  • {warning}')

    if result.success:
        console.print(f'[green]✓[/green] Project available at {result.destination_url}')
    else:
        console.print(f'[red]✗[/red] Transfer halted in state {result.state.value}')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Transfer interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
