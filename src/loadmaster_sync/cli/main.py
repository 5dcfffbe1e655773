"""Main CLI entry point."""

import sys
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from loadmaster_sync.actions import VirtualServiceRestarter
from loadmaster_sync.api.client import LoadMasterClient
from loadmaster_sync.config.parser import Config, ConfigValidationError
from loadmaster_sync.orchestrator import ChangeType, Synchronizer, SyncReport
from loadmaster_sync.reconcilers import KINDS, RECONCILER_CLASSES, build_registry
from loadmaster_sync.state.manager import StateError, StateManager
from loadmaster_sync.state.models import RecordedState
from loadmaster_sync.utils.errors import SyncError
from loadmaster_sync.utils.logging import get_logger, setup_logging
from loadmaster_sync.utils.retry import RetryStrategy

console = Console()
logger = get_logger(__name__)

CHANGE_STYLES = {
    ChangeType.CREATE: "[green]+ create[/green]",
    ChangeType.UPDATE: "[yellow]~ update[/yellow]",
    ChangeType.REPLACE: "[magenta]-/+ replace[/magenta]",
    ChangeType.DELETE: "[red]- delete[/red]",
    ChangeType.REFRESH: "[cyan]~ refresh[/cyan]",
    ChangeType.DRIFTED: "[yellow]! drifted[/yellow]",
    ChangeType.NO_CHANGE: "[dim]  no change[/dim]",
}


@click.group()
@click.option('--config', 'config_path', default='loadmaster.yaml', help='Path to configuration file')
@click.option('--log-level', default='info', type=click.Choice(['debug', 'info', 'warning', 'error']))
@click.pass_context
def cli(ctx, config_path, log_level):
    """Declarative synchronization for Kemp LoadMaster appliances."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level

    setup_logging(log_level)


def load_config(config_path: str, log_level: Optional[str] = None) -> Config:
    """Load and validate configuration file.

    Logging is re-targeted to the project log directory, with the appliance
    credentials masked.
    """
    try:
        config = Config(config_path, known_kinds=KINDS).load()
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e), markup=False)
        sys.exit(1)

    if log_level:
        provider = config.provider
        setup_logging(log_level, config.project.log_dir,
                      secrets=(provider.api_key, provider.password))
    return config


def create_client(config: Config) -> LoadMasterClient:
    """Create the API client for the configured appliance."""
    return LoadMasterClient.from_config(config.provider)


def create_synchronizer(config: Config) -> Tuple[Synchronizer, StateManager]:
    """Create synchronizer with all dependencies."""
    client = create_client(config)
    registry = build_registry(client, config.retry)
    state_manager = StateManager(config.project.state_path)
    return Synchronizer(registry, state_manager, host=config.provider.host), state_manager


def print_report(report: SyncReport) -> None:
    """Render a run report."""
    if report.results:
        table = Table(title=f"{report.operation.capitalize()} results")
        table.add_column("Resource", style="cyan")
        table.add_column("Kind")
        table.add_column("Identifier")
        table.add_column("Change")
        for result in report.results:
            change = CHANGE_STYLES[result.change]
            if result.is_failed():
                change = f"[red]x {result.change.value} failed[/red]"
            table.add_row(result.name, result.kind, result.identifier or "-", change)
        console.print(table)

    summary = ", ".join(f"{key}: {value}" for key, value in report.summary().items())
    if report.has_failures():
        console.print(Panel.fit(
            f"[red]x {report.operation.capitalize()} failed[/red]\n\n"
            f"{summary}\nDuration: {report.duration:.2f}s",
            border_style="red"
        ))
        for result in report.failed():
            console.print(f"\n[bold]{result.name}[/bold]")
            console.print(result.error.to_user_message(), markup=False)
    else:
        console.print(Panel.fit(
            f"[green]OK {report.operation.capitalize()} complete[/green]\n\n"
            f"{summary}\nDuration: {report.duration:.2f}s",
            border_style="green"
        ))


def print_state(name: str, state: RecordedState) -> None:
    table = Table(title=f"{name} ({state.kind} {state.identifier})")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value")
    for attribute, value in state.attributes.items():
        table.add_row(attribute, repr(value) if isinstance(value, str) else str(value))
    console.print(table)


def fail(error: Exception) -> None:
    logger.debug(f"Command failed: {error}", exc_info=error)
    if isinstance(error, SyncError):
        console.print(error.to_user_message(), markup=False)
    else:
        console.print(f"[red]Error:[/red] {error}")
    sys.exit(1)


@cli.command()
def kinds():
    """List the resource kinds that can be declared."""
    table = Table(title="Resource kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Updates")
    table.add_column("Description")
    for cls in RECONCILER_CLASSES:
        updates = "replace only" if cls.replace_only else "in place"
        description = (cls.__doc__ or "").strip().splitlines()[0] if cls.__doc__ else ""
        table.add_row(cls.kind, updates, description)
    console.print(table)


@cli.command()
@click.option('--no-prune', is_flag=True, help='Keep recorded resources that are no longer declared')
@click.pass_context
def apply(ctx, no_prune):
    """Create, update or replace declared resources."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    synchronizer, state_manager = create_synchronizer(cfg)

    try:
        with state_manager:
            report = synchronizer.apply(cfg.resources, prune=not no_prune)
    except (SyncError, StateError) as e:
        fail(e)

    print_report(report)
    if report.has_failures():
        sys.exit(1)


@cli.command()
@click.pass_context
def refresh(ctx):
    """Re-read recorded resources from the appliance."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    synchronizer, state_manager = create_synchronizer(cfg)

    try:
        with state_manager:
            report = synchronizer.refresh()
    except (SyncError, StateError) as e:
        fail(e)

    print_report(report)
    if report.has_failures():
        sys.exit(1)


@cli.command()
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def destroy(ctx, yes):
    """Delete every recorded resource."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    synchronizer, state_manager = create_synchronizer(cfg)

    if not state_manager.exists():
        console.print("[yellow]No recorded state found; nothing to destroy[/yellow]")
        return

    if not yes:
        console.print(Panel.fit(
            f"[bold red]WARNING: This will delete resources[/bold red]\n\n"
            f"Appliance: {cfg.provider.host}\n"
            f"State: {cfg.project.state_path}\n",
            title="Destroy",
            border_style="red"
        ))
        if not click.confirm("Are you sure you want to delete these resources?", default=False):
            console.print("[yellow]Destroy cancelled[/yellow]")
            return

    try:
        with state_manager:
            report = synchronizer.destroy()
    except (SyncError, StateError) as e:
        fail(e)

    print_report(report)
    if report.has_failures():
        sys.exit(1)


@cli.command(name='import')
@click.argument('kind', type=click.Choice(KINDS))
@click.argument('name')
@click.argument('external_id')
@click.pass_context
def import_(ctx, kind, name, external_id):
    """Record an existing appliance entity as NAME."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    synchronizer, state_manager = create_synchronizer(cfg)

    try:
        with state_manager:
            recorded = synchronizer.import_resource(name, kind, external_id)
    except (SyncError, StateError) as e:
        fail(e)

    console.print(f"[green]Imported[/green] {kind} {recorded.identifier} as {name}")
    print_state(name, recorded)


@cli.command()
@click.argument('kind', type=click.Choice(KINDS))
@click.argument('external_id')
@click.pass_context
def show(ctx, kind, external_id):
    """Look up an appliance entity without recording it."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    registry = build_registry(create_client(cfg), cfg.retry)

    try:
        found = registry.get(kind).import_state(external_id)
    except SyncError as e:
        fail(e)

    print_state(external_id, found)


@cli.command()
@click.argument('vs_id')
@click.pass_context
def restart(ctx, vs_id):
    """Restart a virtual service by disabling and re-enabling it."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    restarter = VirtualServiceRestarter(create_client(cfg), RetryStrategy.from_config(cfg.retry))

    try:
        restarted = restarter.restart(vs_id)
    except SyncError as e:
        fail(e)

    if restarted:
        console.print(f"[green]Restarted virtual service {vs_id}[/green]")
    else:
        console.print(f"[yellow]Virtual service {vs_id} is disabled; restart skipped[/yellow]")


@cli.command()
@click.pass_context
def state(ctx):
    """Show recorded state."""
    cfg = load_config(ctx.obj['config_path'], ctx.obj['log_level'])
    state_manager = StateManager(cfg.project.state_path)

    if not state_manager.exists():
        console.print("[yellow]No recorded state found[/yellow]")
        return

    try:
        current = state_manager.load()
    except StateError as e:
        fail(e)

    table = Table(title=f"Recorded state for {current.host or cfg.provider.host}")
    table.add_column("Resource", style="cyan")
    table.add_column("Kind")
    table.add_column("Identifier")
    table.add_column("Updated")
    for name, recorded in current.items():
        table.add_row(name, recorded.kind, recorded.identifier,
                      recorded.updated_at.strftime('%Y-%m-%d %H:%M:%S'))
    console.print(table)
    console.print(f"\nTotal resources: {len(current.resources)}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
