"""
CLI interface for Server Inventory.

Provides command-line access to the inventory registries.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from server_inventory.config.loader import InventoryConfig, default_config, load_inventory_config
from server_inventory.core.inventory import Inventory, get_inventory
from server_inventory.demo.seed_demo_data import seed_demo_inventory
from server_inventory.errors import InventoryError
from server_inventory.storage.models import ServerStatus

app = typer.Typer()
providers_app = typer.Typer(help="Manage hosting providers")
people_app = typer.Typer(help="Manage server owners")
servers_app = typer.Typer(help="Manage servers")
snapshots_app = typer.Typer(help="Manage monthly cost snapshots")
app.add_typer(providers_app, name="providers")
app.add_typer(people_app, name="people")
app.add_typer(servers_app, name="servers")
app.add_typer(snapshots_app, name="snapshots")

console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    )
):
    """Server Inventory CLI."""
    try:
        settings = load_inventory_config(config) if config else default_config()
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    logging.basicConfig(
        level=settings.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        console.print("Server Inventory - Use --help to see available commands")


def _inventory(ctx: typer.Context) -> Inventory:
    settings: InventoryConfig = ctx.obj or default_config()
    logger.debug("Using database %s", settings.database.path)
    return get_inventory(settings.database.path)


@contextmanager
def _reported_errors():
    """Turn inventory errors into a red message and a failing exit code."""
    try:
        yield
    except InventoryError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)


def _format_currency(amount: Optional[Decimal]) -> str:
    """Format currency with proper symbols and formatting."""
    if amount is None:
        return "-"
    return f"${amount:,.2f}"


def _format_month(month: date) -> str:
    return month.strftime("%Y-%m")


def _text(value: Any) -> str:
    return "-" if value is None else str(value)


@app.command()
def init(ctx: typer.Context):
    """Initialize the inventory database."""
    with _reported_errors():
        _inventory(ctx)
    console.print("[green]✓[/] Database initialized successfully")


@app.command()
def seed(ctx: typer.Context):
    """Insert a small demo fleet."""
    settings: InventoryConfig = ctx.obj or default_config()
    with _reported_errors():
        seed_demo_inventory(settings.database.path)
    console.print("[green]✓[/] Demo inventory data inserted")


@app.command()
def stats(ctx: typer.Context):
    """Show server counts and the estimated monthly cost."""
    with _reported_errors():
        result = _inventory(ctx).servers.stats()

    console.print("\n[bold]Inventory Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Total servers: {result.total_servers}")
    for status in ServerStatus:
        console.print(f"{status.value}: {result.count(status)}")
    console.print(f"Estimated monthly cost: {_format_currency(result.estimated_monthly_cost)}")


# Providers

@providers_app.command("list")
def list_providers(ctx: typer.Context):
    """List providers with their server counts."""
    with _reported_errors():
        providers = _inventory(ctx).providers.list()

    table = Table(title="Providers")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Console")
    table.add_column("Servers", justify="right")
    for provider in providers:
        table.add_row(str(provider.id), provider.name, _text(provider.console_url),
                      str(provider.server_count))
    console.print(table)


@providers_app.command("show")
def show_provider(ctx: typer.Context, provider_id: int):
    """Show a provider and its servers."""
    with _reported_errors():
        provider = _inventory(ctx).providers.get(provider_id)

    console.print(f"\n[bold]{provider.name}[/bold] (#{provider.id})")
    console.print(f"Console: {_text(provider.console_url)}")
    console.print(f"Notes: {_text(provider.notes)}")
    console.print(f"Servers: {', '.join(s.name for s in provider.servers) or '-'}")


@providers_app.command("add")
def add_provider(
    ctx: typer.Context,
    name: str,
    console_url: Optional[str] = typer.Option(None, "--console-url", help="Provider console URL"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-text notes"),
):
    """Create a provider."""
    with _reported_errors():
        provider = _inventory(ctx).providers.create(name, console_url=console_url, notes=notes)
    console.print(f"[green]✓[/] Created provider #{provider.id} {provider.name}")


@providers_app.command("remove")
def remove_provider(ctx: typer.Context, provider_id: int):
    """Delete a provider; its servers become unassigned."""
    with _reported_errors():
        _inventory(ctx).providers.delete(provider_id)
    console.print(f"[green]✓[/] Deleted provider #{provider_id}")


# People

@people_app.command("list")
def list_people(ctx: typer.Context):
    """List people with the number of servers they own."""
    with _reported_errors():
        people = _inventory(ctx).people.list()

    table = Table(title="People")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Telegram")
    table.add_column("Servers", justify="right")
    for person in people:
        table.add_row(str(person.id), person.name, _text(person.email),
                      _text(person.telegram), str(person.server_count))
    console.print(table)


@people_app.command("show")
def show_person(ctx: typer.Context, person_id: int):
    """Show a person and the servers they own."""
    with _reported_errors():
        person = _inventory(ctx).people.get(person_id)

    console.print(f"\n[bold]{person.name}[/bold] (#{person.id})")
    console.print(f"Email: {_text(person.email)}")
    console.print(f"Telegram: {_text(person.telegram)}")
    for server in person.servers_owned:
        provider = server.provider.name if server.provider else "unassigned"
        console.print(f"  {server.name} ({server.hostname}) @ {provider}")


@people_app.command("add")
def add_person(
    ctx: typer.Context,
    name: str,
    email: Optional[str] = typer.Option(None, "--email", help="Email address"),
    telegram: Optional[str] = typer.Option(None, "--telegram", help="Telegram handle"),
):
    """Create a person."""
    with _reported_errors():
        person = _inventory(ctx).people.create(name, email=email, telegram=telegram)
    console.print(f"[green]✓[/] Created person #{person.id} {person.name}")


@people_app.command("remove")
def remove_person(ctx: typer.Context, person_id: int):
    """Delete a person; their servers become unassigned."""
    with _reported_errors():
        _inventory(ctx).people.delete(person_id)
    console.print(f"[green]✓[/] Deleted person #{person_id}")


# Servers

def _server_options(**options: Any) -> dict:
    """Drop options the user did not pass."""
    return {key: value for key, value in options.items() if value is not None}


@servers_app.command("list")
def list_servers(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
):
    """List servers, newest first, with their latest monthly cost."""
    with _reported_errors():
        servers = _inventory(ctx).servers.list(status=status)

    table = Table(title="Servers")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Hostname")
    table.add_column("Status")
    table.add_column("Provider")
    table.add_column("Owner")
    table.add_column("Latest cost", justify="right")
    for server in servers:
        latest = server.cost_snapshots[0] if server.cost_snapshots else None
        table.add_row(
            str(server.id),
            server.name,
            server.hostname,
            server.status.value,
            server.provider.name if server.provider else "-",
            server.owner.name if server.owner else "-",
            f"{_format_month(latest.month)} {_format_currency(latest.cost_month)}" if latest else "-",
        )
    console.print(table)


@servers_app.command("show")
def show_server(ctx: typer.Context, server_id: int):
    """Show a server with its full cost history. Credentials are not printed."""
    with _reported_errors():
        server = _inventory(ctx).servers.get(server_id)

    console.print(f"\n[bold]{server.name}[/bold] (#{server.id})")
    console.print(f"Hostname: {server.hostname}")
    console.print(f"Public IP: {_text(server.ip_public)}  Private IP: {_text(server.ip_private)}")
    console.print(f"Status: {server.status.value}  Purpose: {server.purpose.value}  "
                  f"Billing: {server.billing_type.value}")
    console.print(f"Provider: {server.provider.name if server.provider else '-'}")
    console.print(f"Owner: {server.owner.name if server.owner else '-'}")
    console.print(f"Estimated monthly cost: {_format_currency(server.cost_month_estimated)}")
    console.print(f"Decommission at: {_text(server.decommission_at)}")

    table = Table(title="Cost history")
    table.add_column("Month")
    table.add_column("Cost", justify="right")
    table.add_column("Source")
    for snapshot in server.cost_snapshots:
        table.add_row(_format_month(snapshot.month), _format_currency(snapshot.cost_month),
                      _text(snapshot.source))
    console.print(table)


@servers_app.command("add")
def add_server(
    ctx: typer.Context,
    name: str,
    hostname: str,
    ip_public: Optional[str] = typer.Option(None, "--ip-public"),
    ip_private: Optional[str] = typer.Option(None, "--ip-private"),
    port: Optional[int] = typer.Option(None, "--port"),
    status: Optional[str] = typer.Option(None, "--status"),
    purpose: Optional[str] = typer.Option(None, "--purpose"),
    billing_type: Optional[str] = typer.Option(None, "--billing-type"),
    cost: Optional[str] = typer.Option(None, "--cost", help="Estimated monthly cost"),
    decommission_at: Optional[str] = typer.Option(None, "--decommission-at", help="YYYY-MM-DD"),
    provider_id: Optional[int] = typer.Option(None, "--provider-id"),
    owner_id: Optional[int] = typer.Option(None, "--owner-id"),
    location: Optional[str] = typer.Option(None, "--location"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Create a server."""
    fields = _server_options(
        ip_public=ip_public, ip_private=ip_private, port=port, status=status,
        purpose=purpose, billing_type=billing_type, cost_month_estimated=cost,
        decommission_at=decommission_at, provider_id=provider_id, owner_id=owner_id,
        location=location, description=description,
    )
    with _reported_errors():
        server = _inventory(ctx).servers.create(name=name, hostname=hostname, **fields)
    console.print(f"[green]✓[/] Created server #{server.id} {server.name}")


@servers_app.command("update")
def update_server(
    ctx: typer.Context,
    server_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    hostname: Optional[str] = typer.Option(None, "--hostname"),
    status: Optional[str] = typer.Option(None, "--status"),
    purpose: Optional[str] = typer.Option(None, "--purpose"),
    billing_type: Optional[str] = typer.Option(None, "--billing-type"),
    cost: Optional[str] = typer.Option(None, "--cost", help="Estimated monthly cost"),
    decommission_at: Optional[str] = typer.Option(None, "--decommission-at", help="YYYY-MM-DD"),
    provider_id: Optional[int] = typer.Option(None, "--provider-id"),
    owner_id: Optional[int] = typer.Option(None, "--owner-id"),
):
    """Change the given fields of a server."""
    fields = _server_options(
        name=name, hostname=hostname, status=status, purpose=purpose,
        billing_type=billing_type, cost_month_estimated=cost,
        decommission_at=decommission_at, provider_id=provider_id, owner_id=owner_id,
    )
    with _reported_errors():
        server = _inventory(ctx).servers.update(server_id, **fields)
    console.print(f"[green]✓[/] Updated server #{server.id} {server.name}")


@servers_app.command("remove")
def remove_server(ctx: typer.Context, server_id: int):
    """Delete a server and its cost snapshots."""
    with _reported_errors():
        _inventory(ctx).servers.delete(server_id)
    console.print(f"[green]✓[/] Deleted server #{server_id}")


# Cost snapshots

@snapshots_app.command("list")
def list_snapshots(
    ctx: typer.Context,
    server_id: Optional[int] = typer.Option(None, "--server-id", help="Only this server"),
):
    """List cost snapshots, newest month first."""
    with _reported_errors():
        ledger = _inventory(ctx).cost_snapshots
        snapshots = ledger.list_by_server(server_id) if server_id is not None else ledger.list()

    table = Table(title="Cost snapshots")
    table.add_column("ID", justify="right")
    table.add_column("Month")
    table.add_column("Server")
    table.add_column("Cost", justify="right")
    table.add_column("Source")
    for snapshot in snapshots:
        table.add_row(
            str(snapshot.id),
            _format_month(snapshot.month),
            snapshot.server.name if snapshot.server else str(snapshot.server_id),
            _format_currency(snapshot.cost_month),
            _text(snapshot.source),
        )
    console.print(table)


@snapshots_app.command("add")
def add_snapshot(
    ctx: typer.Context,
    server_id: int,
    month: str = typer.Argument(..., help="YYYY-MM"),
    cost: str = typer.Argument(..., help="Cost for the month"),
    source: Optional[str] = typer.Option(None, "--source", help="Where the figure came from"),
):
    """Record the cost of a server for a month."""
    with _reported_errors():
        snapshot = _inventory(ctx).cost_snapshots.create(server_id, month, cost, source=source)
    console.print(
        f"[green]✓[/] Recorded {_format_currency(snapshot.cost_month)} for "
        f"{snapshot.server.name} in {_format_month(snapshot.month)}"
    )


@snapshots_app.command("remove")
def remove_snapshot(ctx: typer.Context, snapshot_id: int):
    """Delete a cost snapshot."""
    with _reported_errors():
        _inventory(ctx).cost_snapshots.delete(snapshot_id)
    console.print(f"[green]✓[/] Deleted cost snapshot #{snapshot_id}")


if __name__ == "__main__":
    app()
