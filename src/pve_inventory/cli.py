"""
Command-line interface for pve-inventory.

Provides commands for configuring, testing, and running inventory
imports from a Proxmox VE cluster.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .api import PveClient
from .config import AppConfig, ImportConfig, PveConfig, load_config, save_config
from .importer import fetch_data, key_column, list_columns
from .models import ListingResult, ObjectType, Outcome, Realm, Scheme

app = typer.Typer(
    name="pve-inventory",
    help="Import Proxmox VE virtual machines, nodes and pools",
    add_completion=False,
)
console = Console()

CONFIG_DIR = Path.home() / ".config" / "pve-inventory"
CONFIG_FILE = CONFIG_DIR / "config.json"


def get_config() -> AppConfig:
    """
    Load configuration from file or environment.
    """
    try:
        return load_config(CONFIG_FILE if CONFIG_FILE.exists() else None)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        console.print("[dim]Run 'pve-inventory init' or set PVE_HOST / PVE_USERNAME[/dim]")
        raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.command()
def version() -> None:
    """
    Show version information.
    """
    console.print(f"pve-inventory version {__version__}")


@app.command()
def init(
    host: str = typer.Option(
        ...,
        "--host",
        "-H",
        prompt="PVE host address",
        help="PVE server address (FQDN or IP)",
    ),
    port: int = typer.Option(
        8006,
        "--port",
        "-p",
        prompt="PVE port",
        help="PVE API port",
    ),
    username: str = typer.Option(
        "root",
        "--username",
        "-u",
        prompt="PVE user",
        help="User name without realm",
    ),
    realm: Realm = typer.Option(
        Realm.PAM,
        "--realm",
        "-r",
        help="Authentication realm",
    ),
    scheme: Scheme = typer.Option(
        Scheme.HTTPS,
        "--scheme",
        help="HTTPS (strongly recommended) or HTTP (plaintext)",
    ),
    verify_peer: bool = typer.Option(
        True,
        "--verify-peer/--no-verify-peer",
        help="Check that the certificate is signed by a trusted CA",
    ),
    verify_host: bool = typer.Option(
        True,
        "--verify-host/--no-verify-host",
        help="Check that the certificate matches the host",
    ),
) -> None:
    """
    Initialize configuration interactively.
    """
    console.print("\n[bold blue]Initializing pve-inventory configuration[/bold blue]\n")

    config = AppConfig(
        pve=PveConfig(
            host=host,
            port=port,
            username=username,
            realm=realm,
            scheme=scheme,
            ssl_verify_peer=verify_peer,
            ssl_verify_host=verify_host,
        ),
        importer=ImportConfig(),
    )

    save_config(config, CONFIG_FILE)
    console.print(f"\n[green]Configuration saved to {CONFIG_FILE}[/green]")
    console.print("\n[dim]Tip: Set PVE_PASSWORD in .env for auth[/dim]")


@app.command()
def test() -> None:
    """
    Test logging in to PVE.
    """
    config = get_config()

    console.print("\n[bold]Testing connection...[/bold]\n")
    console.print(f"Connecting to: [cyan]{config.pve.base_url}[/cyan]")

    with PveClient(config.pve) as client:
        result = client.login()
        if result.ok:
            console.print(f"[green]  Logged in as {result.data.username or config.pve.username}[/green]")
            console.print(f"    Ticket valid until {result.data.expires_at:%Y-%m-%d %H:%M:%S %Z}")
        else:
            console.print(f"[red]  Login failed ({result.outcome.value}): {result.error}[/red]")
            raise typer.Exit(1)


def _apply_overrides(
    config: AppConfig,
    object_type: Optional[ObjectType],
    guest_agent: Optional[bool],
    ha: Optional[bool],
    description: Optional[bool],
) -> AppConfig:
    updates = {
        "object_type": object_type,
        "vm_guest_agent": guest_agent,
        "vm_ha": ha,
        "vm_description": description,
    }
    updates = {key: value for key, value in updates.items() if value is not None}
    if updates:
        config.importer = config.importer.model_copy(update=updates)
    return config


def _fetch(config: AppConfig) -> ListingResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(
            f"Fetching {config.importer.object_type.value} from {config.pve.host}...",
            total=1,
        )
        result = fetch_data(config)
        progress.update(task, completed=1)
    return result


def _render_table(result: ListingResult, config: AppConfig) -> None:
    columns = list_columns(result)
    key = key_column(config)

    table = Table(title=config.importer.object_type.value)
    for column in columns:
        table.add_column(column, style="cyan" if column == key else None)

    for record in result.records:
        row = []
        for column in columns:
            value = record.get(column)
            if value is None:
                row.append("-")
            elif isinstance(value, (list, dict)):
                row.append(json.dumps(value))
            else:
                row.append(str(value))
        table.add_row(*row)

    console.print(table)


@app.command()
def fetch(
    object_type: Optional[ObjectType] = typer.Option(
        None,
        "--type",
        "-t",
        help="Object type to fetch (defaults to the configured one)",
    ),
    guest_agent: Optional[bool] = typer.Option(
        None,
        "--guest-agent/--no-guest-agent",
        help="Fetch network data from the QEMU guest agent",
    ),
    ha: Optional[bool] = typer.Option(
        None,
        "--ha/--no-ha",
        help="Fetch the HA state of each VM",
    ),
    description: Optional[bool] = typer.Option(
        None,
        "--description/--no-description",
        help="Fetch the description of each VM",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Print records as JSON",
    ),
) -> None:
    """
    Fetch inventory records from PVE.
    """
    config = _apply_overrides(get_config(), object_type, guest_agent, ha, description)
    result = _fetch(config)

    if as_json:
        typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    elif result.records:
        _render_table(result, config)
    elif result.ok:
        console.print("[dim]No records found[/dim]")

    if result.errors and not as_json:
        console.print(f"\n[yellow]Errors ({len(result.errors)}):[/yellow]")
        for error in result.errors:
            console.print(f"  - {error}")

    if result.outcome not in (Outcome.OK, Outcome.PARTIAL):
        if not as_json:
            console.print(f"[red]Fetch failed: {result.outcome.value}[/red]")
        raise typer.Exit(1)


@app.command()
def columns() -> None:
    """
    Show the columns the configured import produces.
    """
    config = get_config()
    result = _fetch(config)

    if result.outcome not in (Outcome.OK, Outcome.PARTIAL):
        console.print(f"[red]Fetch failed ({result.outcome.value}): {'; '.join(result.errors)}[/red]")
        raise typer.Exit(1)

    key = key_column(config)
    for column in list_columns(result):
        marker = " [cyan](key)[/cyan]" if column == key else ""
        console.print(f"  - {column}{marker}")


if __name__ == "__main__":
    app()
