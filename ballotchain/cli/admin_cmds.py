"""CLI commands: register, voters, election open/close/status."""

from __future__ import annotations

import sys

import click
from rich.table import Table

from ballotchain.cli import _run_async, cli, console, db_option, open_ledger
from ballotchain.exceptions import InvalidInput


@cli.command()
@click.argument("voter_id")
@db_option
def register(voter_id, db) -> None:
    """Register an eligible voter."""

    async def _register_async():
        async with open_ledger(db) as ledger:
            try:
                registered = await ledger.register_voter(voter_id)
            except InvalidInput as e:
                console.print(f"[red]✗ {e}[/]")
                return 1
        if registered:
            console.print(f"[green]✓[/] Voter [bold]{voter_id}[/] registered.")
        else:
            console.print(f"[yellow]⚠ Voter [bold]{voter_id}[/] is already registered.[/]")
        return 0

    sys.exit(_run_async(_register_async()))


@cli.command()
@click.option("--voted", is_flag=True, help="List voters whose vote is sealed")
@db_option
def voters(voted, db) -> None:
    """List registered (or voted) voters."""

    async def _voters_async():
        async with open_ledger(db) as ledger:
            ids = ledger.get_voted_users() if voted else ledger.get_registered_voters()
            cast = set(ledger.get_voted_users())
        if not ids:
            console.print("[dim]No voters.[/]")
            return
        table = Table(title="Voted Users" if voted else "Registered Voters")
        table.add_column("Voter", style="cyan")
        table.add_column("Voted")
        for vid in ids:
            table.add_row(vid, "✓" if vid in cast else "")
        console.print(table)

    _run_async(_voters_async())


@click.group()
def election():
    """Open, close or inspect the election."""
    pass


def _set_status(is_open: bool, db: str | None) -> None:
    async def _set_async():
        async with open_ledger(db) as ledger:
            await ledger.set_election_status(is_open)
        label = "[green]Open[/]" if is_open else "[red]Closed[/]"
        console.print(f"Election status set to: {label}")

    _run_async(_set_async())


@election.command("open")
@db_option
def election_open(db):
    """Open the election for voting."""
    _set_status(True, db)


@election.command("close")
@db_option
def election_close(db):
    """Close the election."""
    _set_status(False, db)


@election.command("status")
@db_option
def election_status(db):
    """Show whether the election is open."""

    async def _status_async():
        async with open_ledger(db) as ledger:
            return ledger.get_election_status()

    is_open = _run_async(_status_async())
    console.print(f"Election is {'[green]Open[/]' if is_open else '[red]Closed[/]'}")
