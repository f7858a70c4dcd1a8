"""CLI commands: vote, mine, pending, chain, results, verify, status, serve."""

from __future__ import annotations

import sys

import click
from rich.panel import Panel
from rich.table import Table

from ballotchain import config
from ballotchain.cli import _run_async, cli, console, db_option, open_ledger
from ballotchain.exceptions import AdmissionError, PersistenceUnavailable


@cli.command()
@click.argument("voter_id")
@click.argument("candidate_id")
@click.option("--seal/--no-seal", default=True, help="Mine the vote into a block right away")
@click.option("--miner", default=None, help="Reward address (default: BALLOTCHAIN_MINER_ADDRESS)")
@db_option
def vote(voter_id, candidate_id, seal, miner, db) -> None:
    """Cast a vote for a candidate."""

    async def _vote_async():
        async with open_ledger(db) as ledger:
            try:
                if not seal:
                    await ledger.submit_vote(voter_id, candidate_id)
                    console.print(
                        f"[yellow]⏳ Vote by [bold]{voter_id}[/] admitted, pending until the next block.[/]"
                    )
                    return 0
                with console.status("[bold yellow]Mining block...[/]"):
                    _, block = await ledger.submit_and_seal(voter_id, candidate_id, miner or config.MINER_ADDRESS)
            except AdmissionError as e:
                console.print(f"[red]✗ Vote rejected ({e.kind}):[/] {e}")
                return 1
            except PersistenceUnavailable as e:
                console.print(f"[red]✗ Vote not recorded:[/] {e}")
                return 1
            console.print(
                f"[green]✓[/] Voter [bold]{voter_id}[/] voted for [bold]{candidate_id}[/] "
                f"in block [bold]#{block.index}[/].\n"
                f"   [dim]Hash: {block.hash[:16]}...[/]"
            )
            return 0

    sys.exit(_run_async(_vote_async()))


@cli.command()
@click.option("--miner", default=None, help="Reward address for the sealed block")
@db_option
def mine(miner, db) -> None:
    """Seal all pending transactions into a new block."""

    async def _mine_async():
        async with open_ledger(db) as ledger:
            try:
                with console.status("[bold yellow]Mining block...[/]"):
                    block = await ledger.seal_pending(miner)
            except PersistenceUnavailable as e:
                console.print(f"[red]✗ Mining failed:[/] {e}")
                return 1
            if block is None:
                console.print("[yellow]⚠ No pending transactions to mine.[/]")
            else:
                console.print(
                    f"[green]✅ Block #{block.index} mined[/] "
                    f"(nonce {block.nonce}, {len(block.transactions)} transactions)\n"
                    f"   [dim]Hash: {block.hash}[/]"
                )
            return 0

    sys.exit(_run_async(_mine_async()))


@cli.command()
@db_option
def pending(db) -> None:
    """List transactions waiting for the next block."""

    async def _pending_async():
        async with open_ledger(db) as ledger:
            txs = ledger.get_pending_transactions()
        if not txs:
            console.print("[dim]No pending transactions.[/]")
            return
        table = Table(title="Pending Transactions")
        table.add_column("Type", style="cyan")
        table.add_column("From / Voter")
        table.add_column("To / Candidate")
        table.add_column("Timestamp", style="dim")
        for tx in txs:
            if tx["type"] == "vote":
                table.add_row(tx["type"], tx["voterId"], tx["candidateId"], str(tx["timestamp"]))
            else:
                table.add_row(tx["type"], "-", f"{tx['toAddress']} (+{tx['amount']})", str(tx["timestamp"]))
        console.print(table)

    _run_async(_pending_async())


@cli.command("chain")
@click.option("--limit", "-n", default=20, help="Show the last N blocks")
@db_option
def show_chain(limit, db) -> None:
    """Show the most recent blocks."""

    async def _chain_async():
        async with open_ledger(db) as ledger:
            blocks = ledger.get_chain()
        table = Table(title=f"Chain ({len(blocks)} blocks)")
        table.add_column("#", justify="right", style="bold")
        table.add_column("Hash", style="cyan")
        table.add_column("Previous", style="dim")
        table.add_column("Nonce", justify="right")
        table.add_column("Txs", justify="right")
        for block in blocks[-limit:]:
            table.add_row(
                str(block["index"]),
                block["hash"][:16],
                block["previousHash"][:16],
                str(block["nonce"]),
                str(len(block["transactions"])),
            )
        console.print(table)

    _run_async(_chain_async())


@cli.command()
@db_option
def results(db) -> None:
    """Show the current tally."""

    async def _results_async():
        async with open_ledger(db) as ledger:
            tally = ledger.get_results()
        table = Table(title="🗳  Election Results")
        table.add_column("Candidate", style="cyan")
        table.add_column("Name")
        table.add_column("Votes", justify="right", style="bold")
        for cid, entry in tally.items():
            table.add_row(cid, entry["name"], str(entry["votes"]))
        console.print(table)

    _run_async(_results_async())


@cli.command()
@click.option("--strict", is_flag=True, help="Also require proof-of-work at the current difficulty")
@db_option
def verify(strict, db) -> None:
    """Verify hash integrity and linkage of the whole chain."""

    async def _verify_async():
        async with open_ledger(db) as ledger:
            with console.status("[bold blue]Verifying chain...[/]"):
                report = ledger.verify_chain(check_difficulty=strict)
            consistent = ledger.voted_users_consistent()

        if report["valid"]:
            console.print(f"[green]✅ Chain integrity: OK[/] ({report['blocks_checked']} blocks)")
        else:
            console.print(
                f"[red]❌ Chain integrity: FAILED[/] at block #{report['first_invalid_index']} "
                f"({report['reason']})"
            )
        if not consistent:
            console.print("[yellow]⚠ Voted users differ from a chain replay.[/]")
        return 0 if report["valid"] else 1

    sys.exit(_run_async(_verify_async()))


@cli.command()
@db_option
def status(db) -> None:
    """Show ledger and election status."""

    async def _status_async():
        async with open_ledger(db) as ledger:
            latest = ledger.latest_block
            console.print(
                Panel(
                    f"[bold cyan]Height:[/] {ledger.chain_height} blocks\n"
                    f"[bold cyan]Latest hash:[/] {latest.hash[:24]}...\n"
                    f"[bold cyan]Pending:[/] {len(ledger.get_pending_transactions())} transactions\n"
                    f"[bold cyan]Election:[/] {'Open' if ledger.get_election_status() else 'Closed'}\n"
                    f"[bold cyan]Registered voters:[/] {len(ledger.get_registered_voters())}\n"
                    f"[bold cyan]Votes cast:[/] {len(ledger.get_voted_users())}\n"
                    f"[bold cyan]Difficulty:[/] {ledger.difficulty}",
                    title="📊 BallotChain Status",
                    border_style="cyan",
                )
            )

    _run_async(_status_async())


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host, port) -> None:
    """Run the REST API."""
    import uvicorn

    uvicorn.run("ballotchain.api:app", host=host, port=port)
