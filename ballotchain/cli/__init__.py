"""
BallotChain CLI - Package init.

Re-exports the main CLI group and shared utilities.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click
from rich.console import Console

from ballotchain import __version__, config
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.storage import create_gateway

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_async(coro):
    """Helper to run async coroutines from sync CLI."""
    return asyncio.run(coro)


@asynccontextmanager
async def open_ledger(db: str | None = None) -> AsyncIterator[ElectionLedger]:
    """Connect the configured gateway and yield a loaded ledger."""
    gateway = create_gateway(config.STORAGE_MODE, db or config.DB_PATH)
    await gateway.connect()
    try:
        ledger = ElectionLedger(gateway)
        await ledger.load()
        yield ledger
    finally:
        await gateway.close()


db_option = click.option("--db", default=None, help="Document store path (default: BALLOTCHAIN_DB)")


# ─── Main Group ──────────────────────────────────────────────────


@click.group()
@click.version_option(__version__, prog_name="ballotchain")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """BallotChain - Hash-chained election ledger."""
    setup_logging(verbose)


# ─── Register all sub-modules ───────────────────────────────────
from ballotchain.cli import ledger_cmds  # noqa: E402, F401
from ballotchain.cli import admin_cmds  # noqa: E402, F401

# ─── Registration ────────────────────────────────────────────────
from ballotchain.cli.admin_cmds import election  # noqa: E402

cli.add_command(election)


if __name__ == "__main__":
    cli()
