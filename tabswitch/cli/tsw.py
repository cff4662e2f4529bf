#!/usr/bin/env python3
"""
Command line front-end for tabswitch.

Usage:
    tsw list                    - Show open tabs, most recently used first
    tsw search "query"          - Filter and rank tabs
    tsw switch "query"          - Focus the best match
    tsw close TAB_ID            - Close a tab
    tsw activated TAB_ID        - Report a tab activation to the daemon
    tsw daemon start            - Start the daemon
    tsw daemon status           - Check daemon status
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import aiohttp
import click
import httpx
from loguru import logger
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..daemon.config import Config
from ..errors import ChannelClosedError, ConfigError, RemoteError
from ..popup.query import RankedResult, hostname
from ..popup.session import connect_session

console = Console()

DAEMON_ERRORS = (aiohttp.ClientConnectionError, FileNotFoundError, ConnectionRefusedError)


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """tabswitch - jump between open tabs."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _load_config(ctx) -> Config:
    config_path = ctx.obj.get("config_path")
    try:
        return Config.load(Path(config_path) if config_path else None)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


@cli.command(name="list")
@click.pass_context
def list_tabs(ctx):
    """Show open tabs, most recently used first."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(run_query(config, "")))


@cli.command()
@click.argument("query")
@click.option("--limit", "-l", default=20, help="Max results")
@click.pass_context
def search(ctx, query: str, limit: int):
    """Filter and rank tabs, e.g. 'docs', 'pinned:true', 'domain:github'."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(run_query(config, query, limit)))


async def run_query(config: Config, query: str, limit: int = 0) -> int:
    """Open a session, evaluate the query and print the results."""
    try:
        async with connect_session(config.server.socket_path, config.search.min_score) as session:
            await session.open()
            results = session.set_query(query)
    except DAEMON_ERRORS:
        _not_running()
        return 1
    except ChannelClosedError:
        _hung_up()
        return 1
    except RemoteError as e:
        console.print(f"[red]Daemon error:[/red] {e}")
        return 1

    display_results(results[:limit] if limit else results, query)
    return 0


def highlighted(text: str, ranges) -> Text:
    """Rich text with the matched ranges in bold."""
    rendered = Text(text)
    for start, end in ranges:
        rendered.stylize("bold yellow", start, end)
    return rendered


def display_results(results: List[RankedResult], query: str) -> None:
    """Display ranked tabs in a table."""
    if not results:
        console.print("[yellow]No Results Found[/yellow]")
        return

    table = Table(title=f"Tabs matching {query!r}" if query else "Open tabs")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", justify="right")
    table.add_column("Title", style="cyan", no_wrap=False)
    table.add_column("Location", style="magenta")
    if query:
        table.add_column("Score", justify="right")

    for result in results:
        tab = result.tab
        row = [
            str(result.rank),
            str(tab.id),
            highlighted(tab.title, result.ranges_for("title")),
            highlighted(hostname(tab.url), result.ranges_for("hostname")),
        ]
        if query:
            row.append(f"{result.score:.2f}" if result.match_spans else "-")
        table.add_row(*row)

    console.print(table)


@cli.command()
@click.argument("query")
@click.option("--pick", "-n", default=0, help="Take the n-th result instead of the best one")
@click.pass_context
def switch(ctx, query: str, pick: int):
    """Focus the best tab for QUERY."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(run_switch(config, query, pick)))


async def run_switch(config: Config, query: str, pick: int) -> int:
    try:
        async with connect_session(config.server.socket_path, config.search.min_score) as session:
            await session.open()
            session.set_query(query)
            for _ in range(pick):
                session.select_next()
            tab = await session.activate_selected()
    except DAEMON_ERRORS:
        _not_running()
        return 1
    except ChannelClosedError:
        _hung_up()
        return 1
    except RemoteError as e:
        console.print(f"[red]Switch failed:[/red] {e}")
        return 1

    if tab is None:
        console.print("[yellow]No Results Found[/yellow]")
        return 1
    console.print(f"[green]✓[/green] Switched to {tab.title or tab.url} [dim]({tab.id})[/dim]")
    return 0


@cli.command()
@click.argument("tab_id", type=int)
@click.pass_context
def close(ctx, tab_id: int):
    """Close a tab and show what is left."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(run_close(config, tab_id)))


async def run_close(config: Config, tab_id: int) -> int:
    try:
        async with connect_session(config.server.socket_path, config.search.min_score) as session:
            results = await session.close_tab(tab_id)
    except DAEMON_ERRORS:
        _not_running()
        return 1
    except ChannelClosedError:
        _hung_up()
        return 1
    except RemoteError as e:
        console.print(f"[red]Close failed:[/red] {e}")
        return 1

    display_results(results, "")
    return 0


def _daemon_client(config: Config) -> httpx.AsyncClient:
    transport = httpx.AsyncHTTPTransport(uds=str(config.server.socket_path))
    return httpx.AsyncClient(transport=transport, base_url="http://localhost", timeout=2.0)


@cli.command()
@click.argument("tab_id", type=int)
@click.pass_context
def activated(ctx, tab_id: int):
    """Report that TAB_ID became the active tab."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(report_activation(config, tab_id)))


async def report_activation(config: Config, tab_id: int) -> int:
    try:
        async with _daemon_client(config) as client:
            response = await client.post("/activated", json={"tabId": tab_id})
    except httpx.ConnectError:
        _not_running()
        return 1

    if response.status_code != 202:
        console.print(f"[red]Failed to record activation:[/red] {response.text}")
        return 1
    return 0


@cli.group()
def daemon():
    """Manage the tabswitch daemon."""
    pass


@daemon.command()
@click.pass_context
def start(ctx):
    """Start the tabswitch daemon in the foreground."""
    from ..daemon.main import main as daemon_main

    console.print("[cyan]Starting tabswitch daemon...[/cyan]")
    sys.exit(asyncio.run(daemon_main(ctx.obj.get("config_path"))))


@daemon.command()
@click.pass_context
def status(ctx):
    """Check daemon status."""
    config = _load_config(ctx)
    sys.exit(asyncio.run(check_status(config)))


async def check_status(config: Config) -> int:
    """Check if daemon is running and get stats."""
    try:
        async with _daemon_client(config) as client:
            response = await client.get("/status")
    except httpx.ConnectError:
        _not_running()
        return 1

    if response.status_code != 200:
        console.print("[red]Daemon error[/red]")
        return 1

    data = response.json()
    stats = data.get("stats", {})
    errors = data.get("errors", {})
    console.print("[green]✓ Daemon is running[/green]")
    console.print(f"\nVersion: {data.get('version', 'unknown')}")
    console.print(f"Uptime: {data.get('uptime', 'unknown')}")
    console.print(f"Recency entries: {stats.get('recency_entries', 0)}")
    console.print(f"Active sessions: {stats.get('active_sessions', 0)}")
    console.print(f"Memory: {stats.get('memory_mb', 0):.1f} MB")
    console.print(f"Errors (last hour): {errors.get('recent_errors', 0)}")
    return 0


def _not_running() -> None:
    console.print("[red]✗ Cannot connect to daemon. Is it running?[/red]")
    console.print("Start with: [cyan]tsw daemon start[/cyan]")


def _hung_up() -> None:
    console.print("[red]✗ Daemon closed the connection before answering[/red]")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
