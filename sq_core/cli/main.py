#!/usr/bin/env python3
# sq_core/cli/main.py

import asyncio
import functools
import logging

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..async_client import LedgerAsyncClient
from ..config.config_loader import RunConfig, resolve_run_config
from ..config.settings import configure_logging, load_settings
from ..consensus.consensus_errors import ConfigError, QuorumError
from ..consensus.fanout import FanOutExecutor
from ..consensus.orchestrator import RoundOrchestrator, format_block_time
from ..monitoring.metrics import get_metrics_manager, write_metrics

logger = logging.getLogger(__name__)

PROJECT_DESCRIPTION = """[bold bright_cyan]SLOTQUORUM:[/] [bright_green]Poll several ledger nodes and find the slot and block they agree on[/]
[bold bright_magenta]SLOT ROUND:[/] [bright_yellow]Current slot of every endpoint, ranked by agreement[/]
[bold bright_red]BLOCK ROUND:[/] [bright_cyan]Block at the chosen slot, ranked by blockhash and checked field by field[/]"""


def run_options(func):
    """Options shared by every command that talks to the endpoints."""

    @click.option(
        "--endpoint",
        "-e",
        "endpoints",
        multiple=True,
        help="Node RPC endpoint (repeatable). Overrides PRIVATE_ENDPOINTS.",
    )
    @click.option(
        "--slot",
        type=click.IntRange(min=0),
        default=None,
        help="Slot to inspect instead of the quorum slot (0 = use quorum).",
    )
    @click.option(
        "--config",
        "config_file",
        type=click.Path(dir_okay=False),
        default=None,
        help="YAML configuration file (overrides SLOTQUORUM_CONFIG_FILE).",
    )
    @click.option(
        "--log-level",
        type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
        default=None,
        help="Logging level (overrides LOG_LEVEL).",
    )
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)

    return wrapper


def prepare_run(endpoints, slot, config_file, log_level) -> RunConfig:
    """Resolve the run configuration and install logging.

    A ConfigError becomes a click usage error, so the process exits with 2
    before any round starts.
    """
    overrides = {"LOG_LEVEL": log_level} if log_level else {}
    try:
        settings = load_settings(**overrides)
        run_config = resolve_run_config(
            settings, endpoints=list(endpoints), slot=slot, config_file=config_file
        )
    except ConfigError as e:
        raise click.UsageError(str(e))

    configure_logging(run_config.log_level)
    return run_config


def run_async(run_config: RunConfig, job):
    """Open a client, build the orchestrator, await ``job(orchestrator)``."""

    async def runner():
        metrics = get_metrics_manager()
        executor = FanOutExecutor(
            query_timeout=run_config.rpc.query_timeout,
            max_concurrency=run_config.rpc.max_concurrency,
            metrics=metrics,
        )
        async with LedgerAsyncClient.from_config(run_config.rpc) as client:
            orchestrator = RoundOrchestrator(
                run_config.endpoints,
                client,
                slot_override=run_config.slot_override,
                executor=executor,
                metrics=metrics,
            )
            return await job(orchestrator)

    try:
        result = asyncio.run(runner())
    except QuorumError as e:
        logger.error(f"Pass aborted: {e}")
        raise click.ClickException(str(e))
    finally:
        write_metrics(run_config.metrics_file)
    return result


def classes_table(title: str, outcome, key_header: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, header_style="bold bright_cyan")
    table.add_column("Rank", justify="right")
    table.add_column(key_header, style="bright_yellow")
    table.add_column("N", justify="right")
    table.add_column("T", justify="right")
    table.add_column("N/T", justify="right")
    table.add_column("Endpoints")

    for rank, cls in enumerate(outcome.classes, start=1):
        table.add_row(
            str(rank),
            str(cls.key),
            str(cls.n),
            str(cls.total),
            f"{cls.fraction:.0%}",
            "\n".join(cls.endpoints),
        )
    return table


def failed_panel(outcome):
    if not outcome.failed:
        return None
    return Panel(
        "\n".join(f"[red]{endpoint}[/red]" for endpoint in outcome.failed),
        title=f"[bold red]{len(outcome.failed)}/{outcome.total} endpoint(s) failed[/]",
        border_style="red",
        expand=False,
    )


def print_round(console: Console, title: str, outcome, key_header: str):
    if outcome.classes:
        console.print(classes_table(title, outcome, key_header))
    else:
        console.print(f"[bold red]{title}: no endpoint answered[/]")
    panel = failed_panel(outcome)
    if panel is not None:
        console.print(panel)


def print_block_round(console: Console, outcome):
    print_round(
        console, f"Block variants for slot {outcome.slot}", outcome, "Blockhash"
    )
    if not outcome.classes:
        return

    table = Table(
        title=f"{outcome.variants} data version(s) for slot {outcome.slot}",
        box=box.ROUNDED,
        header_style="bold bright_cyan",
    )
    table.add_column("Endpoint")
    table.add_column("Blockhash", style="bright_yellow")
    table.add_column("Block time")
    table.add_column("Content match", justify="center")
    table.add_column("Differences", style="red")

    for cls in outcome.classes:
        for member, match in zip(cls.members, outcome.content_matches[cls.key]):
            table.add_row(
                match.endpoint,
                match.blockhash,
                format_block_time(member.value.block_time),
                "[green]yes[/green]" if match.matches else "[bold red]no[/bold red]",
                ", ".join(match.differences),
            )
    console.print(table)


@click.group(invoke_without_command=True)
@click.pass_context
def sqcore(ctx):
    """
    SlotQuorum CLI - slot and block agreement across ledger nodes.
    """
    if ctx.invoked_subcommand is None:
        console = Console()
        console.print(
            Panel(
                "[bold bright_magenta]SLOTQUORUM[/]\n\n"
                "[bright_green]AVAILABLE COMMANDS:[/]\n"
                "[bright_white]  • [bright_yellow]run[/]       Slot round, then block round at the chosen slot\n"
                "  • [bright_yellow]slot[/]      Slot round only\n"
                "  • [bright_yellow]block[/]     Block round at --slot\n"
                "  • [bright_yellow]height[/]    Block height survey\n"
                "  • [bright_yellow]version[/]   Show version information[/]\n\n"
                "[bright_cyan]Usage: [bright_white]sqcore [COMMAND] --help[/]",
                title="[bold bright_red]COMMANDS[/]",
                border_style="bright_magenta",
                box=box.DOUBLE_EDGE,
                padding=(1, 2),
            )
        )


@sqcore.command("run")
@run_options
def run_cmd(endpoints, slot, config_file, log_level):
    """
    Run the full pass: slot round, then block round.
    """
    run_config = prepare_run(endpoints, slot, config_file, log_level)
    console = Console()

    async def job(orchestrator):
        return await orchestrator.run()

    report = run_async(run_config, job)

    print_round(console, "Current slots", report.slot_round, "Slot")
    if report.chosen_slot is None:
        console.print("[bold red]No quorum: no endpoint reported a slot[/]")
        return

    console.print(
        f"Chosen slot: [bold bright_yellow]{report.chosen_slot}[/] "
        f"(source: [bright_cyan]{report.slot_source}[/])"
    )
    print_block_round(console, report.block_round)


@sqcore.command("slot")
@run_options
def slot_cmd(endpoints, slot, config_file, log_level):
    """
    Run the slot round only and show the ranked slots.
    """
    run_config = prepare_run(endpoints, slot, config_file, log_level)
    console = Console()

    async def job(orchestrator):
        return await orchestrator.slot_round()

    outcome = run_async(run_config, job)
    print_round(console, "Current slots", outcome, "Slot")


@sqcore.command("block")
@run_options
def block_cmd(endpoints, slot, config_file, log_level):
    """
    Run the block round at a given slot (--slot or SLOT_OVERRIDE).
    """
    run_config = prepare_run(endpoints, slot, config_file, log_level)
    if run_config.slot_override is None:
        raise click.UsageError("block needs a slot: pass --slot or set SLOT_OVERRIDE")
    console = Console()

    async def job(orchestrator):
        return await orchestrator.block_round(run_config.slot_override)

    outcome = run_async(run_config, job)
    print_block_round(console, outcome)


@sqcore.command("height")
@run_options
def height_cmd(endpoints, slot, config_file, log_level):
    """
    Survey the block height of every endpoint.
    """
    run_config = prepare_run(endpoints, slot, config_file, log_level)
    console = Console()

    async def job(orchestrator):
        return await orchestrator.height_round()

    outcome = run_async(run_config, job)
    print_round(console, "Block heights", outcome, "Height")


@sqcore.command()
def version():
    """Show version information"""
    console = Console()
    console.print(
        Panel.fit(
            "[bold bright_magenta]SLOTQUORUM CLI[/]\n"
            f"[bright_green]Version:[/] [bold bright_yellow]{__version__}[/]",
            title="[bold bright_red]SYSTEM INFO[/]",
            border_style="bright_magenta",
            padding=(1, 2),
        )
    )
    console.print(PROJECT_DESCRIPTION)


def main():
    """Main entry point"""
    sqcore(prog_name="sqcore")


if __name__ == "__main__":
    main()
