"""CLI for trackerprobe.

Provides the ``check`` command, which probes every UDP candidate of a
candidate list and writes the working ones out, and the ``clean`` command,
which rewrites a candidate list deduplicated and sorted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from trackerprobe import __version__
from trackerprobe.candidates import TransportType, clean_candidates, load_candidates
from trackerprobe.config.config import ConfigManager, init_config
from trackerprobe.models import Config
from trackerprobe.output import render_summary, summarize, write_results
from trackerprobe.tracker.health import CheckOutcome, TrackerHealthChecker, format_address
from trackerprobe.utils.exceptions import CandidateFormatError, ConfigurationError
from trackerprobe.utils.logging_config import log_exception

logger = logging.getLogger(__name__)


def _get_config_manager(ctx: click.Context) -> ConfigManager:
    return ctx.obj["config_manager"]


def _apply_overrides(ctx: click.Context, overrides: dict[str, Any]) -> Config:
    try:
        return _get_config_manager(ctx).apply_overrides(overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _print_outcome(console: Console, outcome: CheckOutcome) -> None:
    if outcome.profile is not None:
        addresses = ", ".join(format_address(a) for a in outcome.profile.addresses)
        console.print(
            f"[green]Success[/green] {outcome.candidate} "
            f"rtt={outcome.profile.rtt_ms}ms [dim]{addresses}[/dim]"
        )
    else:
        console.print(f"[red]Failure[/red] {outcome.candidate} {outcome.error.value}")


async def _run_check(path: str, config: Config, console: Console) -> list[CheckOutcome]:
    candidates = await load_candidates(path)
    udp_candidates = [c for c in candidates if c.transport_type == TransportType.UDP]
    console.print(
        f"Loaded {len(candidates)} candidates, {len(udp_candidates)} UDP"
    )

    checker = TrackerHealthChecker(config.probe)
    start = time.monotonic()
    outcomes = await checker.check_all(
        udp_candidates,
        on_result=lambda outcome: _print_outcome(console, outcome),
    )
    elapsed = time.monotonic() - start

    render_summary(summarize(outcomes), elapsed, console)

    paths = await write_results(outcomes, config.output)
    for kind, written in paths.items():
        console.print(f"[dim]{kind}: {written}[/dim]")
    return outcomes


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a trackerprobe.toml config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="trackerprobe")
@click.pass_context
def cli(ctx, config_file: str | None, verbose: bool):
    """Health checks for BitTorrent UDP trackers."""
    try:
        config_manager = init_config(config_file)
        if verbose:
            config_manager.apply_overrides({"observability.log_level": "DEBUG"})
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    ctx.ensure_object(dict)
    ctx.obj["config_manager"] = config_manager


@cli.command("check")
@click.argument("candidates_file", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--concurrency",
    "-c",
    type=int,
    default=None,
    help="Maximum number of candidates checked in parallel",
)
@click.option(
    "--timeout",
    "-t",
    type=float,
    default=None,
    help="Seconds to wait for each tracker response",
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for the result files",
)
@click.option("--no-shuffle", is_flag=True, help="Write result files sorted")
@click.pass_context
def check(
    ctx,
    candidates_file: str | None,
    concurrency: int | None,
    timeout: float | None,
    output_dir: str | None,
    no_shuffle: bool,
):
    """Check every UDP tracker in CANDIDATES_FILE.

    Args:
        ctx: Click context
        candidates_file: Candidate list; the configured one when omitted
        concurrency: Override for probe.max_concurrent_checks
        timeout: Override for probe.timeout
        output_dir: Override for output.output_dir
        no_shuffle: Sort result files instead of shuffling them

    """
    console = Console()
    config = _apply_overrides(
        ctx,
        {
            "probe.max_concurrent_checks": concurrency,
            "probe.timeout": timeout,
            "output.output_dir": output_dir,
            "output.shuffle": False if no_shuffle else None,
        },
    )
    path = candidates_file or config.output.candidates_file

    try:
        asyncio.run(_run_check(path, config, console))
    except (OSError, CandidateFormatError) as e:
        log_exception(logger, e, "Tracker check failed")
        raise click.ClickException(f"{path}: {e}") from e


@cli.command("clean")
@click.argument("candidates_file", required=False, type=click.Path(dir_okay=False))
@click.pass_context
def clean(ctx, candidates_file: str | None):
    """Deduplicate and sort CANDIDATES_FILE in place.

    Args:
        ctx: Click context
        candidates_file: Candidate list; the configured one when omitted

    """
    console = Console()
    config = _get_config_manager(ctx).config
    path = Path(candidates_file or config.output.candidates_file)

    try:
        loaded, unique = asyncio.run(clean_candidates(path))
    except (OSError, CandidateFormatError) as e:
        raise click.ClickException(f"{path}: {e}") from e

    console.print(f"Loaded candidates: {loaded}")
    console.print(f"Unique candidates: {unique}")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
