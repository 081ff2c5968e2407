"""Result files and run summary."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
from rich.console import Console
from rich.table import Table

from trackerprobe.models import CheckError, OutputConfig
from trackerprobe.tracker.health import CheckOutcome, format_address, is_ipv4

logger = logging.getLogger(__name__)


@dataclass
class CheckSummary:
    """Verdict counts for one run."""

    ok: int = 0
    errors: dict[CheckError, int] = field(
        default_factory=lambda: dict.fromkeys(CheckError, 0)
    )

    @property
    def total(self) -> int:
        """Number of candidates checked."""
        return self.ok + sum(self.errors.values())


def summarize(outcomes: list[CheckOutcome]) -> CheckSummary:
    """Count outcomes per verdict."""
    summary = CheckSummary()
    for outcome in outcomes:
        if outcome.error is None:
            summary.ok += 1
        else:
            summary.errors[outcome.error] += 1
    return summary


def render_summary(
    summary: CheckSummary,
    elapsed: float,
    console: Console | None = None,
) -> None:
    """Print the verdict counts as a table."""
    console = console or Console()

    table = Table(title="Tracker Check Results")
    table.add_column("Verdict", style="cyan")
    table.add_column("Candidates", style="green", justify="right")

    table.add_row("OK", str(summary.ok))
    table.add_row("DNS failure", str(summary.errors[CheckError.DNS_RESOLUTION_FAILED]))
    table.add_row("Partial timeout", str(summary.errors[CheckError.PARTIAL_TIMEOUT]))
    table.add_row("Timeout", str(summary.errors[CheckError.TIMEOUT]))
    table.add_row(
        "Operational error", str(summary.errors[CheckError.OPERATIONAL_ERROR])
    )

    console.print(table)
    console.print(f"Checked {summary.total} candidates in {elapsed:.2f}s")


def _arrange(lines: list[str], shuffle: bool) -> list[str]:
    if shuffle:
        random.shuffle(lines)  # nosec B311 - output order only
    else:
        lines.sort()
    return lines


async def _write_lines(path: Path, lines: list[str]) -> None:
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write("\n".join(lines))
    logger.debug("Wrote %d entries to %s", len(lines), path)


async def write_results(
    outcomes: list[CheckOutcome],
    config: OutputConfig,
) -> dict[str, Path]:
    """Write working candidates and their distinct IPv4/IPv6 addresses.

    Returns:
        Mapping of result kind ("hosts", "ipv4", "ipv6") to the file written

    """
    profiles = [o.profile for o in outcomes if o.profile is not None]

    hosts = [str(p.candidate) for p in profiles]
    ipv4 = {format_address(a) for p in profiles for a in p.addresses if is_ipv4(a)}
    ipv6 = {
        format_address(a) for p in profiles for a in p.addresses if not is_ipv4(a)
    }

    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "hosts": output_dir / config.hosts_file,
        "ipv4": output_dir / config.ipv4_file,
        "ipv6": output_dir / config.ipv6_file,
    }

    await _write_lines(paths["hosts"], _arrange(hosts, config.shuffle))
    await _write_lines(paths["ipv4"], _arrange(list(ipv4), config.shuffle))
    await _write_lines(paths["ipv6"], _arrange(list(ipv6), config.shuffle))

    return paths
