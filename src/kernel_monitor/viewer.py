"""Fetch-and-display loop for the kernel-monitor client."""

import asyncio

import click

from kernel_monitor import logging as console
from kernel_monitor.client import SnapshotClient
from kernel_monitor.errors import FetchFailure

CLEAR_SCREEN = "\033[2J\033[H"

BANNER = "\n".join(
    [
        "╔════════════════════════════════════════════════════════╗",
        "║         Linux Kernel Monitor - Live View              ║",
        "╚════════════════════════════════════════════════════════╝",
    ]
)


def display(text: str, decorate: bool) -> None:
    """Print a snapshot, verbatim or with clear-screen and banner."""
    if not decorate:
        click.echo(text, nl=False)
        return

    click.echo(CLEAR_SCREEN, nl=False)
    click.echo(click.style(BANNER, fg="blue", bold=True))
    click.echo(f"\n{text}")


async def fetch_once(client: SnapshotClient, decorate: bool) -> bool:
    """Fetch one snapshot and print it.

    Failures are reported on stderr and never raised.

    Returns:
        True if a snapshot was printed
    """
    try:
        text = await client.fetch()
    except FetchFailure as e:
        console.fetch_failed(str(e))
        return False

    display(text, decorate)
    return True


async def watch_loop(client: SnapshotClient, interval: int, warmup: float = 2.0) -> None:
    """Fetch and display a snapshot every ``interval`` seconds, forever.

    A failed fetch only skips that frame; the loop keeps going until the
    process is interrupted.

    Raises:
        ValueError: If interval is not a positive integer.
    """
    if interval < 1:
        raise ValueError(f"interval must be a positive integer, got {interval}")

    console.watch_started(interval)
    await asyncio.sleep(warmup)

    while True:
        await fetch_once(client, decorate=True)
        await asyncio.sleep(interval)
