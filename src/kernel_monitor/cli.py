"""CLI commands for kernel-monitor."""

import click

COPYRIGHT = "Copyright (C) 2025 Mahmoud Ezzat"

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def _exit_with_usage(command, e, info_name, parent, extra):
    """Make a usage error print the usage line and exit with status 1."""
    # Parser errors carry no context, so show() would skip the usage line
    if e.ctx is None:
        settings = {**command.context_settings, **extra}
        e.ctx = command.context_class(command, info_name=info_name, parent=parent, **settings)
    e.exit_code = 1


class MonitorCommand(click.Command):
    """Command whose usage errors exit with status 1."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            _exit_with_usage(self, e, info_name, parent, extra)
            raise


class MonitorGroup(click.Group):
    """Group whose usage errors, including unknown commands, exit with status 1."""

    command_class = MonitorCommand
    group_class = type

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            _exit_with_usage(self, e, info_name, parent, extra)
            raise

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


@click.group(cls=MonitorGroup, invoke_without_command=True, context_settings=CONTEXT_SETTINGS)
@click.version_option(
    None,
    "-v",
    "--version",
    package_name="kernel-monitor",
    message=f"Kernel Monitor Application v%(version)s\n{COPYRIGHT}",
)
@click.option("--raw", "-r", is_flag=True, help="Display raw output without formatting")
@click.option(
    "--watch",
    "-w",
    "interval",
    type=click.IntRange(min=1),
    metavar="SEC",
    help="Continuously display data every SEC seconds",
)
@click.pass_context
def main(ctx: click.Context, raw: bool, interval: int | None) -> None:
    """Read and display kernel monitoring data.

    \b
    Examples:
      kernel-monitor          Display current system statistics
      kernel-monitor -w 2     Update display every 2 seconds
    """
    if ctx.invoked_subcommand is not None:
        return

    import asyncio

    from kernel_monitor.client import SnapshotClient
    from kernel_monitor.config import Config
    from kernel_monitor.viewer import fetch_once, watch_loop

    config = Config.load()
    client = SnapshotClient(config.socket_path, timeout=config.client.read_timeout)

    if interval is not None:
        try:
            asyncio.run(watch_loop(client, interval, warmup=config.client.warmup_seconds))
        except KeyboardInterrupt:
            # Ctrl+C is the normal way out of watch mode
            raise SystemExit(130) from None
    else:
        # A failed fetch has already been reported on stderr
        asyncio.run(fetch_once(client, decorate=not raw))


@main.command()
def daemon() -> None:
    """Run the snapshot daemon."""
    import asyncio

    from kernel_monitor.daemon import run_daemon
    from kernel_monitor.errors import RegistrationFailure

    try:
        asyncio.run(run_daemon())
    except (RegistrationFailure, RuntimeError):
        raise SystemExit(1)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from kernel_monitor.config import Config

    cfg = Config.load()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo(f"Socket: {cfg.socket_path}")
    click.echo()
    click.echo("[monitor]")
    click.echo(f"  reference_cpu = {cfg.monitor.reference_cpu}")
    click.echo(f"  page_size = {cfg.monitor.page_size}")
    click.echo()
    click.echo("[daemon]")
    click.echo(f"  heartbeat_seconds = {cfg.daemon.heartbeat_seconds}")
    click.echo(f"  log_max_bytes = {cfg.daemon.log_max_bytes}")
    click.echo(f"  log_backup_count = {cfg.daemon.log_backup_count}")
    click.echo()
    click.echo("[client]")
    click.echo(f"  warmup_seconds = {cfg.client.warmup_seconds}")
    click.echo(f"  read_timeout = {cfg.client.read_timeout}")


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from kernel_monitor.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")


if __name__ == "__main__":
    main()
