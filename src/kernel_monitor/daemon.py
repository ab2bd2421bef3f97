"""Background daemon owning the snapshot endpoint."""

import asyncio
import os
import resource
import signal
from importlib.metadata import version

import psutil
import structlog

from kernel_monitor import logging as console
from kernel_monitor.config import Config
from kernel_monitor.endpoint import SnapshotEndpoint
from kernel_monitor.errors import RegistrationFailure
from kernel_monitor.host import PsutilPlatform
from kernel_monitor.provider import SnapshotProvider

log = structlog.get_logger()


class Daemon:
    """Single owner of the snapshot endpoint.

    start() registers the endpoint and blocks until a shutdown signal;
    stop() tears everything down and is safe to call repeatedly, including
    after a failed start().
    """

    def __init__(self, config: Config):
        self.config = config
        platform = PsutilPlatform(page_size=config.monitor.page_size or None)
        self.provider = SnapshotProvider(platform, cpu=config.monitor.reference_cpu)
        self.endpoint: SnapshotEndpoint | None = None
        self._shutdown_event = asyncio.Event()
        self._owns_pid_file = False

    async def start(self) -> None:
        """Start the daemon and run until shutdown is requested."""
        pkg_version = version("kernel-monitor")
        log.info("daemon_starting", version=pkg_version)
        console.version_info("kernel-monitor", pkg_version)

        page_size = self.provider.platform.page_size
        log.info("daemon_config", reference_cpu=self.provider.cpu, page_size=page_size)
        console.config_summary(self.provider.cpu, page_size)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        if self._check_already_running():
            log.error("daemon_already_running")
            raise RuntimeError("Daemon is already running")

        self._write_pid_file()

        self.endpoint = SnapshotEndpoint(self.config.socket_path, self.provider)
        try:
            await self.endpoint.start()
        except RegistrationFailure as e:
            log.error("endpoint_registration_failed", error=str(e))
            console.endpoint_failed(str(e))
            raise

        console.endpoint_listening(str(self.config.socket_path))
        log.info("daemon_started")
        console.daemon_started()

        await self._wait_for_shutdown()

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        log.info("daemon_stopping")
        console.daemon_stopping()

        if self.endpoint:
            await self.endpoint.stop()
            self.endpoint = None
            console.endpoint_removed()

        self._remove_pid_file()

        log.info("daemon_stopped")
        console.daemon_stopped()

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        console.signal_received(sig.name)
        self._shutdown_event.set()

    async def _wait_for_shutdown(self) -> None:
        """Block until shutdown, logging a heartbeat at the configured interval."""
        interval = self.config.daemon.heartbeat_seconds
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                served = self.endpoint.served if self.endpoint else 0
                rss_mb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024
                log.info("daemon_heartbeat", served=served, rss_mb=round(rss_mb, 1))
                console.heartbeat(served, rss_mb)

    def _write_pid_file(self) -> None:
        """Write PID file."""
        self.config.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_path.write_text(str(os.getpid()))
        self._owns_pid_file = True
        log.debug("pid_file_written", path=str(self.config.pid_path))

    def _remove_pid_file(self) -> None:
        """Remove PID file, but only one this daemon wrote."""
        if self._owns_pid_file and self.config.pid_path.exists():
            self.config.pid_path.unlink()
            log.debug("pid_file_removed")
        self._owns_pid_file = False

    def _check_already_running(self) -> bool:
        """Check if daemon is already running.

        Verifies not just that a process with the PID exists, but that it's
        actually the kernel-monitor daemon. This prevents false positives after
        a reboot when a different process may have the same PID.
        """
        pid_path = self.config.pid_path
        if not pid_path.exists():
            return False

        try:
            pid = int(pid_path.read_text().strip())
        except ValueError:
            log.warning("pid_file_invalid", reason="not a number")
            pid_path.unlink()
            return False

        if pid == os.getpid():
            return False

        try:
            proc = psutil.Process(pid)
            cmdline_str = " ".join(proc.cmdline()).lower()
            if "kernel-monitor" in cmdline_str or "kernel_monitor" in cmdline_str:
                log.info("daemon_already_running_verified", pid=pid)
                console.already_running(pid)
                return True

            # Process exists but it's not the daemon - stale PID file
            log.warning("pid_file_stale", reason="different process", pid=pid)
            pid_path.unlink()
            return False
        except psutil.NoSuchProcess:
            log.warning("pid_file_stale", reason="process not found", pid=pid)
            pid_path.unlink()
            return False
        except psutil.AccessDenied:
            # Can't inspect process - assume it's running to be safe
            log.warning("pid_check_access_denied", pid=pid)
            console.already_running(pid)
            return True


async def run_daemon(config: Config | None = None) -> None:
    """Run the daemon until shutdown.

    Args:
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    console.configure(config)

    daemon = Daemon(config)

    try:
        await daemon.start()
    except Exception as e:
        log.exception("daemon_crashed", error=str(e))
        raise
    finally:
        await daemon.stop()
