"""Snapshot provider: gathers host metrics and renders them as text."""

from importlib.metadata import version as package_version

import structlog

from kernel_monitor.host import PsutilPlatform
from kernel_monitor.models import ProcessEntry, SystemSnapshot

log = structlog.get_logger()

RULE = "=" * 43
TABLE_RULE = "-" * 43


def render_snapshot(snapshot: SystemSnapshot, version: str, cpu: int = 0) -> str:
    """Render a snapshot in the fixed text layout read by clients."""
    cpu_times = snapshot.cpu
    mem = snapshot.memory

    lines = [
        RULE,
        f"     Linux Kernel Monitor v{version}",
        RULE,
        "",
        f"CPU Statistics (CPU {cpu}):",
        f"  User Time:   {cpu_times.user_ns} ns",
        f"  System Time: {cpu_times.system_ns} ns",
        f"  Idle Time:   {cpu_times.idle_ns} ns",
        "",
        "Memory Statistics:",
        f"  Total RAM:   {mem.total_pages} pages ({mem.total_mb} MB)",
        f"  Free RAM:    {mem.free_pages} pages ({mem.free_mb} MB)",
        f"  Shared RAM:  {mem.shared_pages} pages",
        f"  Buffer RAM:  {mem.buffer_pages} pages",
        "",
        "Process Information:",
        f"{'Name':<20} {'PID':<8} {'Memory (KB)':<12}",
        TABLE_RULE,
    ]
    lines.extend(f"{p.name:<20} {p.pid:<8} {p.resident_kb:<12}" for p in snapshot.processes)
    lines.append("")
    lines.append(f"Total Processes: {snapshot.total_processes}")
    return "\n".join(lines) + "\n"


class SnapshotProvider:
    """
    Builds a fresh SystemSnapshot on every call.

    Holds no state between calls: nothing is cached and nothing observed is
    modified. All host access goes through the platform object, which makes
    the provider testable with a fake platform.
    """

    def __init__(
        self,
        platform: PsutilPlatform | None = None,
        *,
        cpu: int = 0,
        version: str | None = None,
    ) -> None:
        self.platform = platform or PsutilPlatform()
        self.cpu = cpu
        self.version = version or package_version("kernel-monitor")

    def probe(self) -> None:
        """Read CPU and memory counters once.

        Raises:
            PlatformUnavailable: If a host facility cannot be read.
        """
        self.platform.cpu_times(self.cpu)
        self.platform.memory_stats()

    def collect(self) -> SystemSnapshot:
        """Gather CPU, memory and process metrics into a snapshot."""
        cpu_times = self.platform.cpu_times(self.cpu)
        memory = self.platform.memory_stats()
        page_kb = memory.page_kb

        processes: list[ProcessEntry] = []
        for proc in self.platform.processes():
            with self.platform.memory_context(proc) as mm:
                # No mapping: kernel thread, or the process exited mid-walk
                if mm is None:
                    continue
                processes.append(
                    ProcessEntry(
                        name=mm.name,
                        pid=mm.pid,
                        resident_kb=mm.total_vm_pages * page_kb,
                    )
                )

        return SystemSnapshot(cpu=cpu_times, memory=memory, processes=tuple(processes))

    def generate(self) -> str:
        """Collect and render one snapshot."""
        snapshot = self.collect()
        log.debug("snapshot_generated", processes=snapshot.total_processes)
        return render_snapshot(snapshot, self.version, self.cpu)
