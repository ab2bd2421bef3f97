"""Host accounting facilities behind a small, explicit interface.

Everything the snapshot provider needs from the operating system goes through
``PsutilPlatform``: per-CPU time counters, aggregate memory counters, process
enumeration, and scoped access to a single process's memory information.

Process enumeration is best-effort. ``psutil.process_iter()`` walks the live
process table, so processes may start or exit while it runs; an exited process
simply stops resolving and is skipped. Callers must not assume the resulting
list reflects one atomic instant.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import psutil

from kernel_monitor.errors import PlatformUnavailable
from kernel_monitor.models import TASK_COMM_LEN, CpuTimes, MemoryStats

NS_PER_SEC = 1_000_000_000


def query_page_size() -> int:
    """Return the host page size in bytes."""
    return os.sysconf("SC_PAGE_SIZE")


def printable_name(name: str) -> str:
    """Replace undecodable bytes in a task name with U+FFFD.

    psutil decodes names with surrogateescape, so a name that is not valid
    UTF-8 carries lone surrogates that cannot be encoded again.
    """
    return name.encode(errors="surrogateescape").decode(errors="replace")


@dataclass(slots=True, frozen=True)
class MemoryContext:
    """Memory information read while a process's context was held."""

    name: str
    pid: int
    total_vm_pages: int


class PsutilPlatform:
    """Host facilities implemented with psutil."""

    def __init__(self, page_size: int | None = None) -> None:
        """
        Initialize the platform.

        Args:
            page_size: Page size override in bytes. Queried from the host when
                None or 0.
        """
        self._page_size = page_size or query_page_size()

    @property
    def page_size(self) -> int:
        """Page size in bytes used for all page conversions."""
        return self._page_size

    def cpu_times(self, cpu: int) -> CpuTimes:
        """Read user/system/idle time for one CPU, in nanoseconds."""
        try:
            per_cpu = psutil.cpu_times(percpu=True)
        except (OSError, RuntimeError) as e:
            raise PlatformUnavailable(f"CPU accounting unavailable: {e}") from e
        if not 0 <= cpu < len(per_cpu):
            raise PlatformUnavailable(f"CPU {cpu} not present (host has {len(per_cpu)})")

        times = per_cpu[cpu]
        return CpuTimes(
            user_ns=round(times.user * NS_PER_SEC),
            system_ns=round(times.system * NS_PER_SEC),
            idle_ns=round(times.idle * NS_PER_SEC),
        )

    def memory_stats(self) -> MemoryStats:
        """Read aggregate memory counters, converted to pages."""
        try:
            mem = psutil.virtual_memory()
        except (OSError, RuntimeError) as e:
            raise PlatformUnavailable(f"Memory accounting unavailable: {e}") from e

        page = self._page_size
        # shared/buffers are only reported on some hosts
        return MemoryStats(
            total_pages=mem.total // page,
            free_pages=mem.free // page,
            shared_pages=getattr(mem, "shared", 0) // page,
            buffer_pages=getattr(mem, "buffers", 0) // page,
            page_size=page,
        )

    def processes(self) -> Iterator[psutil.Process]:
        """Enumerate live processes in host order (best-effort)."""
        return psutil.process_iter()

    @contextmanager
    def memory_context(self, proc: psutil.Process) -> Iterator[MemoryContext | None]:
        """
        Hold a process's memory information for the duration of the block.

        Yields None when the process has no memory mapping (kernel threads
        report a zero virtual size), has exited, is a zombie, or cannot be
        inspected. The hold is released when the block exits, on every path.
        """
        with proc.oneshot():
            try:
                name = proc.name()
                vms = proc.memory_info().vms
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                context = None
            else:
                context = (
                    MemoryContext(
                        name=printable_name(name)[: TASK_COMM_LEN - 1],
                        pid=proc.pid,
                        total_vm_pages=vms // self._page_size,
                    )
                    if vms
                    else None
                )
            yield context
