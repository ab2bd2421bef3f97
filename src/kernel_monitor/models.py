"""Data models for kernel-monitor snapshots."""

from dataclasses import dataclass

# Platform task-name buffer, including the terminator
TASK_COMM_LEN = 16


@dataclass(slots=True, frozen=True)
class CpuTimes:
    """Cumulative time counters for the reference CPU, in nanoseconds."""

    user_ns: int
    system_ns: int
    idle_ns: int


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Aggregate memory counters, in pages of ``page_size`` bytes."""

    total_pages: int
    free_pages: int
    shared_pages: int
    buffer_pages: int
    page_size: int = 4096

    @property
    def page_kb(self) -> int:
        return self.page_size // 1024

    @property
    def total_mb(self) -> int:
        return self.total_pages * self.page_kb // 1024

    @property
    def free_mb(self) -> int:
        return self.free_pages * self.page_kb // 1024


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """One process with a memory mapping at the time it was visited."""

    name: str  # At most TASK_COMM_LEN - 1 characters
    pid: int
    resident_kb: int


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Point-in-time view of CPU, memory and processes.

    Built fresh for every read and never mutated. Process entries are in host
    enumeration order; the list is best-effort and not an atomic view of the
    process table.
    """

    cpu: CpuTimes
    memory: MemoryStats
    processes: tuple[ProcessEntry, ...]

    @property
    def total_processes(self) -> int:
        """Number of processes in the snapshot (always ``len(processes)``)."""
        return len(self.processes)
