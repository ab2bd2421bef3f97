"""Shared test fixtures for kernel-monitor."""

import tempfile
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
from unittest.mock import patch

import pytest

from kernel_monitor.config import Config
from kernel_monitor.errors import PlatformUnavailable
from kernel_monitor.host import MemoryContext
from kernel_monitor.models import CpuTimes, MemoryStats


@dataclass
class FakeProcess:
    """Process as seen by FakePlatform.

    total_vm_pages of None means "no memory mapping" (kernel thread or exited).
    """

    name: str
    pid: int
    total_vm_pages: int | None = None
    explode: bool = False


class _ExplodingContext:
    """Memory context whose counter read fails inside the held scope."""

    def __init__(self, proc: FakeProcess):
        self.name = proc.name
        self.pid = proc.pid

    @property
    def total_vm_pages(self) -> int:
        raise RuntimeError(f"counter read failed for {self.pid}")


class FakePlatform:
    """In-memory stand-in for PsutilPlatform that counts acquire/release."""

    def __init__(
        self,
        processes: list[FakeProcess] | None = None,
        cpu: CpuTimes | None = None,
        memory: MemoryStats | None = None,
        cpu_count: int = 1,
    ):
        self._processes = processes or []
        self._cpu = cpu or CpuTimes(
            user_ns=1_000_000_000, system_ns=500_000_000, idle_ns=8_500_000_000
        )
        self._memory = memory or MemoryStats(
            total_pages=1048576, free_pages=524288, shared_pages=1000, buffer_pages=2000
        )
        self._cpu_count = cpu_count
        self.acquired = 0
        self.released = 0

    @property
    def page_size(self) -> int:
        return self._memory.page_size

    def cpu_times(self, cpu: int) -> CpuTimes:
        if not 0 <= cpu < self._cpu_count:
            raise PlatformUnavailable(f"CPU {cpu} not present (host has {self._cpu_count})")
        return self._cpu

    def memory_stats(self) -> MemoryStats:
        return self._memory

    def processes(self) -> Iterator[FakeProcess]:
        return iter(self._processes)

    @contextmanager
    def memory_context(self, proc: FakeProcess):
        self.acquired += 1
        try:
            if proc.explode:
                yield _ExplodingContext(proc)
            elif proc.total_vm_pages is None:
                yield None
            else:
                yield MemoryContext(
                    name=proc.name, pid=proc.pid, total_vm_pages=proc.total_vm_pages
                )
        finally:
            self.released += 1


@pytest.fixture
def fake_platform() -> FakePlatform:
    """Platform with one user process and one kernel thread."""
    return FakePlatform(
        processes=[
            FakeProcess("bashd", 1234, total_vm_pages=2048),
            FakeProcess("kworker/0:1", 7),
        ]
    )


@pytest.fixture
def short_tmp_path() -> Iterator[Path]:
    """Create a short temporary path for Unix sockets.

    Unix socket paths are limited to ~104-108 characters.
    pytest's tmp_path is too long, so we use /tmp directly.
    """
    with tempfile.TemporaryDirectory(dir="/tmp", prefix="km_") as tmpdir:
        yield Path(tmpdir)


def _patch_config_paths(stack: ExitStack, base_path: Path) -> None:
    """Apply Config path property patches to the given ExitStack."""
    # fmt: off
    stack.enter_context(patch.object(
        Config, "runtime_dir",
        new_callable=lambda: property(lambda self: base_path)
    ))
    stack.enter_context(patch.object(
        Config, "pid_path",
        new_callable=lambda: property(lambda self: base_path / "daemon.pid")
    ))
    stack.enter_context(patch.object(
        Config, "socket_path",
        new_callable=lambda: property(lambda self: base_path / "monitor.sock")
    ))
    stack.enter_context(patch.object(
        Config, "config_path",
        new_callable=lambda: property(lambda self: base_path / "config.toml")
    ))
    # fmt: on


@pytest.fixture
def patched_config_paths(short_tmp_path: Path) -> Iterator[Path]:
    """Patch Config paths into a short temporary directory.

    Yields the base path for tests that need to reference it directly.
    """
    with ExitStack() as stack:
        _patch_config_paths(stack, short_tmp_path)
        yield short_tmp_path
