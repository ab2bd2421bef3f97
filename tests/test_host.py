"""Tests for the psutil-backed host layer."""

import os
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from kernel_monitor.errors import PlatformUnavailable
from kernel_monitor.host import MemoryContext, PsutilPlatform, printable_name, query_page_size
from kernel_monitor.provider import SnapshotProvider

linux_only = pytest.mark.skipif(not sys.platform.startswith("linux"), reason="Linux host only")


def make_proc(name: str = "bash", pid: int = 4321, vms: int = 8 * 1024 * 1024) -> MagicMock:
    """Create a psutil.Process mock whose oneshot() scope is observable."""
    proc = MagicMock(spec=psutil.Process)
    proc.pid = pid
    proc.name.return_value = name
    proc.memory_info.return_value = SimpleNamespace(rss=vms // 2, vms=vms)
    scope = MagicMock()
    scope.__exit__.return_value = False
    proc.oneshot.return_value = scope
    return proc


class TestPageSize:
    def test_override(self) -> None:
        assert PsutilPlatform(page_size=16384).page_size == 16384

    def test_queried_when_not_given(self) -> None:
        with patch("kernel_monitor.host.query_page_size", return_value=65536):
            assert PsutilPlatform().page_size == 65536

    def test_zero_means_query(self) -> None:
        assert PsutilPlatform(page_size=0).page_size == query_page_size()


class TestCpuTimes:
    def test_seconds_converted_to_ns(self) -> None:
        """Per-CPU seconds become integer nanoseconds."""
        times = [SimpleNamespace(user=1.0, system=0.5, idle=8.5)]
        with patch("kernel_monitor.host.psutil.cpu_times", return_value=times):
            cpu = PsutilPlatform(page_size=4096).cpu_times(0)

        assert cpu.user_ns == 1_000_000_000
        assert cpu.system_ns == 500_000_000
        assert cpu.idle_ns == 8_500_000_000

    def test_selects_reference_cpu(self) -> None:
        times = [
            SimpleNamespace(user=1.0, system=1.0, idle=1.0),
            SimpleNamespace(user=2.0, system=3.0, idle=4.0),
        ]
        with patch("kernel_monitor.host.psutil.cpu_times", return_value=times):
            cpu = PsutilPlatform(page_size=4096).cpu_times(1)

        assert cpu.system_ns == 3_000_000_000

    def test_missing_cpu_raises(self) -> None:
        times = [SimpleNamespace(user=1.0, system=1.0, idle=1.0)]
        with patch("kernel_monitor.host.psutil.cpu_times", return_value=times):
            with pytest.raises(PlatformUnavailable, match="CPU 4 not present"):
                PsutilPlatform(page_size=4096).cpu_times(4)

    def test_accounting_error_raises(self) -> None:
        with patch("kernel_monitor.host.psutil.cpu_times", side_effect=OSError("no /proc")):
            with pytest.raises(PlatformUnavailable):
                PsutilPlatform(page_size=4096).cpu_times(0)


class TestMemoryStats:
    def test_bytes_converted_to_pages(self) -> None:
        mem = SimpleNamespace(
            total=4 * 1024**3, free=2 * 1024**3, shared=4096 * 10, buffers=4096 * 20
        )
        with patch("kernel_monitor.host.psutil.virtual_memory", return_value=mem):
            stats = PsutilPlatform(page_size=4096).memory_stats()

        assert stats.total_pages == 1048576
        assert stats.total_mb == 4096
        assert stats.free_pages == 524288
        assert stats.shared_pages == 10
        assert stats.buffer_pages == 20
        assert stats.page_size == 4096

    def test_unreported_fields_are_zero(self) -> None:
        """Hosts without shared/buffers counters report zero pages."""
        mem = SimpleNamespace(total=8192, free=4096)
        with patch("kernel_monitor.host.psutil.virtual_memory", return_value=mem):
            stats = PsutilPlatform(page_size=4096).memory_stats()

        assert stats.shared_pages == 0
        assert stats.buffer_pages == 0


class TestMemoryContext:
    def test_yields_pages_and_releases(self) -> None:
        proc = make_proc(vms=8 * 1024 * 1024)

        with PsutilPlatform(page_size=4096).memory_context(proc) as mm:
            assert mm == MemoryContext(name="bash", pid=4321, total_vm_pages=2048)
            proc.oneshot.return_value.__exit__.assert_not_called()

        proc.oneshot.return_value.__enter__.assert_called_once()
        proc.oneshot.return_value.__exit__.assert_called_once()

    def test_kernel_thread_has_no_context(self) -> None:
        """A zero virtual size means no memory mapping."""
        proc = make_proc(name="kworker/0:1", vms=0)

        with PsutilPlatform(page_size=4096).memory_context(proc) as mm:
            assert mm is None

        proc.oneshot.return_value.__exit__.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [psutil.NoSuchProcess(4321), psutil.ZombieProcess(4321), psutil.AccessDenied(4321)],
    )
    def test_vanished_process_has_no_context(self, error: Exception) -> None:
        proc = make_proc()
        proc.memory_info.side_effect = error

        with PsutilPlatform(page_size=4096).memory_context(proc) as mm:
            assert mm is None

        proc.oneshot.return_value.__exit__.assert_called_once()

    def test_released_when_block_raises(self) -> None:
        proc = make_proc()

        with pytest.raises(RuntimeError):
            with PsutilPlatform(page_size=4096).memory_context(proc):
                raise RuntimeError("boom")

        proc.oneshot.return_value.__exit__.assert_called_once()

    def test_name_bounded_to_task_name_length(self) -> None:
        proc = make_proc(name="a-very-long-process-name")

        with PsutilPlatform(page_size=4096).memory_context(proc) as mm:
            assert mm.name == "a-very-long-pro"

    def test_undecodable_name_made_printable(self) -> None:
        """Bytes that are not UTF-8 come back from psutil as lone surrogates."""
        proc = make_proc(name="bad\udcffname")

        with PsutilPlatform(page_size=4096).memory_context(proc) as mm:
            assert mm.name == "bad\ufffdname"
            mm.name.encode()


class TestPrintableName:
    def test_valid_names_unchanged(self) -> None:
        assert printable_name("kworker/0:1") == "kworker/0:1"
        assert printable_name("caf\u00e9") == "caf\u00e9"

    def test_each_bad_byte_replaced(self) -> None:
        assert printable_name("\udcff\udcfeok") == "\ufffd\ufffdok"


@linux_only
class TestLiveHost:
    """Tests against the real process table."""

    def test_current_process_is_listed(self) -> None:
        snapshot = SnapshotProvider(PsutilPlatform(), version="1.0.0").collect()

        assert os.getpid() in {p.pid for p in snapshot.processes}
        assert snapshot.total_processes == len(snapshot.processes)

    def test_entries_are_whole_pages(self) -> None:
        platform = PsutilPlatform()
        snapshot = SnapshotProvider(platform, version="1.0.0").collect()
        page_kb = platform.page_size // 1024

        assert all(p.resident_kb > 0 and p.resident_kb % page_kb == 0 for p in snapshot.processes)
        assert all(len(p.name) <= 15 for p in snapshot.processes)

    def test_generated_text_is_consistent(self) -> None:
        text = SnapshotProvider(PsutilPlatform(), version="1.0.0").generate()

        rows = text.split("-" * 43 + "\n", 1)[1].split("\n\nTotal Processes: ")
        count = int(rows[1].strip())
        assert count == len(rows[0].splitlines())
        assert text.startswith("=" * 43 + "\n     Linux Kernel Monitor v1.0.0\n")
