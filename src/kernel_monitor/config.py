"""Configuration system for kernel-monitor."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class MonitorConfig:
    """Snapshot collection configuration."""

    reference_cpu: int = 0  # CPU whose time counters are reported
    page_size: int = 0  # Bytes per page; 0 queries the host


@dataclass
class DaemonConfig:
    """Daemon configuration."""

    heartbeat_seconds: float = 60.0  # Seconds between heartbeat log lines
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


@dataclass
class ClientConfig:
    """Client (fetch and watch) configuration."""

    warmup_seconds: float = 2.0  # Delay between watch banner and first frame
    read_timeout: float = 5.0  # Max seconds to wait for a snapshot


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "kernel-monitor"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "kernel-monitor"

    @property
    def runtime_dir(self) -> Path:
        """Runtime directory for ephemeral files (PID, socket).

        Stored in /tmp/ so it's cleared on reboot, avoiding stale file issues.
        """
        return Path("/tmp/kernel-monitor")

    @property
    def log_path(self) -> Path:
        """Daemon log path."""
        return self.state_dir / "daemon.log"

    @property
    def pid_path(self) -> Path:
        """PID file path."""
        return self.runtime_dir / "daemon.pid"

    @property
    def socket_path(self) -> Path:
        """Unix socket path of the snapshot endpoint."""
        return self.runtime_dir / "monitor.sock"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        doc.add(tomlkit.comment("kernel-monitor configuration"))
        doc.add(tomlkit.nl())
        for f in fields(self):
            doc.add(f.name, _dataclass_to_table(getattr(self, f.name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions - no hardcoded values here.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            monitor=_load_monitor_config(data.get("monitor", {})),
            daemon=_load_daemon_config(data.get("daemon", {})),
            client=_load_client_config(data.get("client", {})),
        )


def _get_int(data: dict, key: str, default: int) -> int:
    """Read an integer value, rejecting other TOML types."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return int(value)


def _get_number(data: dict, key: str, default: float) -> float:
    """Read an integer or float value, rejecting other TOML types."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


def _load_monitor_config(data: dict) -> MonitorConfig:
    """Load monitor config from TOML data, using dataclass defaults for missing fields."""
    defaults = MonitorConfig()

    reference_cpu = _get_int(data, "reference_cpu", defaults.reference_cpu)
    page_size = _get_int(data, "page_size", defaults.page_size)

    if reference_cpu < 0:
        raise ValueError(f"reference_cpu must be >= 0, got {reference_cpu}")
    if page_size < 0 or (page_size and page_size % 1024):
        raise ValueError(f"page_size must be 0 or a multiple of 1024, got {page_size}")

    return MonitorConfig(reference_cpu=reference_cpu, page_size=page_size)


def _load_daemon_config(data: dict) -> DaemonConfig:
    """Load daemon config from TOML data."""
    defaults = DaemonConfig()

    heartbeat_seconds = _get_number(data, "heartbeat_seconds", defaults.heartbeat_seconds)
    log_max_bytes = _get_int(data, "log_max_bytes", defaults.log_max_bytes)
    log_backup_count = _get_int(data, "log_backup_count", defaults.log_backup_count)

    if heartbeat_seconds <= 0:
        raise ValueError(f"heartbeat_seconds must be > 0, got {heartbeat_seconds}")
    if log_max_bytes < 0:
        raise ValueError(f"log_max_bytes must be >= 0, got {log_max_bytes}")
    if log_backup_count < 0:
        raise ValueError(f"log_backup_count must be >= 0, got {log_backup_count}")

    return DaemonConfig(
        heartbeat_seconds=heartbeat_seconds,
        log_max_bytes=log_max_bytes,
        log_backup_count=log_backup_count,
    )


def _load_client_config(data: dict) -> ClientConfig:
    """Load client config from TOML data."""
    defaults = ClientConfig()

    warmup_seconds = _get_number(data, "warmup_seconds", defaults.warmup_seconds)
    read_timeout = _get_number(data, "read_timeout", defaults.read_timeout)

    if warmup_seconds < 0:
        raise ValueError(f"warmup_seconds must be >= 0, got {warmup_seconds}")
    if read_timeout <= 0:
        raise ValueError(f"read_timeout must be > 0, got {read_timeout}")

    return ClientConfig(warmup_seconds=warmup_seconds, read_timeout=read_timeout)
