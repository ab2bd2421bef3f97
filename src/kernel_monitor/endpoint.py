"""Unix socket endpoint serving one fresh snapshot per connection.

PULL-BASED DESIGN:
- Nothing is sampled in the background; each connection pays for its own
  snapshot
- A connection is one open-then-read cycle: the full text is written and the
  connection closed
- Client input is never read, so the endpoint is read-only
"""

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from kernel_monitor.errors import PlatformUnavailable, RegistrationFailure

if TYPE_CHECKING:
    from kernel_monitor.provider import SnapshotProvider

log = structlog.get_logger()

# Anyone may connect; the protocol itself offers no way to write
SOCKET_MODE = (
    stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH
)


class SnapshotEndpoint:
    """Unix domain socket exposing snapshots to clients."""

    def __init__(self, socket_path: Path, provider: SnapshotProvider) -> None:
        self.socket_path = socket_path
        self.provider = provider
        self._server: asyncio.Server | None = None
        self.served = 0

    @property
    def registered(self) -> bool:
        """Whether the endpoint is currently accepting connections."""
        return self._server is not None

    async def start(self) -> None:
        """Create the endpoint.

        Raises:
            RegistrationFailure: If the host facilities cannot be read or the
                socket cannot be created. Nothing is exposed in that case.
        """
        try:
            self.provider.probe()
        except PlatformUnavailable as e:
            raise RegistrationFailure(str(e)) from e

        try:
            # Remove stale socket file
            if self.socket_path.exists():
                self.socket_path.unlink()

            self.socket_path.parent.mkdir(parents=True, exist_ok=True)

            self._server = await asyncio.start_unix_server(
                self._handle_client,
                path=str(self.socket_path),
            )
            os.chmod(self.socket_path, SOCKET_MODE)
        except OSError as e:
            await self.stop()
            raise RegistrationFailure(f"Failed to create {self.socket_path}: {e}") from e

        self.served = 0
        log.info("endpoint_registered", path=str(self.socket_path))

    async def stop(self) -> None:
        """Remove the endpoint. Safe to call at any time, any number of times."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            log.info("endpoint_removed", path=str(self.socket_path), served=self.served)

        if self.socket_path.exists():
            self.socket_path.unlink()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Generate one snapshot, send it whole, and close the connection."""
        try:
            loop = asyncio.get_running_loop()
            try:
                text = await loop.run_in_executor(None, self.provider.generate)
                data = text.encode(errors="replace")
            except Exception as e:
                log.exception("snapshot_failed", error=str(e))
                return

            try:
                writer.write(data)
                await writer.drain()
            except ConnectionError as e:
                log.debug("snapshot_send_failed", error=str(e))
                return
            except OSError as e:
                log.warning("snapshot_send_failed", error=str(e))
                return

            self.served += 1
            log.debug("snapshot_served", size=len(data))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
