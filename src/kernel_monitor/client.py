"""Unix socket client for fetching snapshots from the daemon."""

from __future__ import annotations

import asyncio
from pathlib import Path

from kernel_monitor.errors import OpenFailure, ReadFailure


class SnapshotClient:
    """Unix domain socket client for the snapshot endpoint.

    Simple and stateless: every fetch opens its own connection, reads the
    whole snapshot, and closes the connection again.
    """

    def __init__(self, socket_path: Path, timeout: float = 5.0):
        self.socket_path = socket_path
        self.timeout = timeout

    async def fetch(self) -> str:
        """Fetch one snapshot.

        Returns:
            The complete snapshot text

        Raises:
            OpenFailure: If the endpoint can't be opened (daemon not running,
                permission denied)
            ReadFailure: If reading fails, times out, or returns nothing
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_unix_connection(str(self.socket_path)),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise OpenFailure(self.socket_path, e) from e

        try:
            data = await asyncio.wait_for(reader.read(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ReadFailure(self.socket_path, "timed out waiting for snapshot") from e
        except OSError as e:
            raise ReadFailure(self.socket_path, e) from e
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass

        if not data:
            raise ReadFailure(self.socket_path, "endpoint returned no data")

        return data.decode(errors="replace")
