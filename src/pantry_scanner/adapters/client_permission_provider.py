"""Permission provider answered by the connected client."""

import asyncio
import logging
from dataclasses import dataclass, field

from pantry_scanner.services.permissions import PermissionProvider

_logger = logging.getLogger(__name__)


@dataclass
class ClientPermissionProvider(PermissionProvider):
    """Waits for the client app to report the outcome of its camera dialog.

    The scanner runs server-side, so the platform dialog is shown by the
    client, which posts the answer back through the API.
    """

    settings_requests: int = 0
    _pending: asyncio.Future[bool] | None = field(default=None, init=False, repr=False)

    @property
    def awaiting_answer(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def request_camera_permission(self) -> bool:
        """Wait until ``answer`` is called."""
        pending = self._pending
        if pending is None or pending.done():
            pending = asyncio.get_running_loop().create_future()
            self._pending = pending
        return await asyncio.shield(pending)

    async def open_system_settings(self) -> None:
        self.settings_requests += 1
        _logger.info("Client asked to open camera settings")

    def answer(self, granted: bool) -> bool:
        """Resolve the outstanding request; return False if none is waiting."""
        pending = self._pending
        if pending is None or pending.done():
            return False
        pending.set_result(granted)
        return True
