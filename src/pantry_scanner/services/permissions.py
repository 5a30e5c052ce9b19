"""Camera permission acquisition."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from pantry_scanner.domain.scanner import PermissionStatus

_logger = logging.getLogger(__name__)


class PermissionProvider(Protocol):
    """Interface for the platform permission dialog."""

    async def request_camera_permission(self) -> bool:
        """Show the dialog and return True when access is granted."""

    async def open_system_settings(self) -> None:
        """Send the user to the system settings screen."""


@dataclass
class PermissionGate:
    """Bounded wait on the permission dialog."""

    provider: PermissionProvider
    timeout_seconds: float = 30.0

    async def request(self) -> PermissionStatus:
        """Ask for camera access; an unanswered dialog stays pending."""
        try:
            granted = await asyncio.wait_for(
                self.provider.request_camera_permission(),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            _logger.info(
                "Camera permission dialog unanswered after %.1fs", self.timeout_seconds
            )
            return PermissionStatus.PENDING
        return PermissionStatus.GRANTED if granted else PermissionStatus.DENIED

    async def open_settings(self) -> None:
        await self.provider.open_system_settings()
