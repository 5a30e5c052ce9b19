"""Storage location reference data."""

import logging
from dataclasses import dataclass
from typing import Protocol

from pantry_scanner.domain.scanner import StorageLocation

_logger = logging.getLogger(__name__)


class LocationRepository(Protocol):
    """Persistence interface for storage locations."""

    def list_locations(self, household_id: str | None) -> list[StorageLocation]:
        """Return the storage locations visible to a household."""


@dataclass
class LocationService:
    """Loads storage locations; callers re-fetch on every fresh scan."""

    repository: LocationRepository
    household_id: str | None = None

    def load(self) -> tuple[StorageLocation, ...]:
        """Return locations ordered by name."""
        locations = self.repository.list_locations(self.household_id)
        _logger.debug("Loaded %s storage locations", len(locations))
        return tuple(sorted(locations, key=lambda location: location.name.lower()))
