"""Supabase repository for storage locations."""

from dataclasses import dataclass

from supabase import Client

from pantry_scanner.domain.scanner import StorageLocation
from pantry_scanner.services.locations import LocationRepository


@dataclass
class SupabaseLocationRepository(LocationRepository):
    """Supabase implementation for storage location reads."""

    client: Client

    def list_locations(self, household_id: str | None) -> list[StorageLocation]:
        """Return storage locations, scoped to a household when given."""
        query = self.client.table("storage_locations").select("id, name, type")
        if household_id:
            query = query.eq("household_id", household_id)
        response = query.order("name").execute()
        return [
            StorageLocation(
                id=str(row["id"]),
                name=row.get("name") or "",
                type=row.get("type") or "",
            )
            for row in response.data or []
        ]
