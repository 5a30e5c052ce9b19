"""Supabase repository for inventory review flags."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from pantry_scanner.services.review import InventoryRepository


@dataclass
class SupabaseInventoryRepository(InventoryRepository):
    """Supabase implementation for flagging inventory items."""

    client: Client

    def flag_item(self, item_id: str, reason: str, notes: str | None) -> None:
        """Mark the item for manual review."""
        self.client.table("inventory_items").update(
            {
                "flagged_for_review": True,
                "flag_reason": reason,
                "flag_notes": notes,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", item_id).execute()
