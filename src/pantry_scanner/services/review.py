"""Review record assembly and correction handling."""

from dataclasses import asdict
from datetime import date
from typing import Protocol

from pantry_scanner.domain.scanner import Session

CORRECTABLE_FIELDS = frozenset(
    {"name", "brand", "suggested_category", "expiration_date", "quantity"}
)


class InventoryRepository(Protocol):
    """Persistence interface for inventory review flags."""

    def flag_item(self, item_id: str, reason: str, notes: str | None) -> None:
        """Mark an inventory item for manual review."""


def invalid_corrections(corrections: dict[str, object]) -> list[str]:
    """Return correction keys that are unknown or carry an unusable value."""
    invalid = sorted(key for key in corrections if key not in CORRECTABLE_FIELDS)
    quantity = corrections.get("quantity")
    if quantity is not None and (
        isinstance(quantity, bool) or not isinstance(quantity, int | float) or quantity <= 0
    ):
        invalid.append("quantity")
    expiration = corrections.get("expiration_date")
    if expiration is not None and _parse_iso_date(expiration) is None:
        invalid.append("expiration_date")
    return invalid


def build_review_record(session: Session) -> dict[str, object]:
    """Merge product, expiration and corrections into one record."""
    product = asdict(session.product) if session.product else {}
    if session.manual_product_name and not product.get("name"):
        product["name"] = session.manual_product_name
    if session.manual_brand_name and not product.get("brand"):
        product["brand"] = session.manual_brand_name

    expiration = session.expiration
    record: dict[str, object] = {
        "item_id": session.pending_item_id,
        "barcode": session.barcode,
        "code_type": str(session.code_type),
        "storage_location_id": session.storage_location_id,
        "name": product.get("name"),
        "brand": product.get("brand"),
        "suggested_category": session.suggested_category,
        "confidence_score": session.confidence_score,
        "nutrition": {
            key: product.get(key)
            for key in (
                "serving_size",
                "serving_unit",
                "calories",
                "protein",
                "carbs",
                "fat",
            )
        },
        "expiration_date": (
            expiration.date.isoformat() if expiration and expiration.date else None
        ),
        "expiration_skipped": bool(expiration and expiration.skipped),
        "ocr_confidence": expiration.confidence if expiration else None,
        "quantity": 1,
    }
    for key, value in session.corrections.items():
        if key == "expiration_date" and value is not None:
            parsed = _parse_iso_date(value)
            record[key] = parsed.isoformat() if parsed else None
        else:
            record[key] = value
    record["corrected_fields"] = sorted(session.corrections)
    return record


def _parse_iso_date(value: object) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None
