from datetime import date

from pantry_scanner.domain.scanner import (
    CodeType,
    ExpirationInfo,
    ProductSnapshot,
    Session,
)
from pantry_scanner.services.review import build_review_record, invalid_corrections
from tests.conftest import FIXED_NOW


def _session(**changes: object) -> Session:
    values: dict[str, object] = {
        "barcode": "0086395095005",
        "code_type": CodeType.EAN_13,
        "idempotency_key": "key-1",
        "started_at": FIXED_NOW,
        "storage_location_id": "pantry-id",
        "pending_item_id": "abc123",
        "product": ProductSnapshot(name="Black Beans", brand="Goya", calories=110),
        "suggested_category": "canned",
        "confidence_score": 0.92,
        "expiration": ExpirationInfo(date=date(2026, 5, 14), confidence=0.9),
    }
    values.update(changes)
    return Session(**values)  # type: ignore[arg-type]


def test_record_merges_product_and_expiration() -> None:
    record = build_review_record(_session())

    assert record["item_id"] == "abc123"
    assert record["code_type"] == "ean-13"
    assert record["name"] == "Black Beans"
    assert record["brand"] == "Goya"
    assert record["nutrition"]["calories"] == 110
    assert record["expiration_date"] == "2026-05-14"
    assert record["expiration_skipped"] is False
    assert record["quantity"] == 1
    assert record["corrected_fields"] == []


def test_record_applies_corrections() -> None:
    session = _session(
        corrections={"brand": "Store Brand", "expiration_date": "2026-06-01"}
    )

    record = build_review_record(session)

    assert record["brand"] == "Store Brand"
    assert record["expiration_date"] == "2026-06-01"
    assert record["corrected_fields"] == ["brand", "expiration_date"]


def test_record_falls_back_to_manual_entry() -> None:
    session = _session(
        product=None,
        manual_product_name="Homemade Jam",
        manual_brand_name="Grandma",
        expiration=ExpirationInfo.skip(),
    )

    record = build_review_record(session)

    assert record["name"] == "Homemade Jam"
    assert record["brand"] == "Grandma"
    assert record["expiration_date"] is None
    assert record["expiration_skipped"] is True


def test_invalid_corrections() -> None:
    assert invalid_corrections({"name": "Beans", "quantity": 3}) == []
    assert invalid_corrections({"calories": 0}) == ["calories"]
    assert invalid_corrections({"quantity": 0}) == ["quantity"]
    assert invalid_corrections({"quantity": True}) == ["quantity"]
    assert invalid_corrections({"expiration_date": "14/05/2026"}) == [
        "expiration_date"
    ]
