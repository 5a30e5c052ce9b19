"""Persisted projection of an in-flight scan."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_VERSION = 1


class PersistedExpiration(BaseModel):
    """Expiration fields stored with a snapshot."""

    date: dt.date | None = None
    ocr_text: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_time_ms: int = Field(default=0, ge=0)
    skipped: bool = False


class PersistedSnapshot(BaseModel):
    """Durable checkpoint written at each phase boundary."""

    model_config = ConfigDict(extra="ignore")

    version: int = SNAPSHOT_VERSION
    barcode: str = Field(min_length=1)
    code_type: str
    step: str
    idempotency_key: str = Field(min_length=1)
    pending_item_id: str | None = None
    storage_location_id: str | None = None
    product: dict[str, object] | None = None
    suggested_category: str | None = None
    confidence_score: float | None = None
    expiration: PersistedExpiration | None = None
    manual_product_name: str | None = None
    manual_brand_name: str | None = None
    corrections: dict[str, object] = Field(default_factory=dict)
    flag_reason: str | None = None
    flag_notes: str | None = None
    started_at: dt.datetime
    checkpoint_timestamp: dt.datetime
