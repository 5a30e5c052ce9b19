"""Checkpointing of in-flight scans for crash resume."""

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pydantic import ValidationError

from pantry_scanner.domain.scanner import (
    CodeType,
    ExpirationInfo,
    ProductSnapshot,
    Session,
    Step,
)
from pantry_scanner.domain.snapshots import (
    SNAPSHOT_VERSION,
    PersistedExpiration,
    PersistedSnapshot,
)

PENDING_SCAN_KEY = "pendingScan"

# Steps a snapshot may be resumed into.
RESUMABLE_STEPS = frozenset(
    {
        Step.SUBMITTING_STEP1,
        Step.CAPTURING_EXPIRATION,
        Step.REVIEWING,
        Step.FINALIZING,
        Step.FLAGGING,
    }
)

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Durable string key/value storage."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, if present."""

    def set_item(self, key: str, value: str) -> None:
        """Store a value under a key."""

    def remove_item(self, key: str) -> None:
        """Remove a key if present."""


def snapshot_from_session(
    step: Step, session: Session, checkpoint_at: datetime
) -> PersistedSnapshot:
    """Project a session onto its persisted form."""
    expiration = session.expiration
    return PersistedSnapshot(
        barcode=session.barcode,
        code_type=str(session.code_type),
        step=str(step),
        idempotency_key=session.idempotency_key,
        pending_item_id=session.pending_item_id,
        storage_location_id=session.storage_location_id,
        product=asdict(session.product) if session.product else None,
        suggested_category=session.suggested_category,
        confidence_score=session.confidence_score,
        expiration=(
            PersistedExpiration(
                date=expiration.date,
                ocr_text=expiration.ocr_text,
                confidence=expiration.confidence,
                processing_time_ms=expiration.processing_time_ms,
                skipped=expiration.skipped,
            )
            if expiration
            else None
        ),
        manual_product_name=session.manual_product_name,
        manual_brand_name=session.manual_brand_name,
        corrections=dict(session.corrections),
        flag_reason=session.flag_reason,
        flag_notes=session.flag_notes,
        started_at=session.started_at,
        checkpoint_timestamp=checkpoint_at,
    )


def session_from_snapshot(snapshot: PersistedSnapshot) -> Session:
    """Rebuild a session from its persisted form."""
    expiration = snapshot.expiration
    product = snapshot.product
    return Session(
        barcode=snapshot.barcode,
        code_type=CodeType.parse(snapshot.code_type),
        idempotency_key=snapshot.idempotency_key,
        started_at=snapshot.started_at,
        storage_location_id=snapshot.storage_location_id,
        pending_item_id=snapshot.pending_item_id,
        product=(
            ProductSnapshot(
                **{
                    key: value
                    for key, value in product.items()
                    if key in ProductSnapshot.__dataclass_fields__
                }
            )
            if product
            else None
        ),
        suggested_category=snapshot.suggested_category,
        confidence_score=snapshot.confidence_score,
        expiration=(
            ExpirationInfo(
                date=expiration.date,
                ocr_text=expiration.ocr_text,
                confidence=expiration.confidence,
                processing_time_ms=expiration.processing_time_ms,
                skipped=expiration.skipped,
            )
            if expiration
            else None
        ),
        manual_product_name=snapshot.manual_product_name,
        manual_brand_name=snapshot.manual_brand_name,
        corrections=dict(snapshot.corrections),
        flag_reason=snapshot.flag_reason,
        flag_notes=snapshot.flag_notes,
    )


def resume_problem(snapshot: PersistedSnapshot) -> str | None:  # noqa: PLR0911
    """Return why a snapshot cannot be resumed, or None if it can."""
    try:
        step = Step(snapshot.step)
    except ValueError:
        return f"unknown step {snapshot.step!r}"
    if step not in RESUMABLE_STEPS:
        return f"step {step} is not resumable"
    if step is Step.SUBMITTING_STEP1:
        return None if snapshot.storage_location_id else "missing storage location"
    if not snapshot.pending_item_id:
        return "missing pending item id"
    if step in {Step.REVIEWING, Step.FINALIZING} and snapshot.expiration is None:
        return "missing expiration"
    if step is Step.FLAGGING and not snapshot.flag_reason:
        return "missing flag reason"
    return None


@dataclass
class CheckpointService:
    """Reads and writes the pending-scan snapshot."""

    store: KeyValueStore
    max_age_seconds: int = 86400
    key: str = PENDING_SCAN_KEY

    def save(self, step: Step, session: Session, now: datetime | None = None) -> None:
        """Write a checkpoint for the session at the given step."""
        checkpoint_at = now or datetime.now(tz=UTC)
        snapshot = snapshot_from_session(step, session, checkpoint_at)
        self.store.set_item(self.key, snapshot.model_dump_json())

    def clear(self) -> None:
        """Drop any stored checkpoint."""
        self.store.remove_item(self.key)

    def load_resumable(self, now: datetime | None = None) -> PersistedSnapshot | None:
        """Return a resumable snapshot, discarding corrupt or stale ones."""
        raw = self.store.get_item(self.key)
        if raw is None:
            return None
        try:
            snapshot = PersistedSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            _logger.warning("Discarding unreadable scan snapshot: %s", exc)
            self.clear()
            return None

        if snapshot.version != SNAPSHOT_VERSION:
            _logger.warning("Discarding scan snapshot version %s", snapshot.version)
            self.clear()
            return None

        current = now or datetime.now(tz=UTC)
        checkpoint_at = snapshot.checkpoint_timestamp
        if checkpoint_at.tzinfo is None:
            checkpoint_at = checkpoint_at.replace(tzinfo=UTC)
        if current - checkpoint_at > timedelta(seconds=self.max_age_seconds):
            _logger.warning(
                "Discarding stale scan snapshot for %s from %s",
                snapshot.barcode,
                checkpoint_at.isoformat(),
            )
            self.clear()
            return None

        problem = resume_problem(snapshot)
        if problem is not None:
            _logger.warning("Discarding scan snapshot: %s", problem)
            self.clear()
            return None
        return snapshot
