"""Commands emitted by the scan workflow machine."""

from dataclasses import dataclass

from pantry_scanner.domain.scanner import CompletedScan, ExpirationInfo, Session, Step


@dataclass(frozen=True)
class RequestPermission:
    """Ask the permission collaborator for camera access."""


@dataclass(frozen=True)
class OpenSettings:
    """Open the system settings screen."""


@dataclass(frozen=True)
class LoadLocations:
    request_id: int


@dataclass(frozen=True)
class LookupPlu:
    request_id: int
    code: str


@dataclass(frozen=True)
class SubmitBarcode:
    """Phase 1 of the ingestion protocol."""

    request_id: int
    barcode: str
    storage_location_id: str
    idempotency_key: str
    manual_product_name: str | None = None
    manual_brand_name: str | None = None


@dataclass(frozen=True)
class SubmitExpiration:
    """Phase 2 of the ingestion protocol."""

    request_id: int
    pending_item_id: str
    expiration: ExpirationInfo


@dataclass(frozen=True)
class FlagItem:
    request_id: int
    pending_item_id: str
    reason: str
    notes: str | None = None


@dataclass(frozen=True)
class Finalize:
    """Complete an approved scan locally."""

    request_id: int
    completed: CompletedScan


@dataclass(frozen=True)
class Checkpoint:
    """Write a snapshot of the session at the given step."""

    step: Step
    session: Session


@dataclass(frozen=True)
class ClearCheckpoint:
    """Remove the persisted snapshot."""


Command = (
    RequestPermission
    | OpenSettings
    | LoadLocations
    | LookupPlu
    | SubmitBarcode
    | SubmitExpiration
    | FlagItem
    | Finalize
    | Checkpoint
    | ClearCheckpoint
)
