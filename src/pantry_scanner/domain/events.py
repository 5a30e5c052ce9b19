"""Events accepted by the scan workflow machine."""

from dataclasses import dataclass, field

from pantry_scanner.domain.scanner import (
    CodeType,
    CompletedScan,
    ErrorInfo,
    ExpirationInfo,
    PermissionStatus,
    ProductSnapshot,
    StorageLocation,
)
from pantry_scanner.domain.snapshots import PersistedSnapshot


@dataclass(frozen=True)
class ScannerOpened:
    """User opened the scanner from idle."""


@dataclass(frozen=True)
class PermissionResolved:
    """The permission collaborator answered (or timed out)."""

    status: PermissionStatus


@dataclass(frozen=True)
class PermissionRequested:
    """User asked to re-request camera access."""


@dataclass(frozen=True)
class SettingsRequested:
    """User asked to open the system settings."""


@dataclass(frozen=True)
class CodeDetected:
    """A debounced code detection."""

    value: str
    code_type: CodeType


@dataclass(frozen=True)
class PluEntered:
    """User typed a PLU code."""

    code: str


@dataclass(frozen=True)
class PluLookupSucceeded:
    request_id: int
    product_name: str
    fdc_id: int | None = None


@dataclass(frozen=True)
class PluLookupNotFound:
    request_id: int
    message: str


@dataclass(frozen=True)
class PluLookupFailed:
    request_id: int
    error: ErrorInfo
    attempts: int = 1


@dataclass(frozen=True)
class LocationsLoaded:
    request_id: int
    locations: tuple[StorageLocation, ...]


@dataclass(frozen=True)
class LocationsFailed:
    request_id: int
    error: ErrorInfo


@dataclass(frozen=True)
class LocationSelected:
    """User picked a storage location."""

    location_id: str


@dataclass(frozen=True)
class Step1Succeeded:
    request_id: int
    item_id: str
    product: ProductSnapshot
    suggested_category: str | None = None
    confidence_score: float | None = None
    attempts: int = 1


@dataclass(frozen=True)
class Step1NotFound:
    request_id: int
    message: str
    attempts: int = 1


@dataclass(frozen=True)
class Step1Failed:
    request_id: int
    error: ErrorInfo
    attempts: int = 1


@dataclass(frozen=True)
class ExpirationCaptured:
    """OCR or manual entry produced expiration data."""

    expiration: ExpirationInfo


@dataclass(frozen=True)
class ExpirationSkipped:
    """User chose not to capture an expiration date."""


@dataclass(frozen=True)
class Step2Succeeded:
    request_id: int
    ocr_results: dict[str, object] = field(default_factory=dict)
    attempts: int = 1


@dataclass(frozen=True)
class Step2Failed:
    request_id: int
    error: ErrorInfo
    attempts: int = 1


@dataclass(frozen=True)
class ReviewApproved:
    """User approved the record, optionally with corrections."""

    corrections: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewFlagged:
    """User flagged the record for manual review."""

    reason: str
    notes: str | None = None


@dataclass(frozen=True)
class FlagSettled:
    request_id: int
    error: ErrorInfo | None = None


@dataclass(frozen=True)
class FinalizeCompleted:
    request_id: int
    completed: CompletedScan


@dataclass(frozen=True)
class ManualEntrySubmitted:
    """User typed product details after a failed lookup."""

    product_name: str
    brand_name: str | None = None


@dataclass(frozen=True)
class Retry:
    """Retry the failed phase."""


@dataclass(frozen=True)
class Skip:
    """Skip the failed expiration phase."""


@dataclass(frozen=True)
class RetryScan:
    """Drop the session and return to the camera."""


@dataclass(frozen=True)
class ScanAnother:
    """Start another scan after completion."""


@dataclass(frozen=True)
class Cancel:
    """Abandon the current workflow."""


@dataclass(frozen=True)
class SnapshotRestored:
    """A resumable snapshot was found on cold start."""

    snapshot: PersistedSnapshot


ResultEvent = (
    PluLookupSucceeded
    | PluLookupNotFound
    | PluLookupFailed
    | LocationsLoaded
    | LocationsFailed
    | Step1Succeeded
    | Step1NotFound
    | Step1Failed
    | Step2Succeeded
    | Step2Failed
    | FlagSettled
    | FinalizeCompleted
)

Event = (
    ScannerOpened
    | PermissionResolved
    | PermissionRequested
    | SettingsRequested
    | CodeDetected
    | PluEntered
    | LocationSelected
    | ExpirationCaptured
    | ExpirationSkipped
    | ReviewApproved
    | ReviewFlagged
    | ManualEntrySubmitted
    | Retry
    | Skip
    | RetryScan
    | ScanAnother
    | Cancel
    | SnapshotRestored
    | ResultEvent
)
