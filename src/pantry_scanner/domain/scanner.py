"""Domain models for the scan workflow."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum


class Step(StrEnum):
    """Machine state of the scan workflow."""

    IDLE = "idle"
    AWAITING_PERMISSION = "awaiting-permission"
    SCANNING = "scanning"
    LOOKING_UP_PLU = "looking-up-plu"
    CHOOSING_LOCATION = "choosing-location"
    SUBMITTING_STEP1 = "submitting-step1"
    PRODUCT_NOT_FOUND = "product-not-found"
    CAPTURING_EXPIRATION = "capturing-expiration"
    SUBMITTING_STEP2 = "submitting-step2"
    REVIEWING = "reviewing"
    FINALIZING = "finalizing"
    FLAGGING = "flagging"
    DONE = "done"
    ERROR = "error"


TERMINAL_STEPS = frozenset({Step.IDLE, Step.DONE})

# Steps at or past a successful phase 1.
POST_STEP1_STEPS = frozenset(
    {
        Step.CAPTURING_EXPIRATION,
        Step.SUBMITTING_STEP2,
        Step.REVIEWING,
        Step.FINALIZING,
        Step.FLAGGING,
    }
)

# Steps at or past a successful phase 2.
POST_STEP2_STEPS = frozenset({Step.REVIEWING, Step.FINALIZING, Step.FLAGGING})


class CodeType(StrEnum):
    """Symbology of a detected code."""

    EAN_13 = "ean-13"
    EAN_8 = "ean-8"
    UPC_A = "upc-a"
    UPC_E = "upc-e"
    CODE_128 = "code-128"
    CODE_39 = "code-39"
    QR = "qr"
    PLU = "plu"
    MANUAL = "manual"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "CodeType":
        """Map a camera-reported code type to a known value."""
        if not raw:
            return cls.UNKNOWN
        try:
            return cls(raw.strip().lower().replace("_", "-"))
        except ValueError:
            return cls.UNKNOWN


class PermissionStatus(StrEnum):
    """Camera authorization status."""

    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED = "denied"
    PENDING = "pending"


class Phase(StrEnum):
    """Network-bearing phases of the workflow."""

    LOCATIONS = "locations"
    PLU = "plu"
    STEP1 = "step1"
    STEP2 = "step2"
    FLAG = "flag"


class ErrorKind(StrEnum):
    """Classification of workflow failures."""

    PERMISSION_DENIED = "permission-denied"
    INVALID_CODE = "invalid-code"
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    AUTH = "auth"
    NOT_FOUND = "not-found"
    NO_USABLE_DATE = "no-usable-date"
    INVALID_INPUT = "invalid-input"
    PERSISTENCE_CORRUPT = "persistence-corrupt"
    UNKNOWN = "unknown"


TRANSIENT_ERROR_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER})


@dataclass(frozen=True)
class ErrorInfo:
    """A classified failure surfaced to the machine."""

    kind: ErrorKind
    message: str
    retryable: bool = False


@dataclass(frozen=True)
class StorageLocation:
    """Storage location reference data."""

    id: str
    name: str
    type: str


@dataclass(frozen=True)
class ProductSnapshot:
    """Product data returned by phase 1."""

    name: str | None = None
    brand: str | None = None
    serving_size: float | None = None
    serving_unit: str | None = None
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None


@dataclass(frozen=True)
class ExpirationInfo:
    """Expiration data captured by OCR, entered manually, or skipped."""

    date: date | None
    ocr_text: str = ""
    confidence: float = 0.0
    processing_time_ms: int = 0
    skipped: bool = False

    @classmethod
    def skip(cls) -> "ExpirationInfo":
        """Return the resolved-but-empty expiration used for skips."""
        return cls(date=None, skipped=True)


@dataclass(frozen=True)
class Session:
    """One in-flight scan attempt."""

    barcode: str
    code_type: CodeType
    idempotency_key: str
    started_at: datetime
    storage_location_id: str | None = None
    pending_item_id: str | None = None
    product: ProductSnapshot | None = None
    suggested_category: str | None = None
    confidence_score: float | None = None
    expiration: ExpirationInfo | None = None
    pending_expiration: ExpirationInfo | None = None
    manual_product_name: str | None = None
    manual_brand_name: str | None = None
    corrections: dict[str, object] = field(default_factory=dict)
    flag_reason: str | None = None
    flag_notes: str | None = None
    retry_counts: dict[Phase, int] = field(default_factory=dict)
    last_error: ErrorInfo | None = None

    @property
    def is_manual(self) -> bool:
        """Whether phase 1 goes through the manual workflow."""
        return self.manual_product_name is not None


@dataclass(frozen=True)
class CompletedScan:
    """A scan that reached the done state."""

    item_id: str
    barcode: str
    record: dict[str, object]
    flagged: bool
    completed_at: datetime
    flag_error: ErrorInfo | None = None
