"""Read-only projection of the scan workflow for clients."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ErrorView:
    kind: str
    message: str
    retryable: bool


@dataclass(frozen=True)
class LocationView:
    id: str
    name: str
    type: str


@dataclass(frozen=True)
class ScannerView:
    """Everything a client needs to render the current step."""

    step: str
    permission: str
    actions: list[str]
    barcode: str | None = None
    code_type: str | None = None
    storage_location_id: str | None = None
    pending_item_id: str | None = None
    product: dict[str, object] | None = None
    suggested_category: str | None = None
    confidence_score: float | None = None
    expiration: dict[str, object] | None = None
    locations: list[LocationView] = field(default_factory=list)
    error: ErrorView | None = None
    review_record: dict[str, object] | None = None
    completed: dict[str, object] | None = None
