"""Wire models and normalized outcomes for the ingestion protocol."""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict

from pantry_scanner.domain.scanner import ErrorInfo, ProductSnapshot


class ProductPayload(BaseModel):
    """Product summary returned by phase 1."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    brand: str | None = None
    serving_size: float | None = None
    serving_unit: str | None = None
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None

    def to_snapshot(self) -> ProductSnapshot:
        return ProductSnapshot(
            name=self.name,
            brand=self.brand,
            serving_size=self.serving_size,
            serving_unit=self.serving_unit,
            calories=self.calories,
            protein=self.protein,
            carbs=self.carbs,
            fat=self.fat,
        )


class BarcodeResponse(BaseModel):
    """Phase 1 response body (two-step and manual workflows)."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    item_id: str | None = None
    scan_id: str | None = None
    product: ProductPayload | None = None
    suggested_category: str | None = None
    confidence_score: float | None = None
    error: str | None = None
    barcode: str | None = None


class ExpirationResponse(BaseModel):
    """Phase 2 response body."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    ocr_results: dict[str, object] | None = None
    item: dict[str, object] | None = None
    error: str | None = None


class PluMatch(BaseModel):
    """Single match returned by the PLU lookup."""

    model_config = ConfigDict(extra="ignore")

    product_name: str
    fdc_id: int | None = None
    description: str | None = None


class PluResponse(BaseModel):
    """PLU lookup response body."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    plu_code: str | None = None
    matches: list[PluMatch] = []
    error: str | None = None


@dataclass(frozen=True)
class BarcodeAccepted:
    item_id: str
    product: ProductSnapshot
    suggested_category: str | None
    confidence_score: float | None
    attempts: int


@dataclass(frozen=True)
class BarcodeNotFound:
    message: str
    attempts: int


@dataclass(frozen=True)
class ExpirationAccepted:
    attempts: int
    ocr_results: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class PluMatched:
    product_name: str
    fdc_id: int | None
    attempts: int


@dataclass(frozen=True)
class PluNotFound:
    message: str
    attempts: int


@dataclass(frozen=True)
class IngestionFailed:
    """A call that failed after the retry policy gave up."""

    error: ErrorInfo
    attempts: int


BarcodeOutcome = BarcodeAccepted | BarcodeNotFound | IngestionFailed
ExpirationOutcome = ExpirationAccepted | IngestionFailed
PluOutcome = PluMatched | PluNotFound | IngestionFailed
