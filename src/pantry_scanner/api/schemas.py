"""Pydantic models for scanner API payloads."""

import datetime as dt
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from pantry_scanner.domain import events as ev
from pantry_scanner.domain.scanner import ExpirationInfo


class OpenScannerRequest(BaseModel):
    type: Literal["open_scanner"]

    def to_event(self) -> ev.Event:
        return ev.ScannerOpened()


class RequestPermissionRequest(BaseModel):
    type: Literal["request_permission"]

    def to_event(self) -> ev.Event:
        return ev.PermissionRequested()


class OpenSettingsRequest(BaseModel):
    type: Literal["open_settings"]

    def to_event(self) -> ev.Event:
        return ev.SettingsRequested()


class PermissionAnswerRequest(BaseModel):
    """Outcome of the camera dialog shown by the client."""

    type: Literal["permission_answer"]
    granted: bool


class EnterPluRequest(BaseModel):
    type: Literal["enter_plu"]
    code: str

    def to_event(self) -> ev.Event:
        return ev.PluEntered(self.code)


class SelectLocationRequest(BaseModel):
    type: Literal["select_location"]
    location_id: str

    def to_event(self) -> ev.Event:
        return ev.LocationSelected(self.location_id)


class CaptureExpirationRequest(BaseModel):
    """Manually entered expiration date."""

    type: Literal["capture_expiration"]
    date: dt.date | None = None
    ocr_text: str = ""
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    processing_time_ms: int = Field(default=0, ge=0)

    def to_event(self) -> ev.Event:
        return ev.ExpirationCaptured(
            ExpirationInfo(
                date=self.date,
                ocr_text=self.ocr_text,
                confidence=self.confidence,
                processing_time_ms=self.processing_time_ms,
            )
        )


class SkipRequest(BaseModel):
    type: Literal["skip"]

    def to_event(self) -> ev.Event:
        return ev.Skip()


class ApproveRequest(BaseModel):
    type: Literal["approve"]
    corrections: dict[str, object] = Field(default_factory=dict)

    def to_event(self) -> ev.Event:
        return ev.ReviewApproved(dict(self.corrections))


class FlagRequest(BaseModel):
    type: Literal["flag"]
    reason: str
    notes: str | None = None

    def to_event(self) -> ev.Event:
        return ev.ReviewFlagged(self.reason, self.notes)


class ManualEntryRequest(BaseModel):
    type: Literal["manual_entry"]
    product_name: str
    brand_name: str | None = None

    def to_event(self) -> ev.Event:
        return ev.ManualEntrySubmitted(self.product_name, self.brand_name)


class RetryRequest(BaseModel):
    type: Literal["retry"]

    def to_event(self) -> ev.Event:
        return ev.Retry()


class RetryScanRequest(BaseModel):
    type: Literal["retry_scan"]

    def to_event(self) -> ev.Event:
        return ev.RetryScan()


class ScanAnotherRequest(BaseModel):
    type: Literal["scan_another"]

    def to_event(self) -> ev.Event:
        return ev.ScanAnother()


class CancelRequest(BaseModel):
    type: Literal["cancel"]

    def to_event(self) -> ev.Event:
        return ev.Cancel()


ScannerEventRequest = Annotated[
    OpenScannerRequest
    | RequestPermissionRequest
    | OpenSettingsRequest
    | PermissionAnswerRequest
    | EnterPluRequest
    | SelectLocationRequest
    | CaptureExpirationRequest
    | SkipRequest
    | ApproveRequest
    | FlagRequest
    | ManualEntryRequest
    | RetryRequest
    | RetryScanRequest
    | ScanAnotherRequest
    | CancelRequest,
    Field(discriminator="type"),
]


class DetectedCodePayload(BaseModel):
    """Code reported by the camera for one frame."""

    type: str = "unknown"
    value: str


class FrameRequest(BaseModel):
    """Detections from a single camera frame."""

    codes: list[DetectedCodePayload] = Field(default_factory=list)
