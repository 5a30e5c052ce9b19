"""Scanner API endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import TypeAdapter, ValidationError

from pantry_scanner.api.schemas import (
    FrameRequest,
    PermissionAnswerRequest,
    ScannerEventRequest,
)
from pantry_scanner.services.detection import DetectedCode

if TYPE_CHECKING:
    from pantry_scanner.containers import AppContainer

router = APIRouter(prefix="/scanner", tags=["scanner"])

_EVENT_ADAPTER: TypeAdapter[ScannerEventRequest] = TypeAdapter(ScannerEventRequest)


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("/state")
async def scanner_state(request: Request) -> dict[str, object]:
    """Return the current scanner view."""
    container = _container(request)
    return {"state": asdict(container.orchestrator.view())}


@router.post("/events")
async def scanner_event(
    payload: dict[str, object], request: Request
) -> dict[str, object]:
    """Apply a user action to the scan workflow."""
    try:
        action = _EVENT_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc
    container = _container(request)
    if isinstance(action, PermissionAnswerRequest):
        accepted = container.permission_provider.answer(action.granted)
    else:
        accepted = container.orchestrator.dispatch(action.to_event())
    return {"accepted": accepted, "state": asdict(container.orchestrator.view())}


@router.post("/frames")
async def scanner_frame(payload: FrameRequest, request: Request) -> dict[str, object]:
    """Offer one camera frame's detections."""
    container = _container(request)
    codes = [DetectedCode(type=code.type, value=code.value) for code in payload.codes]
    return {"accepted": container.orchestrator.submit_frame(codes)}


@router.post("/expiration/photo")
async def scanner_expiration_photo(request: Request) -> dict[str, object]:
    """Read an expiration date from a raw image body."""
    image_bytes = await request.body()
    if not image_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Image body is empty"
        )
    container = _container(request)
    accepted = await container.orchestrator.capture_expiration_photo(image_bytes)
    return {"accepted": accepted, "state": asdict(container.orchestrator.view())}


@router.get("/history")
async def scanner_history(request: Request, limit: int = 20) -> dict[str, object]:
    """Return recently completed scans, newest first."""
    container = _container(request)
    scans = container.orchestrator.history()[: max(limit, 0)]
    return {"scans": [asdict(scan) for scan in scans]}
