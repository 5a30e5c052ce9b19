"""Projection of machine state onto the client view."""

from dataclasses import asdict, replace

from pantry_scanner.domain.scanner import CompletedScan, ExpirationInfo, Step
from pantry_scanner.domain.view import ErrorView, LocationView, ScannerView
from pantry_scanner.services.machine import MachineState, available_actions
from pantry_scanner.services.review import build_review_record


def project_view(state: MachineState) -> ScannerView:
    """Build the client view; never mutates the state."""
    session = state.session
    error = state.error
    view = ScannerView(
        step=str(state.step),
        permission=str(state.permission),
        actions=list(available_actions(state)),
        locations=[
            LocationView(id=location.id, name=location.name, type=location.type)
            for location in state.locations
        ],
        error=(
            ErrorView(
                kind=str(error.kind),
                message=error.message,
                retryable=error.retryable,
            )
            if error
            else None
        ),
        completed=_completed_view(state.completed) if state.completed else None,
    )
    if session is None:
        return view
    return replace(
        view,
        barcode=session.barcode,
        code_type=str(session.code_type),
        storage_location_id=session.storage_location_id,
        pending_item_id=session.pending_item_id,
        product=asdict(session.product) if session.product else None,
        suggested_category=session.suggested_category,
        confidence_score=session.confidence_score,
        expiration=_expiration_view(session.expiration),
        review_record=(
            build_review_record(session) if state.step is Step.REVIEWING else None
        ),
    )


def _expiration_view(expiration: ExpirationInfo | None) -> dict[str, object] | None:
    if expiration is None:
        return None
    return {
        "date": expiration.date.isoformat() if expiration.date else None,
        "ocr_text": expiration.ocr_text,
        "confidence": expiration.confidence,
        "processing_time_ms": expiration.processing_time_ms,
        "skipped": expiration.skipped,
    }


def _completed_view(completed: CompletedScan) -> dict[str, object]:
    return {
        "item_id": completed.item_id,
        "barcode": completed.barcode,
        "flagged": completed.flagged,
        "flag_error": asdict(completed.flag_error) if completed.flag_error else None,
        "completed_at": completed.completed_at.isoformat(),
        "record": completed.record,
    }
