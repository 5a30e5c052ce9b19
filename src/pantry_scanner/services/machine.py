"""Pure transition function for the scan workflow.

The machine never performs I/O. ``transition`` takes the current
``MachineState`` and one event and returns the next state together with the
commands the interpreter must execute. Network results come back as events
tagged with the request id that produced them; a result whose id does not
match ``MachineState.in_flight`` is stale and ignored.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import uuid4

from pantry_scanner.domain import events as ev
from pantry_scanner.domain.commands import (
    Checkpoint,
    ClearCheckpoint,
    Command,
    Finalize,
    FlagItem,
    LoadLocations,
    LookupPlu,
    OpenSettings,
    RequestPermission,
    SubmitBarcode,
    SubmitExpiration,
)
from pantry_scanner.domain.scanner import (
    CodeType,
    CompletedScan,
    ErrorInfo,
    ErrorKind,
    ExpirationInfo,
    PermissionStatus,
    Phase,
    Session,
    Step,
    StorageLocation,
)
from pantry_scanner.services.persistence import resume_problem, session_from_snapshot
from pantry_scanner.services.plu import normalize_plu_code
from pantry_scanner.services.review import build_review_record, invalid_corrections

MIN_BARCODE_LENGTH = 8

_RESULT_EVENTS = (
    ev.PluLookupSucceeded,
    ev.PluLookupNotFound,
    ev.PluLookupFailed,
    ev.LocationsLoaded,
    ev.LocationsFailed,
    ev.Step1Succeeded,
    ev.Step1NotFound,
    ev.Step1Failed,
    ev.Step2Succeeded,
    ev.Step2Failed,
    ev.FlagSettled,
    ev.FinalizeCompleted,
)


@dataclass(frozen=True)
class MachineState:
    """Complete state of the scan workflow."""

    step: Step = Step.IDLE
    session: Session | None = None
    permission: PermissionStatus = PermissionStatus.UNKNOWN
    locations: tuple[StorageLocation, ...] = ()
    last_error: ErrorInfo | None = None
    error_origin: Phase | None = None
    in_flight: int | None = None
    next_request_id: int = 1
    completed: CompletedScan | None = None

    @property
    def error(self) -> ErrorInfo | None:
        """The error currently shown to the user, if any."""
        if self.session is not None and self.session.last_error is not None:
            return self.session.last_error
        return self.last_error


@dataclass(frozen=True)
class Transition:
    """Result of applying one event."""

    state: MachineState
    commands: tuple[Command, ...] = ()
    accepted: bool = True


def transition(state: MachineState, event: ev.Event, now: datetime) -> Transition:
    """Apply an event to the machine and return the next state."""
    if isinstance(event, _RESULT_EVENTS) and event.request_id != state.in_flight:
        return _ignored(state)
    if isinstance(event, ev.Cancel):
        return _cancel(state)
    handler = _HANDLERS.get(state.step)
    if handler is None:
        return _ignored(state)
    result = handler(state, event, now)
    return result if result is not None else _ignored(state)


def available_actions(state: MachineState) -> tuple[str, ...]:  # noqa: PLR0911
    """Return the user actions valid in the current state."""
    step = state.step
    if step is Step.IDLE:
        return ("open_scanner",)
    if step is Step.AWAITING_PERMISSION:
        if state.permission is PermissionStatus.DENIED:
            return ("request_permission", "open_settings", "cancel")
        return ("request_permission", "cancel")
    if step is Step.SCANNING:
        return ("enter_plu", "cancel")
    if step is Step.CHOOSING_LOCATION:
        if state.locations:
            return ("select_location", "cancel")
        return ("cancel",)
    if step is Step.PRODUCT_NOT_FOUND:
        return ("manual_entry", "retry_scan", "cancel")
    if step is Step.CAPTURING_EXPIRATION:
        return ("capture_expiration", "skip", "cancel")
    if step is Step.REVIEWING:
        return ("approve", "flag", "cancel")
    if step is Step.DONE:
        return ("scan_another", "cancel")
    if step is Step.ERROR:
        actions: list[str] = []
        if _can_retry(state):
            actions.append("retry")
        if state.error_origin is Phase.STEP2:
            actions.append("skip")
        actions.append("cancel")
        return tuple(actions)
    return ("cancel",)


def _ignored(state: MachineState) -> Transition:
    return Transition(state=state, accepted=False)


def _issue(state: MachineState, **changes: object) -> tuple[MachineState, int]:
    """Reserve a request id and mark it as the single in-flight call."""
    request_id = state.next_request_id
    updated = replace(
        state, in_flight=request_id, next_request_id=request_id + 1, **changes
    )
    return updated, request_id


def _with_error(session: Session, error: ErrorInfo | None) -> Session:
    return replace(session, last_error=error)


def _count_retries(session: Session, phase: Phase, extra: int) -> Session:
    if extra <= 0:
        return session
    counts = dict(session.retry_counts)
    counts[phase] = counts.get(phase, 0) + extra
    return replace(session, retry_counts=counts)


def _new_session(barcode: str, code_type: CodeType, now: datetime) -> Session:
    return Session(
        barcode=barcode,
        code_type=code_type,
        idempotency_key=uuid4().hex,
        started_at=now,
    )


def _cancel(state: MachineState) -> Transition:
    if state.step is Step.IDLE:
        return _ignored(state)
    return Transition(
        state=MachineState(
            permission=state.permission,
            next_request_id=state.next_request_id,
        ),
        commands=(ClearCheckpoint(),),
    )


def _start_location_choice(state: MachineState, session: Session) -> Transition:
    updated, request_id = _issue(
        state,
        step=Step.CHOOSING_LOCATION,
        session=session,
        locations=(),
        last_error=None,
        error_origin=None,
    )
    return Transition(state=updated, commands=(LoadLocations(request_id),))


def _submit_step1(state: MachineState, session: Session) -> Transition:
    updated, request_id = _issue(
        state,
        step=Step.SUBMITTING_STEP1,
        session=_with_error(session, None),
        last_error=None,
        error_origin=None,
    )
    return Transition(
        state=updated,
        commands=(
            Checkpoint(Step.SUBMITTING_STEP1, updated.session),
            SubmitBarcode(
                request_id=request_id,
                barcode=session.barcode,
                storage_location_id=session.storage_location_id or "",
                idempotency_key=session.idempotency_key,
                manual_product_name=session.manual_product_name,
                manual_brand_name=session.manual_brand_name,
            ),
        ),
    )


def _submit_step2(
    state: MachineState, session: Session, expiration: ExpirationInfo
) -> Transition:
    drafted = replace(session, pending_expiration=expiration, last_error=None)
    updated, request_id = _issue(
        state,
        step=Step.SUBMITTING_STEP2,
        session=drafted,
        error_origin=None,
    )
    return Transition(
        state=updated,
        commands=(
            SubmitExpiration(
                request_id=request_id,
                pending_item_id=session.pending_item_id or "",
                expiration=expiration,
            ),
        ),
    )


def _lookup_plu(state: MachineState, session: Session) -> Transition:
    updated, request_id = _issue(
        state,
        step=Step.LOOKING_UP_PLU,
        session=_with_error(session, None),
        last_error=None,
        error_origin=None,
    )
    return Transition(
        state=updated, commands=(LookupPlu(request_id=request_id, code=session.barcode),)
    )


def _completed_scan(
    session: Session,
    now: datetime,
    *,
    flagged: bool,
    flag_error: ErrorInfo | None = None,
) -> CompletedScan:
    return CompletedScan(
        item_id=session.pending_item_id or "",
        barcode=session.barcode,
        record=build_review_record(session),
        flagged=flagged,
        completed_at=now,
        flag_error=flag_error,
    )


def _finalize(state: MachineState, session: Session, now: datetime) -> Transition:
    updated, request_id = _issue(
        state, step=Step.FINALIZING, session=_with_error(session, None)
    )
    return Transition(
        state=updated,
        commands=(
            Checkpoint(Step.FINALIZING, updated.session),
            Finalize(
                request_id=request_id,
                completed=_completed_scan(session, now, flagged=False),
            ),
        ),
    )


def _flag(state: MachineState, session: Session) -> Transition:
    updated, request_id = _issue(
        state, step=Step.FLAGGING, session=_with_error(session, None)
    )
    return Transition(
        state=updated,
        commands=(
            Checkpoint(Step.FLAGGING, updated.session),
            FlagItem(
                request_id=request_id,
                pending_item_id=session.pending_item_id or "",
                reason=session.flag_reason or "",
                notes=session.flag_notes,
            ),
        ),
    )


def _enter_error(
    state: MachineState, session: Session, error: ErrorInfo, origin: Phase
) -> Transition:
    return Transition(
        state=replace(
            state,
            step=Step.ERROR,
            session=_with_error(session, error),
            error_origin=origin,
            in_flight=None,
        )
    )


def _input_error(state: MachineState, message: str) -> Transition:
    error = ErrorInfo(kind=ErrorKind.INVALID_INPUT, message=message)
    if state.session is None:
        return Transition(state=replace(state, last_error=error))
    return Transition(state=replace(state, session=_with_error(state.session, error)))


def _can_retry(state: MachineState) -> bool:
    if state.error_origin in {Phase.STEP2, Phase.LOCATIONS}:
        return True
    error = state.error
    return error is None or error.retryable


# -- per-step handlers ------------------------------------------------------


def _on_idle(state: MachineState, event: ev.Event, now: datetime) -> Transition | None:
    if isinstance(event, ev.ScannerOpened):
        if state.permission is PermissionStatus.GRANTED:
            return Transition(
                state=replace(state, step=Step.SCANNING, last_error=None, completed=None)
            )
        return Transition(
            state=replace(
                state, step=Step.AWAITING_PERMISSION, last_error=None, completed=None
            ),
            commands=(RequestPermission(),),
        )
    if isinstance(event, ev.SnapshotRestored):
        return _restore(state, event, now)
    return None


def _restore(
    state: MachineState, event: ev.SnapshotRestored, now: datetime
) -> Transition:
    snapshot = event.snapshot
    if resume_problem(snapshot) is not None:
        return Transition(state=state, commands=(ClearCheckpoint(),))
    session = session_from_snapshot(snapshot)
    step = Step(snapshot.step)
    base = replace(state, completed=None, last_error=None, error_origin=None)
    # The snapshot already records this step, so only the calls are re-issued.
    if step is Step.SUBMITTING_STEP1:
        return _without_checkpoint(_submit_step1(base, session))
    if step in {Step.CAPTURING_EXPIRATION, Step.REVIEWING}:
        return Transition(state=replace(base, step=step, session=session))
    if step is Step.FINALIZING:
        return _without_checkpoint(_finalize(base, session, now))
    return _without_checkpoint(_flag(base, session))


def _without_checkpoint(result: Transition) -> Transition:
    commands = tuple(c for c in result.commands if not isinstance(c, Checkpoint))
    return replace(result, commands=commands)


def _on_awaiting_permission(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    if isinstance(event, ev.PermissionResolved):
        if event.status is PermissionStatus.GRANTED:
            return Transition(
                state=replace(
                    state,
                    step=Step.SCANNING,
                    permission=PermissionStatus.GRANTED,
                    last_error=None,
                )
            )
        if event.status is PermissionStatus.DENIED:
            return Transition(
                state=replace(
                    state,
                    permission=PermissionStatus.DENIED,
                    last_error=ErrorInfo(
                        kind=ErrorKind.PERMISSION_DENIED,
                        message="Camera access denied",
                    ),
                )
            )
        return Transition(state=replace(state, permission=event.status))
    if isinstance(event, ev.PermissionRequested):
        return Transition(state=state, commands=(RequestPermission(),))
    if isinstance(event, ev.SettingsRequested):
        return Transition(state=state, commands=(OpenSettings(),))
    return None


def _on_scanning(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    if state.session is not None:
        return None
    if isinstance(event, ev.CodeDetected):
        value = event.value.strip()
        if len(value) < MIN_BARCODE_LENGTH:
            return None
        return _start_location_choice(state, _new_session(value, event.code_type, now))
    if isinstance(event, ev.PluEntered):
        code = normalize_plu_code(event.code)
        if code is None:
            return Transition(
                state=replace(
                    state,
                    last_error=ErrorInfo(
                        kind=ErrorKind.INVALID_CODE,
                        message="PLU code must be 4 or 5 digits",
                    ),
                )
            )
        return _lookup_plu(state, _new_session(code, CodeType.PLU, now))
    return None


def _on_looking_up_plu(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.PluLookupSucceeded):
        named = replace(session, manual_product_name=event.product_name)
        return _start_location_choice(state, named)
    if isinstance(event, ev.PluLookupNotFound):
        return Transition(
            state=replace(
                state,
                step=Step.PRODUCT_NOT_FOUND,
                in_flight=None,
                session=_with_error(
                    session, ErrorInfo(kind=ErrorKind.NOT_FOUND, message=event.message)
                ),
            )
        )
    if isinstance(event, ev.PluLookupFailed):
        counted = _count_retries(session, Phase.PLU, event.attempts - 1)
        return _enter_error(state, counted, event.error, Phase.PLU)
    return None


def _on_choosing_location(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.LocationsLoaded):
        return Transition(
            state=replace(state, locations=event.locations, in_flight=None)
        )
    if isinstance(event, ev.LocationsFailed):
        return _enter_error(state, session, event.error, Phase.LOCATIONS)
    if isinstance(event, ev.LocationSelected):
        known = {location.id for location in state.locations}
        if event.location_id not in known:
            return _input_error(state, f"Unknown storage location {event.location_id}")
        chosen = session
        if chosen.storage_location_id is None:
            chosen = replace(chosen, storage_location_id=event.location_id)
        return _submit_step1(state, chosen)
    return None


def _on_submitting_step1(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.Step1Succeeded):
        accepted = replace(
            _count_retries(session, Phase.STEP1, event.attempts - 1),
            pending_item_id=session.pending_item_id or event.item_id,
            product=event.product,
            suggested_category=event.suggested_category,
            confidence_score=event.confidence_score,
            last_error=None,
        )
        updated = replace(
            state, step=Step.CAPTURING_EXPIRATION, session=accepted, in_flight=None
        )
        return Transition(
            state=updated,
            commands=(Checkpoint(Step.CAPTURING_EXPIRATION, accepted),),
        )
    if isinstance(event, ev.Step1NotFound):
        missing = _with_error(
            _count_retries(session, Phase.STEP1, event.attempts - 1),
            ErrorInfo(kind=ErrorKind.NOT_FOUND, message=event.message),
        )
        return Transition(
            state=replace(
                state, step=Step.PRODUCT_NOT_FOUND, session=missing, in_flight=None
            )
        )
    if isinstance(event, ev.Step1Failed):
        counted = _count_retries(session, Phase.STEP1, event.attempts - 1)
        return _enter_error(state, counted, event.error, Phase.STEP1)
    return None


def _on_product_not_found(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.RetryScan | ev.Retry):
        return Transition(
            state=replace(
                state,
                step=Step.SCANNING,
                session=None,
                locations=(),
                in_flight=None,
                last_error=None,
                error_origin=None,
            ),
            commands=(ClearCheckpoint(),),
        )
    if isinstance(event, ev.ManualEntrySubmitted):
        name = event.product_name.strip()
        if not name:
            return _input_error(state, "Product name is required")
        brand = event.brand_name.strip() if event.brand_name else None
        manual = replace(
            session,
            manual_product_name=name,
            manual_brand_name=brand or None,
            idempotency_key=uuid4().hex,
            last_error=None,
        )
        if manual.storage_location_id is None:
            return _start_location_choice(state, manual)
        return _submit_step1(state, manual)
    return None


def _on_capturing_expiration(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.ExpirationCaptured):
        expiration = event.expiration
        if expiration.date is None and not expiration.skipped:
            return Transition(
                state=replace(
                    state,
                    session=_with_error(
                        session,
                        ErrorInfo(
                            kind=ErrorKind.NO_USABLE_DATE,
                            message="No expiration date found in the photo",
                        ),
                    ),
                )
            )
        return _submit_step2(state, session, expiration)
    if isinstance(event, ev.ExpirationSkipped | ev.Skip):
        return _submit_step2(state, session, ExpirationInfo.skip())
    return None


def _on_submitting_step2(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.Step2Succeeded):
        resolved = replace(
            _count_retries(session, Phase.STEP2, event.attempts - 1),
            expiration=session.pending_expiration or ExpirationInfo.skip(),
            pending_expiration=None,
            last_error=None,
        )
        updated = replace(state, step=Step.REVIEWING, session=resolved, in_flight=None)
        return Transition(
            state=updated, commands=(Checkpoint(Step.REVIEWING, resolved),)
        )
    if isinstance(event, ev.Step2Failed):
        counted = _count_retries(session, Phase.STEP2, event.attempts - 1)
        return _enter_error(
            state, replace(counted, pending_expiration=None), event.error, Phase.STEP2
        )
    return None


def _on_reviewing(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None:
        return None
    if isinstance(event, ev.ReviewApproved):
        invalid = invalid_corrections(event.corrections)
        if invalid:
            return _input_error(state, f"Invalid corrections: {', '.join(invalid)}")
        corrected = replace(session, corrections=dict(event.corrections))
        return _finalize(state, corrected, now)
    if isinstance(event, ev.ReviewFlagged):
        reason = event.reason.strip()
        if not reason:
            return _input_error(state, "A reason is required to flag an item")
        flagged = replace(session, flag_reason=reason, flag_notes=event.notes)
        return _flag(state, flagged)
    return None


def _on_flagging(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    session = state.session
    if session is None or not isinstance(event, ev.FlagSettled):
        return None
    completed = _completed_scan(
        session, now, flagged=True, flag_error=event.error
    )
    return Transition(
        state=replace(
            state,
            step=Step.DONE,
            session=None,
            locations=(),
            in_flight=None,
            completed=completed,
        ),
        commands=(ClearCheckpoint(),),
    )


def _on_finalizing(
    state: MachineState, event: ev.Event, now: datetime
) -> Transition | None:
    if not isinstance(event, ev.FinalizeCompleted):
        return None
    return Transition(
        state=replace(
            state,
            step=Step.DONE,
            session=None,
            locations=(),
            in_flight=None,
            completed=event.completed,
        ),
        commands=(ClearCheckpoint(),),
    )


def _on_done(state: MachineState, event: ev.Event, now: datetime) -> Transition | None:
    if not isinstance(event, ev.ScanAnother):
        return None
    if state.permission is PermissionStatus.GRANTED:
        return Transition(
            state=replace(state, step=Step.SCANNING, completed=None, last_error=None)
        )
    return Transition(
        state=replace(
            state, step=Step.AWAITING_PERMISSION, completed=None, last_error=None
        ),
        commands=(RequestPermission(),),
    )


def _on_error(state: MachineState, event: ev.Event, now: datetime) -> Transition | None:
    session = state.session
    if session is None:
        return None
    origin = state.error_origin
    if isinstance(event, ev.Retry):
        if not _can_retry(state):
            return None
        retried = _count_retries(_with_error(session, None), origin or Phase.STEP1, 1)
        if origin is Phase.LOCATIONS:
            return _start_location_choice(state, retried)
        if origin is Phase.PLU:
            return _lookup_plu(state, retried)
        if origin is Phase.STEP2:
            return Transition(
                state=replace(
                    state,
                    step=Step.CAPTURING_EXPIRATION,
                    session=retried,
                    error_origin=None,
                )
            )
        return _submit_step1(state, retried)
    if isinstance(event, ev.Skip) and origin is Phase.STEP2:
        return _submit_step2(state, session, ExpirationInfo.skip())
    return None


_HANDLERS: dict[
    Step, Callable[[MachineState, ev.Event, datetime], Transition | None]
] = {
    Step.IDLE: _on_idle,
    Step.AWAITING_PERMISSION: _on_awaiting_permission,
    Step.SCANNING: _on_scanning,
    Step.LOOKING_UP_PLU: _on_looking_up_plu,
    Step.CHOOSING_LOCATION: _on_choosing_location,
    Step.SUBMITTING_STEP1: _on_submitting_step1,
    Step.PRODUCT_NOT_FOUND: _on_product_not_found,
    Step.CAPTURING_EXPIRATION: _on_capturing_expiration,
    Step.SUBMITTING_STEP2: _on_submitting_step2,
    Step.REVIEWING: _on_reviewing,
    Step.FLAGGING: _on_flagging,
    Step.FINALIZING: _on_finalizing,
    Step.DONE: _on_done,
    Step.ERROR: _on_error,
}
