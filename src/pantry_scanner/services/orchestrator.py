"""Interpreter that drives the scan workflow machine.

``ScanOrchestrator`` owns the single ``MachineState``. Events are applied one
at a time and to completion; the commands a transition returns are executed
here. Synchronous commands (checkpoints, local finalization) run inline and
network-bearing ones run as asyncio tasks that dispatch their normalized
result back as an event.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

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
from pantry_scanner.domain.ingestion import (
    BarcodeAccepted,
    BarcodeNotFound,
    BarcodeOutcome,
    ExpirationAccepted,
    ExpirationOutcome,
    IngestionFailed,
    PluMatched,
    PluNotFound,
    PluOutcome,
)
from pantry_scanner.domain.scanner import (
    CompletedScan,
    ErrorInfo,
    ExpirationInfo,
    PermissionStatus,
    Step,
)
from pantry_scanner.domain.view import ScannerView
from pantry_scanner.services.detection import CodeDetectionSource, DetectedCode
from pantry_scanner.services.expiration import ExpirationReader
from pantry_scanner.services.ingestion import IngestionService, classify_exception
from pantry_scanner.services.locations import LocationService
from pantry_scanner.services.machine import MachineState, transition
from pantry_scanner.services.permissions import PermissionGate
from pantry_scanner.services.persistence import CheckpointService
from pantry_scanner.services.review import InventoryRepository
from pantry_scanner.services.view import project_view

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class ScanOrchestrator:
    """Owns the machine state and executes the commands it emits."""

    permissions: PermissionGate
    detection: CodeDetectionSource
    locations: LocationService
    ingestion: IngestionService
    expiration_reader: ExpirationReader
    checkpoints: CheckpointService
    inventory: InventoryRepository
    history_limit: int = 20
    flag_timeout_seconds: float = 10.0
    clock: Callable[[], datetime] = _utcnow
    state: MachineState = field(default_factory=MachineState)
    _history: deque[CompletedScan] = field(init=False, repr=False)
    _followups: deque[ev.Event] = field(default_factory=deque, init=False, repr=False)
    _tasks: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._history = deque(maxlen=self.history_limit)

    def dispatch(self, event: ev.Event) -> bool:
        """Apply an event and any follow-ups it triggers; return acceptance."""
        accepted = self._apply(event)
        while self._followups:
            self._apply(self._followups.popleft())
        return accepted

    def boot(self) -> bool:
        """Resume a checkpointed scan, if one is still valid."""
        try:
            snapshot = self.checkpoints.load_resumable(self.clock())
        except Exception:
            _logger.exception("Discarding unreadable scan checkpoint")
            self._clear_checkpoint()
            return False
        if snapshot is None:
            return False
        _logger.info("Resuming scan %s at %s", snapshot.barcode, snapshot.step)
        return self.dispatch(ev.SnapshotRestored(snapshot))

    def submit_frame(self, codes: Sequence[DetectedCode]) -> bool:
        """Offer a camera frame; frames are dropped unless scanning is idle."""
        if self.state.step is not Step.SCANNING or self.state.session is not None:
            return False
        return self.detection.submit(codes)

    async def run_detection(self) -> None:
        """Consume accepted detections until cancelled."""
        while True:
            event = await self.detection.next_event()
            self.dispatch(event)

    async def capture_expiration_photo(self, image_bytes: bytes) -> bool:
        """Run OCR on a package photo and feed the result to the machine."""
        session = self.state.session
        if self.state.step is not Step.CAPTURING_EXPIRATION or session is None:
            return False
        try:
            expiration = await self.expiration_reader.read(image_bytes)
        except Exception:
            _logger.exception("Expiration OCR failed for %s", session.barcode)
            expiration = ExpirationInfo(date=None)
        current = self.state.session
        if current is None or current.idempotency_key != session.idempotency_key:
            _logger.info("Discarding OCR result for abandoned scan %s", session.barcode)
            return False
        return self.dispatch(ev.ExpirationCaptured(expiration))

    def view(self) -> ScannerView:
        return project_view(self.state)

    def history(self) -> list[CompletedScan]:
        """Return completed scans, newest first."""
        return list(self._history)

    async def drain(self) -> None:
        """Wait until no command task is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.detection.close()

    def _apply(self, event: ev.Event) -> bool:
        previous = self.state
        result = transition(previous, event, self.clock())
        if not result.accepted:
            _logger.debug("Ignored %s in %s", type(event).__name__, previous.step)
            return False
        self.state = result.state
        completed = result.state.completed
        if (
            result.state.step is Step.DONE
            and previous.step is not Step.DONE
            and completed is not None
        ):
            self._record(completed)
        orphaned = previous.session.pending_item_id if previous.session else None
        if isinstance(event, ev.Cancel) and orphaned:
            _logger.warning("Cancelled scan leaves pending item %s inactive", orphaned)
        if result.state.step is not previous.step:
            _logger.debug(
                "Scanner %s -> %s on %s",
                previous.step,
                result.state.step,
                type(event).__name__,
            )
        for command in result.commands:
            self._execute(command)
        return True

    def _execute(self, command: Command) -> None:  # noqa: PLR0911
        if isinstance(command, Checkpoint):
            self._checkpoint(command)
            return
        if isinstance(command, ClearCheckpoint):
            self._clear_checkpoint()
            return
        if isinstance(command, Finalize):
            self._followups.append(
                ev.FinalizeCompleted(command.request_id, command.completed)
            )
            return
        if isinstance(command, RequestPermission):
            self._spawn(self._request_permission())
            return
        if isinstance(command, OpenSettings):
            self._spawn(self._open_settings())
            return
        if isinstance(command, LoadLocations):
            self._spawn(self._load_locations(command))
            return
        if isinstance(command, LookupPlu):
            self._spawn(self._lookup_plu(command))
            return
        if isinstance(command, SubmitBarcode):
            self._spawn(self._submit_barcode(command))
            return
        if isinstance(command, SubmitExpiration):
            self._spawn(self._submit_expiration(command))
            return
        if isinstance(command, FlagItem):
            self._spawn(self._flag_item(command))
            return
        raise ValueError(f"Unsupported command {command!r}")

    def _record(self, completed: CompletedScan) -> None:
        self._history.appendleft(completed)
        _logger.info(
            "Scan %s completed as item %s (flagged=%s)",
            completed.barcode,
            completed.item_id,
            completed.flagged,
        )

    def _spawn(self, coroutine: Coroutine[object, object, None]) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _checkpoint(self, command: Checkpoint) -> None:
        try:
            self.checkpoints.save(command.step, command.session, self.clock())
        except Exception:
            _logger.exception("Failed to checkpoint scan at %s", command.step)

    def _clear_checkpoint(self) -> None:
        try:
            self.checkpoints.clear()
        except Exception:
            _logger.exception("Failed to clear scan checkpoint")

    async def _request_permission(self) -> None:
        try:
            status = await self.permissions.request()
        except Exception:
            _logger.exception("Camera permission request failed")
            status = PermissionStatus.PENDING
        self.dispatch(ev.PermissionResolved(status))

    async def _open_settings(self) -> None:
        try:
            await self.permissions.open_settings()
        except Exception:
            _logger.exception("Failed to open system settings")

    async def _load_locations(self, command: LoadLocations) -> None:
        try:
            locations = await asyncio.to_thread(self.locations.load)
        except Exception as exc:
            _logger.exception("Failed to load storage locations")
            self.dispatch(ev.LocationsFailed(command.request_id, classify_exception(exc)))
            return
        self.dispatch(ev.LocationsLoaded(command.request_id, locations))

    async def _lookup_plu(self, command: LookupPlu) -> None:
        try:
            outcome = await self.ingestion.lookup_plu(command.code)
        except Exception as exc:
            _logger.exception("PLU lookup crashed for %s", command.code)
            outcome = IngestionFailed(error=classify_exception(exc), attempts=1)
        self.dispatch(_plu_event(command.request_id, outcome))

    async def _submit_barcode(self, command: SubmitBarcode) -> None:
        try:
            outcome = await self.ingestion.submit_barcode(
                barcode=command.barcode,
                storage_location_id=command.storage_location_id,
                idempotency_key=command.idempotency_key,
                manual_product_name=command.manual_product_name,
                manual_brand_name=command.manual_brand_name,
            )
        except Exception as exc:
            _logger.exception("Step 1 crashed for %s", command.barcode)
            outcome = IngestionFailed(error=classify_exception(exc), attempts=1)
        self.dispatch(_barcode_event(command.request_id, outcome))

    async def _submit_expiration(self, command: SubmitExpiration) -> None:
        try:
            outcome = await self.ingestion.submit_expiration(
                command.pending_item_id, command.expiration
            )
        except Exception as exc:
            _logger.exception("Step 2 crashed for %s", command.pending_item_id)
            outcome = IngestionFailed(error=classify_exception(exc), attempts=1)
        self.dispatch(_expiration_event(command.request_id, outcome))

    async def _flag_item(self, command: FlagItem) -> None:
        error: ErrorInfo | None = None
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self.inventory.flag_item,
                    command.pending_item_id,
                    command.reason,
                    command.notes,
                ),
                timeout=self.flag_timeout_seconds,
            )
        except Exception as exc:
            error = classify_exception(exc)
            _logger.warning(
                "Flagging item %s failed (%s): %s",
                command.pending_item_id,
                error.kind,
                error.message,
            )
        self.dispatch(ev.FlagSettled(command.request_id, error))


def _plu_event(request_id: int, outcome: PluOutcome) -> ev.Event:
    if isinstance(outcome, PluMatched):
        return ev.PluLookupSucceeded(request_id, outcome.product_name, outcome.fdc_id)
    if isinstance(outcome, PluNotFound):
        return ev.PluLookupNotFound(request_id, outcome.message)
    return ev.PluLookupFailed(request_id, outcome.error, outcome.attempts)


def _barcode_event(request_id: int, outcome: BarcodeOutcome) -> ev.Event:
    if isinstance(outcome, BarcodeAccepted):
        return ev.Step1Succeeded(
            request_id=request_id,
            item_id=outcome.item_id,
            product=outcome.product,
            suggested_category=outcome.suggested_category,
            confidence_score=outcome.confidence_score,
            attempts=outcome.attempts,
        )
    if isinstance(outcome, BarcodeNotFound):
        return ev.Step1NotFound(request_id, outcome.message, outcome.attempts)
    return ev.Step1Failed(request_id, outcome.error, outcome.attempts)


def _expiration_event(request_id: int, outcome: ExpirationOutcome) -> ev.Event:
    if isinstance(outcome, ExpirationAccepted):
        return ev.Step2Succeeded(request_id, outcome.ocr_results, outcome.attempts)
    return ev.Step2Failed(request_id, outcome.error, outcome.attempts)

