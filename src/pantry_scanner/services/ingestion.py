"""Two-phase ingestion protocol with retry and outcome classification."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx
from pydantic import ValidationError

from pantry_scanner.domain.ingestion import (
    BarcodeAccepted,
    BarcodeNotFound,
    BarcodeOutcome,
    BarcodeResponse,
    ExpirationAccepted,
    ExpirationOutcome,
    ExpirationResponse,
    IngestionFailed,
    PluMatched,
    PluNotFound,
    PluOutcome,
    PluResponse,
)
from pantry_scanner.domain.scanner import (
    ErrorInfo,
    ErrorKind,
    ExpirationInfo,
    ProductSnapshot,
)
from pantry_scanner.services.plu import normalize_plu_code

_logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {408, 425, 429}


class IngestionTransport(Protocol):
    """Request/response channel to the ingestion edge functions."""

    async def invoke(
        self, function_name: str, body: dict[str, object], timeout: float
    ) -> dict[str, object]:
        """Invoke a function and return its JSON body; raise on transport errors."""


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff for transport failures."""

    attempts: int = 2
    delay_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 8.0

    def delay_for(self, retry_number: int) -> float:
        """Return the delay before the given retry (1-based)."""
        delay = self.delay_seconds * self.backoff_multiplier ** (retry_number - 1)
        return min(delay, self.max_delay_seconds)


class _RetriesExhaustedError(Exception):
    def __init__(self, error: ErrorInfo, attempts: int) -> None:
        super().__init__(error.message)
        self.error = error
        self.attempts = attempts


@dataclass
class IngestionService:
    """Client for the scanner-ingest and lookup-plu functions."""

    transport: IngestionTransport
    retry_policy: RetryPolicy
    ingest_function: str = "scanner-ingest"
    plu_function: str = "lookup-plu"
    step1_timeout_seconds: float = 20.0
    step2_timeout_seconds: float = 10.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def submit_barcode(  # noqa: PLR0913
        self,
        barcode: str,
        storage_location_id: str,
        idempotency_key: str,
        manual_product_name: str | None = None,
        manual_brand_name: str | None = None,
    ) -> BarcodeOutcome:
        """Run phase 1: create a pending inventory item for the code."""
        if manual_product_name is not None:
            body: dict[str, object] = {
                "workflow": "manual",
                "product_name": manual_product_name,
                "brand_name": manual_brand_name,
                "barcode": barcode,
                "storage_location_id": storage_location_id,
                "idempotency_key": idempotency_key,
            }
        else:
            body = {
                "workflow": "two-step",
                "step": 1,
                "barcode": barcode,
                "storage_location_id": storage_location_id,
                "idempotency_key": idempotency_key,
            }
        try:
            payload, attempts = await self._call_with_retry(
                self.ingest_function,
                body,
                timeout=self.step1_timeout_seconds,
                action="step1",
            )
        except _RetriesExhaustedError as exc:
            return IngestionFailed(error=exc.error, attempts=exc.attempts)

        try:
            response = BarcodeResponse.model_validate(payload)
        except ValidationError as exc:
            return IngestionFailed(error=_malformed(exc), attempts=attempts)

        if not response.success:
            message = response.error or "Product not found"
            _logger.info("Step 1 rejected barcode %s: %s", barcode, message)
            return BarcodeNotFound(message=message, attempts=attempts)

        item_id = response.item_id or response.scan_id
        if not item_id:
            return IngestionFailed(
                error=ErrorInfo(
                    kind=ErrorKind.UNKNOWN, message="Step 1 response had no item id"
                ),
                attempts=attempts,
            )
        if response.product is not None:
            product = response.product.to_snapshot()
        else:
            product = ProductSnapshot(name=manual_product_name, brand=manual_brand_name)
        return BarcodeAccepted(
            item_id=item_id,
            product=product,
            suggested_category=response.suggested_category,
            confidence_score=response.confidence_score,
            attempts=attempts,
        )

    async def submit_expiration(
        self, pending_item_id: str, expiration: ExpirationInfo
    ) -> ExpirationOutcome:
        """Run phase 2: attach expiration data and activate the item."""
        body: dict[str, object] = {
            "workflow": "two-step",
            "step": 2,
            "scan_id": pending_item_id,
            "ocr_text": expiration.ocr_text,
            "extracted_date": (
                expiration.date.isoformat() if expiration.date else None
            ),
            "confidence": expiration.confidence,
            "processing_time_ms": expiration.processing_time_ms,
        }
        try:
            payload, attempts = await self._call_with_retry(
                self.ingest_function,
                body,
                timeout=self.step2_timeout_seconds,
                action="step2",
            )
        except _RetriesExhaustedError as exc:
            return IngestionFailed(error=exc.error, attempts=exc.attempts)

        try:
            response = ExpirationResponse.model_validate(payload)
        except ValidationError as exc:
            return IngestionFailed(error=_malformed(exc), attempts=attempts)

        if not response.success:
            return IngestionFailed(
                error=ErrorInfo(
                    kind=ErrorKind.UNKNOWN,
                    message=response.error or "Step 2 failed",
                ),
                attempts=attempts,
            )
        return ExpirationAccepted(
            attempts=attempts,
            ocr_results=response.ocr_results or response.item or {},
        )

    async def lookup_plu(self, code: str) -> PluOutcome:
        """Resolve a PLU code; malformed codes never reach the network."""
        normalized = normalize_plu_code(code)
        if normalized is None:
            return IngestionFailed(
                error=ErrorInfo(
                    kind=ErrorKind.INVALID_CODE,
                    message="PLU code must be 4 or 5 digits",
                ),
                attempts=0,
            )
        try:
            payload, attempts = await self._call_with_retry(
                self.plu_function,
                {"pluCode": normalized},
                timeout=self.step1_timeout_seconds,
                action="plu",
            )
        except _RetriesExhaustedError as exc:
            return IngestionFailed(error=exc.error, attempts=exc.attempts)

        try:
            response = PluResponse.model_validate(payload)
        except ValidationError as exc:
            return IngestionFailed(error=_malformed(exc), attempts=attempts)

        if not response.success or not response.matches:
            return PluNotFound(
                message=response.error or f"PLU code {normalized} not found",
                attempts=attempts,
            )
        match = response.matches[0]
        return PluMatched(
            product_name=match.product_name, fdc_id=match.fdc_id, attempts=attempts
        )

    async def _call_with_retry(
        self,
        function_name: str,
        body: dict[str, object],
        *,
        timeout: float,
        action: str,
    ) -> tuple[dict[str, object], int]:
        """Invoke a function, retrying transport failures with backoff."""
        attempt = 0
        while True:
            attempt += 1
            try:
                payload = await self.transport.invoke(function_name, body, timeout)
            except Exception as exc:  # noqa: BLE001
                error = classify_exception(exc)
                retries_left = attempt <= self.retry_policy.attempts
                _logger.warning(
                    "Ingestion %s failed (attempt %s/%s, kind=%s): %s",
                    action,
                    attempt,
                    self.retry_policy.attempts + 1,
                    error.kind,
                    exc,
                )
                if not error.retryable or not retries_left:
                    raise _RetriesExhaustedError(error, attempt) from exc
                await self.sleep(self.retry_policy.delay_for(attempt))
                continue
            return payload, attempt


def classify_exception(exc: Exception) -> ErrorInfo:  # noqa: PLR0911
    """Map a transport exception onto an error kind."""
    if isinstance(exc, httpx.TimeoutException | asyncio.TimeoutError):
        return ErrorInfo(
            kind=ErrorKind.TIMEOUT,
            message=str(exc) or "Request timed out",
            retryable=True,
        )
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        message = _error_message(exc.response) or f"HTTP {status_code}"
        if status_code in {401, 403}:
            return ErrorInfo(kind=ErrorKind.AUTH, message=message)
        if status_code >= 500 or status_code in _RETRYABLE_STATUS_CODES:
            return ErrorInfo(kind=ErrorKind.SERVER, message=message, retryable=True)
        return ErrorInfo(kind=ErrorKind.UNKNOWN, message=message)
    if isinstance(exc, httpx.TransportError | ConnectionError):
        return ErrorInfo(
            kind=ErrorKind.NETWORK,
            message=str(exc) or "Network unavailable",
            retryable=True,
        )
    if isinstance(exc, ValueError):
        return ErrorInfo(kind=ErrorKind.UNKNOWN, message=f"Malformed response: {exc}")
    return ErrorInfo(kind=ErrorKind.UNKNOWN, message=str(exc) or type(exc).__name__)


def _error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str):
            return error
    return None


def _malformed(exc: ValidationError) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.UNKNOWN,
        message=f"Malformed response: {exc.error_count()} validation errors",
    )
