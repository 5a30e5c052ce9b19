import asyncio
from datetime import date

import httpx

from pantry_scanner.domain.ingestion import (
    BarcodeAccepted,
    BarcodeNotFound,
    ExpirationAccepted,
    IngestionFailed,
    PluMatched,
    PluNotFound,
)
from pantry_scanner.domain.scanner import ErrorKind, ExpirationInfo
from pantry_scanner.services.ingestion import (
    IngestionService,
    RetryPolicy,
    classify_exception,
)
from tests.conftest import STEP1_OK, STEP2_OK, FakeIngestionTransport


def _service(
    transport: FakeIngestionTransport, attempts: int = 2
) -> tuple[IngestionService, list[float]]:
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    service = IngestionService(
        transport=transport,
        retry_policy=RetryPolicy(attempts=attempts),
        sleep=record_sleep,
    )
    return service, delays


def _status_error(status_code: int, body: object | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.supabase.co/functions/v1/x")
    response = httpx.Response(status_code, json=body or {}, request=request)
    return httpx.HTTPStatusError("failed", request=request, response=response)


def test_submit_barcode_sends_two_step_body() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", STEP1_OK)
    service, _ = _service(transport)

    outcome = asyncio.run(
        service.submit_barcode(
            barcode="0086395095005",
            storage_location_id="pantry-id",
            idempotency_key="key-1",
        )
    )

    assert isinstance(outcome, BarcodeAccepted)
    assert outcome.item_id == "abc123"
    assert outcome.product.name == "Black Beans"
    assert outcome.product.calories == 110
    assert outcome.suggested_category == "canned"
    assert outcome.attempts == 1
    ((name, body, timeout),) = transport.calls
    assert name == "scanner-ingest"
    assert timeout == 20.0
    assert body == {
        "workflow": "two-step",
        "step": 1,
        "barcode": "0086395095005",
        "storage_location_id": "pantry-id",
        "idempotency_key": "key-1",
    }


def test_submit_barcode_manual_workflow_uses_entered_name() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", {"success": True, "scan_id": "manual-1"})
    service, _ = _service(transport)

    outcome = asyncio.run(
        service.submit_barcode(
            barcode="0000000000017",
            storage_location_id="pantry-id",
            idempotency_key="key-2",
            manual_product_name="Homemade Jam",
            manual_brand_name="Grandma",
        )
    )

    assert isinstance(outcome, BarcodeAccepted)
    assert outcome.item_id == "manual-1"
    assert outcome.product.name == "Homemade Jam"
    assert outcome.product.brand == "Grandma"
    (body,) = transport.bodies("scanner-ingest")
    assert body["workflow"] == "manual"
    assert body["product_name"] == "Homemade Jam"
    assert body["brand_name"] == "Grandma"
    assert "step" not in body


def test_submit_barcode_not_found() -> None:
    transport = FakeIngestionTransport()
    transport.queue(
        "scanner-ingest", {"success": False, "error": "Product not found in database"}
    )
    service, _ = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert outcome == BarcodeNotFound(
        message="Product not found in database", attempts=1
    )


def test_submit_barcode_without_item_id_fails() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", {"success": True})
    service, _ = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.kind is ErrorKind.UNKNOWN


def test_malformed_response_is_not_retried() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", {"item_id": "abc123"})
    service, delays = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.message.startswith("Malformed response")
    assert len(transport.calls) == 1
    assert delays == []


def test_retries_with_exponential_backoff() -> None:
    transport = FakeIngestionTransport()
    transport.queue(
        "scanner-ingest",
        httpx.ConnectError("offline"),
        _status_error(503),
        STEP1_OK,
    )
    service, delays = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert isinstance(outcome, BarcodeAccepted)
    assert outcome.attempts == 3
    assert delays == [0.5, 1.0]
    keys = {body["idempotency_key"] for body in transport.bodies("scanner-ingest")}
    assert keys == {"key"}


def test_gives_up_after_retry_budget() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", *[httpx.ReadTimeout("slow")] * 3)
    service, delays = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.kind is ErrorKind.TIMEOUT
    assert outcome.error.retryable is True
    assert outcome.attempts == 3
    assert delays == [0.5, 1.0]


def test_auth_errors_are_not_retried() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", _status_error(401, {"error": "JWT expired"}))
    service, delays = _service(transport)

    outcome = asyncio.run(service.submit_barcode("12345678", "pantry-id", "key"))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.kind is ErrorKind.AUTH
    assert outcome.error.message == "JWT expired"
    assert outcome.attempts == 1
    assert delays == []


def test_submit_expiration_body_and_outcome() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", STEP2_OK)
    service, _ = _service(transport)
    expiration = ExpirationInfo(
        date=date(2026, 5, 14),
        ocr_text="BEST BEFORE 14 MAY 2026",
        confidence=0.8,
        processing_time_ms=420,
    )

    outcome = asyncio.run(service.submit_expiration("abc123", expiration))

    assert outcome == ExpirationAccepted(attempts=1, ocr_results={"status": "active"})
    ((_, body, timeout),) = transport.calls
    assert timeout == 10.0
    assert body == {
        "workflow": "two-step",
        "step": 2,
        "scan_id": "abc123",
        "ocr_text": "BEST BEFORE 14 MAY 2026",
        "extracted_date": "2026-05-14",
        "confidence": 0.8,
        "processing_time_ms": 420,
    }


def test_submit_expiration_rejected() -> None:
    transport = FakeIngestionTransport()
    transport.queue("scanner-ingest", {"success": False, "error": "Item not pending"})
    service, _ = _service(transport)

    outcome = asyncio.run(service.submit_expiration("abc123", ExpirationInfo.skip()))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.message == "Item not pending"
    assert transport.bodies("scanner-ingest")[0]["extracted_date"] is None


def test_lookup_plu_match() -> None:
    transport = FakeIngestionTransport()
    transport.queue(
        "lookup-plu",
        {
            "success": True,
            "matches": [
                {"product_name": "Banana", "fdc_id": 173944},
                {"product_name": "Plantain"},
            ],
        },
    )
    service, _ = _service(transport)

    outcome = asyncio.run(service.lookup_plu(" 94011 "))

    assert outcome == PluMatched(product_name="Banana", fdc_id=173944, attempts=1)
    assert transport.bodies("lookup-plu") == [{"pluCode": "94011"}]


def test_lookup_plu_without_matches() -> None:
    transport = FakeIngestionTransport()
    transport.queue("lookup-plu", {"success": True, "matches": []})
    service, _ = _service(transport)

    outcome = asyncio.run(service.lookup_plu("4999"))

    assert isinstance(outcome, PluNotFound)
    assert "4999" in outcome.message


def test_lookup_plu_rejects_malformed_code_locally() -> None:
    transport = FakeIngestionTransport()
    service, _ = _service(transport)

    outcome = asyncio.run(service.lookup_plu("12ab"))

    assert isinstance(outcome, IngestionFailed)
    assert outcome.error.kind is ErrorKind.INVALID_CODE
    assert outcome.attempts == 0
    assert transport.calls == []


def test_classify_exception() -> None:
    assert classify_exception(httpx.ReadTimeout("slow")).kind is ErrorKind.TIMEOUT
    assert classify_exception(TimeoutError()).kind is ErrorKind.TIMEOUT
    assert classify_exception(httpx.ConnectError("down")).kind is ErrorKind.NETWORK
    assert classify_exception(_status_error(403)).kind is ErrorKind.AUTH

    throttled = classify_exception(_status_error(429))
    assert throttled.kind is ErrorKind.SERVER
    assert throttled.retryable is True

    bad_request = classify_exception(_status_error(400, {"error": "Missing barcode"}))
    assert bad_request.kind is ErrorKind.UNKNOWN
    assert bad_request.retryable is False
    assert bad_request.message == "Missing barcode"

    assert classify_exception(RuntimeError("boom")).message == "boom"
