"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from pantry_scanner.adapters.client_permission_provider import (
    ClientPermissionProvider,
)
from pantry_scanner.config import Settings
from pantry_scanner.containers import AppContainer
from pantry_scanner.domain.scanner import StorageLocation
from pantry_scanner.services.detection import CodeDetectionSource
from pantry_scanner.services.expiration import ExpirationReader, VisionClient
from pantry_scanner.services.ingestion import (
    IngestionService,
    IngestionTransport,
    RetryPolicy,
)
from pantry_scanner.services.locations import LocationRepository, LocationService
from pantry_scanner.services.orchestrator import ScanOrchestrator
from pantry_scanner.services.permissions import PermissionGate, PermissionProvider
from pantry_scanner.services.persistence import CheckpointService, KeyValueStore
from pantry_scanner.services.review import InventoryRepository

FIXED_NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)

PANTRY = StorageLocation(id="pantry-id", name="Pantry", type="pantry")
FRIDGE = StorageLocation(id="fridge-id", name="Fridge", type="refrigerator")

STEP1_OK = {
    "success": True,
    "item_id": "abc123",
    "product": {"name": "Black Beans", "brand": "Goya", "calories": 110},
    "suggested_category": "canned",
    "confidence_score": 0.92,
}
STEP2_OK = {"success": True, "ocr_results": {"status": "active"}}


@dataclass
class FakeIngestionTransport(IngestionTransport):
    """Scripted transport; queued items are returned or raised in order."""

    responses: dict[str, list[object]] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, object], float]] = field(default_factory=list)
    hold: asyncio.Event | None = None

    def queue(self, function_name: str, *items: object) -> None:
        self.responses.setdefault(function_name, []).extend(items)

    async def invoke(
        self, function_name: str, body: dict[str, object], timeout: float
    ) -> dict[str, object]:
        self.calls.append((function_name, body, timeout))
        if self.hold is not None:
            await self.hold.wait()
        queued = self.responses.get(function_name) or []
        if not queued:
            raise AssertionError(f"No scripted response for {function_name}")
        item = queued.pop(0)
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def bodies(self, function_name: str) -> list[dict[str, object]]:
        return [body for name, body, _ in self.calls if name == function_name]


@dataclass
class FakeVisionClient(VisionClient):
    """Returns a canned expiration extract."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "ocr_text": "BEST BEFORE 2026-05-14",
            "date_text": "2026-05-14",
            "confidence": 0.9,
        }
    )
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_data_url: str,
        schema_name: str,
        schema: dict[str, object],
        prompt: str,
    ) -> dict[str, object]:
        self.calls.append(
            {
                "model": model,
                "image_data_url": image_data_url,
                "schema_name": schema_name,
            }
        )
        if self.error is not None:
            raise self.error
        return self.payload


@dataclass
class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key/value store for tests."""

    items: dict[str, str] = field(default_factory=dict)

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


@dataclass
class InMemoryLocationRepository(LocationRepository):
    """In-memory storage locations for tests."""

    locations: list[StorageLocation] = field(
        default_factory=lambda: [PANTRY, FRIDGE]
    )
    error: Exception | None = None
    calls: int = 0

    def list_locations(self, household_id: str | None) -> list[StorageLocation]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.locations)


@dataclass
class InMemoryInventoryRepository(InventoryRepository):
    """Records review flags."""

    flags: list[tuple[str, str, str | None]] = field(default_factory=list)
    error: Exception | None = None

    def flag_item(self, item_id: str, reason: str, notes: str | None) -> None:
        if self.error is not None:
            raise self.error
        self.flags.append((item_id, reason, notes))


@dataclass
class FakePermissionProvider(PermissionProvider):
    """Answers the permission dialog immediately, or never when None."""

    granted: bool | None = True
    requests: int = 0
    settings_opened: int = 0

    async def request_camera_permission(self) -> bool:
        self.requests += 1
        if self.granted is None:
            await asyncio.Event().wait()
        return bool(self.granted)

    async def open_system_settings(self) -> None:
        self.settings_opened += 1


@dataclass
class ScannerHarness:
    """An orchestrator wired to in-memory collaborators."""

    orchestrator: ScanOrchestrator
    transport: FakeIngestionTransport
    store: InMemoryKeyValueStore
    locations: InMemoryLocationRepository
    inventory: InMemoryInventoryRepository
    permissions: PermissionProvider
    vision: FakeVisionClient
    delays: list[float]
    clock: "SteppingClock"


@dataclass
class SteppingClock:
    """Deterministic clock that can be moved forward."""

    now: datetime = FIXED_NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_harness(  # noqa: PLR0913
    *,
    granted: bool | None = True,
    retry_attempts: int = 2,
    store: InMemoryKeyValueStore | None = None,
    stabilization_delay_seconds: float = 0.0,
    history_limit: int = 20,
    clock: SteppingClock | None = None,
    permission_provider: PermissionProvider | None = None,
    permission_timeout_seconds: float = 0.05,
) -> ScannerHarness:
    """Build an orchestrator wired to in-memory fakes."""
    transport = FakeIngestionTransport()
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    resolved_store = store or InMemoryKeyValueStore()
    locations = InMemoryLocationRepository()
    inventory = InMemoryInventoryRepository()
    permissions = permission_provider or FakePermissionProvider(granted=granted)
    vision = FakeVisionClient()
    resolved_clock = clock or SteppingClock()
    orchestrator = ScanOrchestrator(
        permissions=PermissionGate(
            provider=permissions, timeout_seconds=permission_timeout_seconds
        ),
        detection=CodeDetectionSource(
            stabilization_delay_seconds=stabilization_delay_seconds
        ),
        locations=LocationService(repository=locations),
        ingestion=IngestionService(
            transport=transport,
            retry_policy=RetryPolicy(attempts=retry_attempts),
            sleep=record_sleep,
        ),
        expiration_reader=ExpirationReader(
            client=vision, model="test-model", reasoning_effort=None, store=False
        ),
        checkpoints=CheckpointService(store=resolved_store),
        inventory=inventory,
        history_limit=history_limit,
        flag_timeout_seconds=1.0,
        clock=resolved_clock,
    )
    return ScannerHarness(
        orchestrator=orchestrator,
        transport=transport,
        store=resolved_store,
        locations=locations,
        inventory=inventory,
        permissions=permissions,
        vision=vision,
        delays=delays,
        clock=resolved_clock,
    )


TEST_SUPABASE_KEY = (
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9."
    "eyJyb2xlIjoic2VydmljZV9yb2xlIn0."
    "c2lnbmF0dXJl"
)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_key=TEST_SUPABASE_KEY,
        openai_api_key="openai-key",
        snapshot_path=str(tmp_path / "state.json"),
    )


@pytest.fixture
def harness() -> ScannerHarness:
    return build_harness(
        permission_provider=ClientPermissionProvider(),
        permission_timeout_seconds=5.0,
    )


@pytest.fixture
def container(settings: Settings, harness: ScannerHarness) -> AppContainer:
    orchestrator = harness.orchestrator

    async def close_resources() -> None:
        await orchestrator.close()

    return AppContainer(
        settings=settings,
        permission_provider=harness.permissions,  # type: ignore[arg-type]
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
