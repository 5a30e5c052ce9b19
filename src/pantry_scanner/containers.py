"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from pantry_scanner.adapters.client_permission_provider import (
    ClientPermissionProvider,
)
from pantry_scanner.adapters.file_key_value_store import FileKeyValueStore
from pantry_scanner.adapters.openai_vision_client import OpenAIVisionClient
from pantry_scanner.adapters.scanner_ingest_client import HttpxIngestTransport
from pantry_scanner.adapters.supabase_inventory_repository import (
    SupabaseInventoryRepository,
)
from pantry_scanner.adapters.supabase_location_repository import (
    SupabaseLocationRepository,
)
from pantry_scanner.config import Settings
from pantry_scanner.services.detection import CodeDetectionSource
from pantry_scanner.services.expiration import ExpirationReader
from pantry_scanner.services.ingestion import IngestionService, RetryPolicy
from pantry_scanner.services.locations import LocationService
from pantry_scanner.services.orchestrator import ScanOrchestrator
from pantry_scanner.services.permissions import PermissionGate
from pantry_scanner.services.persistence import CheckpointService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    permission_provider: ClientPermissionProvider
    orchestrator: ScanOrchestrator
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_key
    )
    location_repository = SupabaseLocationRepository(supabase_client)
    inventory_repository = SupabaseInventoryRepository(supabase_client)
    ingest_transport = HttpxIngestTransport.create(
        supabase_url=resolved_settings.supabase_url,
        api_key=resolved_settings.supabase_key,
        access_token=resolved_settings.supabase_access_token,
    )
    ingestion_service = IngestionService(
        transport=ingest_transport,
        retry_policy=RetryPolicy(
            attempts=resolved_settings.ingest_retry_attempts,
            delay_seconds=resolved_settings.ingest_retry_delay_seconds,
            backoff_multiplier=resolved_settings.ingest_retry_backoff_multiplier,
            max_delay_seconds=resolved_settings.ingest_retry_max_delay_seconds,
        ),
        ingest_function=resolved_settings.ingest_function_name,
        plu_function=resolved_settings.plu_function_name,
        step1_timeout_seconds=resolved_settings.step1_timeout_seconds,
        step2_timeout_seconds=resolved_settings.step2_timeout_seconds,
    )
    vision_client = OpenAIVisionClient.create(resolved_settings.openai_api_key)
    expiration_reader = ExpirationReader(
        client=vision_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    permission_provider = ClientPermissionProvider()
    checkpoint_service = CheckpointService(
        store=FileKeyValueStore.create(resolved_settings.snapshot_path),
        max_age_seconds=resolved_settings.snapshot_max_age_seconds,
    )
    orchestrator = ScanOrchestrator(
        permissions=PermissionGate(
            provider=permission_provider,
            timeout_seconds=resolved_settings.permission_timeout_seconds,
        ),
        detection=CodeDetectionSource(),
        locations=LocationService(
            repository=location_repository,
            household_id=resolved_settings.household_id,
        ),
        ingestion=ingestion_service,
        expiration_reader=expiration_reader,
        checkpoints=checkpoint_service,
        inventory=inventory_repository,
        history_limit=resolved_settings.history_limit,
        flag_timeout_seconds=resolved_settings.flag_timeout_seconds,
    )

    async def close_resources() -> None:
        await orchestrator.close()
        await ingest_transport.close()
        await vision_client.close()

    return AppContainer(
        settings=resolved_settings,
        permission_provider=permission_provider,
        orchestrator=orchestrator,
        close_resources=close_resources,
    )
