"""Tests for container wiring."""

import asyncio

from pantry_scanner.containers import build_container
from pantry_scanner.domain.scanner import Step


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)
    assert container.orchestrator.state.step is Step.IDLE
    assert container.orchestrator.ingestion.retry_policy.attempts == 2
    assert container.orchestrator.checkpoints.store.path.name == "state.json"
    asyncio.run(container.close_resources())
