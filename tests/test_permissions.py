import asyncio

from pantry_scanner.adapters.client_permission_provider import (
    ClientPermissionProvider,
)
from pantry_scanner.domain.scanner import PermissionStatus
from pantry_scanner.services.permissions import PermissionGate
from tests.conftest import FakePermissionProvider


def test_gate_maps_answers() -> None:
    granted = PermissionGate(provider=FakePermissionProvider(granted=True))
    denied = PermissionGate(provider=FakePermissionProvider(granted=False))

    assert asyncio.run(granted.request()) is PermissionStatus.GRANTED
    assert asyncio.run(denied.request()) is PermissionStatus.DENIED


def test_gate_times_out_to_pending() -> None:
    gate = PermissionGate(
        provider=FakePermissionProvider(granted=None), timeout_seconds=0.01
    )

    assert asyncio.run(gate.request()) is PermissionStatus.PENDING


def test_open_settings_delegates() -> None:
    provider = FakePermissionProvider()

    asyncio.run(PermissionGate(provider=provider).open_settings())

    assert provider.settings_opened == 1


def test_client_provider_resolves_on_answer() -> None:
    provider = ClientPermissionProvider()

    async def scenario() -> bool:
        assert provider.answer(True) is False
        request = asyncio.create_task(provider.request_camera_permission())
        await asyncio.sleep(0)
        assert provider.awaiting_answer
        assert provider.answer(False) is True
        return await request

    assert asyncio.run(scenario()) is False
    assert not provider.awaiting_answer


def test_client_provider_survives_gate_timeout() -> None:
    provider = ClientPermissionProvider()
    gate = PermissionGate(provider=provider, timeout_seconds=0.01)

    async def scenario() -> tuple[PermissionStatus, PermissionStatus]:
        first = await gate.request()
        assert provider.awaiting_answer
        patient = PermissionGate(provider=provider, timeout_seconds=1.0)
        retry = asyncio.create_task(patient.request())
        await asyncio.sleep(0.01)
        provider.answer(True)
        return first, await retry

    first, second = asyncio.run(scenario())

    assert first is PermissionStatus.PENDING
    assert second is PermissionStatus.GRANTED
