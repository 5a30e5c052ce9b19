"""Debounced code detection feeding a single-slot event queue."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from pantry_scanner.domain.events import CodeDetected
from pantry_scanner.domain.scanner import CodeType

# Fixed autofocus settling time; not configurable.
STABILIZATION_DELAY_SECONDS = 0.8

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedCode:
    """A code reported by the camera for a single frame."""

    type: str
    value: str


@dataclass
class CodeDetectionSource:
    """Turns noisy per-frame detections into at most one event per presentation.

    Frames that arrive while the cooldown is active are dropped, never queued.
    Accepted detections land in a queue of size one; if the consumer has not
    picked up the previous event the new one is dropped.
    """

    stabilization_delay_seconds: float = STABILIZATION_DELAY_SECONDS
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _queue: asyncio.Queue[CodeDetected] = field(
        default_factory=lambda: asyncio.Queue(maxsize=1), init=False, repr=False
    )
    _cooling: bool = field(default=False, init=False)
    _tasks: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    @property
    def cooling_down(self) -> bool:
        return self._cooling

    def submit(self, codes: Sequence[DetectedCode]) -> bool:
        """Offer one frame's detections; return True if the frame was accepted."""
        if self._cooling or not codes:
            return False
        self._cooling = True
        task = asyncio.get_running_loop().create_task(self._stabilize(codes[0]))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def next_event(self) -> CodeDetected:
        """Wait for the next accepted detection."""
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    async def close(self) -> None:
        """Cancel any stabilization still waiting."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._cooling = False

    async def _stabilize(self, code: DetectedCode) -> None:
        try:
            await self.sleep(self.stabilization_delay_seconds)
        finally:
            self._cooling = False
        event = CodeDetected(value=code.value, code_type=CodeType.parse(code.type))
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            _logger.debug("Dropping detection %s: previous one not consumed", code.value)
