"""Expiration date extraction from package photos."""

import base64
import calendar
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from pantry_scanner.domain.scanner import ExpirationInfo
from pantry_scanner.domain.vision import ExpirationExtract

EXPIRATION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "ocr_text": {"type": "string"},
        "date_text": {"anyOf": [{"type": "string"}, {"type": "null"}]},
        "confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
    },
    "required": ["ocr_text", "date_text", "confidence"],
    "additionalProperties": False,
}

_PROMPT = (
    "Read all printed text on this food package. "
    "Return the raw text as ocr_text. If a best-before, use-by or expiration "
    "date is printed, return it exactly as printed in date_text, otherwise null. "
    "Give your confidence (0-1) that date_text is the expiration date."
)

_DAY_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d.%m.%Y",
    "%d.%m.%y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
)
_MONTH_FORMATS = ("%m/%Y", "%m/%y", "%b %Y", "%B %Y", "%Y-%m")

_LABEL_PATTERN = re.compile(
    r"^(best\s+before|best\s+by|use\s+by|exp(iry|iration)?|bb|sell\s+by)[:.\s]*",
    re.IGNORECASE,
)

_logger = logging.getLogger(__name__)


class VisionClient(Protocol):
    """Interface for LLM vision extraction."""

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
        """Return structured vision extraction data."""


@dataclass
class ExpirationReader:
    """Extracts an expiration date from a photo via the configured client."""

    client: VisionClient
    model: str
    reasoning_effort: str | None
    store: bool
    clock: Callable[[], float] = time.perf_counter

    async def read(self, image_bytes: bytes) -> ExpirationInfo:
        """Return OCR text, the best-guess date, confidence and latency."""
        started = self.clock()
        raw = await self.client.extract(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            image_data_url=_to_data_url(image_bytes),
            schema_name="expiration_extract",
            schema=EXPIRATION_SCHEMA,
            prompt=_PROMPT,
        )
        extract = ExpirationExtract.model_validate(raw)
        elapsed_ms = max(int((self.clock() - started) * 1000), 0)
        parsed = parse_expiration_date(extract.date_text)
        if extract.date_text and parsed is None:
            _logger.info("Unparseable expiration text %r", extract.date_text)
        return ExpirationInfo(
            date=parsed,
            ocr_text=extract.ocr_text,
            confidence=extract.confidence if parsed else 0.0,
            processing_time_ms=elapsed_ms,
        )


def parse_expiration_date(text: str | None) -> date | None:
    """Parse a printed date; month-only dates resolve to the month's last day."""
    if not text:
        return None
    cleaned = _LABEL_PATTERN.sub("", text.strip())
    cleaned = " ".join(cleaned.replace(",", " ").split())
    for fmt in _DAY_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    for fmt in _MONTH_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        last_day = calendar.monthrange(parsed.year, parsed.month)[1]
        return date(parsed.year, parsed.month, last_day)
    return None


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[4:12] in {b"ftypheic", b"ftypheix", b"ftypmif1"}:
        return "image/heic"
    return "image/jpeg"
