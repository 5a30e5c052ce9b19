"""Models for expiration-date extraction results."""

from pydantic import BaseModel, Field


class ExpirationExtract(BaseModel):
    """Structured output for expiration extraction."""

    ocr_text: str
    date_text: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
