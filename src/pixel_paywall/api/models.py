"""Pydantic models for API requests."""

from typing import Literal

from pydantic import BaseModel, Field


class FingerprintRequest(BaseModel):
    """Descriptive attributes of a processed image."""

    name: str = Field(min_length=1)
    byte_size: int = Field(ge=0)
    width: int = Field(ge=0)
    height: int = Field(ge=0)


class QuoteRequest(BaseModel):
    """Preview the charge for a batch."""

    session_id: str = Field(min_length=1)
    fingerprints: list[str] = Field(min_length=1)
    promo_code: str | None = None


class ReconcileBody(BaseModel):
    """Request to download a batch of images."""

    session_id: str = Field(min_length=1)
    fingerprints: list[str] = Field(min_length=1)
    payment_type: Literal["individual", "bulk"]
    phone_number: str = ""
    promo_code: str | None = None
    email: str | None = None
