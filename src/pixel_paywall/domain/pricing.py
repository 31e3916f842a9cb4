"""Domain models for pricing and promotions."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

DEFAULT_MAX_BATCH_SIZE = 50


@dataclass(frozen=True)
class Promotion:
    """The single active promotional code."""

    code: str
    discount_percent: Decimal
    enabled: bool
    valid_until: datetime | None
    max_uses: int
    current_uses: int


@dataclass(frozen=True)
class PricingConfig:
    """The effective pricing row."""

    id: str
    price_per_unit: Decimal
    payment_enabled: bool
    max_batch_size: int
    promotion: Promotion


@dataclass(frozen=True)
class PromoValidation:
    """Result of validating a promotional code."""

    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class Quote:
    """Charge computed for a batch.

    ``promo_code`` is set only when the discount was applied; a rejected code
    is reported through ``promo_error`` and the quote stays at full price.
    """

    unit_price: Decimal
    count: int
    original_amount: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    final_amount: Decimal
    promo_code: str | None = None
    promo_error: str | None = None


@dataclass(frozen=True)
class PromotionInfo:
    """Display view of the active promotion."""

    active: bool
    code: str
    discount_percent: Decimal
    valid_until: datetime | None
    max_uses: int
    current_uses: int
    remaining_uses: int
