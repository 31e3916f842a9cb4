"""Pricing and promotion engine."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol
from uuid import UUID

from pixel_paywall.domain.pricing import (
    DEFAULT_MAX_BATCH_SIZE,
    PricingConfig,
    PromotionInfo,
    PromoValidation,
    Quote,
)
from pixel_paywall.errors import StorageError

_logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_CENTS = Decimal("0.01")


class PricingRepository(Protocol):
    """Persistence interface for the pricing row."""

    def get_config(self) -> PricingConfig | None:
        """Return the effective pricing configuration."""

    def redeem_once(self, config_id: str, transaction_id: UUID, code: str) -> bool:
        """Count one use of ``code`` for a transaction.

        Returns False without incrementing when the transaction was already
        counted.
        """


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class PricingService:
    """Computes charges and validates the active promotional code."""

    repository: PricingRepository
    clock: Callable[[], datetime] = _utcnow

    def current_unit_price(self) -> Decimal:
        """Return the per-image price, or zero when payments are disabled."""
        config = self._require_config()
        if not config.payment_enabled:
            return _ZERO
        return config.price_per_unit

    def max_batch_size(self) -> int:
        """Return the largest batch a single request may contain."""
        config = self._load_config()
        if config is None:
            return DEFAULT_MAX_BATCH_SIZE
        return config.max_batch_size

    def quote(
        self, unit_price: Decimal, count: int, promo_code: str | None = None
    ) -> Quote:
        """Compute the charge for ``count`` units.

        An invalid promotional code never blocks the quote; it is reported in
        ``promo_error`` and the full price applies.
        """
        original = _money(Decimal(unit_price) * count)
        code = (promo_code or "").strip()
        if not code:
            return Quote(
                unit_price=Decimal(unit_price),
                count=count,
                original_amount=original,
                discount_amount=_ZERO,
                discount_percent=_ZERO,
                final_amount=original,
            )

        config = self._load_config()
        validation = _validate(config, code, self.clock())
        if not validation.valid or config is None:
            return Quote(
                unit_price=Decimal(unit_price),
                count=count,
                original_amount=original,
                discount_amount=_ZERO,
                discount_percent=_ZERO,
                final_amount=original,
                promo_error=validation.reason,
            )

        percent = config.promotion.discount_percent
        final = _money(max(original * (1 - percent / _HUNDRED), _ZERO))
        return Quote(
            unit_price=Decimal(unit_price),
            count=count,
            original_amount=original,
            discount_amount=original - final,
            discount_percent=percent,
            final_amount=final,
            promo_code=code,
        )

    def quote_batch(self, count: int, promo_code: str | None = None) -> Quote:
        """Quote ``count`` units at the current unit price."""
        return self.quote(self.current_unit_price(), count, promo_code)

    def validate_promo(self, code: str) -> PromoValidation:
        """Validate a code against the single active promotion."""
        return _validate(self._load_config(), code.strip(), self.clock())

    def redeem(self, code: str, transaction_id: UUID) -> bool:
        """Count one use of ``code`` for a completed transaction.

        Redeeming the same transaction twice increments the counter once.
        """
        config = self._require_config()
        active = config.promotion.code
        if not active or code.strip().casefold() != active.casefold():
            _logger.warning(
                "Skipping redemption of inactive code: transaction=%s", transaction_id
            )
            return False
        try:
            counted = self.repository.redeem_once(config.id, transaction_id, active)
        except Exception as exc:
            raise StorageError(f"Failed to redeem promotional code: {exc}") from exc
        if not counted:
            _logger.info("Promotion already redeemed: transaction=%s", transaction_id)
        return counted

    def active_promotion(self) -> PromotionInfo:
        """Return display information about the active promotion."""
        config = self._load_config()
        if config is None or not config.promotion.enabled:
            return PromotionInfo(
                active=False,
                code="",
                discount_percent=_ZERO,
                valid_until=None,
                max_uses=0,
                current_uses=0,
                remaining_uses=0,
            )
        promotion = config.promotion
        remaining = -1
        if promotion.max_uses > 0:
            remaining = promotion.max_uses - promotion.current_uses
        return PromotionInfo(
            active=True,
            code=promotion.code,
            discount_percent=promotion.discount_percent,
            valid_until=promotion.valid_until,
            max_uses=promotion.max_uses,
            current_uses=promotion.current_uses,
            remaining_uses=remaining,
        )

    def _load_config(self) -> PricingConfig | None:
        try:
            return self.repository.get_config()
        except Exception as exc:
            raise StorageError(f"Failed to load pricing configuration: {exc}") from exc

    def _require_config(self) -> PricingConfig:
        config = self._load_config()
        if config is None:
            raise StorageError("Pricing configuration is missing")
        return config


def _validate(
    config: PricingConfig | None, code: str, now: datetime
) -> PromoValidation:
    if config is None or not config.promotion.enabled:
        return PromoValidation(False, "Promotional codes are not enabled.")
    promotion = config.promotion
    if not promotion.code or code.casefold() != promotion.code.casefold():
        return PromoValidation(False, "Invalid promotional code.")
    if promotion.valid_until is not None and now > promotion.valid_until:
        return PromoValidation(False, "This promotional code has expired.")
    if promotion.max_uses > 0 and promotion.current_uses >= promotion.max_uses:
        return PromoValidation(
            False, "This promotional code has reached its usage limit."
        )
    return PromoValidation(True)


def _money(amount: Decimal) -> Decimal:
    return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
