"""Supabase-backed pricing repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from supabase import Client

from pixel_paywall.domain.pricing import (
    DEFAULT_MAX_BATCH_SIZE,
    PricingConfig,
    Promotion,
)
from pixel_paywall.services.pricing import PricingRepository


@dataclass
class SupabasePricingRepository(PricingRepository):
    """Reads the ``system_config`` row and counts promotion uses."""

    client: Client

    def get_config(self) -> PricingConfig | None:
        """Return the effective pricing configuration."""
        response = self.client.table("system_config").select("*").limit(1).execute()
        if not response.data:
            return None
        return _parse_config(response.data[0])

    def redeem_once(self, config_id: str, transaction_id: UUID, code: str) -> bool:
        """Claim a redemption and increment the counter in one database call."""
        response = self.client.rpc(
            "redeem_coupon",
            {
                "p_config_id": config_id,
                "p_transaction_id": str(transaction_id),
                "p_coupon_code": code,
            },
        ).execute()
        return bool(response.data)


def _parse_config(row: dict[str, object]) -> PricingConfig:
    """Parse a ``system_config`` row."""
    valid_until_raw = row.get("coupon_valid_until")
    return PricingConfig(
        id=str(row["id"]),
        price_per_unit=Decimal(str(row.get("price_per_image") or 0)),
        payment_enabled=bool(row.get("payment_enabled")),
        max_batch_size=int(row.get("max_images_per_upload") or DEFAULT_MAX_BATCH_SIZE),
        promotion=Promotion(
            code=str(row.get("active_coupon") or ""),
            discount_percent=Decimal(str(row.get("coupon_discount_percent") or 0)),
            enabled=bool(row.get("coupon_enabled")),
            valid_until=_parse_timestamp(valid_until_raw),
            max_uses=int(row.get("coupon_max_uses") or 0),
            current_uses=int(row.get("coupon_current_uses") or 0),
        ),
    )


def _parse_timestamp(raw: object) -> datetime | None:
    """Parse an ISO timestamp, assuming UTC when no offset is given."""
    if not isinstance(raw, str) or not raw:
        return None
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed
