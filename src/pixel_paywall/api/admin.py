"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from pixel_paywall.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/transactions/pending", dependencies=[Depends(require_admin)])
async def pending_transactions(
    request: Request, older_than_minutes: int = 5, limit: int = 50
) -> dict[str, object]:
    """Return pending transactions that need an out-of-band status check."""
    container: AppContainer = request.app.state.container
    pending = container.ledger.list_pending(
        older_than=timedelta(minutes=older_than_minutes), limit=limit
    )
    return {
        "transactions": [
            {
                "id": str(record.id),
                "session_id": record.session_id,
                "amount": str(record.amount),
                "image_count": record.image_count,
                "reference": record.reference,
                "third_party_reference": record.third_party_reference,
                "created_at": record.created_at.isoformat(),
            }
            for record in pending
        ]
    }


@router.post(
    "/transactions/{transaction_id}/recover", dependencies=[Depends(require_admin)]
)
async def recover_transaction(
    request: Request, transaction_id: UUID
) -> dict[str, object]:
    """Settle a pending transaction from the gateway's status query."""
    container: AppContainer = request.app.state.container
    result = await container.reconciler.recover(transaction_id)
    return {
        "transaction_id": str(result.transaction_id),
        "status": result.status,
        "detail": result.detail,
        "newly_entitled": list(result.newly_entitled),
    }


@router.get("/gateway/health", dependencies=[Depends(require_admin)])
async def gateway_health(request: Request) -> dict[str, object]:
    """Return the health of both payment rails."""
    container: AppContainer = request.app.state.container
    rails = await container.payment_gateway.health()
    return {
        "rails": [
            {"rail": rail.rail, "healthy": rail.healthy, "details": rail.details}
            for rail in rails
        ]
    }


@router.get("/config", dependencies=[Depends(require_admin)])
async def pricing_config(request: Request) -> dict[str, object]:
    """Return the effective price and promotion."""
    container: AppContainer = request.app.state.container
    pricing = container.pricing_service
    promotion = pricing.active_promotion()
    return {
        "unit_price": str(pricing.current_unit_price()),
        "max_batch_size": pricing.max_batch_size(),
        "promotion": {
            "active": promotion.active,
            "code": promotion.code,
            "discount_percent": str(promotion.discount_percent),
            "remaining_uses": promotion.remaining_uses,
        },
    }
