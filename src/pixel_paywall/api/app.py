"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pixel_paywall.api.admin import router as admin_router
from pixel_paywall.api.models import FingerprintRequest, QuoteRequest, ReconcileBody
from pixel_paywall.app_logging import configure_logging
from pixel_paywall.containers import AppContainer
from pixel_paywall.domain.fingerprints import fingerprint
from pixel_paywall.domain.pricing import Quote
from pixel_paywall.domain.reconciliation import (
    FAILURE_VALIDATION,
    ReconcileOutcome,
    ReconcileRequest,
)
from pixel_paywall.domain.sessions import new_session_id
from pixel_paywall.errors import PaywallError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(PaywallError)
    async def paywall_error_handler(
        request: Request, exc: PaywallError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed: %s %s: %s", request.method, request.url.path, exc
            )
        return JSONResponse(
            status_code=exc.status_code, content={"detail": exc.message}
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/sessions")
    async def create_session() -> dict[str, str]:
        """Issue a session id for a new browser instance."""
        return {"session_id": new_session_id()}

    @app.get("/sessions/{session_id}/entitlements")
    async def list_entitlements(session_id: str, request: Request) -> dict[str, object]:
        """Return every paid fingerprint in a session."""
        state_container: AppContainer = request.app.state.container
        fingerprints = state_container.entitlement_store.load_all(session_id)
        return {"session_id": session_id, "fingerprints": sorted(fingerprints)}

    @app.get("/sessions/{session_id}/entitlements/{fingerprint_value}")
    async def check_entitlement(
        session_id: str, fingerprint_value: str, request: Request
    ) -> dict[str, object]:
        """Return whether an image may be downloaded without paying."""
        state_container: AppContainer = request.app.state.container
        entitled = state_container.entitlement_store.is_entitled(
            session_id, fingerprint_value
        )
        return {"fingerprint": fingerprint_value, "entitled": entitled}

    @app.post("/fingerprints")
    async def create_fingerprint(body: FingerprintRequest) -> dict[str, str]:
        """Compute the fingerprint of a processed image."""
        return {
            "fingerprint": fingerprint(
                body.name, body.byte_size, body.width, body.height
            )
        }

    @app.post("/quote")
    async def quote(body: QuoteRequest, request: Request) -> dict[str, object]:
        """Preview the charge for the unpaid part of a batch."""
        state_container: AppContainer = request.app.state.container
        already_entitled, batch_quote = state_container.reconciler.preview(
            body.session_id, tuple(body.fingerprints), body.promo_code
        )
        return {
            "already_entitled": list(already_entitled),
            "quote": _quote_payload(batch_quote),
        }

    @app.post("/reconcile")
    async def reconcile(body: ReconcileBody, request: Request) -> JSONResponse:
        """Charge for and release a batch of images."""
        state_container: AppContainer = request.app.state.container
        outcome = await state_container.reconciler.reconcile(
            ReconcileRequest(
                session_id=body.session_id,
                fingerprints=tuple(body.fingerprints),
                payment_type=body.payment_type,
                payer_reference=body.phone_number,
                promo_code=body.promo_code,
                email=body.email,
            )
        )
        status_code = 400 if outcome.failure_kind == FAILURE_VALIDATION else 200
        return JSONResponse(status_code=status_code, content=_outcome_payload(outcome))

    @app.get("/promotion")
    async def promotion(request: Request) -> dict[str, object]:
        """Return the active promotion for display."""
        state_container: AppContainer = request.app.state.container
        info = state_container.pricing_service.active_promotion()
        payload = asdict(info)
        payload["discount_percent"] = str(info.discount_percent)
        payload["valid_until"] = (
            info.valid_until.isoformat() if info.valid_until else None
        )
        return payload

    return app


def _quote_payload(quote: Quote) -> dict[str, object]:
    return {
        "unit_price": str(quote.unit_price),
        "count": quote.count,
        "original_amount": str(quote.original_amount),
        "discount_amount": str(quote.discount_amount),
        "discount_percent": str(quote.discount_percent),
        "final_amount": str(quote.final_amount),
        "promo_code": quote.promo_code,
        "promo_error": quote.promo_error,
    }


def _outcome_payload(outcome: ReconcileOutcome) -> dict[str, object]:
    return {
        "status": "done" if outcome.succeeded else "failed",
        "state": outcome.state.value,
        "transaction_id": (
            str(outcome.transaction_id) if outcome.transaction_id else None
        ),
        "requested": list(outcome.requested),
        "already_entitled": list(outcome.already_entitled),
        "newly_entitled": list(outcome.newly_entitled),
        "charged_amount": str(outcome.charged_amount),
        "delivered_count": outcome.delivered_count,
        "quote": _quote_payload(outcome.quote) if outcome.quote else None,
        "failure_kind": outcome.failure_kind,
        "critical": outcome.critical,
        "error": outcome.error,
        "warnings": outcome.warnings,
    }
