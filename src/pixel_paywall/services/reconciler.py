"""Entitlement reconciliation: decides free vs paid, charges, grants, delivers."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from pixel_paywall.app_logging import mask_msisdn
from pixel_paywall.domain.events import (
    CriticalGatewayFailure,
    EntitlementGrantFailed,
    LedgerRecordingFailed,
    PaymentCompleted,
    PaymentFailed,
    UserValidationError,
)
from pixel_paywall.domain.payments import RAIL_PRIMARY, RAIL_SECONDARY, ChargeResult
from pixel_paywall.domain.pricing import Quote
from pixel_paywall.domain.reconciliation import (
    FAILURE_CRITICAL,
    FAILURE_ENTITLEMENT,
    FAILURE_GATEWAY,
    FAILURE_LEDGER,
    FAILURE_STORAGE,
    FAILURE_VALIDATION,
    ReconcileOutcome,
    ReconcileRequest,
    ReconcileState,
    RecoveryResult,
)
from pixel_paywall.domain.transactions import (
    PAYMENT_TYPES,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    TransactionRecord,
)
from pixel_paywall.errors import (
    EntitlementGrantError,
    LedgerError,
    NotFoundError,
    StorageError,
)
from pixel_paywall.services.delivery import DeliverySink
from pixel_paywall.services.entitlements import EntitlementStore
from pixel_paywall.services.ledger import TransactionLedger
from pixel_paywall.services.notifications import NotificationService
from pixel_paywall.services.payments import PaymentGateway
from pixel_paywall.services.pricing import PricingService

_logger = logging.getLogger(__name__)

_GATEWAY_COMPLETED = "completed"
_GATEWAY_REFUSED = {"failed", "cancelled", "expired"}


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class EntitlementReconciler:
    """Orchestrates one download request from quote to delivery.

    Steps run strictly in order: refresh entitlements, quote the unentitled
    remainder, charge (or take the free path), record, grant, deliver.
    """

    entitlement_store: EntitlementStore
    pricing_service: PricingService
    ledger: TransactionLedger
    gateway: PaymentGateway
    delivery_sink: DeliverySink
    notifications: NotificationService
    reference_prefix: str = "RDP_"
    epoch_ms: Callable[[], int] = _epoch_ms

    async def reconcile(self, request: ReconcileRequest) -> ReconcileOutcome:
        """Run a reconciliation request to DONE or FAILED."""
        requested = tuple(dict.fromkeys(request.fingerprints))
        outcome = ReconcileOutcome(state=ReconcileState.REQUESTED, requested=requested)

        try:
            error = self._validate_request(request, requested)
        except StorageError as exc:
            return _fail(outcome, FAILURE_STORAGE, exc.message)
        if error:
            field_name, message = error
            await self.notifications.publish(
                UserValidationError(
                    session_id=request.session_id, field=field_name, message=message
                )
            )
            return _fail(outcome, FAILURE_VALIDATION, message)

        try:
            entitled = self.entitlement_store.load_all(request.session_id)
        except StorageError as exc:
            return _fail(outcome, FAILURE_STORAGE, exc.message)
        outcome.already_entitled = tuple(f for f in requested if f in entitled)
        unentitled = tuple(f for f in requested if f not in entitled)
        if not unentitled:
            return await self._deliver(request, outcome)

        outcome.state = ReconcileState.QUOTING
        try:
            quote = self.pricing_service.quote_batch(
                len(unentitled), request.promo_code
            )
        except StorageError as exc:
            return _fail(outcome, FAILURE_STORAGE, exc.message)
        outcome.quote = quote
        if quote.promo_error:
            outcome.warnings.append(quote.promo_error)

        if quote.final_amount <= 0:
            return await self._free_path(request, outcome, quote, unentitled)
        return await self._paid_path(request, outcome, quote, unentitled)

    def preview(
        self, session_id: str, fingerprints: tuple[str, ...], promo_code: str | None
    ) -> tuple[tuple[str, ...], Quote]:
        """Quote the unentitled part of a batch without side effects."""
        requested = tuple(dict.fromkeys(fingerprints))
        entitled = self.entitlement_store.load_all(session_id)
        unentitled = tuple(f for f in requested if f not in entitled)
        quote = self.pricing_service.quote_batch(len(unentitled), promo_code)
        return tuple(f for f in requested if f in entitled), quote

    async def recover(self, transaction_id: UUID) -> RecoveryResult:
        """Settle a pending transaction from the gateway's record of the charge.

        Covers charges whose outcome never reached the ledger: the push timed
        out after the payer confirmed, or the ledger write failed afterwards.
        A completed charge is recorded and its images granted; a refused one
        is marked failed. Anything else leaves the transaction pending.
        """
        record = self.ledger.get(transaction_id)
        if record is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if record.status != STATUS_PENDING:
            return RecoveryResult(
                transaction_id, record.status, "Transaction is already settled."
            )
        if not record.reference or not record.third_party_reference:
            return RecoveryResult(
                transaction_id, STATUS_PENDING, "Transaction has no gateway reference."
            )

        result = await self.gateway.query_status(
            record.reference, record.third_party_reference
        )
        gateway_status = (result.transaction_status or "").casefold()
        if result.success and gateway_status == _GATEWAY_COMPLETED:
            return await self._recover_completed(record, result)
        if gateway_status in _GATEWAY_REFUSED:
            reason = f"Gateway reported {result.transaction_status}"
            self.ledger.fail(record.id, reason)
            await self.notifications.publish(
                PaymentFailed(
                    transaction_id=record.id,
                    session_id=record.session_id,
                    phone_number=record.phone_number,
                    amount=record.amount,
                    reason=reason,
                )
            )
            return RecoveryResult(record.id, STATUS_FAILED, reason)
        _logger.info(
            "Transaction still unresolved: transaction=%s rail=%s status=%s",
            record.id,
            result.rail,
            result.transaction_status or result.error,
        )
        return RecoveryResult(
            record.id,
            STATUS_PENDING,
            result.transaction_status or result.error or "Gateway status unknown.",
        )

    async def _recover_completed(
        self, record: TransactionRecord, result: ChargeResult
    ) -> RecoveryResult:
        self.ledger.complete(
            record.id, result.gateway_transaction_id, result.gateway_conversation_id
        )
        _logger.info(
            "Recovered payment: transaction=%s rail=%s payer=%s amount=%s",
            record.id,
            result.rail,
            mask_msisdn(record.phone_number),
            record.amount,
        )
        if record.coupon_code:
            self._redeem(record.coupon_code, record.id)
        grant_error = await self._grant(
            record.session_id, record.fingerprints, record.id
        )
        if grant_error:
            return RecoveryResult(record.id, STATUS_COMPLETED, grant_error)
        await self.notifications.publish(
            PaymentCompleted(
                transaction_id=record.id,
                session_id=record.session_id,
                phone_number=record.phone_number,
                amount=record.amount,
                original_amount=record.original_amount,
                discount_amount=record.discount_amount,
                coupon_code=record.coupon_code,
                image_count=record.image_count,
            )
        )
        return RecoveryResult(
            record.id,
            STATUS_COMPLETED,
            "Payment confirmed by the gateway.",
            newly_entitled=record.fingerprints,
        )

    async def _free_path(
        self,
        request: ReconcileRequest,
        outcome: ReconcileOutcome,
        quote: Quote,
        unentitled: tuple[str, ...],
    ) -> ReconcileOutcome:
        outcome.state = ReconcileState.FREE_PATH
        try:
            transaction_id = self._open(request, quote, unentitled)
            outcome.transaction_id = transaction_id
            self.ledger.complete(transaction_id)
        except LedgerError as exc:
            return _fail(outcome, FAILURE_LEDGER, exc.message)
        _logger.info(
            "Free reconciliation: transaction=%s images=%s",
            transaction_id,
            len(unentitled),
        )
        return await self._grant_and_deliver(
            request, outcome, quote, unentitled, transaction_id
        )

    async def _paid_path(
        self,
        request: ReconcileRequest,
        outcome: ReconcileOutcome,
        quote: Quote,
        unentitled: tuple[str, ...],
    ) -> ReconcileOutcome:
        outcome.state = ReconcileState.PAYING
        reference, third_party_reference = self._references()
        rejected = self.gateway.validate_charge(
            request.payer_reference, quote.final_amount, reference
        )
        if rejected:
            field_name, message = rejected
            await self.notifications.publish(
                UserValidationError(
                    session_id=request.session_id, field=field_name, message=message
                )
            )
            return _fail(outcome, FAILURE_VALIDATION, message)

        try:
            transaction_id = self._open(
                request, quote, unentitled, reference, third_party_reference
            )
        except LedgerError as exc:
            return _fail(outcome, FAILURE_LEDGER, exc.message)
        outcome.transaction_id = transaction_id

        result = await self.gateway.charge(
            request.payer_reference,
            quote.final_amount,
            reference,
            third_party_reference,
        )

        outcome.state = ReconcileState.RECORDING
        if not result.success:
            return await self._record_failure(
                request, outcome, quote, transaction_id, result
            )

        try:
            self.ledger.complete(
                transaction_id,
                result.gateway_transaction_id,
                result.gateway_conversation_id,
            )
        except LedgerError as exc:
            _logger.critical(
                "Charge succeeded but ledger did not record it: transaction=%s "
                "gateway_transaction=%s error=%s",
                transaction_id,
                result.gateway_transaction_id,
                exc.message,
            )
            await self.notifications.publish(
                LedgerRecordingFailed(
                    transaction_id=transaction_id,
                    session_id=request.session_id,
                    amount=quote.final_amount,
                    gateway_transaction_id=result.gateway_transaction_id,
                    error=exc.message,
                )
            )
            return _fail(outcome, FAILURE_LEDGER, exc.message)
        outcome.charged_amount = quote.final_amount
        _logger.info(
            "Payment completed: transaction=%s rail=%s payer=%s amount=%s",
            transaction_id,
            result.rail,
            mask_msisdn(request.payer_reference),
            quote.final_amount,
        )
        return await self._grant_and_deliver(
            request, outcome, quote, unentitled, transaction_id
        )

    async def _record_failure(
        self,
        request: ReconcileRequest,
        outcome: ReconcileOutcome,
        quote: Quote,
        transaction_id: UUID,
        result: ChargeResult,
    ) -> ReconcileOutcome:
        reason = result.response_desc or result.error or "Payment failed"
        try:
            self.ledger.fail(transaction_id, reason)
        except LedgerError as exc:
            _logger.error(
                "Could not mark transaction failed: transaction=%s error=%s",
                transaction_id,
                exc.message,
            )
        if result.critical:
            errors = {attempt.rail: attempt.error for attempt in result.attempts}
            await self.notifications.publish(
                CriticalGatewayFailure(
                    transaction_id=transaction_id,
                    session_id=request.session_id,
                    amount=quote.final_amount,
                    primary_error=errors.get(RAIL_PRIMARY),
                    secondary_error=errors.get(RAIL_SECONDARY),
                )
            )
            return _fail(outcome, FAILURE_CRITICAL, reason)
        await self.notifications.publish(
            PaymentFailed(
                transaction_id=transaction_id,
                session_id=request.session_id,
                phone_number=request.payer_reference,
                amount=quote.final_amount,
                reason=reason,
            )
        )
        return _fail(outcome, FAILURE_GATEWAY, reason)

    async def _grant_and_deliver(
        self,
        request: ReconcileRequest,
        outcome: ReconcileOutcome,
        quote: Quote,
        unentitled: tuple[str, ...],
        transaction_id: UUID,
    ) -> ReconcileOutcome:
        if quote.promo_code and not self._redeem(quote.promo_code, transaction_id):
            outcome.warnings.append("Promotional code use was not recorded.")

        outcome.state = ReconcileState.GRANTING
        grant_error = await self._grant(request.session_id, unentitled, transaction_id)
        if grant_error:
            return _fail(outcome, FAILURE_ENTITLEMENT, grant_error)
        outcome.newly_entitled = unentitled

        await self.notifications.publish(
            PaymentCompleted(
                transaction_id=transaction_id,
                session_id=request.session_id,
                phone_number=request.payer_reference,
                amount=quote.final_amount,
                original_amount=quote.original_amount,
                discount_amount=quote.discount_amount,
                coupon_code=quote.promo_code,
                image_count=len(unentitled),
                customer_email=request.email,
            )
        )
        return await self._deliver(request, outcome)

    async def _deliver(
        self, request: ReconcileRequest, outcome: ReconcileOutcome
    ) -> ReconcileOutcome:
        outcome.state = ReconcileState.DELIVERING
        try:
            delivered = await self.delivery_sink.deliver(
                request.session_id, outcome.requested
            )
        except Exception:
            _logger.exception("Delivery failed: session=%s", request.session_id)
            delivered = 0
        outcome.delivered_count = delivered
        if delivered < len(outcome.requested):
            _logger.warning(
                "Delivery shortfall: session=%s delivered=%s requested=%s",
                request.session_id,
                delivered,
                len(outcome.requested),
            )
            outcome.warnings.append(
                f"Delivered {delivered} of {len(outcome.requested)} images; "
                "retry the download to fetch the rest."
            )
        outcome.state = ReconcileState.DONE
        return outcome

    def _redeem(self, promo_code: str, transaction_id: UUID) -> bool:
        try:
            self.pricing_service.redeem(promo_code, transaction_id)
        except StorageError as exc:
            _logger.error(
                "Promotion use not counted: transaction=%s error=%s",
                transaction_id,
                exc.message,
            )
            return False
        return True

    async def _grant(
        self, session_id: str, fingerprints: tuple[str, ...], transaction_id: UUID
    ) -> str | None:
        """Grant entitlements, returning the error if none were written."""
        try:
            self.entitlement_store.grant(session_id, fingerprints, transaction_id)
        except EntitlementGrantError as exc:
            _logger.critical(
                "Transaction completed but entitlements were not granted: "
                "transaction=%s session=%s images=%s error=%s",
                transaction_id,
                session_id,
                len(fingerprints),
                exc.message,
            )
            await self.notifications.publish(
                EntitlementGrantFailed(
                    transaction_id=transaction_id,
                    session_id=session_id,
                    fingerprints=fingerprints,
                    error=exc.message,
                )
            )
            return exc.message
        return None

    def _validate_request(
        self, request: ReconcileRequest, requested: tuple[str, ...]
    ) -> tuple[str, str] | None:
        if not request.session_id:
            return "session_id", "A session id is required."
        if not requested:
            return "fingerprints", "At least one image is required."
        if request.payment_type not in PAYMENT_TYPES:
            return "payment_type", f"Unknown payment type: {request.payment_type}"
        max_batch = self.pricing_service.max_batch_size()
        if len(requested) > max_batch:
            return "fingerprints", f"At most {max_batch} images per request."
        return None

    def _open(
        self,
        request: ReconcileRequest,
        quote: Quote,
        unentitled: tuple[str, ...],
        reference: str | None = None,
        third_party_reference: str | None = None,
    ) -> UUID:
        return self.ledger.open(
            session_id=request.session_id,
            payer=request.payer_reference,
            amount=quote.final_amount,
            original_amount=quote.original_amount,
            discount_amount=quote.discount_amount,
            promo_code=quote.promo_code,
            batch_size=len(unentitled),
            payment_type=request.payment_type,
            discount_percent=quote.discount_percent,
            reference=reference,
            third_party_reference=third_party_reference,
            fingerprints=unentitled,
        )

    def _references(self) -> tuple[str, str]:
        """Return the gateway reference and the 5-digit third-party reference."""
        stamp = str(self.epoch_ms())
        return f"{self.reference_prefix}{stamp[-10:]}", stamp[-5:]


def _fail(outcome: ReconcileOutcome, kind: str, message: str) -> ReconcileOutcome:
    outcome.state = ReconcileState.FAILED
    outcome.failure_kind = kind
    outcome.error = message
    return outcome
