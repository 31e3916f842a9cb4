"""Transaction ledger."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from pixel_paywall.domain.transactions import (
    PAYMENT_TYPES,
    NewTransaction,
    PaymentType,
    TransactionRecord,
)
from pixel_paywall.errors import LedgerError, LedgerTransitionError, ValidationError

_logger = logging.getLogger(__name__)


class TransactionRepository(Protocol):
    """Persistence interface for transactions."""

    def create_transaction(self, transaction: NewTransaction) -> TransactionRecord:
        """Insert a pending transaction and return it."""

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        """Return a transaction by id, if present."""

    def mark_completed(
        self,
        transaction_id: UUID,
        gateway_transaction_id: str | None,
        gateway_conversation_id: str | None,
        completed_at: datetime,
    ) -> bool:
        """Move a pending transaction to completed; False if it was not pending."""

    def mark_failed(self, transaction_id: UUID, reason: str) -> bool:
        """Move a pending transaction to failed; False if it was not pending."""

    def list_pending(
        self, created_before: datetime, limit: int
    ) -> list[TransactionRecord]:
        """Return pending transactions opened before a cutoff."""


@dataclass
class TransactionLedger:
    """Records every charge attempt from pending to a terminal status."""

    repository: TransactionRepository

    def open(  # noqa: PLR0913
        self,
        session_id: str,
        payer: str,
        amount: Decimal,
        original_amount: Decimal,
        discount_amount: Decimal,
        promo_code: str | None,
        batch_size: int,
        payment_type: PaymentType,
        discount_percent: Decimal = Decimal("0"),
        reference: str | None = None,
        third_party_reference: str | None = None,
        fingerprints: tuple[str, ...] = (),
    ) -> UUID:
        """Insert a pending transaction and return its id."""
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError(f"Unknown payment type: {payment_type}")
        if amount < 0 or original_amount < 0 or discount_amount < 0:
            raise ValidationError("Transaction amounts must not be negative")
        if batch_size < 1:
            raise ValidationError("A transaction must cover at least one image")
        new_transaction = NewTransaction(
            session_id=session_id,
            phone_number=payer,
            amount=amount,
            original_amount=original_amount,
            discount_amount=discount_amount,
            discount_percent=discount_percent,
            coupon_code=promo_code,
            image_count=batch_size,
            payment_type=payment_type,
            reference=reference,
            third_party_reference=third_party_reference,
            fingerprints=fingerprints,
        )
        try:
            record = self.repository.create_transaction(new_transaction)
        except Exception as exc:
            raise LedgerError(f"Failed to open transaction: {exc}") from exc
        _logger.info(
            "Transaction opened: id=%s session=%s amount=%s images=%s",
            record.id,
            session_id,
            amount,
            batch_size,
        )
        return record.id

    def complete(
        self,
        transaction_id: UUID,
        gateway_transaction_id: str | None = None,
        gateway_conversation_id: str | None = None,
    ) -> None:
        """Mark a pending transaction completed."""
        try:
            updated = self.repository.mark_completed(
                transaction_id,
                gateway_transaction_id,
                gateway_conversation_id,
                datetime.now(tz=UTC),
            )
        except Exception as exc:
            raise LedgerError(f"Failed to complete transaction: {exc}") from exc
        if not updated:
            raise LedgerTransitionError(
                f"Transaction {transaction_id} is not pending and cannot complete"
            )
        _logger.info("Transaction completed: id=%s", transaction_id)

    def fail(self, transaction_id: UUID, reason: str) -> None:
        """Mark a pending transaction failed. Retries open a new transaction."""
        try:
            updated = self.repository.mark_failed(transaction_id, reason)
        except Exception as exc:
            raise LedgerError(f"Failed to fail transaction: {exc}") from exc
        if not updated:
            raise LedgerTransitionError(
                f"Transaction {transaction_id} is not pending and cannot fail"
            )
        _logger.info("Transaction failed: id=%s reason=%s", transaction_id, reason)

    def get(self, transaction_id: UUID) -> TransactionRecord | None:
        """Return a transaction by id."""
        try:
            return self.repository.get_transaction(transaction_id)
        except Exception as exc:
            raise LedgerError(f"Failed to load transaction: {exc}") from exc

    def list_pending(
        self, older_than: timedelta = timedelta(minutes=5), limit: int = 50
    ) -> list[TransactionRecord]:
        """Return pending transactions old enough to need a status check."""
        cutoff = datetime.now(tz=UTC) - older_than
        try:
            return self.repository.list_pending(cutoff, limit)
        except Exception as exc:
            raise LedgerError(f"Failed to list pending transactions: {exc}") from exc
