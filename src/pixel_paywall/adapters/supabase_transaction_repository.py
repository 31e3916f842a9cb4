"""Supabase-backed transaction repository."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from supabase import Client

from pixel_paywall.domain.transactions import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    NewTransaction,
    TransactionRecord,
)
from pixel_paywall.errors import StorageError
from pixel_paywall.services.ledger import TransactionRepository

_TABLE = "transactions"


@dataclass
class SupabaseTransactionRepository(TransactionRepository):
    """Stores charge attempts in the ``transactions`` table."""

    client: Client

    def create_transaction(self, transaction: NewTransaction) -> TransactionRecord:
        """Insert a pending transaction row and return it."""
        response = (
            self.client.table(_TABLE)
            .insert(
                {
                    "session_id": transaction.session_id,
                    "phone_number": transaction.phone_number,
                    "amount": str(transaction.amount),
                    "original_amount": str(transaction.original_amount),
                    "discount_amount": str(transaction.discount_amount),
                    "discount_percent": str(transaction.discount_percent),
                    "coupon_code": transaction.coupon_code,
                    "image_count": transaction.image_count,
                    "payment_type": transaction.payment_type,
                    "reference": transaction.reference,
                    "third_party_reference": transaction.third_party_reference,
                    "image_hashes": list(transaction.fingerprints),
                    "status": STATUS_PENDING,
                }
            )
            .execute()
        )
        if not response.data:
            raise StorageError("Failed to create transaction")
        return _parse_transaction(response.data[0])

    def get_transaction(self, transaction_id: UUID) -> TransactionRecord | None:
        """Return a transaction by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("id", str(transaction_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_transaction(response.data[0])

    def mark_completed(
        self,
        transaction_id: UUID,
        gateway_transaction_id: str | None,
        gateway_conversation_id: str | None,
        completed_at: datetime,
    ) -> bool:
        """Complete a pending transaction."""
        response = (
            self.client.table(_TABLE)
            .update(
                {
                    "status": STATUS_COMPLETED,
                    "mpesa_transaction_id": gateway_transaction_id,
                    "mpesa_conversation_id": gateway_conversation_id,
                    "completed_at": completed_at.isoformat(),
                }
            )
            .eq("id", str(transaction_id))
            .eq("status", STATUS_PENDING)
            .execute()
        )
        return bool(response.data)

    def mark_failed(self, transaction_id: UUID, reason: str) -> bool:
        """Fail a pending transaction."""
        response = (
            self.client.table(_TABLE)
            .update({"status": STATUS_FAILED, "failure_reason": reason})
            .eq("id", str(transaction_id))
            .eq("status", STATUS_PENDING)
            .execute()
        )
        return bool(response.data)

    def list_pending(
        self, created_before: datetime, limit: int
    ) -> list[TransactionRecord]:
        """Return pending transactions created before a cutoff."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("status", STATUS_PENDING)
            .lt("created_at", created_before.isoformat())
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return [_parse_transaction(row) for row in response.data or []]


def _parse_transaction(row: dict[str, object]) -> TransactionRecord:
    """Parse a transaction row into a domain model."""
    completed_raw = row.get("completed_at")
    return TransactionRecord(
        id=UUID(str(row["id"])),
        session_id=str(row["session_id"]),
        phone_number=str(row.get("phone_number") or ""),
        amount=_decimal(row.get("amount")),
        original_amount=_decimal(row.get("original_amount")),
        discount_amount=_decimal(row.get("discount_amount")),
        discount_percent=_decimal(row.get("discount_percent")),
        coupon_code=row.get("coupon_code"),
        image_count=int(row.get("image_count") or 0),
        payment_type=row.get("payment_type", "bulk"),
        status=row.get("status", STATUS_PENDING),
        reference=row.get("reference"),
        third_party_reference=row.get("third_party_reference"),
        gateway_transaction_id=row.get("mpesa_transaction_id"),
        gateway_conversation_id=row.get("mpesa_conversation_id"),
        failure_reason=row.get("failure_reason"),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        completed_at=datetime.fromisoformat(completed_raw)
        if isinstance(completed_raw, str) and completed_raw
        else None,
        fingerprints=tuple(str(item) for item in row.get("image_hashes") or ()),
    )


def _decimal(value: object) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")
