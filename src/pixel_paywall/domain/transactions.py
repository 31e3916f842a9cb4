"""Domain models for the transaction ledger."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

PaymentType = Literal["individual", "bulk"]
TransactionStatus = Literal["pending", "completed", "failed"]

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

PAYMENT_TYPES = frozenset({"individual", "bulk"})


@dataclass(frozen=True)
class NewTransaction:
    """Values fixed when a transaction is opened."""

    session_id: str
    phone_number: str
    amount: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    coupon_code: str | None
    image_count: int
    payment_type: PaymentType
    reference: str | None = None
    third_party_reference: str | None = None
    fingerprints: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransactionRecord:
    """A persisted charge attempt."""

    id: UUID
    session_id: str
    phone_number: str
    amount: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    coupon_code: str | None
    image_count: int
    payment_type: PaymentType
    status: TransactionStatus
    reference: str | None
    third_party_reference: str | None
    gateway_transaction_id: str | None
    gateway_conversation_id: str | None
    failure_reason: str | None
    created_at: datetime
    completed_at: datetime | None
    fingerprints: tuple[str, ...] = ()
