"""Notification events emitted by the reconciler."""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class PaymentCompleted:
    """A transaction reached ``completed``."""

    transaction_id: UUID
    session_id: str
    phone_number: str
    amount: Decimal
    original_amount: Decimal
    discount_amount: Decimal
    coupon_code: str | None
    image_count: int
    customer_email: str | None = None


@dataclass(frozen=True)
class PaymentFailed:
    """A single charge attempt failed on the gateway."""

    transaction_id: UUID
    session_id: str
    phone_number: str
    amount: Decimal
    reason: str


@dataclass(frozen=True)
class CriticalGatewayFailure:
    """Both gateway rails failed for one charge attempt."""

    transaction_id: UUID
    session_id: str
    amount: Decimal
    primary_error: str | None
    secondary_error: str | None


@dataclass(frozen=True)
class UserValidationError:
    """A request was rejected before reaching the ledger."""

    session_id: str
    field: str
    message: str


@dataclass(frozen=True)
class EntitlementGrantFailed:
    """A completed transaction could not be turned into entitlements."""

    transaction_id: UUID
    session_id: str
    fingerprints: tuple[str, ...]
    error: str


@dataclass(frozen=True)
class LedgerRecordingFailed:
    """A charge went through but the ledger still shows the transaction pending."""

    transaction_id: UUID
    session_id: str
    amount: Decimal
    gateway_transaction_id: str | None
    error: str


NotificationEvent = (
    PaymentCompleted
    | PaymentFailed
    | CriticalGatewayFailure
    | UserValidationError
    | EntitlementGrantFailed
    | LedgerRecordingFailed
)
