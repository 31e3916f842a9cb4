"""Domain models for reconciliation requests."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from pixel_paywall.domain.pricing import Quote
from pixel_paywall.domain.transactions import PaymentType, TransactionStatus


class ReconcileState(StrEnum):
    """States a reconciliation request moves through."""

    REQUESTED = "REQUESTED"
    QUOTING = "QUOTING"
    FREE_PATH = "FREE_PATH"
    PAYING = "PAYING"
    RECORDING = "RECORDING"
    GRANTING = "GRANTING"
    DELIVERING = "DELIVERING"
    DONE = "DONE"
    FAILED = "FAILED"


FAILURE_VALIDATION = "validation"
FAILURE_GATEWAY = "gateway"
FAILURE_CRITICAL = "critical"
FAILURE_LEDGER = "ledger"
FAILURE_STORAGE = "storage"
FAILURE_ENTITLEMENT = "entitlement"


@dataclass(frozen=True)
class ReconcileRequest:
    """A request to download a batch of artifacts."""

    session_id: str
    fingerprints: tuple[str, ...]
    payment_type: PaymentType
    payer_reference: str
    promo_code: str | None = None
    email: str | None = None


@dataclass
class ReconcileOutcome:
    """What a reconciliation request did."""

    state: ReconcileState
    requested: tuple[str, ...]
    already_entitled: tuple[str, ...] = ()
    newly_entitled: tuple[str, ...] = ()
    transaction_id: UUID | None = None
    quote: Quote | None = None
    charged_amount: Decimal = Decimal("0")
    delivered_count: int = 0
    failure_kind: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """Return whether the request reached DONE."""
        return self.state is ReconcileState.DONE

    @property
    def critical(self) -> bool:
        """Return whether both gateway rails failed."""
        return self.failure_kind == FAILURE_CRITICAL


@dataclass(frozen=True)
class RecoveryResult:
    """Where a pending transaction stands after asking the gateway about it."""

    transaction_id: UUID
    status: TransactionStatus
    detail: str
    newly_entitled: tuple[str, ...] = ()
