"""Domain models for gateway charges."""

from dataclasses import dataclass, field

SUCCESS_RESPONSE_CODE = "INS-0"

RAIL_PRIMARY = "primary"
RAIL_SECONDARY = "secondary"


@dataclass(frozen=True)
class ChargeRequest:
    """Normalized charge payload sent to a gateway rail."""

    amount: str
    customer_msisdn: str
    reference: str
    third_party_reference: str


@dataclass(frozen=True)
class RailAttempt:
    """Outcome of one attempt against one rail."""

    rail: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class ChargeResult:
    """Normalized charge outcome.

    ``critical`` is true only when both rails were attempted and failed.
    ``transaction_status`` is set by status queries (``Completed``, ``Failed``...).
    """

    success: bool
    gateway_transaction_id: str | None = None
    gateway_conversation_id: str | None = None
    response_code: str | None = None
    response_desc: str | None = None
    transaction_status: str | None = None
    error: str | None = None
    rail: str | None = None
    critical: bool = False
    attempts: tuple[RailAttempt, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RailHealth:
    """Health of one gateway rail."""

    rail: str
    healthy: bool
    details: str | None = None
