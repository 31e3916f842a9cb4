"""Domain models for entitlements."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class EntitlementRecord:
    """A paid artifact within a session."""

    session_id: str
    fingerprint: str
    transaction_id: UUID
    granted_at: datetime
    download_count: int = 0
