"""Delivery of entitled artifacts."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from pixel_paywall.services.entitlements import EntitlementStore


class DeliverySink(Protocol):
    """Releases entitled artifacts to the user."""

    async def deliver(self, session_id: str, fingerprints: Sequence[str]) -> int:
        """Release artifacts and return how many were delivered."""


@dataclass
class DownloadReleaseSink(DeliverySink):
    """Releases artifacts by registering a download for each entitled one."""

    entitlement_store: EntitlementStore

    async def deliver(self, session_id: str, fingerprints: Sequence[str]) -> int:
        """Register downloads and return the number released."""
        delivered = 0
        for fingerprint in fingerprints:
            if self.entitlement_store.record_download(session_id, fingerprint):
                delivered += 1
        return delivered
