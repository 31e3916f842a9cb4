"""Entitlement store with a per-session cache over durable storage."""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from pixel_paywall.domain.entitlements import EntitlementRecord
from pixel_paywall.errors import EntitlementGrantError, StorageError

_logger = logging.getLogger(__name__)


class EntitlementRepository(Protocol):
    """Persistence interface for entitlements."""

    def list_fingerprints(self, session_id: str) -> set[str]:
        """Return every entitled fingerprint for a session."""

    def has_entitlement(self, session_id: str, fingerprint: str) -> bool:
        """Return whether a fingerprint is entitled in a session."""

    def grant(
        self,
        session_id: str,
        fingerprints: list[str],
        transaction_id: UUID,
        granted_at: datetime,
    ) -> None:
        """Insert entitlements, ignoring fingerprints already present."""

    def list_entitlements(self, session_id: str) -> list[EntitlementRecord]:
        """Return entitlement records for a session."""

    def record_download(
        self, session_id: str, fingerprint: str, downloaded_at: datetime
    ) -> bool:
        """Bump the download counter of an entitlement; return False if absent."""


@dataclass
class EntitlementStore:
    """Answers whether a session may download an artifact without paying."""

    repository: EntitlementRepository
    _cache: dict[str, set[str]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def is_entitled(self, session_id: str, fingerprint: str) -> bool:
        """Check the cache, then durable storage. Fails closed."""
        with self._lock:
            if fingerprint in self._cache.get(session_id, ()):
                return True
        try:
            found = self.repository.has_entitlement(session_id, fingerprint)
        except Exception:
            _logger.warning(
                "Entitlement lookup failed, treating as not entitled: session=%s",
                session_id,
                exc_info=True,
            )
            return False
        if found:
            self._add(session_id, [fingerprint])
        return found

    def grant(
        self, session_id: str, fingerprints: Iterable[str], transaction_id: UUID
    ) -> None:
        """Grant fingerprints to a session. Already-entitled ones are no-ops."""
        unique = list(dict.fromkeys(fingerprints))
        if not unique:
            return
        try:
            self.repository.grant(
                session_id=session_id,
                fingerprints=unique,
                transaction_id=transaction_id,
                granted_at=datetime.now(tz=UTC),
            )
        except Exception as exc:
            raise EntitlementGrantError(
                f"Failed to grant {len(unique)} entitlements: {exc}"
            ) from exc
        self._add(session_id, unique)

    def load_all(self, session_id: str) -> set[str]:
        """Replace the session's cached entitlements with durable storage."""
        try:
            fingerprints = set(self.repository.list_fingerprints(session_id))
        except Exception as exc:
            raise StorageError(f"Failed to load entitlements: {exc}") from exc
        with self._lock:
            self._cache[session_id] = set(fingerprints)
        return fingerprints

    def list_entitlements(self, session_id: str) -> list[EntitlementRecord]:
        """Return entitlement records for a session."""
        try:
            return self.repository.list_entitlements(session_id)
        except Exception as exc:
            raise StorageError(f"Failed to list entitlements: {exc}") from exc

    def record_download(self, session_id: str, fingerprint: str) -> bool:
        """Register a download of an entitled artifact."""
        if not self.is_entitled(session_id, fingerprint):
            return False
        try:
            return self.repository.record_download(
                session_id, fingerprint, datetime.now(tz=UTC)
            )
        except Exception:
            _logger.warning(
                "Failed to record download: session=%s fingerprint=%s",
                session_id,
                fingerprint,
                exc_info=True,
            )
            return False

    def _add(self, session_id: str, fingerprints: list[str]) -> None:
        with self._lock:
            self._cache.setdefault(session_id, set()).update(fingerprints)
