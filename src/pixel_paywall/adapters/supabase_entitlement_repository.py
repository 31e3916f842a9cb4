"""Supabase-backed entitlement repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from pixel_paywall.domain.entitlements import EntitlementRecord
from pixel_paywall.services.entitlements import EntitlementRepository

_TABLE = "image_downloads"


@dataclass
class SupabaseEntitlementRepository(EntitlementRepository):
    """Stores entitlements as ``image_downloads`` rows."""

    client: Client

    def list_fingerprints(self, session_id: str) -> set[str]:
        """Return every entitled fingerprint for a session."""
        response = (
            self.client.table(_TABLE)
            .select("image_hash")
            .eq("session_id", session_id)
            .execute()
        )
        return {row["image_hash"] for row in response.data or []}

    def has_entitlement(self, session_id: str, fingerprint: str) -> bool:
        """Return whether a fingerprint is entitled in a session."""
        response = (
            self.client.table(_TABLE)
            .select("image_hash")
            .eq("session_id", session_id)
            .eq("image_hash", fingerprint)
            .limit(1)
            .execute()
        )
        return bool(response.data)

    def grant(
        self,
        session_id: str,
        fingerprints: list[str],
        transaction_id: UUID,
        granted_at: datetime,
    ) -> None:
        """Upsert entitlement rows, leaving existing ones untouched."""
        rows = [
            {
                "session_id": session_id,
                "transaction_id": str(transaction_id),
                "image_hash": fingerprint,
                "original_filename": f"image_{fingerprint}",
                "download_count": 0,
                "granted_at": granted_at.isoformat(),
            }
            for fingerprint in fingerprints
        ]
        self.client.table(_TABLE).upsert(
            rows, on_conflict="session_id,image_hash", ignore_duplicates=True
        ).execute()

    def list_entitlements(self, session_id: str) -> list[EntitlementRecord]:
        """Return entitlement records for a session."""
        response = (
            self.client.table(_TABLE)
            .select(
                "session_id, image_hash, transaction_id, granted_at, download_count"
            )
            .eq("session_id", session_id)
            .order("granted_at")
            .execute()
        )
        return [
            EntitlementRecord(
                session_id=row["session_id"],
                fingerprint=row["image_hash"],
                transaction_id=UUID(row["transaction_id"]),
                granted_at=datetime.fromisoformat(row["granted_at"]),
                download_count=int(row.get("download_count") or 0),
            )
            for row in response.data or []
        ]

    def record_download(
        self, session_id: str, fingerprint: str, downloaded_at: datetime
    ) -> bool:
        """Increment the download counter of an entitlement."""
        response = (
            self.client.table(_TABLE)
            .select("id, download_count, first_downloaded_at")
            .eq("session_id", session_id)
            .eq("image_hash", fingerprint)
            .limit(1)
            .execute()
        )
        if not response.data:
            return False
        row = response.data[0]
        payload: dict[str, object] = {
            "download_count": int(row.get("download_count") or 0) + 1,
            "last_downloaded_at": downloaded_at.isoformat(),
        }
        if not row.get("first_downloaded_at"):
            payload["first_downloaded_at"] = downloaded_at.isoformat()
        self.client.table(_TABLE).update(payload).eq("id", row["id"]).execute()
        return True
