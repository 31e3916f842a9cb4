"""Client for the M-Pesa payment server."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from pixel_paywall.domain.payments import ChargeRequest


class MPesaClient(Protocol):
    """Interface for one M-Pesa payment rail."""

    async def c2b_payment(self, request: ChargeRequest) -> dict[str, object]:
        """Submit a customer-to-business charge and return the raw response."""

    async def query_status(
        self, transaction_id: str, third_party_reference: str
    ) -> dict[str, object]:
        """Query the status of an earlier charge."""

    async def health(self) -> dict[str, object]:
        """Return the server health payload."""


@dataclass
class HttpxMPesaClient(MPesaClient):
    """HTTPX-backed client for an M-Pesa payment server."""

    base_url: str
    http_client: httpx.AsyncClient
    api_key: str | None = None
    project_id: str | None = None

    @classmethod
    def create(
        cls,
        base_url: str,
        api_key: str | None = None,
        project_id: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> "HttpxMPesaClient":
        """Create a client whose requests may run for ``timeout_seconds``.

        A C2B push stays open until the payer confirms the charge on their phone.
        """
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds)),
            api_key=api_key,
            project_id=project_id,
        )

    async def c2b_payment(self, request: ChargeRequest) -> dict[str, object]:
        """Submit a charge to ``/api/mpesa/payment``."""
        payload: dict[str, object] = {
            "amount": request.amount,
            "customerMsisdn": request.customer_msisdn,
            "reference": request.reference,
            "thirdPartyReference": request.third_party_reference,
        }
        if self.project_id:
            payload["projectId"] = self.project_id
        response = await self.http_client.post(
            f"{self.base_url}/api/mpesa/payment",
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.json()

    async def query_status(
        self, transaction_id: str, third_party_reference: str
    ) -> dict[str, object]:
        """Query ``/api/mpesa/status``."""
        response = await self.http_client.post(
            f"{self.base_url}/api/mpesa/status",
            json={
                "transactionId": transaction_id,
                "thirdPartyReference": third_party_reference,
            },
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.json()

    async def health(self) -> dict[str, object]:
        """Fetch ``/api/health``."""
        response = await self.http_client.get(
            f"{self.base_url}/api/health", headers=self._headers()
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers
