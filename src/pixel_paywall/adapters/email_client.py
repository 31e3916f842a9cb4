"""Email notifications through the Supabase ``send-email`` edge function."""

from dataclasses import dataclass

import httpx

from pixel_paywall.domain.events import (
    CriticalGatewayFailure,
    EntitlementGrantFailed,
    LedgerRecordingFailed,
    NotificationEvent,
    PaymentCompleted,
    PaymentFailed,
)


@dataclass
class HttpxEmailClient:
    """Sends notification emails with httpx."""

    function_url: str
    http_client: httpx.AsyncClient
    api_key: str | None = None
    admin_email: str | None = None

    @classmethod
    def create(
        cls, function_url: str, api_key: str | None, admin_email: str | None
    ) -> "HttpxEmailClient":
        """Create an email client with a managed httpx session."""
        return cls(
            function_url=function_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            api_key=api_key,
            admin_email=admin_email,
        )

    async def send(self, event: NotificationEvent) -> None:
        """Send every email an event calls for."""
        for message in _messages(event, self.admin_email):
            response = await self.http_client.post(
                f"{self.function_url}/send-email",
                json=message,
                headers=self._headers(),
                timeout=10,
            )
            response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}


def _messages(
    event: NotificationEvent, admin_email: str | None
) -> list[dict[str, object]]:
    """Build send-email payloads for an event."""
    messages: list[dict[str, object]] = []
    if isinstance(event, PaymentCompleted):
        payment_data = {
            "transactionId": str(event.transaction_id),
            "phoneNumber": event.phone_number,
            "imageCount": event.image_count,
            "amount": str(event.amount),
            "originalAmount": str(event.original_amount)
            if event.discount_amount > 0
            else None,
            "discountApplied": str(event.discount_amount)
            if event.discount_amount > 0
            else None,
            "couponCode": event.coupon_code,
        }
        if event.customer_email:
            messages.append(
                {
                    "to": event.customer_email,
                    "subject": "Payment confirmation - Reduza Pixel",
                    "type": "payment_confirmation",
                    "paymentData": payment_data,
                }
            )
        if admin_email:
            messages.append(
                {
                    "to": admin_email,
                    "subject": f"New transaction: {event.amount} MZN",
                    "type": "admin_notification",
                    "paymentData": payment_data,
                }
            )
    elif isinstance(event, PaymentFailed) and admin_email:
        messages.append(
            {
                "to": admin_email,
                "subject": f"Payment failed: {event.amount} MZN",
                "type": "admin_payment_failed",
                "paymentData": {
                    "transactionId": str(event.transaction_id),
                    "amount": str(event.amount),
                    "reason": event.reason,
                },
            }
        )
    elif isinstance(event, CriticalGatewayFailure) and admin_email:
        messages.append(
            {
                "to": admin_email,
                "subject": "CRITICAL: both M-Pesa gateways failed",
                "type": "admin_alert",
                "paymentData": {
                    "transactionId": str(event.transaction_id),
                    "amount": str(event.amount),
                    "primaryError": event.primary_error,
                    "secondaryError": event.secondary_error,
                },
            }
        )
    elif isinstance(event, EntitlementGrantFailed) and admin_email:
        messages.append(
            {
                "to": admin_email,
                "subject": "CRITICAL: paid images were not unlocked",
                "type": "admin_alert",
                "paymentData": {
                    "transactionId": str(event.transaction_id),
                    "sessionId": event.session_id,
                    "imageCount": len(event.fingerprints),
                    "error": event.error,
                },
            }
        )
    elif isinstance(event, LedgerRecordingFailed) and admin_email:
        messages.append(
            {
                "to": admin_email,
                "subject": "CRITICAL: charged payment not recorded",
                "type": "admin_alert",
                "paymentData": {
                    "transactionId": str(event.transaction_id),
                    "sessionId": event.session_id,
                    "amount": str(event.amount),
                    "mpesaTransactionId": event.gateway_transaction_id,
                    "error": event.error,
                },
            }
        )
    return messages
