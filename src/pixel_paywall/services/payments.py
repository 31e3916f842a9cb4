"""Payment gateway adapter with primary and secondary rails."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from decimal import Decimal

import httpx

from pixel_paywall.adapters.mpesa_client import MPesaClient
from pixel_paywall.app_logging import mask_msisdn
from pixel_paywall.domain.payments import (
    RAIL_PRIMARY,
    RAIL_SECONDARY,
    SUCCESS_RESPONSE_CODE,
    ChargeRequest,
    ChargeResult,
    RailAttempt,
    RailHealth,
)

_logger = logging.getLogger(__name__)

_MSISDN_PATTERN = re.compile(r"^258(84|85)\d{7}$")
_LOCAL_PATTERN = re.compile(r"^8[45]\d{7}$")
_NON_DIGIT = re.compile(r"\D")
_MIN_REFERENCE_LENGTH = 3
_MISSING_IDS = {"", "N/A"}


def normalize_msisdn(raw: str) -> str:
    """Return a payer number in ``258XXXXXXXXX`` form when possible."""
    cleaned = _NON_DIGIT.sub("", raw)
    if _LOCAL_PATTERN.match(cleaned):
        return f"258{cleaned}"
    return cleaned


def is_valid_msisdn(raw: str) -> bool:
    """Return whether a payer number belongs to a supported carrier."""
    return bool(_MSISDN_PATTERN.match(normalize_msisdn(raw)))


@dataclass
class PaymentGateway:
    """Charges payers through the primary rail, falling back once to the secondary.

    Each attempt gets its own timeout and is cancelled when it expires. When
    both rails fail the result is flagged ``critical``.
    """

    primary: MPesaClient
    secondary: MPesaClient
    timeout_seconds: float = 30.0
    min_amount: Decimal = Decimal("1")
    max_amount: Decimal = Decimal("999999")

    def validate_payer(self, payer_reference: str) -> str | None:
        """Return an error message if the payer number is not accepted."""
        if not is_valid_msisdn(payer_reference):
            return (
                "Phone number must be a Mozambican M-Pesa number "
                "(84/85 followed by 7 digits)."
            )
        return None

    def validate_charge(
        self, payer_reference: str, amount: Decimal, reference: str
    ) -> tuple[str, str] | None:
        """Return the rejected field and a message if a charge would be refused."""
        if amount < self.min_amount:
            return "amount", f"Minimum amount is {self.min_amount}."
        if amount > self.max_amount:
            return "amount", f"Maximum amount of {self.max_amount} exceeded."
        payer_error = self.validate_payer(payer_reference)
        if payer_error:
            return "payer_reference", payer_error
        if not reference or len(reference) < _MIN_REFERENCE_LENGTH:
            return "reference", "Invalid payment reference."
        return None

    async def charge(
        self,
        payer_reference: str,
        amount: Decimal,
        reference: str,
        correlation_id: str,
    ) -> ChargeResult:
        """Charge a payer. Never raises for gateway failures."""
        rejected = self.validate_charge(payer_reference, amount, reference)
        if rejected:
            return ChargeResult(success=False, error=rejected[1])

        request = ChargeRequest(
            amount=_format_amount(amount),
            customer_msisdn=normalize_msisdn(payer_reference),
            reference=reference,
            third_party_reference=correlation_id,
        )
        primary = await self._attempt(
            RAIL_PRIMARY, lambda: self.primary.c2b_payment(request)
        )
        first = RailAttempt(RAIL_PRIMARY, primary.success, _describe(primary))
        if primary.success:
            return replace(primary, attempts=(first,))

        _logger.warning(
            "Primary gateway failed, trying secondary: reference=%s payer=%s error=%s",
            reference,
            mask_msisdn(request.customer_msisdn),
            first.error,
        )
        secondary = await self._attempt(
            RAIL_SECONDARY, lambda: self.secondary.c2b_payment(request)
        )
        second = RailAttempt(RAIL_SECONDARY, secondary.success, _describe(secondary))
        if secondary.success:
            return replace(secondary, attempts=(first, second))

        _logger.critical(
            "Both gateway rails failed: reference=%s primary=%s secondary=%s",
            reference,
            first.error,
            second.error,
        )
        return replace(secondary, critical=True, attempts=(first, second))

    async def query_status(
        self, transaction_id: str, third_party_reference: str
    ) -> ChargeResult:
        """Query an earlier charge, falling back to the secondary rail."""
        result = await self._attempt(
            RAIL_PRIMARY,
            lambda: self.primary.query_status(transaction_id, third_party_reference),
        )
        if result.success or result.response_code is not None:
            return result
        return await self._attempt(
            RAIL_SECONDARY,
            lambda: self.secondary.query_status(transaction_id, third_party_reference),
        )

    async def health(self) -> list[RailHealth]:
        """Report the health of both rails."""
        report = []
        rails = ((RAIL_PRIMARY, self.primary), (RAIL_SECONDARY, self.secondary))
        for rail, client in rails:
            try:
                async with asyncio.timeout(self.timeout_seconds):
                    payload = await client.health()
            except (TimeoutError, httpx.HTTPError, ValueError) as exc:
                report.append(RailHealth(rail=rail, healthy=False, details=str(exc)))
                continue
            details = payload.get("status") if isinstance(payload, dict) else None
            report.append(
                RailHealth(rail=rail, healthy=True, details=str(details or "ok"))
            )
        return report

    async def _attempt(
        self, rail: str, call: Callable[[], Awaitable[dict[str, object]]]
    ) -> ChargeResult:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                payload = await call()
        except TimeoutError:
            return ChargeResult(
                success=False,
                error=f"Gateway did not respond within {self.timeout_seconds:g}s",
                rail=rail,
            )
        except httpx.HTTPStatusError as exc:
            return ChargeResult(
                success=False,
                error=f"HTTP {exc.response.status_code} from gateway",
                rail=rail,
            )
        except (httpx.HTTPError, ValueError) as exc:
            return ChargeResult(
                success=False,
                error=f"Gateway request failed: {str(exc) or type(exc).__name__}",
                rail=rail,
            )
        return _normalize(rail, payload)


def _normalize(rail: str, payload: object) -> ChargeResult:
    """Normalize a gateway response. Success requires the gateway's own code."""
    if not isinstance(payload, dict):
        return ChargeResult(
            success=False, error="Malformed gateway response", rail=rail
        )
    nested = payload.get("data")
    if isinstance(nested, dict):
        payload = {**payload, **nested}
    code = payload.get("responseCode") or payload.get("output_ResponseCode")
    description = payload.get("responseDesc") or payload.get("output_ResponseDesc")
    success = code == SUCCESS_RESPONSE_CODE
    error = None
    if not success:
        error = str(payload.get("error") or description or "Payment was not accepted")
    status = payload.get("transactionStatus") or payload.get(
        "output_ResponseTransactionStatus"
    )
    return ChargeResult(
        success=success,
        gateway_transaction_id=_optional_id(
            payload.get("transactionId") or payload.get("output_TransactionID")
        ),
        gateway_conversation_id=_optional_id(
            payload.get("conversationId") or payload.get("output_ConversationID")
        ),
        response_code=str(code) if code is not None else None,
        response_desc=str(description) if description is not None else None,
        transaction_status=str(status) if status is not None else None,
        error=error,
        rail=rail,
    )


def _optional_id(value: object) -> str | None:
    if value is None or str(value) in _MISSING_IDS:
        return None
    return str(value)


def _describe(result: ChargeResult) -> str | None:
    if result.success:
        return None
    return result.response_desc or result.error


def _format_amount(amount: Decimal) -> str:
    return format(amount.quantize(Decimal("0.01")), "f")
