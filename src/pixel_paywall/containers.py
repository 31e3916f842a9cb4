"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal

from supabase import create_client

from pixel_paywall.adapters.email_client import HttpxEmailClient
from pixel_paywall.adapters.mpesa_client import HttpxMPesaClient
from pixel_paywall.adapters.supabase_entitlement_repository import (
    SupabaseEntitlementRepository,
)
from pixel_paywall.adapters.supabase_pricing_repository import (
    SupabasePricingRepository,
)
from pixel_paywall.adapters.supabase_transaction_repository import (
    SupabaseTransactionRepository,
)
from pixel_paywall.config import Settings
from pixel_paywall.services.delivery import DownloadReleaseSink
from pixel_paywall.services.entitlements import EntitlementStore
from pixel_paywall.services.ledger import TransactionLedger
from pixel_paywall.services.notifications import NotificationService
from pixel_paywall.services.payments import PaymentGateway
from pixel_paywall.services.pricing import PricingService
from pixel_paywall.services.reconciler import EntitlementReconciler


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    entitlement_store: EntitlementStore
    pricing_service: PricingService
    ledger: TransactionLedger
    payment_gateway: PaymentGateway
    notification_service: NotificationService
    reconciler: EntitlementReconciler
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    entitlement_store = EntitlementStore(SupabaseEntitlementRepository(supabase_client))
    pricing_service = PricingService(SupabasePricingRepository(supabase_client))
    ledger = TransactionLedger(SupabaseTransactionRepository(supabase_client))
    primary_client = HttpxMPesaClient.create(
        resolved_settings.mpesa_primary_url,
        api_key=resolved_settings.mpesa_api_key,
        project_id=resolved_settings.mpesa_project_id,
        timeout_seconds=resolved_settings.gateway_timeout_seconds,
    )
    secondary_client = HttpxMPesaClient.create(
        resolved_settings.mpesa_secondary_url,
        api_key=resolved_settings.mpesa_api_key,
        timeout_seconds=resolved_settings.gateway_timeout_seconds,
    )
    payment_gateway = PaymentGateway(
        primary=primary_client,
        secondary=secondary_client,
        timeout_seconds=resolved_settings.gateway_timeout_seconds,
        min_amount=Decimal(str(resolved_settings.payment_min_amount)),
        max_amount=Decimal(str(resolved_settings.payment_max_amount)),
    )
    email_client = None
    if resolved_settings.email_function_url:
        email_client = HttpxEmailClient.create(
            resolved_settings.email_function_url,
            api_key=resolved_settings.email_function_key,
            admin_email=resolved_settings.admin_email,
        )
    notification_service = NotificationService(sender=email_client)
    reconciler = EntitlementReconciler(
        entitlement_store=entitlement_store,
        pricing_service=pricing_service,
        ledger=ledger,
        gateway=payment_gateway,
        delivery_sink=DownloadReleaseSink(entitlement_store),
        notifications=notification_service,
        reference_prefix=resolved_settings.mpesa_reference_prefix,
    )

    async def close_resources() -> None:
        await notification_service.drain()
        await primary_client.close()
        await secondary_client.close()
        if email_client is not None:
            await email_client.close()

    return AppContainer(
        settings=resolved_settings,
        entitlement_store=entitlement_store,
        pricing_service=pricing_service,
        ledger=ledger,
        payment_gateway=payment_gateway,
        notification_service=notification_service,
        reconciler=reconciler,
        close_resources=close_resources,
    )
