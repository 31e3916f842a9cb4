"""Exception hierarchy for the paywall."""


class PaywallError(Exception):
    """Base exception for all paywall errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(PaywallError):
    """Raised when request input is rejected before any durable write."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class StorageError(PaywallError):
    """Raised when the durable store cannot be reached or returns nothing."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, status_code=503)


class LedgerError(PaywallError):
    """Raised when a ledger write fails."""

    def __init__(
        self, message: str = "Ledger operation failed", status_code: int = 500
    ):
        super().__init__(message, status_code=status_code)


class LedgerTransitionError(LedgerError):
    """Raised when a transaction is not in the status a transition requires."""

    def __init__(self, message: str = "Transaction is not pending"):
        super().__init__(message, status_code=409)


class EntitlementGrantError(PaywallError):
    """Raised when entitlements cannot be written for a completed transaction."""

    def __init__(self, message: str = "Entitlement grant failed"):
        super().__init__(message, status_code=500)


class NotFoundError(PaywallError):
    """Raised when a requested record does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)
